"""FleetView: fleet-tracking dashboard service."""
