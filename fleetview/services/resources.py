"""
Named polling resources, one per upstream collection the views consume.

A resource is created and loaded the first time a view asks for it, then
refreshed on its interval. Intervals only apply when auto-refresh is
enabled; otherwise resources refresh on demand only.
"""
import asyncio
from dataclasses import dataclass
from typing import Optional

import structlog

from fleetview.schemas import FetchState
from fleetview.services.api_client import FleetApiClient
from fleetview.services.poller import PollingResource

logger = structlog.get_logger("resources")

REFRESH_30_MS = 30_000
REFRESH_60_MS = 60_000


@dataclass(frozen=True)
class ResourceSpec:
    """Which client method feeds a resource and how often it polls."""
    method: str
    interval_ms: int = 0


RESOURCE_SPECS: dict[str, ResourceSpec] = {
    "vehicles": ResourceSpec("get_vehicles", REFRESH_30_MS),
    "drivers": ResourceSpec("get_drivers", REFRESH_60_MS),
    "driver_status": ResourceSpec("get_driver_status", REFRESH_30_MS),
    "routes": ResourceSpec("get_routes"),
    "trip_plans": ResourceSpec("get_trip_plans"),
    "smartboxes": ResourceSpec("get_smartboxes", REFRESH_60_MS),
    "authorized_vehicles": ResourceSpec("get_authorized_vehicles"),
    "information_regions": ResourceSpec("get_information_regions"),
    "information_regions_log": ResourceSpec("get_information_regions_log"),
    "obc_commands": ResourceSpec("get_obc_commands"),
}


class ResourceRegistry:
    """Owns the polling resources of one application instance."""

    def __init__(
        self,
        client: FleetApiClient,
        auto_refresh: bool = False,
        keep_last_good: bool = False,
    ):
        self.client = client
        self.auto_refresh = auto_refresh
        self.keep_last_good = keep_last_good
        self._resources: dict[str, PollingResource] = {}
        self._first_loads: dict[str, asyncio.Task] = {}

    def interval_for(self, name: str) -> int:
        if not self.auto_refresh:
            return 0
        return RESOURCE_SPECS[name].interval_ms

    def _producer_for(self, name: str):
        return getattr(self.client, RESOURCE_SPECS[name].method)

    def get(self, name: str) -> Optional[PollingResource]:
        return self._resources.get(name)

    async def acquire(self, name: str) -> FetchState:
        """
        State of a resource, loading it first if this is its first use.

        Callers arriving while the first load is in flight wait for it
        instead of seeing the empty initial state.

        Raises KeyError for unknown resource names.
        """
        if name not in RESOURCE_SPECS:
            raise KeyError(name)

        resource = self._resources.get(name)
        if resource is None:
            resource = PollingResource(
                self._producer_for(name),
                interval_ms=self.interval_for(name),
                name=name,
                keep_last_good=self.keep_last_good,
            )
            self._resources[name] = resource
            logger.info("Resource activated", resource=name, interval_ms=resource.interval_ms)
            self._first_loads[name] = asyncio.create_task(self._first_load(name, resource))

        first_load = self._first_loads.get(name)
        if first_load is not None:
            # a cancelled request must not cancel the load other callers share
            await asyncio.shield(first_load)
        return resource.state

    async def _first_load(self, name: str, resource: PollingResource) -> None:
        try:
            await resource.refetch()
            if not resource.closed:
                resource.start(immediate=False)
        finally:
            self._first_loads.pop(name, None)

    async def refetch(self, name: str) -> FetchState:
        """Force a fetch cycle, activating the resource if needed."""
        if name not in self._resources:
            return await self.acquire(name)
        return await self._resources[name].refetch()

    def rebind(self, client: FleetApiClient) -> None:
        """Point every resource at a new client without restarting timers."""
        self.client = client
        for name, resource in self._resources.items():
            resource.replace_producer(self._producer_for(name))

    async def close(self) -> None:
        pending = list(self._first_loads.values())
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        for resource in self._resources.values():
            await resource.close()
        self._resources.clear()
