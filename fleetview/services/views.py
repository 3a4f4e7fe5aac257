"""
Derived views: re-keying, search/filter predicates and aggregate counts.

Every view re-scans the full list per request; nothing is maintained
incrementally.
"""
from datetime import datetime, timezone
from typing import Any, Iterable, Optional, Type, TypeVar

from pydantic import ValidationError
import structlog

from fleetview.schemas import (
    Alert,
    ApiResult,
    Driver,
    DriverCounts,
    FetchState,
    PositionCounts,
    Route,
    RouteCounts,
    StatusSlice,
    TrackedPosition,
    UpstreamEntity,
    Vehicle,
    VehiclePosition,
)

logger = structlog.get_logger("views")

ALL = "all"
NOT_AUTHORIZED = "not_authorized"

E = TypeVar("E", bound=UpstreamEntity)


# ============ Normalization ============

def normalize_all(model: Type[E], payload: Any) -> list[E]:
    """Re-key every object of a list payload; anything else yields []."""
    if not isinstance(payload, list):
        return []
    items: list[E] = []
    for raw in payload:
        if not isinstance(raw, dict):
            continue
        try:
            items.append(model.model_validate(raw))
        except ValidationError as exc:
            logger.warning("Skipping malformed upstream object", model=model.__name__, error=str(exc))
    return items


def normalize_vehicle(raw: dict) -> Vehicle:
    return Vehicle.model_validate(raw)


def normalize_driver(raw: dict) -> Driver:
    return Driver.model_validate(raw)


def normalize_route(raw: dict) -> Route:
    return Route.model_validate(raw)


def normalize_position(raw: dict) -> VehiclePosition:
    return VehiclePosition.model_validate(raw)


# ============ Predicates ============

def _text(value: Any) -> str:
    return "" if value is None else str(value).lower()


def matches_search(term: Optional[str], *fields: Any) -> bool:
    """Case-insensitive substring match of term against any field."""
    needle = _text(term)
    if not needle:
        return True
    return any(needle in _text(field) for field in fields)


def matches_choice(value: Any, choice: Optional[str]) -> bool:
    """Drop-down equality; 'all' (or nothing) matches everything."""
    if choice is None or choice == ALL:
        return True
    return _text(value) == choice.lower()


def filter_vehicles(vehicles: Iterable[Vehicle], search: str = "", status: str = ALL) -> list[Vehicle]:
    return [
        v for v in vehicles
        if matches_search(search, v.plate, v.name, v.code or v.id)
        and matches_choice(v.status, status)
    ]


def filter_drivers(drivers: Iterable[Driver], search: str = "", status: str = ALL) -> list[Driver]:
    return [
        d for d in drivers
        if matches_search(search, d.name, d.code or d.id, d.cpf)
        and matches_choice(d.status, status)
    ]


def filter_routes(routes: Iterable[Route], search: str = "", status: str = ALL) -> list[Route]:
    return [
        r for r in routes
        if matches_search(search, r.name, r.code or r.id, r.description)
        and matches_choice(r.status, status)
    ]


def filter_alerts(
    alerts: Iterable[Alert],
    search: str = "",
    alert_type: str = ALL,
    severity: str = ALL,
    status: str = ALL,
) -> list[Alert]:
    return [
        a for a in alerts
        if matches_search(search, a.title, a.vehicle_plate, a.vehicle_code, a.location)
        and matches_choice(a.type, alert_type)
        and matches_choice(a.severity, severity)
        and matches_choice(a.status, status)
    ]


def filter_positions(
    positions: Iterable[TrackedPosition], search: str = "", vehicle: str = ALL
) -> list[TrackedPosition]:
    # vehicle selection compares codes exactly, as the picker lists them
    return [
        p for p in positions
        if matches_search(search, p.vehicle_plate, p.vehicle_code, p.address)
        and (vehicle == ALL or p.vehicle_code == vehicle)
    ]


# ============ Aggregates ============

def _count_status(items: Iterable[Any], status: str) -> int:
    return sum(1 for item in items if _text(item.status) == status)


def driver_counts(drivers: list[Driver]) -> DriverCounts:
    return DriverCounts(
        active=_count_status(drivers, "active"),
        on_break=_count_status(drivers, "break"),
        offline=_count_status(drivers, "offline"),
    )


def route_counts(routes: list[Route]) -> RouteCounts:
    return RouteCounts(
        active=_count_status(routes, "active"),
        inactive=_count_status(routes, "inactive"),
        completed=_count_status(routes, "completed"),
    )


def position_counts(positions: list[TrackedPosition]) -> PositionCounts:
    return PositionCounts(
        moving=sum(1 for p in positions if p.speed > 0),
        stopped=sum(1 for p in positions if p.speed == 0),
        engine_on=sum(1 for p in positions if p.engine_status is True),
        total=len(positions),
    )


def vehicle_status_distribution(raw_vehicles: Any) -> list[StatusSlice]:
    """
    Active / inactive / maintenance split over the raw upstream vehicles.

    Works on raw objects so the upstream 'ativo'/'manutencao' flags and a
    numeric status of 1 are still visible.
    """
    vehicles = raw_vehicles if isinstance(raw_vehicles, list) else []
    active = inactive = maintenance = 0
    for vehicle in vehicles:
        if not isinstance(vehicle, dict):
            inactive += 1
            continue
        status = vehicle.get("status")
        if status == "active" or vehicle.get("ativo") is True or (status == 1 and not isinstance(status, bool)):
            active += 1
        elif status == "maintenance" or vehicle.get("manutencao") is True:
            maintenance += 1
        else:
            inactive += 1
    return [
        StatusSlice(name="active", value=active),
        StatusSlice(name="inactive", value=inactive),
        StatusSlice(name="maintenance", value=maintenance),
    ]


def collection_size(payload: Any) -> int:
    return len(payload) if isinstance(payload, list) else 0


# ============ Positions ============

def _is_coordinate(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _number(value: Any) -> Optional[float]:
    """Numeric reading or None; upstream sometimes sends placeholders like 'n/a'."""
    return value if _is_coordinate(value) else None


def derive_tracked_positions(vehicles: Iterable[Vehicle]) -> list[TrackedPosition]:
    """
    Latest position of every vehicle that reports numeric coordinates.

    Non-numeric readings are dropped to None (speed to 0) so one bad
    field never hides the vehicle.
    """
    positions = []
    for vehicle in vehicles:
        last = vehicle.last_position or {}
        if not (_is_coordinate(last.get("latitude")) and _is_coordinate(last.get("longitude"))):
            continue
        engine = last.get("engineStatus")
        if engine is None:
            engine = last.get("ignition")
        address = last.get("address") or last.get("endereco")
        positions.append(TrackedPosition(
            id=vehicle.id or vehicle.code or "",
            vehicle_code=vehicle.code or vehicle.id or "",
            vehicle_plate=vehicle.plate or "",
            latitude=last["latitude"],
            longitude=last["longitude"],
            speed=_number(last.get("speed")) or 0,
            heading=_number(last.get("heading")),
            timestamp=str(last.get("timestamp") or last.get("dataHora") or datetime.now(timezone.utc).isoformat()),
            address=str(address) if address else "",
            fuel=_number(last.get("fuel")),
            temperature=_number(last.get("temperature")),
            odometer=_number(last.get("odometer")),
            engine_status=engine if isinstance(engine, bool) else None,
        ))
    return positions


def _parse_time(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def unique_positions_newest_first(positions: Iterable[VehiclePosition]) -> list[VehiclePosition]:
    """Drop repeats of the same (lat, lon, time) and sort newest first."""
    seen = set()
    unique = []
    for position in positions:
        key = (position.latitude, position.longitude, position.position_time)
        if key in seen:
            continue
        seen.add(key)
        unique.append(position)

    def sort_key(position: VehiclePosition):
        parsed = _parse_time(position.position_time)
        return (parsed is None, -parsed.timestamp() if parsed else 0.0)

    return sorted(unique, key=sort_key)


def classify_position_error(result: ApiResult) -> str:
    """A 422 from the positions endpoint means the vehicle is not authorized."""
    error = result.error or ""
    if result.status_code == 422 or "422" in error:
        return NOT_AUTHORIZED
    return error


# ============ Fetch metadata ============

def view_meta(*states: FetchState) -> dict:
    """Combine the fetch state of every resource a view depends on."""
    errors = [s.error for s in states if s.error]
    stamps = [s.last_updated for s in states if s.last_updated]
    return {
        "loading": any(s.loading for s in states),
        "error": errors[0] if errors else None,
        "last_updated": max(stamps) if stamps else None,
    }
