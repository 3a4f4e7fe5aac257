"""
Pydantic schemas for transport results, upstream entities and view responses.

Upstream objects arrive with PascalCase keys (Code, Name, LicensePlate...).
Entity models re-key them onto camelCase names, keep unknown keys as extras
and serialize by alias.
"""
import math
from datetime import datetime
from typing import Any, ClassVar, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


HttpMethod = Literal["GET", "POST", "PUT", "DELETE", "OPTIONS"]

DEFAULT_STATUS = "active"


# ============ Transport ============

class RequestDescriptor(BaseModel):
    """One upstream request. Immutable once issued."""
    model_config = ConfigDict(frozen=True)

    method: HttpMethod = "GET"
    path: str
    params: tuple[tuple[str, str], ...] = ()
    body: Optional[str] = None
    headers: tuple[tuple[str, str], ...] = ()


class ApiResult(BaseModel):
    """
    Normalized outcome of a transport call: either data or an error message.

    Build with ApiResult.ok(...) / ApiResult.fail(...). A successful result
    may carry a JSON null payload, so success is keyed on error being unset.
    """
    model_config = ConfigDict(frozen=True)

    data: Any = None
    error: Optional[str] = None
    status_code: Optional[int] = None  # upstream HTTP status, failures only

    @model_validator(mode="after")
    def check_exclusive(self):
        if self.error is not None and self.data is not None:
            raise ValueError("ApiResult cannot carry both data and error")
        if self.error == "":
            raise ValueError("ApiResult error message must not be empty")
        return self

    @classmethod
    def ok(cls, data: Any) -> "ApiResult":
        return cls(data=data)

    @classmethod
    def fail(cls, message: str, status_code: Optional[int] = None) -> "ApiResult":
        return cls(error=message or "Unknown error occurred", status_code=status_code)

    @property
    def is_ok(self) -> bool:
        return self.error is None


class FetchState(BaseModel):
    """Snapshot of a polling resource."""
    data: Any = None
    loading: bool = True
    error: Optional[str] = None
    last_updated: Optional[datetime] = None


class ProxyErrorBody(BaseModel):
    """Body returned by the proxy when the upstream cannot be reached."""
    error: str = "Proxy error"
    message: str
    details: str = "Failed to connect to HTTP API"


# ============ Upstream entities ============

class UpstreamEntity(BaseModel):
    """
    Base for upstream payloads.

    `upstream_keys` maps a field name to the PascalCase key(s) the backend
    uses for it. The camelCase key wins when both are present.
    """
    model_config = ConfigDict(
        extra="allow",
        alias_generator=to_camel,
        populate_by_name=True,
        coerce_numbers_to_str=True,
    )

    upstream_keys: ClassVar[dict[str, tuple[str, ...]]] = {}

    @model_validator(mode="before")
    @classmethod
    def rekey_upstream_fields(cls, raw: Any) -> Any:
        if not isinstance(raw, dict):
            return raw
        data = dict(raw)
        for field_name, keys in cls.upstream_keys.items():
            alias = to_camel(field_name)
            if data.get(alias) not in (None, ""):
                continue
            for key in keys:
                if data.get(key) not in (None, ""):
                    data[alias] = data[key]
                    break
        return data


class StatusedEntity(UpstreamEntity):
    """
    Entity whose status is defaulted when the upstream omits it.

    status_source tells an upstream-confirmed status apart from the
    presentation default.
    """
    id: Optional[str] = None
    code: Optional[str] = None
    name: Optional[str] = None
    status: Optional[str] = None
    status_source: Literal["upstream", "default"] = "upstream"

    upstream_keys: ClassVar[dict[str, tuple[str, ...]]] = {
        "code": ("Code",),
        "name": ("Name",),
    }

    @model_validator(mode="before")
    @classmethod
    def default_identity_and_status(cls, raw: Any) -> Any:
        if not isinstance(raw, dict):
            return raw
        data = dict(raw)
        # id follows the upstream Code first, then whatever identifier exists
        ident = data.get("Code") or data.get("code") or data.get("id")
        if ident is not None:
            data["id"] = str(ident)
        if "statusSource" in data or "status_source" in data:
            return data
        status = data.get("status")
        if status in (None, ""):
            data["status"] = DEFAULT_STATUS
            data["statusSource"] = "default"
        else:
            data["status"] = str(status)
            data["statusSource"] = "upstream"
        return data


class Vehicle(StatusedEntity):
    plate: Optional[str] = None
    model: Optional[str] = None
    last_position: Optional[dict[str, Any]] = None

    upstream_keys: ClassVar[dict[str, tuple[str, ...]]] = {
        **StatusedEntity.upstream_keys,
        "plate": ("LicensePlate", "placa"),
        "model": ("Model",),
    }


class Driver(StatusedEntity):
    cpf: Optional[str] = None

    upstream_keys: ClassVar[dict[str, tuple[str, ...]]] = {
        **StatusedEntity.upstream_keys,
        "cpf": ("DriverCPF",),
    }


class Route(StatusedEntity):
    description: Optional[str] = None
    tolerance: Optional[float] = None

    upstream_keys: ClassVar[dict[str, tuple[str, ...]]] = {
        **StatusedEntity.upstream_keys,
        "description": ("Description",),
        "tolerance": ("Tolerance",),
    }


class Smartbox(StatusedEntity):
    pass


class Alert(UpstreamEntity):
    """An OBC command rendered as an alert."""
    id: Optional[str] = None
    title: Optional[str] = None
    vehicle_plate: Optional[str] = None
    vehicle_code: Optional[str] = None
    location: Optional[str] = None
    type: Optional[str] = None
    severity: Optional[str] = None
    status: Optional[str] = None

    upstream_keys: ClassVar[dict[str, tuple[str, ...]]] = {
        "title": ("command",),
        "vehicle_plate": ("plate",),
        "vehicle_code": ("vehicle", "vehicleId"),
        "type": ("category",),
        "severity": ("level",),
    }


class VehiclePosition(UpstreamEntity):
    """A point from /vehicles/{code}/positions."""
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    position_time: Optional[str] = None
    landmark: Optional[str] = None
    velocity: Optional[float] = None
    odometer: Optional[float] = None
    vehicle_name: Optional[str] = None
    county: Optional[str] = None
    uf: Optional[str] = None
    ignition: Union[bool, str, None] = None

    upstream_keys: ClassVar[dict[str, tuple[str, ...]]] = {
        "latitude": ("Latitude",),
        "longitude": ("Longitude",),
        "position_time": ("PositionTime",),
        "landmark": ("Landmark",),
        "velocity": ("Velocity",),
        "odometer": ("Odometer",),
        "vehicle_name": ("VehicleName",),
        "county": ("County",),
        "uf": ("UF",),
        "ignition": ("VehicleIgnition",),
    }

    @field_validator("latitude", "longitude", "velocity", "odometer", mode="before")
    @classmethod
    def drop_unreadable_numbers(cls, value: Any) -> Any:
        # placeholders such as "n/a" read as missing
        if value is None or isinstance(value, (int, float)):
            return value
        try:
            number = float(value)
        except (TypeError, ValueError):
            return None
        return number if math.isfinite(number) else None


class TrackedPosition(BaseModel):
    """Latest position of a vehicle, derived from its lastPosition."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    vehicle_code: str
    vehicle_plate: str = ""
    latitude: float
    longitude: float
    speed: float = 0
    heading: Optional[float] = None
    timestamp: str
    address: str = ""
    fuel: Optional[float] = None
    temperature: Optional[float] = None
    odometer: Optional[float] = None
    engine_status: Optional[bool] = None


# ============ View responses ============

class ViewMeta(BaseModel):
    """Fetch state shared by every view response."""
    loading: bool = False
    error: Optional[str] = None
    last_updated: Optional[datetime] = None


class VehiclesView(ViewMeta):
    vehicles: list[Vehicle]
    total: int


class DriverCounts(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    active: int = 0
    on_break: int = Field(0, alias="break")
    offline: int = 0


class DriversView(ViewMeta):
    drivers: list[Driver]
    total: int
    counts: DriverCounts


class RouteCounts(BaseModel):
    active: int = 0
    inactive: int = 0
    completed: int = 0


class RoutesView(ViewMeta):
    routes: list[Route]
    total: int
    counts: RouteCounts
    trip_plans: Optional[Any] = None


class AlertsView(ViewMeta):
    alerts: list[Alert]
    total: int
    filtered: int
    obc_commands_enabled: bool


class PositionCounts(BaseModel):
    moving: int = 0
    stopped: int = 0
    engine_on: int = 0
    total: int = 0


class PositionsView(ViewMeta):
    positions: list[TrackedPosition]
    counts: PositionCounts


class StatusSlice(BaseModel):
    name: str
    value: int


class DashboardView(BaseModel):
    total_vehicles: int
    total_drivers: int
    active_routes: int
    total_smartboxes: int
    alerts_count: int
    vehicle_status: list[StatusSlice]
    has_error: bool
    errors: dict[str, str] = Field(default_factory=dict)
    loading: bool = False
    last_updated: Optional[datetime] = None


class VehiclePositionsView(BaseModel):
    vehicle_code: str
    positions: list[VehiclePosition] = Field(default_factory=list)
    error: Optional[str] = None
    message: Optional[str] = None


class AuthorizeResult(BaseModel):
    vehicle_code: str
    authorized: bool
    error: Optional[str] = None


class VehicleRoutesView(BaseModel):
    vehicle_code: str
    routes: list[Route]
    error: Optional[str] = None
