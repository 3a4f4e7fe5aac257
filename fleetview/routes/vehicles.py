"""
Vehicle views: fleet list, per-vehicle positions, authorization and routes.
"""
import structlog
from fastapi import APIRouter, Depends

from fleetview.dependencies import get_api_client, get_registry
from fleetview.schemas import (
    AuthorizeResult,
    Route,
    Vehicle,
    VehicleRoutesView,
    VehiclePosition,
    VehiclePositionsView,
    VehiclesView,
)
from fleetview.services.api_client import FleetApiClient
from fleetview.services.resources import ResourceRegistry
from fleetview.services.views import (
    ALL,
    NOT_AUTHORIZED,
    classify_position_error,
    filter_vehicles,
    normalize_all,
    unique_positions_newest_first,
    view_meta,
)

logger = structlog.get_logger("vehicles")

router = APIRouter(prefix="/api/v1/vehicles", tags=["vehicles"])


def _vehicles_view(state, search: str, status: str) -> VehiclesView:
    vehicles = normalize_all(Vehicle, state.data)
    return VehiclesView(
        vehicles=filter_vehicles(vehicles, search, status),
        total=len(vehicles),
        **view_meta(state),
    )


@router.get("", response_model=VehiclesView, response_model_exclude_none=True)
async def list_vehicles(
    search: str = "",
    status: str = ALL,
    registry: ResourceRegistry = Depends(get_registry),
):
    """List vehicles, filtered by a search term over plate/name/code and by status."""
    state = await registry.acquire("vehicles")
    return _vehicles_view(state, search, status)


@router.post("/refresh", response_model=VehiclesView, response_model_exclude_none=True)
async def refresh_vehicles(
    search: str = "",
    status: str = ALL,
    registry: ResourceRegistry = Depends(get_registry),
):
    """Refetch vehicles now."""
    state = await registry.refetch("vehicles")
    return _vehicles_view(state, search, status)


@router.get("/{vehicle_code}/positions", response_model=VehiclePositionsView, response_model_exclude_none=True)
async def get_vehicle_positions(
    vehicle_code: str,
    client: FleetApiClient = Depends(get_api_client),
):
    """
    Position history of one vehicle, deduplicated and newest first.

    A vehicle missing from the authorized units makes the upstream answer
    422; that is reported as error="not_authorized" rather than a failure.
    """
    result = await client.get_vehicle_positions(vehicle_code)
    if not result.is_ok:
        error = classify_position_error(result)
        if error == NOT_AUTHORIZED:
            logger.info("Vehicle not authorized", vehicle_code=vehicle_code)
        return VehiclePositionsView(
            vehicle_code=vehicle_code,
            error=error,
            message=result.error,
        )

    positions = normalize_all(VehiclePosition, result.data)
    return VehiclePositionsView(
        vehicle_code=vehicle_code,
        positions=unique_positions_newest_first(positions),
    )


@router.post("/{vehicle_code}/authorize", response_model=AuthorizeResult, response_model_exclude_none=True)
async def authorize_vehicle(
    vehicle_code: str,
    client: FleetApiClient = Depends(get_api_client),
):
    """Register a vehicle in the authorized units so its positions become visible."""
    result = await client.add_authorized_vehicle(vehicle_code)
    if not result.is_ok:
        return AuthorizeResult(vehicle_code=vehicle_code, authorized=False, error=result.error)
    logger.info("Vehicle authorized", vehicle_code=vehicle_code)
    return AuthorizeResult(vehicle_code=vehicle_code, authorized=True)


@router.get("/{vehicle_code}/routes", response_model=VehicleRoutesView, response_model_exclude_none=True)
async def get_vehicle_routes(
    vehicle_code: str,
    registry: ResourceRegistry = Depends(get_registry),
):
    """
    Routes available to a vehicle.

    The upstream has no vehicle/route association, so every route is offered.
    """
    state = await registry.acquire("routes")
    return VehicleRoutesView(
        vehicle_code=vehicle_code,
        routes=normalize_all(Route, state.data),
        error=state.error,
    )
