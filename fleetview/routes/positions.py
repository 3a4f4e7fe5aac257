"""
Live position views, derived from each vehicle's last reported position.
"""
from fastapi import APIRouter, Depends

from fleetview.dependencies import get_registry
from fleetview.schemas import FetchState, PositionsView, Vehicle
from fleetview.services.resources import ResourceRegistry
from fleetview.services.views import (
    ALL,
    derive_tracked_positions,
    filter_positions,
    normalize_all,
    position_counts,
    view_meta,
)

router = APIRouter(prefix="/api/v1/positions", tags=["positions"])


def _positions_view(state: FetchState, search: str, vehicle: str) -> PositionsView:
    positions = derive_tracked_positions(normalize_all(Vehicle, state.data))
    return PositionsView(
        positions=filter_positions(positions, search, vehicle),
        counts=position_counts(positions),
        **view_meta(state),
    )


@router.get("", response_model=PositionsView, response_model_exclude_none=True)
async def list_positions(
    search: str = "",
    vehicle: str = ALL,
    registry: ResourceRegistry = Depends(get_registry),
):
    """Tracked positions with moving/stopped/engine-on counts over the whole fleet."""
    state = await registry.acquire("vehicles")
    return _positions_view(state, search, vehicle)


@router.post("/refresh", response_model=PositionsView, response_model_exclude_none=True)
async def refresh_positions(
    search: str = "",
    vehicle: str = ALL,
    registry: ResourceRegistry = Depends(get_registry),
):
    state = await registry.refetch("vehicles")
    return _positions_view(state, search, vehicle)
