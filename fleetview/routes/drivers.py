"""
Driver views.
"""
import asyncio

from fastapi import APIRouter, Depends

from fleetview.dependencies import get_registry
from fleetview.schemas import Driver, DriversView, FetchState
from fleetview.services.resources import ResourceRegistry
from fleetview.services.views import ALL, driver_counts, filter_drivers, normalize_all, view_meta

router = APIRouter(prefix="/api/v1/drivers", tags=["drivers"])


def _drivers_view(drivers_state: FetchState, status_state: FetchState, search: str, status: str) -> DriversView:
    drivers = normalize_all(Driver, drivers_state.data)
    return DriversView(
        drivers=filter_drivers(drivers, search, status),
        total=len(drivers),
        counts=driver_counts(drivers),
        **view_meta(drivers_state, status_state),
    )


@router.get("", response_model=DriversView, response_model_exclude_none=True)
async def list_drivers(
    search: str = "",
    status: str = ALL,
    registry: ResourceRegistry = Depends(get_registry),
):
    """
    List drivers with active/break/offline counts.

    Search matches name, code and CPF. Counts cover the unfiltered list.
    Driver status rows are not merged into the drivers; they only feed
    loading, error and last_updated.
    """
    drivers_state, status_state = await asyncio.gather(
        registry.acquire("drivers"),
        registry.acquire("driver_status"),
    )
    return _drivers_view(drivers_state, status_state, search, status)


@router.post("/refresh", response_model=DriversView, response_model_exclude_none=True)
async def refresh_drivers(
    search: str = "",
    status: str = ALL,
    registry: ResourceRegistry = Depends(get_registry),
):
    """Refetch drivers and driver status together."""
    drivers_state, status_state = await asyncio.gather(
        registry.refetch("drivers"),
        registry.refetch("driver_status"),
    )
    return _drivers_view(drivers_state, status_state, search, status)
