"""
Dashboard overview: fleet totals, vehicle status split and connection health.
"""
import asyncio

from fastapi import APIRouter, Depends

from fleetview.dependencies import get_registry
from fleetview.schemas import DashboardView, FetchState
from fleetview.services.resources import ResourceRegistry
from fleetview.services.views import collection_size, vehicle_status_distribution, view_meta

router = APIRouter(prefix="/api/v1/dashboard", tags=["dashboard"])

DASHBOARD_RESOURCES = ("vehicles", "drivers", "routes", "smartboxes", "obc_commands")


def _dashboard_view(states: dict[str, FetchState]) -> DashboardView:
    errors = {name: state.error for name, state in states.items() if state.error}
    meta = view_meta(*states.values())
    return DashboardView(
        total_vehicles=collection_size(states["vehicles"].data),
        total_drivers=collection_size(states["drivers"].data),
        active_routes=collection_size(states["routes"].data),
        total_smartboxes=collection_size(states["smartboxes"].data),
        alerts_count=collection_size(states["obc_commands"].data),
        vehicle_status=vehicle_status_distribution(states["vehicles"].data),
        has_error=bool(errors),
        errors=errors,
        loading=meta["loading"],
        last_updated=meta["last_updated"],
    )


@router.get("", response_model=DashboardView)
async def get_dashboard(registry: ResourceRegistry = Depends(get_registry)):
    """Overview of every collection the dashboard tracks."""
    results = await asyncio.gather(*(registry.acquire(name) for name in DASHBOARD_RESOURCES))
    return _dashboard_view(dict(zip(DASHBOARD_RESOURCES, results)))


@router.post("/refresh", response_model=DashboardView)
async def refresh_dashboard(registry: ResourceRegistry = Depends(get_registry)):
    """Refetch every dashboard collection at once."""
    results = await asyncio.gather(*(registry.refetch(name) for name in DASHBOARD_RESOURCES))
    return _dashboard_view(dict(zip(DASHBOARD_RESOURCES, results)))
