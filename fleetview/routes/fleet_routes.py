"""
Route (itinerary) views and trip plans.
"""
import asyncio

from fastapi import APIRouter, Depends

from fleetview.dependencies import get_registry
from fleetview.schemas import FetchState, Route, RoutesView
from fleetview.services.resources import ResourceRegistry
from fleetview.services.views import ALL, filter_routes, normalize_all, route_counts, view_meta

router = APIRouter(prefix="/api/v1/routes", tags=["routes"])


def _routes_view(routes_state: FetchState, plans_state: FetchState, search: str, status: str) -> RoutesView:
    routes = normalize_all(Route, routes_state.data)
    return RoutesView(
        routes=filter_routes(routes, search, status),
        total=len(routes),
        counts=route_counts(routes),
        trip_plans=plans_state.data,
        **view_meta(routes_state, plans_state),
    )


@router.get("", response_model=RoutesView, response_model_exclude_none=True)
async def list_routes(
    search: str = "",
    status: str = ALL,
    registry: ResourceRegistry = Depends(get_registry),
):
    """List routes (search over name, code, description) with status counts."""
    routes_state, plans_state = await asyncio.gather(
        registry.acquire("routes"),
        registry.acquire("trip_plans"),
    )
    return _routes_view(routes_state, plans_state, search, status)


@router.post("/refresh", response_model=RoutesView, response_model_exclude_none=True)
async def refresh_routes(
    search: str = "",
    status: str = ALL,
    registry: ResourceRegistry = Depends(get_registry),
):
    routes_state, plans_state = await asyncio.gather(
        registry.refetch("routes"),
        registry.refetch("trip_plans"),
    )
    return _routes_view(routes_state, plans_state, search, status)
