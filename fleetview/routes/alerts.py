"""
Alert views, fed by the OBC commands endpoint.

/obccommands is gated by ENABLE_OBC_COMMANDS; while disabled the list is
simply empty and obc_commands_enabled tells the front end why.
"""
from fastapi import APIRouter, Depends, Query

from fleetview.config import Settings, get_settings
from fleetview.dependencies import get_registry
from fleetview.schemas import Alert, AlertsView, FetchState
from fleetview.services.resources import ResourceRegistry
from fleetview.services.views import ALL, filter_alerts, normalize_all, view_meta

router = APIRouter(prefix="/api/v1/alerts", tags=["alerts"])

DEFAULT_ALERT_STATUS = "active"


def _alerts_view(
    state: FetchState,
    settings: Settings,
    search: str,
    alert_type: str,
    severity: str,
    status: str,
) -> AlertsView:
    alerts = normalize_all(Alert, state.data)
    filtered = filter_alerts(alerts, search, alert_type, severity, status)
    return AlertsView(
        alerts=filtered,
        total=len(alerts),
        filtered=len(filtered),
        obc_commands_enabled=settings.enable_obc_commands,
        **view_meta(state),
    )


@router.get("", response_model=AlertsView, response_model_exclude_none=True)
async def list_alerts(
    search: str = "",
    alert_type: str = Query(ALL, alias="type"),
    severity: str = ALL,
    status: str = DEFAULT_ALERT_STATUS,
    registry: ResourceRegistry = Depends(get_registry),
    settings: Settings = Depends(get_settings),
):
    """
    List alerts.

    Search matches title, vehicle plate, vehicle code and location. Status
    defaults to "active"; pass status=all to see every alert.
    """
    state = await registry.acquire("obc_commands")
    return _alerts_view(state, settings, search, alert_type, severity, status)


@router.post("/refresh", response_model=AlertsView, response_model_exclude_none=True)
async def refresh_alerts(
    search: str = "",
    alert_type: str = Query(ALL, alias="type"),
    severity: str = ALL,
    status: str = DEFAULT_ALERT_STATUS,
    registry: ResourceRegistry = Depends(get_registry),
    settings: Settings = Depends(get_settings),
):
    state = await registry.refetch("obc_commands")
    return _alerts_view(state, settings, search, alert_type, severity, status)
