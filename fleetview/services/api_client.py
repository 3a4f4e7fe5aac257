"""
Transport client for the upstream fleet-telemetry REST API.

Every call returns an ApiResult and never raises:
- network failures, non-2xx statuses and malformed JSON become ApiResult.fail
- a {"Data": ...} envelope is unwrapped, any other JSON passes through

One request per call; no retries.
"""
from typing import Any, Optional
from urllib.parse import quote

import httpx
import structlog

from fleetview.config import Settings, resolve_api_base_url
from fleetview.schemas import ApiResult, RequestDescriptor

logger = structlog.get_logger("api_client")

DEFAULT_HEADERS = {"Content-Type": "application/json"}


def unwrap_envelope(payload: Any) -> Any:
    """Unwrap the backend's {"Data": ...} envelope; pass anything else through."""
    if isinstance(payload, dict) and "Data" in payload:
        return payload["Data"]
    return payload


def error_message_for(response: httpx.Response) -> str:
    """Upstream-provided message if the error body has one, else a generic one."""
    try:
        body = response.json()
    except ValueError:
        body = None
    if isinstance(body, dict) and body.get("message"):
        return str(body["message"])
    return f"HTTP error! status: {response.status_code}"


def _segment(value: str) -> str:
    return quote(str(value), safe="")


class FleetApiClient:
    """
    Async client for the upstream API.

    Build with FleetApiClient.from_settings(settings). Tests inject an
    httpx.AsyncClient backed by httpx.MockTransport.
    """

    def __init__(
        self,
        base_url: str,
        enable_obc_commands: bool = False,
        client: Optional[httpx.AsyncClient] = None,
        timeout_s: float = 30.0,
    ):
        self.base_url = base_url.rstrip("/")
        self.enable_obc_commands = enable_obc_commands
        self._client = client or httpx.AsyncClient(timeout=httpx.Timeout(timeout_s))
        logger.info("Using API base URL", base_url=self.base_url)

    @classmethod
    def from_settings(
        cls, settings: Settings, client: Optional[httpx.AsyncClient] = None
    ) -> "FleetApiClient":
        return cls(
            base_url=resolve_api_base_url(settings),
            enable_obc_commands=settings.enable_obc_commands,
            client=client,
            timeout_s=settings.http_timeout_s,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> "FleetApiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    def url_for(self, path: str) -> str:
        return f"{self.base_url}{path}"

    async def call(self, descriptor: RequestDescriptor) -> ApiResult:
        """Issue one request and normalize the outcome."""
        url = self.url_for(descriptor.path)
        headers = {**DEFAULT_HEADERS, **dict(descriptor.headers)}
        logger.info("API request", method=descriptor.method, url=url)

        try:
            response = await self._client.request(
                descriptor.method,
                url,
                params=list(descriptor.params) or None,
                content=descriptor.body,
                headers=headers,
            )
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            message = str(exc) or exc.__class__.__name__
            logger.warning("API transport error", method=descriptor.method, url=url, error=message)
            return ApiResult.fail(message)

        if not response.is_success:
            message = error_message_for(response)
            logger.warning(
                "API error response",
                method=descriptor.method,
                url=url,
                status=response.status_code,
                error=message,
            )
            return ApiResult.fail(message, status_code=response.status_code)

        try:
            payload = response.json()
        except ValueError:
            logger.warning("API malformed response", method=descriptor.method, url=url)
            return ApiResult.fail(f"HTTP error! status: {response.status_code}")

        return ApiResult.ok(unwrap_envelope(payload))

    async def get(self, path: str, params: Optional[dict[str, str]] = None) -> ApiResult:
        return await self.call(
            RequestDescriptor(path=path, params=tuple((params or {}).items()))
        )

    async def post(self, path: str, body: Optional[str] = None) -> ApiResult:
        return await self.call(RequestDescriptor(method="POST", path=path, body=body))

    # ============ Accounts / vehicles ============

    async def get_accounts(self) -> ApiResult:
        return await self.get("/accounts")

    async def get_vehicles(self) -> ApiResult:
        return await self.get("/vehicles")

    async def get_vehicle_positions(self, vehicle_code: str) -> ApiResult:
        return await self.get(f"/vehicles/{_segment(vehicle_code)}/positions")

    async def add_authorized_vehicle(self, vehicle_code: str) -> ApiResult:
        return await self.post(f"/authorizedvehicles/{_segment(vehicle_code)}")

    async def get_vehicle_alerts(self, vehicle_code: str) -> ApiResult:
        return await self.get(f"/vehicles/{_segment(vehicle_code)}/expandedalerts")

    async def get_return_messages(self, vehicle_code: str) -> ApiResult:
        return await self.get(f"/vehicles/{_segment(vehicle_code)}/returnmessages")

    async def get_forward_messages(self, vehicle_code: str) -> ApiResult:
        return await self.get(f"/vehicles/{_segment(vehicle_code)}/forwardmessages")

    async def get_driver_logs(self, vehicle_code: str) -> ApiResult:
        return await self.get(f"/vehicles/{_segment(vehicle_code)}/driverlogs")

    async def get_authorized_vehicles(self) -> ApiResult:
        return await self.get("/authorizedvehicles")

    # ============ Smartboxes ============

    async def get_smartboxes(self) -> ApiResult:
        return await self.get("/smartboxes")

    async def get_smartbox_positions(self, smartbox_code: str) -> ApiResult:
        return await self.get(f"/smartboxes/{_segment(smartbox_code)}/positions")

    # ============ Drivers / routes ============

    async def get_driver_status(self) -> ApiResult:
        return await self.get("/driverstatus")

    async def get_drivers(self) -> ApiResult:
        return await self.get("/drivers")

    async def get_routes(self) -> ApiResult:
        return await self.get("/routes")

    async def get_trip_plans(self) -> ApiResult:
        return await self.get("/tripplans")

    # ============ Trailers / regions ============

    async def get_trailer_identifiers(self) -> ApiResult:
        return await self.get("/traileridentifiers")

    async def get_trailer_events(self, trailer_code: str) -> ApiResult:
        return await self.get(f"/traileridentifier/{_segment(trailer_code)}/events")

    async def get_information_regions(self) -> ApiResult:
        return await self.get("/informationregions")

    async def get_information_regions_log(self) -> ApiResult:
        return await self.get("/informationregionslog")

    # ============ OBC commands (policy gated) ============

    async def get_obc_commands(self) -> ApiResult:
        """
        List OBC commands.

        Disabled unless ENABLE_OBC_COMMANDS=true: returns an empty list
        without touching the network.
        """
        if not self.enable_obc_commands:
            logger.warning("OBC commands disabled, no request to /obccommands")
            return ApiResult.ok([])
        return await self.get("/obccommands")

    # ============ Activity points ============

    async def get_activity_points(self) -> ApiResult:
        return await self.get("/activitypoints")

    async def get_activity_point(self, point_code: str) -> ApiResult:
        return await self.get(f"/activitypoints/{_segment(point_code)}")

    async def get_activity_point_vehicles(self, point_code: str) -> ApiResult:
        return await self.get(f"/activitypoints/{_segment(point_code)}/vehicles")

    async def get_vehicle_activity_points(self, vehicle_code: str) -> ApiResult:
        return await self.get(f"/activitypoints/vehicles/{_segment(vehicle_code)}")
