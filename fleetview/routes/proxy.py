"""
Same-origin reverse proxy to the upstream HTTP API.

Pages served over HTTPS cannot call the plain-HTTP upstream directly
(mixed content), so they call /api/proxy/<path> and this router forwards
the request unchanged.

- /api/proxy/vehicles?x=1  ->  <PROXY_UPSTREAM_URL>/vehicles?x=1
- method, query string and (POST/PUT) body are passed through verbatim
- only Content-Type/Accept: application/json are sent upstream; no
  Authorization or Cookie passthrough
- upstream status, body and content type come back as-is, with
  permissive CORS headers on every response

The proxy is unauthenticated and reaches whatever path the caller asks for.
"""
import httpx
import structlog
from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse
from starlette.requests import ClientDisconnect

from fleetview.config import PROXY_PREFIX, Settings, get_settings
from fleetview.dependencies import get_proxy_client
from fleetview.schemas import ProxyErrorBody

logger = structlog.get_logger("proxy")

router = APIRouter(prefix=PROXY_PREFIX, tags=["proxy"])

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, PUT, DELETE, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, Authorization",
}

UPSTREAM_HEADERS = {
    "Content-Type": "application/json",
    "Accept": "application/json",
}

BODY_METHODS = ("POST", "PUT")


def upstream_path(request: Request) -> str:
    """Inbound path with the proxy prefix stripped, undecoded."""
    raw_path = request.scope.get("raw_path")
    path = raw_path.decode("latin-1") if raw_path else request.url.path
    if path.startswith(PROXY_PREFIX):
        path = path[len(PROXY_PREFIX):]
    return path


def build_target_url(upstream: str, request: Request) -> str:
    query = request.url.query
    target = f"{upstream.rstrip('/')}{upstream_path(request)}"
    return f"{target}?{query}" if query else target


async def read_body(request: Request):
    """Raw request body as text, or None when there is none."""
    try:
        body = await request.body()
    except ClientDisconnect:
        logger.info("[proxy] No body to forward")
        return None
    if not body:
        return None
    return body.decode("utf-8", errors="replace")


@router.options("/{path:path}")
async def proxy_preflight(path: str):
    """CORS preflight: 200, no body."""
    return Response(status_code=200, headers=CORS_HEADERS)


@router.api_route("/{path:path}", methods=["GET", "POST", "PUT", "DELETE"])
async def proxy_request(
    path: str,
    request: Request,
    client: httpx.AsyncClient = Depends(get_proxy_client),
    settings: Settings = Depends(get_settings),
):
    """Forward the request to the upstream API and relay its response."""
    method = request.method
    target = build_target_url(settings.proxy_upstream_url, request)
    logger.info(f"[proxy] {method} {target}")

    body = await read_body(request) if method in BODY_METHODS else None

    try:
        upstream = await client.request(
            method,
            target,
            headers=UPSTREAM_HEADERS,
            content=body,
        )
    except (httpx.HTTPError, httpx.InvalidURL) as exc:
        logger.error("[proxy] Upstream request failed", method=method, target=target, error=str(exc))
        error_body = ProxyErrorBody(message=str(exc) or exc.__class__.__name__)
        return JSONResponse(
            status_code=500,
            content=error_body.model_dump(),
            headers=CORS_HEADERS,
        )

    return Response(
        content=upstream.content,
        status_code=upstream.status_code,
        headers={
            **CORS_HEADERS,
            "Content-Type": upstream.headers.get("content-type") or "application/json",
        },
    )
