"""
FleetView Dashboard - FastAPI Application

Serves the fleet views and the same-origin proxy to the upstream
fleet-telemetry API.
"""
import logging
from contextlib import asynccontextmanager

import httpx
import structlog
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.middleware import SlowAPIMiddleware
from slowapi.util import get_remote_address

from fleetview.config import get_settings
from fleetview.routes import alerts, dashboard, drivers, fleet_routes, positions, proxy, vehicles
from fleetview.services.api_client import FleetApiClient
from fleetview.services.resources import ResourceRegistry

settings = get_settings()

logging.basicConfig(format="%(message)s", level=settings.log_level.upper())

# Configure structured logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer(),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger()

limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[f"{settings.rate_limit_public}/minute"],
    enabled=settings.rate_limit_enabled,
)

# Lets a page served over HTTPS call plain-HTTP APIs directly when the
# proxy is not in use.
CONTENT_SECURITY_POLICY = (
    "default-src 'self'; "
    "script-src 'self' 'unsafe-eval' 'unsafe-inline'; "
    "style-src 'self' 'unsafe-inline'; "
    "img-src 'self' data: blob: http: https:; "
    "font-src 'self'; "
    "connect-src 'self' http: https: ws: wss:; "
    "frame-src 'none';"
)
REFERRER_POLICY = "no-referrer-when-downgrade"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle: startup and shutdown."""
    # Startup
    logger.info("Starting FleetView", version=settings.app_version)
    timeout = httpx.Timeout(settings.http_timeout_s)
    app.state.proxy_client = httpx.AsyncClient(timeout=timeout)
    app.state.api_client = FleetApiClient.from_settings(settings)
    app.state.resources = ResourceRegistry(
        app.state.api_client,
        auto_refresh=settings.enable_auto_refresh,
    )
    logger.info(
        "Upstream configured",
        proxy_upstream=settings.proxy_upstream_url,
        auto_refresh=settings.enable_auto_refresh,
        obc_commands=settings.enable_obc_commands,
    )

    yield

    # Shutdown
    logger.info("Shutting down FleetView")
    await app.state.resources.close()
    await app.state.api_client.aclose()
    await app.state.proxy_client.aclose()


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Fleet tracking dashboard backed by the fleet-telemetry REST API",
    lifespan=lifespan,
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_middleware(SlowAPIMiddleware)


@app.middleware("http")
async def security_headers_middleware(request: Request, call_next):
    """
    Add CSP and referrer policy to every served page.

    API responses (/api/*) are left alone; the proxy sets its own headers.
    """
    response = await call_next(request)
    if not request.url.path.startswith("/api/"):
        response.headers["Content-Security-Policy"] = CONTENT_SECURITY_POLICY
        response.headers["Referrer-Policy"] = REFERRER_POLICY
    return response


# Include routers
app.include_router(proxy.router)
app.include_router(dashboard.router)
app.include_router(vehicles.router)
app.include_router(drivers.router)
app.include_router(fleet_routes.router)
app.include_router(alerts.router)
app.include_router(positions.router)


@app.get("/health")
async def health_check():
    """Health check endpoint for load balancers."""
    return {
        "status": "healthy",
        "version": settings.app_version,
    }


@app.get("/")
async def root():
    """Root endpoint with API info."""
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "docs": "/docs",
        "health": "/health",
    }


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Last-resort handler; upstream failures never get this far."""
    logger.exception("Unhandled exception", path=request.url.path)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"},
    )


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "fleetview.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
    )
