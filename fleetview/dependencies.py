"""
FastAPI dependencies for objects created in the application lifespan.
"""
import httpx
from fastapi import Request

from fleetview.services.api_client import FleetApiClient
from fleetview.services.resources import ResourceRegistry


def get_api_client(request: Request) -> FleetApiClient:
    """Transport client shared by the view routes."""
    return request.app.state.api_client


def get_registry(request: Request) -> ResourceRegistry:
    """Polling resources backing the views."""
    return request.app.state.resources


def get_proxy_client(request: Request) -> httpx.AsyncClient:
    """Raw HTTP client used by the reverse proxy."""
    return request.app.state.proxy_client
