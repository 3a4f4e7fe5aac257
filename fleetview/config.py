"""
Application configuration using pydantic-settings.
Loads from environment variables (or .env) once at process start.

Feature flags default to disabled when absent.
"""
from functools import lru_cache
from urllib.parse import urlsplit

from pydantic import field_validator
from pydantic_settings import BaseSettings

DEFAULT_UPSTREAM_URL = "http://192.168.111.10:3000"
PROXY_PREFIX = "/api/proxy"


class Settings(BaseSettings):
    """Read-only process configuration."""

    # Application
    app_name: str = "FleetView Dashboard"
    app_version: str = "1.0.0"
    debug: bool = False
    log_level: str = "INFO"

    # Upstream fleet-telemetry API
    api_base_url: str = DEFAULT_UPSTREAM_URL
    proxy_upstream_url: str = DEFAULT_UPSTREAM_URL
    http_timeout_s: float = 30.0

    # Public origin the dashboard is served from (e.g. https://fleet.example.com).
    # Empty means "same scheme as the upstream", so no proxy routing.
    public_origin: str = ""

    # Feature flags
    enable_obc_commands: bool = False
    enable_auto_refresh: bool = False

    # Rate Limiting (requests per minute)
    rate_limit_enabled: bool = True
    rate_limit_public: int = 300

    @field_validator("api_base_url", "proxy_upstream_url", "public_origin")
    @classmethod
    def strip_trailing_slash(cls, value: str) -> str:
        return value.rstrip("/")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache()
def get_settings() -> Settings:
    """Cached settings instance."""
    return Settings()


def resolve_api_base_url(settings: Settings) -> str:
    """
    Pick the base URL the transport client talks to.

    A secure public origin cannot call an insecure upstream directly
    (mixed content), so in that case calls go through the same-origin
    proxy. Otherwise the configured upstream is used as-is.
    """
    origin_scheme = urlsplit(settings.public_origin).scheme if settings.public_origin else ""
    upstream_scheme = urlsplit(settings.api_base_url).scheme
    if origin_scheme == "https" and upstream_scheme == "http":
        return f"{settings.public_origin}{PROXY_PREFIX}"
    return settings.api_base_url or DEFAULT_UPSTREAM_URL
