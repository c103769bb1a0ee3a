"""
Collection layer configuration

Two layers:
- Settings: process-wide values loaded from environment variables / .env
  (cookie defaults, routes, destination credentials)
- CollectConfig: per-integration options (classification rules, destination
  list, enrichment hook, error handler). Can be built in code or loaded
  from a YAML file.
"""
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Callable, List, Optional

import yaml
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from pagecollect.core.exceptions import ConfigurationError


DEFAULT_COOKIE_NAME = "nc_id"
DEFAULT_API_ROUTE = "/api/ev"
DEFAULT_REMOTE_TIMEOUT_MS = 5000


class Settings(BaseSettings):
    """Settings loaded from environment variables"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ========================================================================
    # APPLICATION
    # ========================================================================
    ENV: str = Field(default="development", description="Environment name")
    DEBUG: bool = Field(default=False, description="Debug mode")
    LOG_LEVEL: str = Field(default="INFO", description="Logging level")
    LOG_JSON: bool = Field(default=False, description="Render logs as JSON")
    DEPLOYMENT_ENV: Optional[str] = Field(
        default=None,
        description="Tag added to every event as properties.env"
    )

    # ========================================================================
    # COLLECTION
    # ========================================================================
    COOKIE_NAME: str = Field(default=DEFAULT_COOKIE_NAME, description="Anonymous id cookie")
    COOKIE_DOMAIN: Optional[str] = Field(
        default=None,
        description="Cookie domain; derived from request host when empty"
    )
    API_ROUTE: str = Field(default=DEFAULT_API_ROUTE, description="Collect endpoint path")
    DEBUG_ROUTE: bool = Field(default=False, description="Expose {API_ROUTE}/debug")
    REMOTE_TIMEOUT_MS: int = Field(default=DEFAULT_REMOTE_TIMEOUT_MS, ge=1)
    COLLECT_CONFIG: Optional[str] = Field(
        default=None,
        description="YAML file with event_types / destinations (see config/collect.yaml)"
    )

    # ========================================================================
    # DESTINATIONS
    # ========================================================================
    SEGMENT_WRITE_KEY: Optional[str] = Field(default=None)
    SEGMENT_API_BASE: Optional[str] = Field(default=None)

    JITSU_WRITE_KEY: Optional[str] = Field(default=None)
    JITSU_API_BASE: Optional[str] = Field(default=None)

    RUDDER_STACK_WRITE_KEY: Optional[str] = Field(default=None)
    RUDDER_STACK_API_BASE: Optional[str] = Field(default=None)

    PLAUSIBLE_DOMAIN: Optional[str] = Field(default=None)

    POSTGREST_URL: Optional[str] = Field(default=None)
    POSTGREST_API_KEY: Optional[str] = Field(default=None)

    COLLECT_ECHO: Optional[str] = Field(default=None, description="1/true/yes enables echo")

    # ========================================================================
    # HOSTING (read when present)
    # ========================================================================
    VERCEL: Optional[str] = Field(default=None)
    VERCEL_ENV: Optional[str] = Field(default=None)
    VERCEL_GIT_COMMIT_SHA: Optional[str] = Field(default=None)

    @property
    def echo_enabled(self) -> bool:
        return is_truish(self.COLLECT_ECHO)


def is_truish(value: Optional[str]) -> bool:
    return bool(value) and value.strip().lower() in ("1", "true", "yes")


settings = Settings()


def get_settings() -> Settings:
    """Get global settings instance"""
    return settings


@dataclass
class CollectConfig:
    """
    Options of one collection integration.

    Attributes:
        event_types: Ordered (pattern, resolution) classification rules.
            Order matters: the first matching rule wins.
        destinations: Destination specs; None means "self-configure from env"
        filter: Optional callable(ctx) -> event type | falsy, replaces rules
        enrich: Enrichment hook (event, ctx, call_previous)
        error_handler: callable(destination_type, error) for failed deliveries
        cookie_name: Anonymous id cookie name
        cookie_domain: Explicit cookie domain; derived from host when None
        api_route: Collect endpoint path
        debug_route: Expose {api_route}/debug
        remote_timeout_ms: Timeout for destination HTTP calls
    """
    event_types: Optional[List[Any]] = None
    destinations: Optional[List[Any]] = None
    filter: Optional[Callable] = None
    enrich: Optional[Callable] = None
    error_handler: Optional[Callable[[str, BaseException], Any]] = None
    cookie_name: str = DEFAULT_COOKIE_NAME
    cookie_domain: Optional[str] = None
    api_route: str = DEFAULT_API_ROUTE
    debug_route: bool = False
    remote_timeout_ms: int = DEFAULT_REMOTE_TIMEOUT_MS

    @classmethod
    def from_settings(cls, source: Optional[Settings] = None, **overrides) -> "CollectConfig":
        """Build config with defaults taken from environment settings"""
        source = source or get_settings()
        config = cls(
            cookie_name=source.COOKIE_NAME,
            cookie_domain=source.COOKIE_DOMAIN,
            api_route=source.API_ROUTE,
            debug_route=source.DEBUG_ROUTE,
            remote_timeout_ms=source.REMOTE_TIMEOUT_MS,
        )
        return replace(config, **overrides) if overrides else config


_YAML_KEYS = {
    "event_types",
    "destinations",
    "cookie_name",
    "cookie_domain",
    "api_route",
    "debug_route",
    "remote_timeout_ms",
}


def load_collect_config(path: str, **overrides) -> CollectConfig:
    """
    Load CollectConfig from a YAML file

    Example:
        event_types:
          - ["/api*", "$skip"]
          - ["/*", "page_view"]
        destinations:
          - segment
          - type: postgrest
            options: {url: "https://db.example.com/rest/v1/events"}

    Raises:
        ConfigurationError: File missing, unreadable or malformed
    """
    config_file = Path(path)
    if not config_file.exists():
        raise ConfigurationError(f"Collect config not found: {path}")

    try:
        with open(config_file, "r") as f:
            raw = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Can't parse collect config {path}: {e}")

    if not isinstance(raw, dict):
        raise ConfigurationError(
            f"Collect config {path} must be a mapping, got {type(raw).__name__}"
        )

    unknown = set(raw) - _YAML_KEYS
    if unknown:
        raise ConfigurationError(
            f"Unknown keys in collect config {path}: {', '.join(sorted(unknown))}"
        )

    return CollectConfig.from_settings(**{**raw, **overrides})
