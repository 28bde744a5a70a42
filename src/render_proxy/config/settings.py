"""Application settings loaded from environment variables.

Uses Pydantic Settings v2 for validated, type-safe configuration.  All
process configuration is read through this module; never call
``os.getenv`` elsewhere in the codebase.

Usage::

    from render_proxy.config.settings import get_settings

    settings = get_settings()
    pool_size = settings.max_concurrency

List-valued fields are supplied as JSON in the environment, e.g.::

    ALLOW_DOMAINS='["example.com", "www.example.com"]'
"""

from __future__ import annotations

from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from render_proxy.render.config import (
    DEFAULT_CACHE_MAX_ENTRIES,
    DEFAULT_CACHE_TTL_MS,
    DEFAULT_ENDPOINT,
    DEFAULT_MAX_CONCURRENCY,
    DEFAULT_NAVIGATION_TIMEOUT_MS,
    DEFAULT_RETRY_TIMES,
    HEADLESS_USER_AGENT,
)
from render_proxy.render.models import UserAgentType


class Settings(BaseSettings):
    """Render proxy configuration backed by environment variables and an optional .env file.

    Every field has a default, so the service starts with no configuration at
    all: caching on, five navigation attempts, two browser workers, and the
    headless-default user-agent strategy.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Application behaviour
    # ------------------------------------------------------------------

    app_name: str = "Render Proxy"
    """Human-readable application name shown in the OpenAPI docs."""

    debug: bool = False
    """Enable FastAPI debug mode.  Never True in production."""

    log_level: str = "INFO"
    """Logging verbosity.  One of: DEBUG, INFO, WARNING, ERROR, CRITICAL."""

    render_endpoint: str = DEFAULT_ENDPOINT
    """Path of the ``GET`` endpoint that renders pages."""

    # ------------------------------------------------------------------
    # Result cache
    # ------------------------------------------------------------------

    cache_enabled: bool = True
    """Keep successful renders in the in-process LRU cache."""

    cache_max_entries: int = Field(default=DEFAULT_CACHE_MAX_ENTRIES, ge=1)
    """Maximum number of cached pages before least-recently-used eviction."""

    cache_ttl_ms: int = Field(default=DEFAULT_CACHE_TTL_MS, ge=1)
    """Lifetime of a cache entry in milliseconds, counted from insertion."""

    # ------------------------------------------------------------------
    # Worker pool and navigation
    # ------------------------------------------------------------------

    retry_times: int = Field(default=DEFAULT_RETRY_TIMES, ge=1)
    """Total navigation attempts per render before giving up with HTTP 500."""

    max_concurrency: int = Field(default=DEFAULT_MAX_CONCURRENCY, ge=1)
    """Number of browser execution contexts, i.e. concurrent navigations."""

    navigation_timeout_ms: int = Field(default=DEFAULT_NAVIGATION_TIMEOUT_MS, ge=1)
    """Upper bound on a single navigation attempt."""

    wait_until: Literal["load", "domcontentloaded", "networkidle", "commit"] = "networkidle"
    """Playwright load state that marks a navigation as complete."""

    executable_path: Optional[str] = None
    """Override for the Chromium binary.  ``None`` uses Playwright's bundled build."""

    # ------------------------------------------------------------------
    # Identity presented to target sites
    # ------------------------------------------------------------------

    user_agent_type: UserAgentType = UserAgentType.HEADLESS
    """Strategy for the ``User-Agent`` the browser sends: custom, source or headless."""

    custom_user_agent: Optional[str] = None
    """Fixed user-agent for the ``custom`` strategy.  A callable can be supplied
    programmatically through :class:`~render_proxy.render.models.RenderOptions`."""

    headless_user_agent: str = HEADLESS_USER_AGENT
    """Browser build string used by the ``headless`` strategy.  Any
    ``HeadlessChrome`` marker is stripped before use."""

    # ------------------------------------------------------------------
    # Access control and response shaping
    # ------------------------------------------------------------------

    allow_domains: list[str] = []
    """Hostnames permitted as render targets.  Empty means unrestricted."""

    forward_cookies: bool = True
    """Copy cookies set by the rendered page onto the proxy response."""

    # ------------------------------------------------------------------
    # Observability
    # ------------------------------------------------------------------

    metrics_enabled: bool = True
    """Expose Prometheus metrics at ``GET /metrics``."""


@lru_cache
def get_settings() -> Settings:
    """Return the cached application settings singleton.

    In tests, call ``get_settings.cache_clear()`` after patching environment
    variables.
    """
    return Settings()
