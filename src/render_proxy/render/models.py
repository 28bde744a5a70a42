"""Data model for the render engine.

Everything here is immutable.  ``RenderRequest`` and ``WorkerTask`` live for
one inbound call; a ``RenderOutcome`` is terminal and never mutated after
the pipeline (or the cache) produces it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Callable, Optional, Union

from render_proxy.render.config import (
    DEFAULT_CACHE_MAX_ENTRIES,
    DEFAULT_CACHE_TTL_MS,
    DEFAULT_ENDPOINT,
    DEFAULT_MAX_CONCURRENCY,
    DEFAULT_NAVIGATION_TIMEOUT_MS,
    DEFAULT_RETRY_TIMES,
    HEADLESS_USER_AGENT,
)

if TYPE_CHECKING:
    from render_proxy.config.settings import Settings


class UserAgentType(str, Enum):
    """Strategy for the user-agent presented to the target site."""

    CUSTOM = "custom"
    SOURCE = "source"
    HEADLESS = "headless"


# ---------------------------------------------------------------------------
# Requests and tasks
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CanonicalURL:
    """Normalized render target, used both as navigation URL and cache key.

    Attributes:
        url: ``origin + path + merged querystring``.
        hostname: Lower-cased hostname of ``url``, checked by the domain gate.
    """

    url: str
    hostname: str

    def __str__(self) -> str:
        return self.url


@dataclass(frozen=True)
class RenderRequest:
    """One inbound render call after normalization."""

    canonical_url: CanonicalURL
    source_user_agent: Optional[str]
    accept_language: Optional[str]
    request_id: str


@dataclass(frozen=True)
class WorkerTask:
    """Unit of work queued on the browser pool.

    A retry does not mutate the task: the pipeline derives a new one with
    ``retries_remaining`` decremented.

    Attributes:
        canonical_url: Navigation target.
        user_agent: Resolved user-agent, or ``None`` for the browser default.
        accept_language: Forwarded ``Accept-Language`` header value.
        retries_remaining: Attempts still allowed, including the next one.
        request_id: Correlation ID of the originating request.
    """

    canonical_url: CanonicalURL
    user_agent: Optional[str]
    accept_language: Optional[str]
    retries_remaining: int
    request_id: str = ""

    @property
    def url(self) -> str:
        return self.canonical_url.url


@dataclass(frozen=True)
class RedirectInfo:
    """First hop of a redirect observed during navigation."""

    status_code: int
    target_url: str


@dataclass(frozen=True)
class NavigationResponse:
    """What the browser reports after a navigation settles."""

    status: int
    redirect: Optional[RedirectInfo] = None


@dataclass(frozen=True)
class Cookie:
    """A cookie set by the rendered page, forwarded to the caller."""

    name: str
    value: str


# ---------------------------------------------------------------------------
# Outcomes
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Success:
    """Fully rendered HTML.

    Attributes:
        content: Serialized document.
        status: HTTP status of the navigation response.
        from_cache: ``True`` when served from the result cache.
        cookies: Cookies the page set during rendering.
    """

    content: str
    status: int = 200
    from_cache: bool = False
    cookies: tuple[Cookie, ...] = ()

    @property
    def cacheable(self) -> bool:
        return 200 <= self.status < 300


@dataclass(frozen=True)
class Redirected:
    """The navigation redirected; content was not extracted."""

    status: int
    target_url: str


@dataclass(frozen=True)
class Rejected:
    """The target hostname is not on the allow-list."""

    hostname: str
    status: int = 403


@dataclass(frozen=True)
class Failed:
    """Navigation exhausted its retries or the worker context broke."""

    reason: str
    status: int = 500


RenderOutcome = Union[Success, Redirected, Rejected, Failed]


# ---------------------------------------------------------------------------
# Options
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CacheDisabled:
    """No result caching."""


@dataclass(frozen=True)
class CacheEnabled:
    """LRU result caching with a per-entry lifetime."""

    max_entries: int = DEFAULT_CACHE_MAX_ENTRIES
    ttl_ms: int = DEFAULT_CACHE_TTL_MS


CacheConfig = Union[CacheDisabled, CacheEnabled]

BeforeRenderHook = Callable[[Optional[str], str, str], None]
"""``(source_user_agent, canonical_url, request_id) -> None``"""

AfterRenderHook = Callable[[Optional[str], str, str, str], None]
"""``(user_agent, canonical_url, content, request_id) -> None``"""

CustomUserAgent = Union[str, Callable[[Optional[str]], str]]


@dataclass(frozen=True)
class RenderOptions:
    """Programmatic configuration of :class:`~render_proxy.render.service.RenderService`.

    Environment settings cannot hold callables, so hooks and a callable
    custom user-agent are supplied here, typically through
    :meth:`from_settings`.
    """

    cache: CacheConfig = field(default_factory=CacheEnabled)
    retry_times: int = DEFAULT_RETRY_TIMES
    max_concurrency: int = DEFAULT_MAX_CONCURRENCY
    endpoint: str = DEFAULT_ENDPOINT
    user_agent_type: UserAgentType = UserAgentType.HEADLESS
    custom_user_agent: Optional[CustomUserAgent] = None
    headless_user_agent: str = HEADLESS_USER_AGENT
    allow_domains: tuple[str, ...] = ()
    executable_path: Optional[str] = None
    navigation_timeout_ms: int = DEFAULT_NAVIGATION_TIMEOUT_MS
    wait_until: str = "networkidle"
    before_render: Optional[BeforeRenderHook] = None
    after_render: Optional[AfterRenderHook] = None

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        *,
        before_render: Optional[BeforeRenderHook] = None,
        after_render: Optional[AfterRenderHook] = None,
        custom_user_agent: Optional[CustomUserAgent] = None,
    ) -> RenderOptions:
        """Build options from environment settings plus optional callables.

        Args:
            settings: Loaded application settings.
            before_render: Hook fired before the cache lookup.
            after_render: Hook fired when content is available.
            custom_user_agent: Overrides ``settings.custom_user_agent``; may
                be a function of the caller's user-agent.
        """
        cache: CacheConfig
        if settings.cache_enabled:
            cache = CacheEnabled(
                max_entries=settings.cache_max_entries,
                ttl_ms=settings.cache_ttl_ms,
            )
        else:
            cache = CacheDisabled()

        return cls(
            cache=cache,
            retry_times=settings.retry_times,
            max_concurrency=settings.max_concurrency,
            endpoint=settings.render_endpoint,
            user_agent_type=settings.user_agent_type,
            custom_user_agent=(
                custom_user_agent
                if custom_user_agent is not None
                else settings.custom_user_agent
            ),
            headless_user_agent=settings.headless_user_agent,
            allow_domains=tuple(settings.allow_domains),
            executable_path=settings.executable_path,
            navigation_timeout_ms=settings.navigation_timeout_ms,
            wait_until=settings.wait_until,
            before_render=before_render,
            after_render=after_render,
        )


@dataclass(frozen=True)
class PoolStats:
    """Point-in-time snapshot of the worker pool, passed to the monitor hook."""

    size: int
    busy: int
    queued: int
    live_contexts: int
    completed: int
    failed: int
    context_restarts: int
