"""Constants and tuning parameters for the render engine."""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Result cache
# ---------------------------------------------------------------------------

#: Default maximum number of cached pages.
DEFAULT_CACHE_MAX_ENTRIES: int = 50

#: Default cache entry lifetime in milliseconds (5 minutes).
DEFAULT_CACHE_TTL_MS: int = 1000 * 60 * 5

# ---------------------------------------------------------------------------
# Worker pool and navigation
# ---------------------------------------------------------------------------

#: Default number of navigation attempts per render.
DEFAULT_RETRY_TIMES: int = 5

#: Default number of browser execution contexts.
DEFAULT_MAX_CONCURRENCY: int = 2

#: Default upper bound for one navigation attempt, in milliseconds.
DEFAULT_NAVIGATION_TIMEOUT_MS: int = 30_000

#: Chromium flags for running inside containers without a user namespace.
BROWSER_LAUNCH_ARGS: tuple[str, ...] = (
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
)

# ---------------------------------------------------------------------------
# HTTP surface
# ---------------------------------------------------------------------------

#: Default path of the render endpoint.
DEFAULT_ENDPOINT: str = "/render"

#: Query parameter carrying the render target.  Removed from the canonical URL.
URL_PARAM: str = "url"

#: Schemes a render target may use.
ALLOWED_SCHEMES: frozenset[str] = frozenset({"http", "https"})

# ---------------------------------------------------------------------------
# Identity
# ---------------------------------------------------------------------------

#: Standard desktop Chrome build presented by the ``headless`` strategy.
HEADLESS_USER_AGENT: str = (
    "Mozilla/5.0 (X11; Linux x86_64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/120.0.0.0 Safari/537.36"
)

#: Marker Chromium inserts into its user-agent when running headless.
HEADLESS_MARKER: str = "HeadlessChrome"
