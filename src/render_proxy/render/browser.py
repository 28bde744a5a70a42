"""Playwright-backed browser engine and execution contexts.

The render engine consumes the browser as an opaque capability: open an
isolated page, navigate it, read its rendered HTML, and report the response
status and redirect chain.  :class:`BrowserEngine` and
:class:`ExecutionContext` describe that capability; the Playwright classes
below implement it, and tests substitute in-memory fakes.

One Chromium process is shared by every pool slot.  It is launched on first
use and relaunched transparently if it disconnects.  Each render task gets a
fresh ``BrowserContext``, so cookies and storage never leak between tasks
and the user-agent can differ per task.

Install Playwright and download the Chromium browser binary::

    pip install playwright>=1.48
    playwright install chromium
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Optional, Protocol

from playwright.async_api import Browser, BrowserContext, Page, Playwright
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Response as PlaywrightResponse
from playwright.async_api import TimeoutError as PlaywrightTimeoutError
from playwright.async_api import async_playwright

from render_proxy.core.exceptions import NavigationTransientError, WorkerContextError
from render_proxy.render.config import (
    BROWSER_LAUNCH_ARGS,
    DEFAULT_NAVIGATION_TIMEOUT_MS,
)
from render_proxy.render.models import Cookie, NavigationResponse, RedirectInfo

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Capability protocols
# ---------------------------------------------------------------------------


class ExecutionContext(Protocol):
    """One browser execution unit, owned exclusively by a pool slot."""

    @property
    def alive(self) -> bool: ...

    async def prepare(self, user_agent: Optional[str], accept_language: Optional[str]) -> None: ...

    async def navigate(self, url: str) -> NavigationResponse: ...

    async def content(self) -> str: ...

    async def cookies(self) -> list[Cookie]: ...

    async def release(self) -> None: ...

    async def close(self) -> None: ...


class BrowserEngine(Protocol):
    """Factory for execution contexts."""

    async def new_context(self, slot: int) -> ExecutionContext: ...

    async def close(self) -> None: ...


# ---------------------------------------------------------------------------
# Playwright implementation
# ---------------------------------------------------------------------------


async def first_redirect(response: PlaywrightResponse) -> Optional[RedirectInfo]:
    """Return the first hop of the redirect chain that led to ``response``.

    Playwright links redirected requests backwards through
    ``request.redirected_from``; the earliest request in that chain is the
    one the page originally asked for.

    Returns:
        ``None`` when the navigation was not redirected.
    """
    first = response.request.redirected_from
    if first is None:
        return None
    while first.redirected_from is not None:
        first = first.redirected_from

    hop = await first.response()
    status = hop.status if hop is not None else 302
    target = first.redirected_to.url if first.redirected_to is not None else response.url
    logger.info("render: redirect from %s %s to %s", first.url, status, target)
    return RedirectInfo(status_code=status, target_url=target)


class PlaywrightContext:
    """Execution context backed by a Playwright ``BrowserContext`` per task.

    Args:
        browser: Shared Chromium instance.
        slot: Index of the owning pool slot (for logging).
        navigation_timeout_ms: Per-attempt navigation bound.
        wait_until: Load state that completes a navigation.
    """

    def __init__(
        self,
        browser: Browser,
        *,
        slot: int,
        navigation_timeout_ms: int = DEFAULT_NAVIGATION_TIMEOUT_MS,
        wait_until: str = "networkidle",
    ) -> None:
        self._browser = browser
        self.slot = slot
        self._timeout_ms = navigation_timeout_ms
        self._wait_until = wait_until
        self._context: BrowserContext | None = None
        self._page: Page | None = None

    @property
    def alive(self) -> bool:
        return self._browser.is_connected()

    def _require_page(self) -> Page:
        if self._page is None:
            raise WorkerContextError("context used before prepare()", slot=self.slot)
        return self._page

    async def prepare(self, user_agent: Optional[str], accept_language: Optional[str]) -> None:
        """Open an isolated browsing context presenting ``user_agent``."""
        await self.release()
        headers = {"Accept-Language": accept_language} if accept_language else {}
        try:
            self._context = await self._browser.new_context(
                user_agent=user_agent,
                extra_http_headers=headers,
            )
            self._page = await self._context.new_page()
        except PlaywrightError as exc:
            raise WorkerContextError(f"could not open page: {exc}", slot=self.slot) from exc

    async def navigate(self, url: str) -> NavigationResponse:
        """Navigate to ``url`` and wait for the configured load state.

        Raises:
            NavigationTransientError: On timeout, network error, or when the
                browser reports no response.
        """
        page = self._require_page()
        try:
            response = await page.goto(
                url,
                wait_until=self._wait_until,  # type: ignore[arg-type]
                timeout=self._timeout_ms,
            )
        except PlaywrightTimeoutError as exc:
            raise NavigationTransientError(f"navigation timeout: {exc}", url=url) from exc
        except PlaywrightError as exc:
            raise NavigationTransientError(f"navigation error: {exc}", url=url) from exc

        if response is None:
            raise NavigationTransientError("response is null", url=url)

        return NavigationResponse(status=response.status, redirect=await first_redirect(response))

    async def content(self) -> str:
        page = self._require_page()
        try:
            return await page.content()
        except PlaywrightError as exc:
            raise WorkerContextError(f"content extraction failed: {exc}", slot=self.slot) from exc

    async def cookies(self) -> list[Cookie]:
        if self._context is None:
            return []
        try:
            raw: list[Any] = await self._context.cookies()
        except PlaywrightError as exc:
            raise WorkerContextError(f"cookie read failed: {exc}", slot=self.slot) from exc
        return [Cookie(name=c["name"], value=c["value"]) for c in raw]

    async def release(self) -> None:
        """Close the per-task browsing context, if any."""
        context, self._context, self._page = self._context, None, None
        if context is None:
            return
        try:
            await context.close()
        except PlaywrightError as exc:
            logger.warning("render: slot %d context close failed: %s", self.slot, exc)

    async def close(self) -> None:
        await self.release()


class PlaywrightEngine:
    """Lazily launched, self-healing Chromium instance.

    Args:
        executable_path: Chromium binary override.
        navigation_timeout_ms: Passed to every context.
        wait_until: Passed to every context.
        headless: Run without a display.
    """

    def __init__(
        self,
        *,
        executable_path: Optional[str] = None,
        navigation_timeout_ms: int = DEFAULT_NAVIGATION_TIMEOUT_MS,
        wait_until: str = "networkidle",
        headless: bool = True,
    ) -> None:
        self._executable_path = executable_path
        self._timeout_ms = navigation_timeout_ms
        self._wait_until = wait_until
        self._headless = headless
        self._playwright: Playwright | None = None
        self._browser: Browser | None = None
        self._lock = asyncio.Lock()

    async def _ensure_browser(self) -> Browser:
        async with self._lock:
            if self._browser is not None and self._browser.is_connected():
                return self._browser
            if self._browser is not None:
                logger.warning("render: browser disconnected, relaunching")
            if self._playwright is None:
                self._playwright = await async_playwright().start()

            launch_kwargs: dict[str, Any] = {
                "headless": self._headless,
                "args": list(BROWSER_LAUNCH_ARGS),
            }
            if self._executable_path:
                launch_kwargs["executable_path"] = self._executable_path

            self._browser = await self._playwright.chromium.launch(**launch_kwargs)
            logger.info("render: launched chromium %s", self._browser.version)
            return self._browser

    async def new_context(self, slot: int) -> PlaywrightContext:
        try:
            browser = await self._ensure_browser()
        except PlaywrightError as exc:
            raise WorkerContextError(f"browser launch failed: {exc}", slot=slot) from exc
        return PlaywrightContext(
            browser,
            slot=slot,
            navigation_timeout_ms=self._timeout_ms,
            wait_until=self._wait_until,
        )

    async def close(self) -> None:
        """Close the browser and stop the Playwright driver."""
        async with self._lock:
            browser, self._browser = self._browser, None
            playwright, self._playwright = self._playwright, None
            try:
                if browser is not None and browser.is_connected():
                    await browser.close()
            finally:
                if playwright is not None:
                    await playwright.stop()
