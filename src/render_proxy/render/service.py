"""Render service: composition root of the render engine.

Wires the normalizer, domain gate, result cache, user-agent resolver, worker
pool and hooks together behind a single operation::

    service = RenderService(RenderOptions.from_settings(get_settings()))
    await service.initialize()
    outcome = await service.render(request.query_params.multi_items(), request.headers)
    ...
    await service.shutdown()

Flow of :meth:`RenderService.render`:

1. Build the canonical URL from the raw query.
2. Reject hostnames outside the allow-list (``Rejected``, 403).
3. Fire ``before_render``.
4. Serve from the cache when possible, firing ``after_render``.
5. Resolve the user-agent and dispatch a task to the pool.
6. Cache 2xx ``Success`` outcomes and fire ``after_render``.

Concurrent misses for the same URL are not coalesced; each one dispatches
its own task.
"""

from __future__ import annotations

import uuid
from typing import Iterable, Mapping, Optional

import structlog

from render_proxy.core.exceptions import DomainRejectedError
from render_proxy.render.browser import BrowserEngine, PlaywrightEngine
from render_proxy.render.cache import ResultCache
from render_proxy.render.domain_gate import DomainGate
from render_proxy.render.hooks import CallbackObserver, HookRunner, RenderObserver
from render_proxy.render.models import (
    CacheEnabled,
    Rejected,
    RenderOptions,
    RenderOutcome,
    RenderRequest,
    Success,
)
from render_proxy.render.normalizer import build_canonical_url
from render_proxy.render.pipeline import RenderPipeline
from render_proxy.render.pool import BrowserWorkerPool, PoolMonitor
from render_proxy.render.user_agent import UserAgentResolver

logger = structlog.get_logger(__name__)


def _header(headers: Mapping[str, str], name: str) -> Optional[str]:
    """Case-insensitive header lookup that also accepts plain dicts."""
    value = headers.get(name)
    if value is not None:
        return value
    lowered = name.lower()
    for key, candidate in headers.items():
        if key.lower() == lowered:
            return candidate
    return None


class RenderService:
    """Owns the cache and the worker pool for one process.

    Args:
        options: Render configuration.  Defaults to :class:`RenderOptions`.
        engine: Browser engine.  Defaults to a lazily launched
            :class:`PlaywrightEngine`.
        observers: Extra :class:`RenderObserver` instances, notified after
            the hooks in ``options``.
        monitor: Passive observer of pool events.
        forward_cookies: Collect page cookies into ``Success`` outcomes.
    """

    def __init__(
        self,
        options: Optional[RenderOptions] = None,
        *,
        engine: Optional[BrowserEngine] = None,
        observers: Iterable[RenderObserver] = (),
        monitor: Optional[PoolMonitor] = None,
        forward_cookies: bool = True,
    ) -> None:
        self.options = options or RenderOptions()
        opts = self.options

        self._engine: BrowserEngine = engine or PlaywrightEngine(
            executable_path=opts.executable_path,
            navigation_timeout_ms=opts.navigation_timeout_ms,
            wait_until=opts.wait_until,
        )
        self.cache: Optional[ResultCache] = None
        if isinstance(opts.cache, CacheEnabled):
            self.cache = ResultCache(opts.cache.max_entries, opts.cache.ttl_ms)

        self.gate = DomainGate(opts.allow_domains)
        self.user_agents = UserAgentResolver(
            opts.user_agent_type,
            opts.custom_user_agent,
            opts.headless_user_agent,
        )
        self.pipeline = RenderPipeline(opts.retry_times, collect_cookies=forward_cookies)
        self.pool = BrowserWorkerPool(
            self._engine,
            self.pipeline,
            size=opts.max_concurrency,
            monitor=monitor,
        )

        self.hooks = HookRunner()
        if opts.before_render is not None or opts.after_render is not None:
            self.hooks.add(CallbackObserver(opts.before_render, opts.after_render))
        for observer in observers:
            self.hooks.add(observer)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def initialize(self) -> None:
        """Start the pool's workers.  The browser itself launches on first use."""
        self.pool.start()
        logger.info(
            "render_service_started",
            pool_size=self.pool.size,
            retry_times=self.pipeline.retry_times,
            cache_enabled=self.cache is not None,
            allow_domains=list(self.options.allow_domains),
            user_agent_type=self.user_agents.strategy.value,
        )

    async def shutdown(self) -> None:
        """Drain the pool and close the browser."""
        try:
            await self.pool.close()
        finally:
            await self._engine.close()
        logger.info("render_service_stopped")

    async def __aenter__(self) -> RenderService:
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:  # type: ignore[no-untyped-def]
        await self.shutdown()

    # ------------------------------------------------------------------
    # Render
    # ------------------------------------------------------------------

    def build_request(
        self,
        raw_query: Iterable[tuple[str, str]],
        headers: Mapping[str, str],
        request_id: Optional[str] = None,
    ) -> RenderRequest:
        """Normalize the inbound call into a :class:`RenderRequest`.

        Raises:
            InvalidRenderRequestError: If the query has no usable ``url``.
        """
        return RenderRequest(
            canonical_url=build_canonical_url(raw_query),
            source_user_agent=_header(headers, "user-agent"),
            accept_language=_header(headers, "accept-language"),
            request_id=request_id or str(uuid.uuid4()),
        )

    async def render(
        self,
        raw_query: Iterable[tuple[str, str]],
        headers: Mapping[str, str],
        request_id: Optional[str] = None,
    ) -> RenderOutcome:
        """Render the page named by ``raw_query``.

        Args:
            raw_query: Query pairs in arrival order; must include ``url``.
            headers: Inbound request headers (``User-Agent``,
                ``Accept-Language`` are consumed).
            request_id: Correlation ID; generated when omitted.

        Returns:
            ``Success``, ``Redirected``, ``Rejected`` or ``Failed``.

        Raises:
            InvalidRenderRequestError: If the query has no usable ``url``.
        """
        request = self.build_request(raw_query, headers, request_id)
        url = request.canonical_url.url
        rid = request.request_id
        logger.info("render_requested", url=url, request_id=rid)

        try:
            self.gate.check(request.canonical_url.hostname)
        except DomainRejectedError as exc:
            logger.warning("render_domain_rejected", hostname=exc.hostname, request_id=rid)
            return Rejected(hostname=exc.hostname)

        self.hooks.before_render(request.source_user_agent, url, rid)

        if self.cache is not None:
            cached = self.cache.get(url)
            if cached is not None:
                logger.info("render_cache_hit", url=url, request_id=rid)
                self.hooks.after_render(request.source_user_agent, url, cached, rid)
                return Success(content=cached, status=200, from_cache=True)

        user_agent = self.user_agents.resolve(request.source_user_agent)
        logger.debug("render_user_agent", user_agent=user_agent, request_id=rid)

        task = self.pipeline.new_task(
            request.canonical_url,
            user_agent,
            request.accept_language,
            request_id=rid,
        )
        outcome = await self.pool.dispatch(task)

        if isinstance(outcome, Success):
            if self.cache is not None and outcome.cacheable:
                self.cache.set(url, outcome.content)
            self.hooks.after_render(user_agent, url, outcome.content, rid)
        return outcome
