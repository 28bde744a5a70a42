"""FastAPI application factory and entry point.

Creates the application, registers the request-logging middleware, builds
the :class:`~render_proxy.render.service.RenderService` and mounts the
render, health and metrics routes.

Usage::

    # Development server (from project root)
    uvicorn render_proxy.api.main:app --reload

    # Production; keep one worker process per container, the pool is per process
    uvicorn render_proxy.api.main:app --host 0.0.0.0 --port 3000

Embedding with hooks::

    from render_proxy.api.main import create_app

    app = create_app(after_render=lambda ua, url, html, rid: audit(url))
"""

from __future__ import annotations

import time
import uuid
from typing import Callable, Optional

import structlog
from fastapi import FastAPI, Request, Response

from render_proxy.api.metrics import PoolMetricsRecorder, http_requests_total
from render_proxy.config.settings import get_settings
from render_proxy.core.logging_config import configure_logging, request_id_var
from render_proxy.render.models import (
    AfterRenderHook,
    BeforeRenderHook,
    CustomUserAgent,
    RenderOptions,
)
from render_proxy.render.service import RenderService

# ---------------------------------------------------------------------------
# Logging configuration, applied once at import and again in create_app()
# with the configured level.
# ---------------------------------------------------------------------------

configure_logging("INFO")

logger = structlog.get_logger(__name__)


def route_template(request: Request) -> str:
    """Return the matched route's path template, or ``"unmatched"``.

    Used as the ``path`` metric label so scanner traffic against arbitrary
    paths collapses into one series.
    """
    route = request.scope.get("route")
    return getattr(route, "path", None) or "unmatched"


def create_app(
    service: Optional[RenderService] = None,
    *,
    before_render: Optional[BeforeRenderHook] = None,
    after_render: Optional[AfterRenderHook] = None,
    custom_user_agent: Optional[CustomUserAgent] = None,
) -> FastAPI:
    """Build and configure the FastAPI application.

    Args:
        service: Pre-built render service (tests pass one backed by a fake
            browser engine).  When omitted, one is built from settings.
        before_render: Hook fired before the cache lookup.
        after_render: Hook fired whenever HTML is available.
        custom_user_agent: String or function for the ``custom`` user-agent
            strategy, overriding ``CUSTOM_USER_AGENT``.

    Returns:
        A fully configured ``FastAPI`` instance.
    """
    settings = get_settings()
    configure_logging(settings.log_level)

    if service is None:
        options = RenderOptions.from_settings(
            settings,
            before_render=before_render,
            after_render=after_render,
            custom_user_agent=custom_user_agent,
        )
        service = RenderService(
            options,
            monitor=PoolMetricsRecorder() if settings.metrics_enabled else None,
            forward_cookies=settings.forward_cookies,
        )

    application = FastAPI(
        title=settings.app_name,
        description=(
            "Server-side rendering proxy: executes client-side JavaScript in a "
            "headless browser and returns static HTML to crawlers."
        ),
        version="0.1.0",
        debug=settings.debug,
        redirect_slashes=False,
    )
    application.state.render_service = service

    # ---- Request logging middleware ----------------------------------------

    @application.middleware("http")
    async def request_logging_middleware(
        request: Request, call_next: Callable
    ) -> Response:
        """Log every request with status, duration, size and user-agent.

        Attaches a unique ``request_id`` to the structlog context so that all
        log lines emitted while rendering can be correlated.
        """
        request_id = str(uuid.uuid4())
        request_id_var.set(request_id)
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            method=request.method,
            path=request.url.path,
        )

        start = time.perf_counter()
        response: Response | None = None
        try:
            response = await call_next(request)
        except Exception as exc:
            logger.error("unhandled_exception", exc_info=exc)
            raise
        finally:
            elapsed_ms = round((time.perf_counter() - start) * 1000, 2)
            status_code = getattr(response, "status_code", 500)
            content_length = response.headers.get("content-length", "-") if response else "-"
            log_fn = logger.warning if status_code >= 400 else logger.info
            log_fn(
                "request_complete",
                status_code=status_code,
                elapsed_ms=elapsed_ms,
                content_length=content_length,
                query=request.url.query,
                user_agent=request.headers.get("user-agent"),
            )
            if settings.metrics_enabled:
                http_requests_total.labels(
                    method=request.method,
                    path=route_template(request),
                    status=str(status_code),
                ).inc()

        response.headers["X-Request-ID"] = request_id
        return response

    # ---- Routers -----------------------------------------------------------

    from render_proxy.api.routes import health as health_routes  # noqa: PLC0415
    from render_proxy.api.routes.render import build_router  # noqa: PLC0415

    application.include_router(health_routes.router)
    application.include_router(build_router(service.options.endpoint))

    if settings.metrics_enabled:

        @application.get("/metrics", tags=["system"], include_in_schema=False)
        async def metrics() -> Response:
            """Expose Prometheus metrics in text format."""
            from render_proxy.api.metrics import get_metrics_response  # noqa: PLC0415

            body, content_type = get_metrics_response()
            return Response(content=body, media_type=content_type)

    # ---- Lifecycle events -------------------------------------------------

    @application.on_event("startup")
    async def on_startup() -> None:
        """Start the render service's worker pool."""
        await application.state.render_service.initialize()
        logger.info(
            "application_startup",
            app_name=settings.app_name,
            endpoint=service.options.endpoint,
            log_level=settings.log_level,
        )

    @application.on_event("shutdown")
    async def on_shutdown() -> None:
        """Close the worker pool and the browser."""
        await application.state.render_service.shutdown()
        logger.info("application_shutdown")

    return application


# ---------------------------------------------------------------------------
# Module-level singleton
# ---------------------------------------------------------------------------

app = create_app()
"""The FastAPI application instance.

This is the ASGI callable passed to Uvicorn.
"""
