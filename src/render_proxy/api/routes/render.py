"""Render endpoint.

``GET {endpoint}?url=<target>[&hl=<lang>][&<param>=<value>...]``

Responses:
    200 (or the page's own status): rendered HTML, with page cookies
    30x: redirect to the target observed during navigation
    400: missing or unusable ``url``
    403: target hostname outside the allow-list
    500: navigation failed on every attempt

The path is configurable, so the router is built by :func:`build_router`
rather than declared at import time.
"""

from __future__ import annotations

import time
from http import HTTPStatus
from urllib.parse import unquote

import structlog
from fastapi import APIRouter, HTTPException, Request, Response, status
from fastapi.responses import HTMLResponse, PlainTextResponse, RedirectResponse

from render_proxy.api.dependencies import RenderServiceDep
from render_proxy.api.metrics import record_outcome, render_outcomes_total
from render_proxy.core.exceptions import InvalidRenderRequestError
from render_proxy.core.logging_config import request_id_var
from render_proxy.render.models import Redirected, RenderOutcome, Success

logger = structlog.get_logger(__name__)


def outcome_to_response(outcome: RenderOutcome) -> Response:
    """Translate a terminal render outcome into an HTTP response."""
    if isinstance(outcome, Success):
        response: Response = HTMLResponse(outcome.content, status_code=outcome.status)
        for cookie in outcome.cookies:
            response.set_cookie(cookie.name, unquote(cookie.value))
        return response
    if isinstance(outcome, Redirected):
        return RedirectResponse(outcome.target_url, status_code=outcome.status)
    # Rejected and Failed carry no body beyond the status phrase.
    return PlainTextResponse(HTTPStatus(outcome.status).phrase, status_code=outcome.status)


async def render_page(request: Request, service: RenderServiceDep) -> Response:
    """Render the page named by the ``url`` query parameter."""
    start = time.perf_counter()
    try:
        outcome = await service.render(
            request.query_params.multi_items(),
            request.headers,
            request_id=request_id_var.get(),
        )
    except InvalidRenderRequestError as exc:
        render_outcomes_total.labels(outcome="invalid", source="none").inc()
        logger.info("render_invalid_request", error=str(exc))
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc

    record_outcome(outcome, time.perf_counter() - start)
    return outcome_to_response(outcome)


def build_router(endpoint: str) -> APIRouter:
    """Return a router serving :func:`render_page` at ``endpoint``."""
    router = APIRouter(tags=["render"])
    router.add_api_route(
        endpoint,
        render_page,
        methods=["GET"],
        response_class=HTMLResponse,
        name="render",
    )
    return router
