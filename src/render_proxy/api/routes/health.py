"""Health check route handlers.

``GET /health``
    Liveness plus a snapshot of the worker pool and cache.  Always returns
    HTTP 200; ``status`` is ``"ok"`` when the pool is running and
    ``"starting"`` before the first worker has been spawned.

These endpoints are diagnostic: they never launch the browser and never
raise HTTP 5xx errors.
"""

from __future__ import annotations

import logging
from dataclasses import asdict
from datetime import UTC, datetime

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["system"])


@router.get("/health", include_in_schema=True)
async def health(request: Request) -> JSONResponse:
    """Return process liveness, pool statistics and cache occupancy.

    Returns:
        JSON with keys ``status``, ``pool``, ``cache_entries`` and
        ``timestamp``.  ``pool`` and ``cache_entries`` are ``null`` when the
        render service is not installed or caching is disabled.
    """
    service = getattr(request.app.state, "render_service", None)
    if service is None:
        return JSONResponse(
            {
                "status": "starting",
                "pool": None,
                "cache_entries": None,
                "timestamp": datetime.now(UTC).isoformat(),
            }
        )

    payload = {
        "status": "ok" if service.pool.started else "starting",
        "pool": asdict(service.pool.stats()),
        "cache_entries": len(service.cache) if service.cache is not None else None,
        "timestamp": datetime.now(UTC).isoformat(),
    }
    logger.debug("health_check", extra={"health": payload})
    return JSONResponse(payload)
