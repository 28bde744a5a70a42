"""FastAPI dependency injection providers.

The :class:`~render_proxy.render.service.RenderService` is built once by the
application factory and stored on ``app.state``.  Route handlers receive it
through :func:`get_render_service` instead of reaching for a module-level
singleton, so tests can install a service backed by a fake browser engine.
"""

from __future__ import annotations

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from render_proxy.render.service import RenderService


def get_render_service(request: Request) -> RenderService:
    """Return the application's render service.

    Raises:
        HTTPException: 503 if the service has not been installed yet.
    """
    service: RenderService | None = getattr(request.app.state, "render_service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Render service is not initialised.",
        )
    return service


RenderServiceDep = Annotated[RenderService, Depends(get_render_service)]
