"""Shared pytest fixtures for render proxy tests.

Fixture summary
---------------
fake_engine    : empty ``FakeBrowserEngine`` (every URL renders DEFAULT_HTML)
make_service   : factory building a ``RenderService`` on a fake engine
client_for     : factory yielding an ``httpx.AsyncClient`` for a service

No test launches a real browser.  Tests that need scripted navigation build
their own ``FakeBrowserEngine`` from ``tests.factories``.
"""

from __future__ import annotations

import os
from collections.abc import AsyncGenerator, Callable
from contextlib import asynccontextmanager
from typing import Any

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

# ---------------------------------------------------------------------------
# Test environment bootstrap
# ---------------------------------------------------------------------------
# Pin settings that influence app construction so a developer's .env does
# not leak into the suite.

_TEST_ENV_DEFAULTS: dict[str, str] = {
    "LOG_LEVEL": "INFO",
    "METRICS_ENABLED": "true",
    "ALLOW_DOMAINS": "[]",
}

for _key, _default in _TEST_ENV_DEFAULTS.items():
    os.environ.setdefault(_key, _default)

from render_proxy.config.settings import get_settings  # noqa: E402
from render_proxy.render.models import RenderOptions  # noqa: E402
from render_proxy.render.service import RenderService  # noqa: E402
from tests.factories.browser import FakeBrowserEngine  # noqa: E402

get_settings.cache_clear()


@pytest.fixture
def fake_engine() -> FakeBrowserEngine:
    return FakeBrowserEngine()


@pytest_asyncio.fixture
async def make_service() -> AsyncGenerator[Callable[..., RenderService], None]:
    """Yield a factory for ``RenderService`` instances on fake engines.

    Every service built through the factory is shut down on teardown so no
    worker coroutine outlives its test's event loop.

    Factory signature::

        make_service(engine, **option_overrides) -> RenderService
    """
    services: list[RenderService] = []

    def _make(
        engine: FakeBrowserEngine,
        *,
        observers: tuple[Any, ...] = (),
        **overrides: Any,
    ) -> RenderService:
        service = RenderService(RenderOptions(**overrides), engine=engine, observers=observers)
        services.append(service)
        return service

    yield _make

    for service in services:
        await service.shutdown()


@pytest.fixture
def client_for() -> Callable[[RenderService], Any]:
    """Return an async context manager yielding a client bound to a service.

    ``httpx.ASGITransport`` does not run startup events; the pool starts
    lazily on the first dispatch.
    """
    from render_proxy.api.main import create_app  # noqa: PLC0415

    @asynccontextmanager
    async def _client(service: RenderService) -> AsyncGenerator[AsyncClient, None]:
        app = create_app(service=service)
        transport = ASGITransport(app=app)
        async with AsyncClient(
            transport=transport,
            base_url="http://test",
            follow_redirects=False,
        ) as ac:
            yield ac

    return _client
