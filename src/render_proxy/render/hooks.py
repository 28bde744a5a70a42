"""Render lifecycle observers.

Two fixed extension points:

- ``before_render(source_user_agent, canonical_url, request_id)``: once per
  accepted request, before the cache lookup.
- ``after_render(user_agent, canonical_url, content, request_id)``: whenever
  HTML is available, i.e. on a cache hit (with the caller's user-agent) and
  on a fresh successful render (with the resolved user-agent).  Not fired
  for redirects or failures, nor for rejected hosts.

Observers run synchronously inside the request.  An exception raised by an
observer is logged and otherwise ignored: it never changes an outcome that
has already been computed.
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional, Protocol

from render_proxy.render.models import AfterRenderHook, BeforeRenderHook

logger = logging.getLogger(__name__)


class RenderObserver(Protocol):
    def before_render(
        self, source_user_agent: Optional[str], url: str, request_id: str
    ) -> None: ...

    def after_render(
        self, user_agent: Optional[str], url: str, content: str, request_id: str
    ) -> None: ...


class CallbackObserver:
    """Adapt a pair of plain functions to :class:`RenderObserver`."""

    def __init__(
        self,
        before: Optional[BeforeRenderHook] = None,
        after: Optional[AfterRenderHook] = None,
    ) -> None:
        self._before = before
        self._after = after

    def before_render(
        self, source_user_agent: Optional[str], url: str, request_id: str
    ) -> None:
        if self._before is not None:
            self._before(source_user_agent, url, request_id)

    def after_render(
        self, user_agent: Optional[str], url: str, content: str, request_id: str
    ) -> None:
        if self._after is not None:
            self._after(user_agent, url, content, request_id)


class HookRunner:
    """Fan a lifecycle event out to every observer, isolating failures."""

    def __init__(self, observers: Iterable[RenderObserver] = ()) -> None:
        self._observers: list[RenderObserver] = list(observers)

    def add(self, observer: RenderObserver) -> None:
        self._observers.append(observer)

    def __len__(self) -> int:
        return len(self._observers)

    def before_render(
        self, source_user_agent: Optional[str], url: str, request_id: str
    ) -> None:
        for observer in self._observers:
            try:
                observer.before_render(source_user_agent, url, request_id)
            except Exception:  # noqa: BLE001
                logger.exception("render: before_render hook failed for %s", url)

    def after_render(
        self, user_agent: Optional[str], url: str, content: str, request_id: str
    ) -> None:
        for observer in self._observers:
            try:
                observer.after_render(user_agent, url, content, request_id)
            except Exception:  # noqa: BLE001
                logger.exception("render: after_render hook failed for %s", url)
