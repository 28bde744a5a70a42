"""Per-task render state machine.

States::

    Init -> Navigating -> Succeeded | Redirected | Failed

``Init`` prepares the execution context with the task's user-agent and
``Accept-Language``.  ``Navigating`` is a fold over :meth:`RenderPipeline.step`,
a function of ``(context, task)`` that returns one of:

- :class:`Retry`    : the attempt failed transiently; carries the next task
- :class:`Succeed`  : the navigation settled; carries the terminal outcome
- :class:`Exhausted`: the attempt failed and no retries remain

Retries are immediate; there is no backoff between attempts.  Redirects
short-circuit before content extraction.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Optional, Union

import structlog

from render_proxy.core.exceptions import NavigationExhaustedError, NavigationTransientError
from render_proxy.render.browser import ExecutionContext
from render_proxy.render.config import DEFAULT_RETRY_TIMES
from render_proxy.render.models import (
    CanonicalURL,
    Failed,
    Redirected,
    RenderOutcome,
    Success,
    WorkerTask,
)

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class Retry:
    task: WorkerTask
    error: NavigationTransientError


@dataclass(frozen=True)
class Succeed:
    outcome: RenderOutcome


@dataclass(frozen=True)
class Exhausted:
    error: NavigationTransientError


Step = Union[Retry, Succeed, Exhausted]


class RenderPipeline:
    """Navigate, retry, detect redirects and extract content for one task.

    The pipeline holds no per-task state, so one instance is shared by every
    pool slot.

    Args:
        retry_times: Total attempts per task, used by :meth:`new_task`.
        collect_cookies: Read the page's cookies into the ``Success`` outcome.
    """

    def __init__(
        self,
        retry_times: int = DEFAULT_RETRY_TIMES,
        *,
        collect_cookies: bool = True,
    ) -> None:
        if retry_times < 1:
            raise ValueError("retry_times must be at least 1")
        self.retry_times = retry_times
        self.collect_cookies = collect_cookies

    async def step(self, context: ExecutionContext, task: WorkerTask) -> Step:
        """Make one navigation attempt for ``task``."""
        try:
            response = await context.navigate(task.url)
        except NavigationTransientError as exc:
            remaining = task.retries_remaining - 1
            if remaining <= 0:
                return Exhausted(error=exc)
            return Retry(task=replace(task, retries_remaining=remaining), error=exc)

        if response.redirect is not None:
            return Succeed(
                Redirected(
                    status=response.redirect.status_code,
                    target_url=response.redirect.target_url,
                )
            )

        content = await context.content()
        cookies = tuple(await context.cookies()) if self.collect_cookies else ()
        return Succeed(Success(content=content, status=response.status, cookies=cookies))

    async def _navigate(self, context: ExecutionContext, task: WorkerTask) -> RenderOutcome:
        attempt = 1
        while True:
            result = await self.step(context, task)
            if isinstance(result, Succeed):
                return result.outcome
            if isinstance(result, Exhausted):
                raise NavigationExhaustedError(
                    task.url, attempts=attempt, last_error=result.error
                )
            logger.warning(
                "render_attempt_failed",
                url=task.url,
                attempt=attempt,
                max_attempts=attempt + result.task.retries_remaining,
                error=str(result.error),
                request_id=task.request_id,
            )
            task = result.task
            attempt += 1

    async def run(self, context: ExecutionContext, task: WorkerTask) -> RenderOutcome:
        """Execute ``task`` on ``context`` and always release the context afterwards.

        Returns:
            ``Success``, ``Redirected`` or ``Failed`` (retries exhausted).

        Raises:
            WorkerContextError: If the context itself broke.  The pool turns
                this into ``Failed`` and discards the context.
        """
        try:
            await context.prepare(task.user_agent, task.accept_language)
            try:
                outcome = await self._navigate(context, task)
            except NavigationExhaustedError as exc:
                logger.error(
                    "render_navigation_exhausted",
                    url=task.url,
                    attempts=exc.attempts,
                    error=str(exc.last_error),
                    request_id=task.request_id,
                )
                return Failed(reason="navigation_exhausted")
        finally:
            await context.release()

        if isinstance(outcome, Success):
            logger.info(
                "render_succeeded",
                url=task.url,
                status=outcome.status,
                content_length=len(outcome.content),
                request_id=task.request_id,
            )
        return outcome

    def new_task(
        self,
        canonical_url: CanonicalURL,
        user_agent: Optional[str],
        accept_language: Optional[str],
        request_id: str = "",
    ) -> WorkerTask:
        """Build a :class:`WorkerTask` carrying the full retry budget."""
        return WorkerTask(
            canonical_url=canonical_url,
            user_agent=user_agent,
            accept_language=accept_language,
            retries_remaining=self.retry_times,
            request_id=request_id,
        )
