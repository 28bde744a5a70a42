"""Fixed-size browser worker pool.

``size`` worker coroutines pull :class:`~render_proxy.render.models.WorkerTask`
items from one FIFO ``asyncio.Queue``.  Each worker owns one execution
context exclusively, so at most ``size`` navigations run at a time and a
context only ever runs one task at a time.  There is no priority and no
preemption; a queued task runs to completion even if its caller stops
waiting.

Failure containment: any exception escaping the pipeline fails only the task
that raised it (``Failed``, HTTP 500).  The worker closes and drops its
context and builds a new one on its next task.  Contexts whose browser has
disconnected are dropped the same way.

Typical usage::

    pool = BrowserWorkerPool(engine, RenderPipeline(retry_times=5), size=2)
    outcome = await pool.dispatch(task)
    ...
    await pool.close()
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Callable, Optional

import structlog

from render_proxy.render.browser import BrowserEngine, ExecutionContext
from render_proxy.render.config import DEFAULT_MAX_CONCURRENCY
from render_proxy.render.models import Failed, PoolStats, RenderOutcome, WorkerTask
from render_proxy.render.pipeline import RenderPipeline

logger = structlog.get_logger(__name__)

PoolMonitor = Callable[[str, PoolStats], None]
"""Passive observer called as ``monitor(event, stats)``.

Events: ``task_queued``, ``task_started``, ``task_finished``,
``context_created``, ``context_discarded``.
"""


@dataclass
class _QueuedTask:
    task: WorkerTask
    future: asyncio.Future[RenderOutcome]


class BrowserWorkerPool:
    """Bounded-concurrency executor for render tasks.

    Args:
        engine: Source of execution contexts.
        pipeline: State machine run for every task.
        size: Number of worker slots (concurrent navigations).
        monitor: Optional passive observer of pool events.
    """

    def __init__(
        self,
        engine: BrowserEngine,
        pipeline: RenderPipeline,
        size: int = DEFAULT_MAX_CONCURRENCY,
        *,
        monitor: Optional[PoolMonitor] = None,
    ) -> None:
        if size < 1:
            raise ValueError("pool size must be at least 1")
        self._engine = engine
        self._pipeline = pipeline
        self.size = size
        self._monitor = monitor

        self._queue: asyncio.Queue[_QueuedTask] = asyncio.Queue()
        self._contexts: list[Optional[ExecutionContext]] = [None] * size
        self._ever_created: list[bool] = [False] * size
        self._workers: list[asyncio.Task[None]] = []
        self._closed = False

        self._busy = 0
        self._completed = 0
        self._failed = 0
        self._context_restarts = 0

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def started(self) -> bool:
        return bool(self._workers)

    def start(self) -> None:
        """Spawn the worker coroutines.  Idempotent; contexts stay lazy."""
        if self._closed:
            raise RuntimeError("worker pool is closed")
        if self._workers:
            return
        self._workers = [
            asyncio.create_task(self._worker(slot), name=f"render-worker-{slot}")
            for slot in range(self.size)
        ]
        logger.info("render_pool_started", size=self.size)

    async def close(self) -> None:
        """Stop workers, fail queued tasks and close every context."""
        if self._closed:
            return
        self._closed = True

        for worker in self._workers:
            worker.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []

        while not self._queue.empty():
            item = self._queue.get_nowait()
            if not item.future.done():
                item.future.set_result(Failed(reason="pool_closed"))
            self._queue.task_done()

        for slot in range(self.size):
            await self._discard_context(slot)
        logger.info("render_pool_closed", completed=self._completed, failed=self._failed)

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    async def dispatch(self, task: WorkerTask) -> RenderOutcome:
        """Queue ``task`` and wait for its outcome.

        Never raises for render failures: a broken context or exhausted
        retries come back as :class:`Failed`.
        """
        if self._closed:
            return Failed(reason="pool_closed")
        self.start()

        future: asyncio.Future[RenderOutcome] = asyncio.get_running_loop().create_future()
        self._queue.put_nowait(_QueuedTask(task=task, future=future))
        self._notify("task_queued")
        # Shielded: a caller that goes away does not cancel the queued task.
        return await asyncio.shield(future)

    def stats(self) -> PoolStats:
        return PoolStats(
            size=self.size,
            busy=self._busy,
            queued=self._queue.qsize(),
            live_contexts=sum(1 for c in self._contexts if c is not None),
            completed=self._completed,
            failed=self._failed,
            context_restarts=self._context_restarts,
        )

    # ------------------------------------------------------------------
    # Workers
    # ------------------------------------------------------------------

    async def _worker(self, slot: int) -> None:
        while True:
            item = await self._queue.get()
            self._busy += 1
            self._notify("task_started")
            outcome: RenderOutcome = Failed(reason="worker_error")
            try:
                outcome = await self._execute(slot, item.task)
            except asyncio.CancelledError:
                outcome = Failed(reason="pool_closed")
                raise
            finally:
                self._busy -= 1
                if isinstance(outcome, Failed):
                    self._failed += 1
                else:
                    self._completed += 1
                if not item.future.done():
                    item.future.set_result(outcome)
                self._queue.task_done()
                self._notify("task_finished")

    async def _execute(self, slot: int, task: WorkerTask) -> RenderOutcome:
        try:
            context = await self._acquire_context(slot)
            return await self._pipeline.run(context, task)
        except Exception as exc:  # noqa: BLE001
            logger.error(
                "render_worker_failed",
                slot=slot,
                url=task.url,
                error=str(exc),
                error_type=type(exc).__name__,
                request_id=task.request_id,
            )
            await self._discard_context(slot)
            return Failed(reason="worker_context_failure")
        finally:
            context_after = self._contexts[slot]
            if context_after is not None and not context_after.alive:
                logger.warning("render_context_dead", slot=slot)
                await self._discard_context(slot)

    async def _acquire_context(self, slot: int) -> ExecutionContext:
        context = self._contexts[slot]
        if context is not None:
            if context.alive:
                return context
            # Another slot's task took the shared browser down while this one idled.
            logger.warning("render_context_dead", slot=slot)
            await self._discard_context(slot)

        context = await self._engine.new_context(slot)
        self._contexts[slot] = context
        if self._ever_created[slot]:
            self._context_restarts += 1
        self._ever_created[slot] = True
        self._notify("context_created")
        return context

    async def _discard_context(self, slot: int) -> None:
        context, self._contexts[slot] = self._contexts[slot], None
        if context is None:
            return
        try:
            await context.close()
        except Exception as exc:  # noqa: BLE001
            logger.warning("render_context_close_failed", slot=slot, error=str(exc))
        self._notify("context_discarded")

    def _notify(self, event: str) -> None:
        if self._monitor is None:
            return
        try:
            self._monitor(event, self.stats())
        except Exception:  # noqa: BLE001
            logger.exception("render_pool_monitor_failed", pool_event=event)
