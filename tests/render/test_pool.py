"""Unit tests for the browser worker pool.

Tests cover:
- at most ``size`` navigations run at once; the rest wait for a free slot
- tasks are admitted in FIFO order
- contexts are created lazily, one per slot actually used
- a crashing context fails only its own task and is rebuilt on next use
- a failing context factory does not kill the pool
- close() fails queued and in-flight tasks and closes contexts
- a caller that stops waiting does not cancel its queued task
- the monitor hook sees events and cannot break the pool
"""

from __future__ import annotations

import asyncio

import pytest

from render_proxy.render.models import CanonicalURL, Failed, PoolStats, Success, WorkerTask
from render_proxy.render.pipeline import RenderPipeline
from render_proxy.render.pool import BrowserWorkerPool
from tests.factories.browser import FakeBrowserEngine, PageScript, wait_until


def _task(url: str) -> WorkerTask:
    return WorkerTask(
        canonical_url=CanonicalURL(url=url, hostname="example.com"),
        user_agent="UA",
        accept_language=None,
        retries_remaining=3,
    )


def _url(n: int) -> str:
    return f"https://example.com/page-{n}"


class TestBrowserWorkerPoolConstruction:
    def test_rejects_zero_size(self) -> None:
        with pytest.raises(ValueError):
            BrowserWorkerPool(FakeBrowserEngine(), RenderPipeline(), size=0)

    def test_not_started_until_used(self) -> None:
        pool = BrowserWorkerPool(FakeBrowserEngine(), RenderPipeline(), size=2)
        assert pool.started is False
        assert pool.stats() == PoolStats(
            size=2, busy=0, queued=0, live_contexts=0, completed=0, failed=0, context_restarts=0
        )


@pytest.mark.asyncio
class TestBrowserWorkerPoolConcurrency:
    async def test_at_most_size_navigations_run_at_once(self) -> None:
        size = 2
        gate = asyncio.Event()
        engine = FakeBrowserEngine(
            {_url(n): PageScript(gate=gate) for n in range(2 * size)}
        )
        pool = BrowserWorkerPool(engine, RenderPipeline(), size=size)

        tasks = [asyncio.create_task(pool.dispatch(_task(_url(n)))) for n in range(2 * size)]
        await wait_until(lambda: engine.active == size)
        await asyncio.sleep(0.05)

        assert engine.active == size
        assert engine.navigations == size
        assert pool.stats().queued == size
        assert not any(t.done() for t in tasks)

        gate.set()
        outcomes = await asyncio.gather(*tasks)

        assert all(isinstance(o, Success) for o in outcomes)
        assert engine.max_active == size
        assert engine.navigations == 2 * size
        await pool.close()

    async def test_fifo_admission(self) -> None:
        gate = asyncio.Event()
        engine = FakeBrowserEngine({_url(0): PageScript(gate=gate)})
        pool = BrowserWorkerPool(engine, RenderPipeline(), size=1)

        tasks = [asyncio.create_task(pool.dispatch(_task(_url(0))))]
        await wait_until(lambda: engine.active == 1)
        for n in (1, 2, 3):
            tasks.append(asyncio.create_task(pool.dispatch(_task(_url(n)))))
        await asyncio.sleep(0)

        gate.set()
        await asyncio.gather(*tasks)

        assert list(engine.attempts) == [_url(0), _url(1), _url(2), _url(3)]
        await pool.close()

    async def test_contexts_are_lazy(self) -> None:
        engine = FakeBrowserEngine()
        pool = BrowserWorkerPool(engine, RenderPipeline(), size=3)

        await pool.dispatch(_task(_url(0)))

        assert len(engine.contexts) == 1
        assert pool.stats().live_contexts == 1
        await pool.close()


@pytest.mark.asyncio
class TestBrowserWorkerPoolFailureContainment:
    async def test_crash_fails_only_that_task(self) -> None:
        engine = FakeBrowserEngine({_url(0): PageScript(crash=True)})
        pool = BrowserWorkerPool(engine, RenderPipeline(), size=1)

        crashed = await pool.dispatch(_task(_url(0)))
        healthy = await pool.dispatch(_task(_url(1)))

        assert crashed == Failed(reason="worker_context_failure")
        assert isinstance(healthy, Success)
        assert len(engine.contexts) == 2
        assert engine.contexts[0].closed is True
        stats = pool.stats()
        assert stats.failed == 1
        assert stats.completed == 1
        assert stats.context_restarts == 1
        await pool.close()

    async def test_crash_does_not_disturb_sibling(self) -> None:
        gate = asyncio.Event()
        engine = FakeBrowserEngine(
            {_url(0): PageScript(gate=gate), _url(1): PageScript(crash=True)}
        )
        pool = BrowserWorkerPool(engine, RenderPipeline(), size=2)

        slow = asyncio.create_task(pool.dispatch(_task(_url(0))))
        await wait_until(lambda: engine.active == 1)
        crashed = await pool.dispatch(_task(_url(1)))
        gate.set()

        assert isinstance(crashed, Failed)
        assert isinstance(await slow, Success)
        await pool.close()

    async def test_idle_dead_contexts_rebuilt_before_use(self) -> None:
        gate = asyncio.Event()
        engine = FakeBrowserEngine({_url(0): PageScript(gate=gate), _url(1): PageScript(gate=gate)})
        pool = BrowserWorkerPool(engine, RenderPipeline(), size=2)

        warmup = [asyncio.create_task(pool.dispatch(_task(_url(n)))) for n in (0, 1)]
        await wait_until(lambda: engine.active == 2)
        gate.set()
        await asyncio.gather(*warmup)
        assert len(engine.contexts) == 2

        # The shared browser went away while both slots sat idle.
        for context in engine.contexts:
            context.alive = False

        outcomes = await asyncio.gather(
            pool.dispatch(_task(_url(2))), pool.dispatch(_task(_url(3)))
        )

        assert all(isinstance(o, Success) for o in outcomes)
        assert len(engine.contexts) == 4
        assert all(c.closed for c in engine.contexts[:2])
        stats = pool.stats()
        assert stats.failed == 0
        assert stats.context_restarts == 2
        await pool.close()

    async def test_context_factory_failure_is_contained(self) -> None:
        engine = FakeBrowserEngine(fail_new_context=True)
        pool = BrowserWorkerPool(engine, RenderPipeline(), size=1)

        first = await pool.dispatch(_task(_url(0)))
        engine.fail_new_context = False
        second = await pool.dispatch(_task(_url(1)))

        assert isinstance(first, Failed)
        assert isinstance(second, Success)
        await pool.close()

    async def test_exhausted_retries_keep_context(self) -> None:
        engine = FakeBrowserEngine({_url(0): PageScript(failures=99)})
        pool = BrowserWorkerPool(engine, RenderPipeline(retry_times=3), size=1)

        outcome = await pool.dispatch(_task(_url(0)))
        await pool.dispatch(_task(_url(1)))

        assert outcome == Failed(reason="navigation_exhausted")
        assert len(engine.contexts) == 1
        await pool.close()


@pytest.mark.asyncio
class TestBrowserWorkerPoolLifecycle:
    async def test_close_fails_pending_tasks(self) -> None:
        gate = asyncio.Event()
        engine = FakeBrowserEngine({_url(0): PageScript(gate=gate)})
        pool = BrowserWorkerPool(engine, RenderPipeline(), size=1)

        running = asyncio.create_task(pool.dispatch(_task(_url(0))))
        await wait_until(lambda: engine.active == 1)
        queued = asyncio.create_task(pool.dispatch(_task(_url(1))))
        await asyncio.sleep(0)

        await pool.close()

        assert await running == Failed(reason="pool_closed")
        assert await queued == Failed(reason="pool_closed")
        assert all(c.closed for c in engine.contexts)

    async def test_dispatch_after_close(self) -> None:
        pool = BrowserWorkerPool(FakeBrowserEngine(), RenderPipeline(), size=1)
        await pool.close()

        assert await pool.dispatch(_task(_url(0))) == Failed(reason="pool_closed")
        with pytest.raises(RuntimeError):
            pool.start()

    async def test_abandoned_caller_does_not_cancel_task(self) -> None:
        gate = asyncio.Event()
        engine = FakeBrowserEngine({_url(0): PageScript(gate=gate)})
        pool = BrowserWorkerPool(engine, RenderPipeline(), size=1)

        waiter = asyncio.create_task(pool.dispatch(_task(_url(0))))
        await wait_until(lambda: engine.active == 1)
        waiter.cancel()
        gate.set()

        await wait_until(lambda: pool.stats().completed == 1)
        assert engine.extractions == [0]
        await pool.close()


@pytest.mark.asyncio
class TestBrowserWorkerPoolMonitor:
    async def test_monitor_receives_events(self) -> None:
        events: list[tuple[str, PoolStats]] = []
        pool = BrowserWorkerPool(
            FakeBrowserEngine(),
            RenderPipeline(),
            size=1,
            monitor=lambda event, stats: events.append((event, stats)),
        )

        await pool.dispatch(_task(_url(0)))

        names = [name for name, _ in events]
        assert names[:4] == ["task_queued", "task_started", "context_created", "task_finished"]
        assert events[1][1].busy == 1
        assert events[-1][1].completed == 1
        await pool.close()

    async def test_failing_monitor_is_ignored(self) -> None:
        def broken(event: str, stats: PoolStats) -> None:
            raise RuntimeError("monitor down")

        pool = BrowserWorkerPool(FakeBrowserEngine(), RenderPipeline(), size=1, monitor=broken)

        assert isinstance(await pool.dispatch(_task(_url(0))), Success)
        await pool.close()
