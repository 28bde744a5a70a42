"""Unit tests for the per-task render state machine.

Tests cover:
- step() returns Retry with one fewer retry remaining on a transient failure
- step() returns Exhausted when the last allowed attempt fails
- step() returns Succeed(Redirected) without extracting content
- run() succeeds on the final allowed attempt
- run() returns Failed after exhausting every attempt
- run() prepares the context with the task's user-agent and language
- run() releases the context on success, failure and crash
- run() lets non-transient errors escape for the pool to contain
"""

from __future__ import annotations

import pytest

from render_proxy.render.models import (
    CanonicalURL,
    Cookie,
    Failed,
    RedirectInfo,
    Redirected,
    Success,
    WorkerTask,
)
from render_proxy.render.pipeline import Exhausted, RenderPipeline, Retry, Succeed
from tests.factories.browser import DEFAULT_HTML, FakeBrowserEngine, PageScript

URL = "https://example.com/page"


def _task(retries: int = 5, user_agent: str | None = "UA", lang: str | None = "da") -> WorkerTask:
    return WorkerTask(
        canonical_url=CanonicalURL(url=URL, hostname="example.com"),
        user_agent=user_agent,
        accept_language=lang,
        retries_remaining=retries,
        request_id="req-1",
    )


class TestRenderPipelineConstruction:
    def test_rejects_zero_retries(self) -> None:
        with pytest.raises(ValueError):
            RenderPipeline(retry_times=0)

    def test_new_task_carries_full_budget(self) -> None:
        pipeline = RenderPipeline(retry_times=3)
        task = pipeline.new_task(CanonicalURL(URL, "example.com"), "UA", None, request_id="r")
        assert task.retries_remaining == 3
        assert task.url == URL
        assert task.request_id == "r"


@pytest.mark.asyncio
class TestRenderPipelineStep:
    async def test_transient_failure_returns_retry(self) -> None:
        engine = FakeBrowserEngine({URL: PageScript(failures=1)})
        context = await engine.new_context(0)
        task = _task(retries=3)

        result = await RenderPipeline().step(context, task)

        assert isinstance(result, Retry)
        assert result.task.retries_remaining == 2
        assert task.retries_remaining == 3

    async def test_last_attempt_failure_returns_exhausted(self) -> None:
        engine = FakeBrowserEngine({URL: PageScript(failures=1)})
        context = await engine.new_context(0)

        result = await RenderPipeline().step(context, _task(retries=1))

        assert isinstance(result, Exhausted)

    async def test_redirect_short_circuits(self) -> None:
        engine = FakeBrowserEngine(
            {URL: PageScript(redirect=RedirectInfo(301, "https://example.com/new"))}
        )
        context = await engine.new_context(0)

        result = await RenderPipeline().step(context, _task())

        assert isinstance(result, Succeed)
        assert result.outcome == Redirected(status=301, target_url="https://example.com/new")
        assert engine.extractions == []


@pytest.mark.asyncio
class TestRenderPipelineRun:
    async def test_succeeds_on_last_attempt(self) -> None:
        engine = FakeBrowserEngine({URL: PageScript(failures=4)})
        context = await engine.new_context(0)

        outcome = await RenderPipeline(retry_times=5).run(context, _task(retries=5))

        assert outcome == Success(content=DEFAULT_HTML, status=200)
        assert engine.attempts[URL] == 5

    async def test_fails_after_all_attempts(self) -> None:
        engine = FakeBrowserEngine({URL: PageScript(failures=5)})
        context = await engine.new_context(0)

        outcome = await RenderPipeline(retry_times=5).run(context, _task(retries=5))

        assert isinstance(outcome, Failed)
        assert outcome.status == 500
        assert engine.attempts[URL] == 5
        assert engine.extractions == []

    async def test_single_attempt_budget(self) -> None:
        engine = FakeBrowserEngine({URL: PageScript(failures=1)})
        context = await engine.new_context(0)

        outcome = await RenderPipeline(retry_times=1).run(context, _task(retries=1))

        assert isinstance(outcome, Failed)
        assert engine.attempts[URL] == 1

    async def test_prepares_context_with_identity(self) -> None:
        engine = FakeBrowserEngine()
        context = await engine.new_context(0)

        await RenderPipeline().run(context, _task(user_agent="Bot/1", lang="en-GB"))

        assert engine.prepared == [("Bot/1", "en-GB")]

    async def test_response_status_is_kept(self) -> None:
        engine = FakeBrowserEngine({URL: PageScript(status=404, html="<p>gone</p>")})
        context = await engine.new_context(0)

        outcome = await RenderPipeline().run(context, _task())

        assert isinstance(outcome, Success)
        assert outcome.status == 404
        assert outcome.cacheable is False

    async def test_collects_cookies(self) -> None:
        cookies = (Cookie("session", "abc%20def"),)
        engine = FakeBrowserEngine({URL: PageScript(cookies=cookies)})
        context = await engine.new_context(0)

        outcome = await RenderPipeline().run(context, _task())

        assert isinstance(outcome, Success)
        assert outcome.cookies == cookies

    async def test_cookie_collection_can_be_disabled(self) -> None:
        engine = FakeBrowserEngine({URL: PageScript(cookies=(Cookie("a", "b"),))})
        context = await engine.new_context(0)

        outcome = await RenderPipeline(collect_cookies=False).run(context, _task())

        assert isinstance(outcome, Success)
        assert outcome.cookies == ()

    @pytest.mark.parametrize("script", [PageScript(), PageScript(failures=10)])
    async def test_releases_context(self, script: PageScript) -> None:
        engine = FakeBrowserEngine({URL: script})
        context = await engine.new_context(0)

        await RenderPipeline(retry_times=2).run(context, _task(retries=2))

        assert engine.releases == 1

    async def test_crash_propagates_and_releases(self) -> None:
        engine = FakeBrowserEngine({URL: PageScript(crash=True)})
        context = await engine.new_context(0)

        with pytest.raises(RuntimeError):
            await RenderPipeline().run(context, _task())

        assert engine.releases == 1
        assert engine.attempts[URL] == 1
