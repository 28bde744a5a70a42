"""Prometheus metrics for the render proxy.

All metrics are module-level singletons registered on the default
``REGISTRY``.

Metrics defined here:

  render_outcomes_total{outcome, source}
      Counter: render results by outcome (success, redirected, rejected,
      failed, invalid) and source (cache, browser, none).

  render_duration_seconds{source}
      Histogram: wall-clock time of a render call.

  render_pool_busy_workers
      Gauge: worker slots currently running a task.

  render_pool_queue_depth
      Gauge: tasks waiting for a free slot.

  render_pool_context_restarts_total
      Counter: execution contexts rebuilt after a failure or disconnect.

  http_requests_total{method, path, status}
      Counter: HTTP requests handled by the application.  ``path`` is the
      matched route template, or ``unmatched`` for unknown paths.

Usage::

    from render_proxy.api.metrics import render_outcomes_total
    render_outcomes_total.labels(outcome="success", source="cache").inc()
"""

from __future__ import annotations

from prometheus_client import Counter, Gauge, Histogram

from render_proxy.render.models import (
    Failed,
    PoolStats,
    Redirected,
    Rejected,
    RenderOutcome,
    Success,
)

# ---------------------------------------------------------------------------
# Render metrics
# ---------------------------------------------------------------------------

render_outcomes_total: Counter = Counter(
    "render_outcomes_total",
    "Render results by outcome and source.",
    labelnames=["outcome", "source"],
)

render_duration_seconds: Histogram = Histogram(
    "render_duration_seconds",
    "Render call latency in seconds.",
    labelnames=["source"],
    buckets=[0.005, 0.05, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0],
)

# ---------------------------------------------------------------------------
# Pool metrics (populated by the pool monitor hook)
# ---------------------------------------------------------------------------

render_pool_busy_workers: Gauge = Gauge(
    "render_pool_busy_workers",
    "Worker slots currently running a render task.",
)

render_pool_queue_depth: Gauge = Gauge(
    "render_pool_queue_depth",
    "Render tasks waiting for a free worker slot.",
)

render_pool_context_restarts_total: Counter = Counter(
    "render_pool_context_restarts_total",
    "Browser execution contexts rebuilt after a failure or disconnect.",
)

# ---------------------------------------------------------------------------
# HTTP metrics (populated by middleware in main.py)
# ---------------------------------------------------------------------------

http_requests_total: Counter = Counter(
    "http_requests_total",
    "HTTP requests handled by the render proxy.",
    labelnames=["method", "path", "status"],
)

# ---------------------------------------------------------------------------
# Recording helpers
# ---------------------------------------------------------------------------


def outcome_labels(outcome: RenderOutcome) -> tuple[str, str]:
    """Return ``(outcome, source)`` label values for ``outcome``."""
    if isinstance(outcome, Success):
        return "success", "cache" if outcome.from_cache else "browser"
    if isinstance(outcome, Redirected):
        return "redirected", "browser"
    if isinstance(outcome, Rejected):
        return "rejected", "none"
    if isinstance(outcome, Failed):
        return "failed", "browser"
    raise TypeError(f"unknown render outcome {outcome!r}")


def record_outcome(outcome: RenderOutcome, elapsed_seconds: float) -> None:
    name, source = outcome_labels(outcome)
    render_outcomes_total.labels(outcome=name, source=source).inc()
    render_duration_seconds.labels(source=source).observe(elapsed_seconds)


class PoolMetricsRecorder:
    """Pool monitor hook mirroring one pool's stats into the pool metrics.

    Each pool gets its own recorder, so restart deltas are tracked per pool
    while the counter itself aggregates across the process.
    """

    def __init__(self) -> None:
        self._last_restarts = 0

    def __call__(self, event: str, stats: PoolStats) -> None:
        render_pool_busy_workers.set(stats.busy)
        render_pool_queue_depth.set(stats.queued)
        if event == "context_created" and stats.context_restarts > self._last_restarts:
            render_pool_context_restarts_total.inc(stats.context_restarts - self._last_restarts)
            self._last_restarts = stats.context_restarts


def get_metrics_response() -> tuple[bytes, str]:
    """Generate a Prometheus text-format metrics response.

    Returns:
        A tuple of (body_bytes, content_type_string).
    """
    from prometheus_client import CONTENT_TYPE_LATEST, generate_latest  # noqa: PLC0415

    return generate_latest(), CONTENT_TYPE_LATEST
