"""Structured logging configuration using structlog.

Call ``configure_logging()`` once at application startup.  Modules then log
through either the stdlib API or structlog:

Stdlib usage::

    import logging
    logger = logging.getLogger(__name__)
    logger.warning("render: hook failed for %s", url)

Structlog usage (richer context binding)::

    import structlog
    logger = structlog.get_logger(__name__)
    logger.info("render_cache_hit", url=url)

The request-logging middleware in ``api/main.py`` sets ``request_id_var``
and binds it to the structlog context, so every record emitted while a
render is in flight carries the same ``request_id``.  Records emitted from
pool worker coroutines carry the ``request_id`` that travelled with the
``WorkerTask``.
"""

from __future__ import annotations

import logging
import logging.config
import sys
from contextvars import ContextVar

import structlog
from structlog.types import EventDict, WrappedLogger

request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)
"""Per-request ID propagated from the HTTP middleware to log processors."""


_SENSITIVE_KEYS: frozenset[str] = frozenset({
    "cookie",
    "set-cookie",
    "authorization",
    "proxy-authorization",
})
"""Lower-cased event-dict keys (or nested header keys) whose values are
replaced before rendering.  Forwarded cookies must never reach the logs."""

_MAX_FIELD_CHARS: int = 2000
"""Longest string value kept verbatim in a log record.  Rendered HTML is
routinely hundreds of kilobytes and is clipped to this length."""


# ---------------------------------------------------------------------------
# Custom processors
# ---------------------------------------------------------------------------


def _redact_sensitive(
    logger: WrappedLogger,  # noqa: ARG001
    method_name: str,  # noqa: ARG001
    event_dict: EventDict,
) -> EventDict:
    """Replace cookie and authorization values with a redaction marker.

    Scans top-level keys and one level of nested ``dict`` values (for
    ``headers={...}`` style fields).
    """
    redacted = "[REDACTED]"
    for key in list(event_dict.keys()):
        if key.lower() in _SENSITIVE_KEYS:
            event_dict[key] = redacted
            continue
        val = event_dict[key]
        if isinstance(val, dict):
            for nested_key in list(val.keys()):
                if str(nested_key).lower() in _SENSITIVE_KEYS:
                    val[nested_key] = redacted
    return event_dict


def _clip_long_values(
    logger: WrappedLogger,  # noqa: ARG001
    method_name: str,  # noqa: ARG001
    event_dict: EventDict,
) -> EventDict:
    """Truncate oversized string fields such as rendered page content."""
    for key, val in event_dict.items():
        if key != "event" and isinstance(val, str) and len(val) > _MAX_FIELD_CHARS:
            event_dict[key] = f"{val[:_MAX_FIELD_CHARS]}...[{len(val)} chars]"
    return event_dict


def _inject_request_id(
    logger: WrappedLogger,  # noqa: ARG001
    method_name: str,  # noqa: ARG001
    event_dict: EventDict,
) -> EventDict:
    """Inject the current request ID into the log event dict if set.

    Runs after ``merge_contextvars`` and acts as a fallback for code paths
    that set the ``ContextVar`` directly.  An explicit ``request_id`` passed
    by the caller always wins.
    """
    rid = request_id_var.get()
    if rid is not None and "request_id" not in event_dict:
        event_dict["request_id"] = rid
    return event_dict


# ---------------------------------------------------------------------------
# Public configuration entry-point
# ---------------------------------------------------------------------------


def configure_logging(log_level: str = "INFO") -> None:
    """Configure structlog and stdlib logging.

    At ``DEBUG`` a coloured ``ConsoleRenderer`` is used; at every other level
    records are emitted as newline-delimited JSON with ``timestamp``,
    ``level``, ``logger``, ``event`` and, inside a request, ``request_id``.

    Idempotent: the root handler list is replaced on every call, so tests may
    call it repeatedly.

    Args:
        log_level: One of ``"DEBUG"``, ``"INFO"``, ``"WARNING"``,
            ``"ERROR"``, ``"CRITICAL"``.  Case-insensitive.
    """
    level_upper = log_level.upper()
    numeric_level = getattr(logging, level_upper, logging.INFO)
    is_development = level_upper == "DEBUG"

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        _inject_request_id,
        _redact_sensitive,
        _clip_long_values,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if is_development:
        final_renderer: structlog.types.Processor = structlog.dev.ConsoleRenderer(
            colors=True,
        )
    else:
        final_renderer = structlog.processors.JSONRenderer()

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            final_renderer,
        ],
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(numeric_level)

    # The request middleware already logs one line per request.
    if not is_development:
        for noisy_logger in ("uvicorn.access", "asyncio"):
            logging.getLogger(noisy_logger).setLevel(logging.WARNING)

    structlog.configure(
        processors=shared_processors
        + [
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
