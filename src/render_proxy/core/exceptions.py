"""Application-wide exception hierarchy for the render proxy.

All custom exceptions subclass ``RenderProxyError``, enabling consistent
error handling and structured logging across the application.

Hierarchy::

    RenderProxyError
    ├── InvalidRenderRequestError
    ├── DomainRejectedError          (hostname: str)
    ├── NavigationError
    │   ├── NavigationTransientError (url, attempt)
    │   └── NavigationExhaustedError (url, attempts)
    └── WorkerContextError           (slot: int | None)

Only ``InvalidRenderRequestError``, ``DomainRejectedError`` and
``NavigationExhaustedError`` are ever surfaced to HTTP callers, as 400, 403
and 500 respectively.  Everything else is contained inside the worker pool.
"""

from __future__ import annotations


class RenderProxyError(Exception):
    """Base class for all render proxy exceptions.

    All application-specific exceptions inherit from this class so that
    callers can catch the entire hierarchy with a single ``except`` clause
    when needed.
    """


# ---------------------------------------------------------------------------
# Request exceptions
# ---------------------------------------------------------------------------


class InvalidRenderRequestError(RenderProxyError):
    """Raised when the inbound query cannot be turned into a render target.

    Covers a missing ``url`` parameter, an unsupported scheme, or a target
    without a hostname.
    """


class DomainRejectedError(RenderProxyError):
    """Raised when the target hostname is not on the configured allow-list.

    Args:
        hostname: The rejected hostname.
    """

    def __init__(self, hostname: str) -> None:
        super().__init__(f"Domain '{hostname}' is not in the allow-list")
        self.hostname = hostname


# ---------------------------------------------------------------------------
# Navigation exceptions
# ---------------------------------------------------------------------------


class NavigationError(RenderProxyError):
    """Base class for failures while navigating a browser page.

    Args:
        message: Human-readable description of the failure.
        url: Navigation target.
    """

    def __init__(self, message: str, url: str | None = None) -> None:
        super().__init__(message)
        self.url = url


class NavigationTransientError(NavigationError):
    """Raised for a single failed navigation attempt that may succeed on retry.

    Timeouts, a ``None`` response from the browser, and network errors all
    map to this exception.  The render pipeline retries it immediately.

    Args:
        message: Human-readable description of the failure.
        url: Navigation target.
        attempt: 1-based attempt number, when known.
    """

    def __init__(
        self,
        message: str,
        url: str | None = None,
        attempt: int | None = None,
    ) -> None:
        super().__init__(message, url=url)
        self.attempt = attempt


class NavigationExhaustedError(NavigationError):
    """Raised when every allowed navigation attempt failed.

    Args:
        url: Navigation target.
        attempts: Number of attempts made.
        last_error: The transient error raised by the final attempt.
    """

    def __init__(
        self,
        url: str,
        attempts: int,
        last_error: BaseException | None = None,
    ) -> None:
        super().__init__(
            f"Navigation to {url} failed after {attempts} attempt(s)",
            url=url,
        )
        self.attempts = attempts
        self.last_error = last_error


# ---------------------------------------------------------------------------
# Worker exceptions
# ---------------------------------------------------------------------------


class WorkerContextError(RenderProxyError):
    """Raised when a browser execution context is unusable.

    The worker pool catches this, fails only the task that triggered it, and
    discards the context so the slot builds a fresh one on next use.

    Args:
        message: Description of the failure.
        slot: Index of the pool slot that owned the context.
    """

    def __init__(self, message: str, slot: int | None = None) -> None:
        super().__init__(message)
        self.slot = slot
