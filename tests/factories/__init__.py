"""Test doubles for render tests.

Available factories
-------------------
FakeBrowserEngine  : scriptable in-memory ``BrowserEngine``
FakeContext        : execution context handed out by ``FakeBrowserEngine``
PageScript         : per-URL navigation behaviour (failures, redirect, gate)
wait_until         : async polling helper for concurrency tests
"""

from __future__ import annotations

from tests.factories.browser import (
    DEFAULT_HTML,
    FakeBrowserEngine,
    FakeContext,
    PageScript,
    wait_until,
)

__all__ = [
    "DEFAULT_HTML",
    "FakeBrowserEngine",
    "FakeContext",
    "PageScript",
    "wait_until",
]
