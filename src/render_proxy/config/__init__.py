"""Configuration package for the render proxy.

Re-exports the settings symbols so that callers can write::

    from render_proxy.config import get_settings
"""

from __future__ import annotations

from render_proxy.config.settings import Settings, get_settings

__all__ = [
    "Settings",
    "get_settings",
]
