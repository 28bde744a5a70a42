"""User-agent strategy resolution.

The browser must not announce itself as headless, or many sites serve a
degraded page.  Three strategies exist:

- ``custom``  : a fixed string, or a function of the caller's user-agent
- ``source``  : the caller's own ``User-Agent`` passed through unchanged
- ``headless``: a standard Chrome build string with the headless marker removed
"""

from __future__ import annotations

from typing import Optional

from render_proxy.render.config import HEADLESS_MARKER, HEADLESS_USER_AGENT
from render_proxy.render.models import CustomUserAgent, UserAgentType


def strip_headless_marker(user_agent: str) -> str:
    """Replace ``HeadlessChrome`` with ``Chrome`` in a user-agent string."""
    return user_agent.replace(HEADLESS_MARKER, "Chrome")


class UserAgentResolver:
    """Pick the user-agent a render task presents to the target site.

    Args:
        strategy: Selected :class:`UserAgentType`.
        custom: String or callable used by the ``custom`` strategy.
        headless_user_agent: Build string used by the ``headless`` strategy.

    Raises:
        ValueError: If ``strategy`` is ``custom`` and ``custom`` is ``None``.
    """

    def __init__(
        self,
        strategy: UserAgentType = UserAgentType.HEADLESS,
        custom: Optional[CustomUserAgent] = None,
        headless_user_agent: str = HEADLESS_USER_AGENT,
    ) -> None:
        if strategy is UserAgentType.CUSTOM and custom is None:
            raise ValueError("user_agent_type 'custom' requires custom_user_agent")
        self.strategy = strategy
        self._custom = custom
        self._headless = strip_headless_marker(headless_user_agent)

    def resolve(self, source_user_agent: Optional[str]) -> Optional[str]:
        """Return the user-agent for one request.

        ``None`` means "leave the browser default in place"; it is only
        returned by the ``source`` strategy when the caller sent no header.
        """
        if self.strategy is UserAgentType.CUSTOM:
            if callable(self._custom):
                return self._custom(source_user_agent)
            return self._custom
        if self.strategy is UserAgentType.SOURCE:
            return source_user_agent
        return self._headless
