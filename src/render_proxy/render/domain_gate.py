"""Optional hostname allow-list for render targets."""

from __future__ import annotations

from typing import Iterable

from render_proxy.core.exceptions import DomainRejectedError


class DomainGate:
    """Exact-match hostname allow-list.

    An empty list allows every hostname.  Otherwise the hostname must equal
    one of the entries (case-insensitive); ``www.example.com`` is not
    implied by ``example.com``.
    """

    def __init__(self, allow_domains: Iterable[str] = ()) -> None:
        self._allowed: frozenset[str] = frozenset(
            d.strip().lower() for d in allow_domains if d and d.strip()
        )

    @property
    def restricted(self) -> bool:
        return bool(self._allowed)

    def allow(self, hostname: str) -> bool:
        if not self._allowed:
            return True
        return hostname.lower() in self._allowed

    def check(self, hostname: str) -> None:
        """Raise :class:`DomainRejectedError` unless ``hostname`` is allowed."""
        if not self.allow(hostname):
            raise DomainRejectedError(hostname)
