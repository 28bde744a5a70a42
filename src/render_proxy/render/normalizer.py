"""Canonical URL construction from the raw render query.

The render endpoint receives the target in a ``url`` query parameter.  Any
other parameter on the proxy request (``hl`` and friends) belongs to the
target page, so it is merged into the target's own querystring:

    /render?url=https://ex.com/p?a=1&hl=en&b=2   ->   https://ex.com/p?a=1&hl=en&b=2

The result is deterministic for a given raw query, so it doubles as the
cache key.
"""

from __future__ import annotations

from typing import Iterable
from urllib.parse import parse_qsl, urlencode, urlsplit

from render_proxy.core.exceptions import InvalidRenderRequestError
from render_proxy.render.config import ALLOWED_SCHEMES, URL_PARAM
from render_proxy.render.models import CanonicalURL

_DEFAULT_PORTS: dict[str, int] = {"http": 80, "https": 443}


def _origin(scheme: str, hostname: str, port: int | None) -> str:
    """Return ``scheme://host[:port]``, omitting the scheme's default port."""
    host = f"[{hostname}]" if ":" in hostname else hostname
    if port is None or port == _DEFAULT_PORTS.get(scheme):
        return f"{scheme}://{host}"
    return f"{scheme}://{host}:{port}"


def build_canonical_url(raw_query: Iterable[tuple[str, str]]) -> CanonicalURL:
    """Build the canonical render target from raw query pairs.

    Args:
        raw_query: ``(key, value)`` pairs in arrival order, as produced by
            ``request.query_params.multi_items()``.  Repeated keys are kept.

    Returns:
        The :class:`CanonicalURL`: origin and path of the target, then the
        target's own query parameters, then every non-``url`` parameter of
        the raw query in arrival order.  The fragment is dropped.

    Raises:
        InvalidRenderRequestError: If ``url`` is missing or is not an
            absolute ``http``/``https`` URL with a hostname.
    """
    target: str | None = None
    extra: list[tuple[str, str]] = []
    for key, value in raw_query:
        if key == URL_PARAM:
            # Only the first occurrence names the target.
            if target is None:
                target = value
            continue
        extra.append((key, value))

    if not target:
        raise InvalidRenderRequestError("Missing required query parameter 'url'")

    try:
        parts = urlsplit(target.strip())
        port = parts.port
    except ValueError as exc:
        raise InvalidRenderRequestError(f"Malformed url {target!r}: {exc}") from exc

    scheme = parts.scheme.lower()
    if scheme not in ALLOWED_SCHEMES:
        raise InvalidRenderRequestError(f"Unsupported url scheme {parts.scheme!r}")
    if not parts.hostname:
        raise InvalidRenderRequestError(f"url {target!r} has no hostname")

    params = parse_qsl(parts.query, keep_blank_values=True)
    params.extend(extra)

    url = _origin(scheme, parts.hostname, port) + (parts.path or "/")
    if params:
        url = f"{url}?{urlencode(params)}"

    return CanonicalURL(url=url, hostname=parts.hostname)
