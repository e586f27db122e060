"""Client identity resolution for rate limiting.

Trust order, first match wins:
1. An identifier function supplied by the application
2. First entry of ``x-forwarded-for``
3. ``x-real-ip``
4. The ``for=`` token of a ``forwarded`` header
5. The literal ``"unknown"``
"""

from __future__ import annotations

import inspect
import re
from typing import Awaitable, Callable, Mapping, Union

from starlette.requests import Request

UNKNOWN_CLIENT = "unknown"

IdentifierFunc = Callable[[Request], Union[str, Awaitable[str]]]

_FORWARDED_FOR_RE = re.compile(r"for=([^;,]+)")


def get_client_ip(headers: Mapping[str, str]) -> str:
    """Derive the client IP from proxy headers.

    Args:
        headers: Case-insensitive request headers.

    Returns:
        The best available client address, or "unknown".

    Examples:
        >>> get_client_ip({"x-forwarded-for": "1.2.3.4, 10.0.0.1"})
        '1.2.3.4'
        >>> get_client_ip({"forwarded": 'for="192.0.2.60";proto=http'})
        '192.0.2.60'
        >>> get_client_ip({})
        'unknown'
    """

    forwarded_for = headers.get("x-forwarded-for")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip() or UNKNOWN_CLIENT

    real_ip = headers.get("x-real-ip")
    if real_ip:
        return real_ip

    forwarded = headers.get("forwarded")
    if forwarded:
        match = _FORWARDED_FOR_RE.search(forwarded)
        if match:
            return match.group(1).replace('"', "") or UNKNOWN_CLIENT

    return UNKNOWN_CLIENT


async def resolve_identifier(
    request: Request, override: IdentifierFunc | None = None
) -> str:
    """Resolve the rate limit identifier for ``request``.

    Args:
        request: Incoming request.
        override: Optional application-supplied identifier function; may be
            sync or async.

    Returns:
        Identifier string used as the store key suffix.
    """

    if override is not None:
        result = override(request)
        if inspect.isawaitable(result):
            result = await result
        return result

    return get_client_ip(request.headers)
