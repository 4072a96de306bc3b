"""ASGI utility helpers: header and query-string extraction from raw scopes."""

from __future__ import annotations

from typing import TYPE_CHECKING
from urllib.parse import parse_qs

if TYPE_CHECKING:
    from collections.abc import Iterable

    from starlette.types import Scope


def get_header(scope: Scope, name: str) -> str | None:
    """
    Retrieve a header value from an ASGI scope in a case-insensitive way.

    - Returns the first matching value decoded using latin-1, or None if missing/undecodable.
    - Defensive against absent or ill-typed scope["headers"].
    """
    headers: Iterable[tuple[bytes, bytes]] = scope.get("headers") or []
    name_b = name.lower().encode("latin-1")
    for k, v in headers:
        if k.lower() == name_b:
            try:
                return v.decode("latin-1")
            except (UnicodeDecodeError, LookupError):
                return None
    return None


def get_query_param(scope: Scope, name: str) -> str | None:
    """Return the first value of query parameter ``name``, or None."""
    raw = scope.get("query_string") or b""
    try:
        values = parse_qs(raw.decode("latin-1")).get(name)
    except (UnicodeDecodeError, ValueError):
        return None
    return values[0] if values else None
