"""Utilities for handling FastAPI requests."""

import re
from collections.abc import Iterable
from typing import Any, Final, Literal

from fastapi import Request

from .constants import MAX_FORM_ARRAY_INDEX, MAX_FORM_DEPTH

BodyKind = Literal["json", "urlencoded"]

_SEGMENT: Final = re.compile(r"\[([^\[\]]*)\]")
_MISSING: Final = object()


def get_client_ip(request: Request) -> str:
    """Extract client IP address with proxy support.

    Args:
        request: FastAPI request object

    Returns:
        Client IP address as string. Returns "unknown" if unable to determine.
    """
    # Check X-Forwarded-For header (comma-separated list, first is original client)
    forwarded_for: str | None = request.headers.get("X-Forwarded-For")
    if forwarded_for:
        client_ip = forwarded_for.split(",")[0].strip()
        if client_ip:
            return client_ip

    # Check X-Real-IP header (single IP, set by nginx and similar proxies)
    real_ip: str | None = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip.strip()

    if request.client and request.client.host:
        return str(request.client.host)

    return "unknown"


def get_body_kind(request: Request) -> BodyKind | None:
    """Classify the request body by its media type.

    Returns:
        "json" for application/json and application/*+json, "urlencoded" for
        form posts, None for anything the body parser leaves alone
    """
    content_type = request.headers.get("content-type", "")
    media_type = content_type.split(";", 1)[0].strip().lower()

    if media_type == "application/json" or (
        media_type.startswith("application/") and media_type.endswith("+json")
    ):
        return "json"
    if media_type == "application/x-www-form-urlencoded":
        return "urlencoded"
    return None


def split_form_key(key: str, depth: int = MAX_FORM_DEPTH) -> list[str]:
    """Split ``a[b][c]`` into ``["a", "b", "c"]``.

    At most ``depth`` bracket segments are split off; whatever follows is kept
    verbatim as one final segment.
    """
    bracket = key.find("[")
    if bracket <= 0:
        return [key]

    segments = [key[:bracket]]
    position = bracket
    for _ in range(depth):
        match = _SEGMENT.match(key, position)
        if not match:
            break
        segments.append(match.group(1))
        position = match.end()

    if len(segments) == 1:
        # Unbalanced brackets, treat the whole thing as a plain key
        return [key]
    if position < len(key):
        segments.append(key[position:])
    return segments


class _Indexed(dict[int | str, Any]):
    """Items addressed as ``a[0]``, ``a[1]``; compacted into a list at the end."""


def _list_index(segment: str) -> int | None:
    if not segment.isdecimal() or str(int(segment)) != segment:
        return None
    index = int(segment)
    return index if index <= MAX_FORM_ARRAY_INDEX else None


def _next_index(items: _Indexed) -> int:
    return max((key for key in items if isinstance(key, int)), default=-1) + 1


def _combine(existing: Any, value: Any) -> list[Any]:
    if isinstance(existing, list):
        existing.append(value)
        return existing
    return [existing, value]


def _build(segments: list[str], value: str) -> dict[Any, Any]:
    result: dict[Any, Any] = {}
    _insert(result, segments, value)
    return result


def _insert(target: dict[Any, Any], segments: list[str], value: str) -> None:
    segment, rest = segments[0], segments[1:]
    index = _list_index(segment) if isinstance(target, _Indexed) else None
    key: int | str = segment if index is None else index
    existing = target.get(key, _MISSING)

    if not rest:
        target[key] = value if existing is _MISSING else _combine(existing, value)
        return

    if rest[0] == "":
        # a[]=1 appends; a[][b]=1 appends a nested object
        item = _build(rest[1:], value) if rest[1:] else value
        if isinstance(existing, _Indexed):
            existing[_next_index(existing)] = item
            return
        if isinstance(existing, list):
            items = existing
        else:
            items = [] if existing is _MISSING else [existing]
        items.append(item)
        target[key] = items
        return

    if isinstance(existing, dict):
        _insert(existing, rest, value)
        return

    nested: dict[Any, Any]
    if existing is _MISSING:
        nested = _Indexed() if _list_index(rest[0]) is not None else {}
    elif isinstance(existing, list):
        if _list_index(rest[0]) is not None:
            nested = _Indexed(enumerate(existing))
        else:
            nested = {str(index): item for index, item in enumerate(existing)}
    else:
        # A scalar already sits here: keep both shapes
        target[key] = [existing, _build(rest, value)]
        return

    target[key] = nested
    _insert(nested, rest, value)


def _finalize(value: Any) -> Any:
    if isinstance(value, _Indexed):
        if all(isinstance(key, int) for key in value):
            return [_finalize(value[key]) for key in sorted(value)]
        return {str(key): _finalize(item) for key, item in value.items()}
    if isinstance(value, dict):
        return {key: _finalize(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_finalize(item) for item in value]
    return value


def expand_form_items(
    items: Iterable[tuple[str, Any]], depth: int = MAX_FORM_DEPTH
) -> dict[str, Any]:
    """Expand URL-encoded pairs into nested dicts and lists.

    ``a=1&a=2`` gives a list, ``a[b]=1`` a nested dict and ``a[]=1`` a list
    append. ``a[0]=x&a[1]=y`` gives a list too, ordered by index with gaps
    closed; indices above 20, or mixed with named keys, stay dict keys.
    """
    result: dict[str, Any] = {}
    for key, value in items:
        _insert(result, split_form_key(key, depth), value)
    finalized: dict[str, Any] = _finalize(result)
    return finalized




def get_body(request: Request) -> Any:
    """FastAPI dependency returning the body parsed by the body middleware."""
    return getattr(request.state, "body", {})
