"""Timestamp cursors.

Cursor format: RFC 3339 timestamp, as accepted by the messages API
(``?cursor=2024-05-01T10:00:00.123456Z``).
"""
from __future__ import annotations

from datetime import datetime, timezone


def encode_cursor(ts: datetime) -> str:
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def decode_cursor(cursor: str) -> datetime:
    ts = datetime.fromisoformat(cursor)
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


def is_newer(candidate: str, current: str | None) -> bool:
    """True when ``candidate`` lies strictly after ``current``.

    Cursors that cannot be parsed are treated as newer so that an opaque
    token from another transport still replaces the old one.
    """
    if current is None:
        return True
    try:
        return decode_cursor(candidate) > decode_cursor(current)
    except ValueError:
        return candidate != current
