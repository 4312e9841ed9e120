"""Display helpers for byte sizes and timestamps."""

from __future__ import annotations

import math
from datetime import datetime, timezone

KIB = 1024
MIB = KIB * 1024
GIB = MIB * 1024


def iso_now() -> str:
    """Current UTC time as ISO-8601 with millisecond precision and a Z suffix."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_iso(timestamp: str) -> datetime:
    """Parse an ISO-8601 timestamp; naive values are taken to be UTC."""
    parsed = datetime.fromisoformat(timestamp.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_byte_size(n: int) -> str:
    if n < KIB:
        return f"{n} B"
    if n < MIB:
        return f"{n / KIB:.1f} KB"
    if n < GIB:
        return f"{n / MIB:.2f} MB"
    return f"{n / GIB:.2f} GB"


def format_relative_time(timestamp: str, now: datetime | None = None) -> str:
    """Render ``timestamp`` relative to ``now`` ("Just now", "5m ago", ...).

    Anything a week or older falls back to a locale date string.
    """
    then = parse_iso(timestamp)
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)

    seconds = math.floor((now - then).total_seconds())
    minutes = seconds // 60
    hours = minutes // 60
    days = hours // 24

    if seconds < 60:
        return "Just now"
    if minutes < 60:
        return f"{minutes}m ago"
    if hours < 24:
        return f"{hours}h ago"
    if days < 7:
        return f"{days}d ago"
    return then.astimezone().strftime("%x")


def format_datetime(timestamp: str | None) -> str:
    if not timestamp:
        return "Unknown date"
    return parse_iso(timestamp).strftime("%Y-%m-%d %H:%M")
