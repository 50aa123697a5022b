"""Utility helpers for eventnotify."""

from __future__ import annotations

from datetime import UTC, datetime
from zoneinfo import ZoneInfo


def utcnow() -> datetime:
    """Return a naive UTC datetime."""

    return datetime.now(UTC).replace(tzinfo=None)


def to_naive_utc(value: datetime | None) -> datetime | None:
    """Normalize aware datetimes to naive UTC; naive values are assumed UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value
    return value.astimezone(UTC).replace(tzinfo=None)


def _localize(value: datetime, timezone_name: str) -> datetime:
    aware = value if value.tzinfo else value.replace(tzinfo=UTC)
    return aware.astimezone(ZoneInfo(timezone_name))


def format_event_time(value: datetime, timezone_name: str) -> str:
    """Return a 12-hour clock string such as '7:30 PM' in the event timezone."""
    local = _localize(value, timezone_name)
    hour = local.hour % 12 or 12
    suffix = "AM" if local.hour < 12 else "PM"
    return f"{hour}:{local.minute:02d} {suffix}"


def format_day_of_week(value: datetime, timezone_name: str) -> str:
    """Return the weekday name (e.g. 'Saturday') in the event timezone."""
    return _localize(value, timezone_name).strftime("%A")


def comment_preview(content: str, limit: int = 100) -> str:
    """Trim comment text to ``limit`` characters, marking truncation with '...'."""
    content = content or ""
    if len(content) <= limit:
        return content
    return content[: max(limit - 3, 0)] + "..."


def humanize_time(value: datetime | None, *, now: datetime | None = None) -> str:
    """Return a friendly string such as 'in 2 weeks' or '3 hours ago'."""
    if not value:
        return ""
    now = now or utcnow()
    delta_seconds = (value - now).total_seconds()
    past = delta_seconds < 0
    seconds = abs(delta_seconds)

    units = [
        ("week", 7 * 24 * 3600),
        ("day", 24 * 3600),
        ("hour", 3600),
        ("minute", 60),
    ]

    amount = 0
    label = "minute"
    for name, step in units:
        value_count = int(seconds // step)
        if value_count >= 1:
            amount = value_count
            label = name
            break
    else:
        return "in moments" if not past else "moments ago"

    if amount != 1:
        label = f"{label}s"
    if past:
        return f"{amount} {label} ago"
    return f"in {amount} {label}"
