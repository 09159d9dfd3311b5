"""IST formatting helpers shared by every portal view."""

from __future__ import annotations

from datetime import datetime, timezone
from zoneinfo import ZoneInfo

IST = ZoneInfo("Asia/Kolkata")

DateLike = str | datetime | None


def _parse(value: DateLike) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
        except ValueError:
            return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _plural(count: int, unit: str) -> str:
    return f"{count} {unit}{'' if count == 1 else 's'}"


def format_ist(value: DateLike) -> str:
    if not value:
        return "Not available"
    parsed = _parse(value)
    if parsed is None:
        return "Invalid date"
    return parsed.astimezone(IST).strftime("%d %b %Y, %I:%M %p")


def format_ist_short(value: DateLike) -> str:
    if not value:
        return "N/A"
    parsed = _parse(value)
    if parsed is None:
        return "Invalid"
    return parsed.astimezone(IST).strftime("%d %b, %I:%M %p")


def format_ist_date(value: DateLike) -> str:
    if not value:
        return "Not available"
    parsed = _parse(value)
    if parsed is None:
        return "Invalid date"
    return parsed.astimezone(IST).strftime("%d %B %Y")


def relative_time(value: DateLike, now: datetime | None = None) -> str:
    parsed = _parse(value)
    if parsed is None:
        return "Unknown"
    now = now or datetime.now(timezone.utc)
    minutes = int((now - parsed).total_seconds() // 60)
    hours = minutes // 60
    days = hours // 24
    if minutes < 1:
        return "Just now"
    if minutes < 60:
        return f"{_plural(minutes, 'min')} ago"
    if hours < 24:
        return f"{_plural(hours, 'hour')} ago"
    if days < 7:
        return f"{_plural(days, 'day')} ago"
    return format_ist_short(parsed)


def compact_age(value: DateLike, now: datetime | None = None) -> str:
    """Short form used by the admin activity feed: 5m ago, 3h ago, 2d ago."""
    parsed = _parse(value)
    if parsed is None:
        return "Unknown"
    now = now or datetime.now(timezone.utc)
    minutes = int((now - parsed).total_seconds() // 60)
    if minutes < 60:
        return f"{minutes}m ago"
    hours = minutes // 60
    if hours < 24:
        return f"{hours}h ago"
    return f"{hours // 24}d ago"


def time_remaining(deadline: DateLike, now: datetime | None = None) -> str:
    if not deadline:
        return "No deadline"
    parsed = _parse(deadline)
    if parsed is None:
        return "Unknown"
    now = now or datetime.now(timezone.utc)
    seconds = (parsed - now).total_seconds()
    if seconds < 0:
        return "Expired"
    hours = int(seconds // 3600)
    days = int(seconds // 86400)
    if days > 0:
        return f"{_plural(days, 'day')} left"
    if hours > 0:
        return f"{_plural(hours, 'hour')} left"
    return f"{_plural(int(seconds // 60), 'min')} left"


def within_24_hours(value: DateLike, now: datetime | None = None) -> bool:
    parsed = _parse(value)
    if parsed is None:
        return False
    now = now or datetime.now(timezone.utc)
    hours = (now - parsed).total_seconds() / 3600
    return 0 <= hours <= 24
