"""Start/end time handling shared by the meeting tools."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from saas_assistant.services.date_parser import parse_relative_date, resolve_timezone, split_time_phrase


def parse_when(value: Any, tz_name: str) -> Optional[datetime]:
    """Parse an ISO timestamp or a phrase such as "tomorrow at 3pm"."""

    if value is None:
        return None
    text = str(value).strip()
    if not text:
        return None

    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        parsed = None

    if parsed is not None:
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=resolve_timezone(tz_name)[1])
        return parsed

    date_part, _, time_part = text.partition(" at ")
    if not time_part:
        date_part, time_part = split_time_phrase(text)
    return parse_relative_date(date_part or None, time_part or None, timezone=tz_name).date


def parse_duration(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        minutes = int(float(value))
    except (TypeError, ValueError):
        return None
    return minutes if minutes > 0 else None


def minutes_between(start: datetime, end: datetime) -> int:
    return max(1, round((end - start).total_seconds() / 60))


def end_from_duration(start: datetime, minutes: int) -> datetime:
    return start + timedelta(minutes=minutes)


def to_utc_z(value: datetime) -> str:
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def human_time(value: datetime) -> str:
    hour = value.hour % 12 or 12
    suffix = "AM" if value.hour < 12 else "PM"
    return f"{value.strftime('%A, %B')} {value.day} at {hour}:{value.minute:02d} {suffix}"
