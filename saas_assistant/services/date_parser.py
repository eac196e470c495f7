"""Relative date and time parsing for scheduling tools.

``parse_relative_date`` turns phrases like "next friday" / "3pm" into an aware
datetime in the requested IANA timezone. It never raises: unparseable dates
fall back to the base date and unparseable times fall back to noon.
"""

from __future__ import annotations

import calendar
import re
from datetime import datetime, timedelta, timezone as dt_timezone, tzinfo
from typing import Any, Dict, Optional, Tuple
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel

from saas_assistant.utils.logger import get_logger


logger = get_logger("assistant.date_parser")

DEFAULT_TIME = (12, 0)

_NAMED_TIMES: Dict[str, Tuple[int, int]] = {
    "morning": (9, 0),
    "afternoon": (14, 0),
    "evening": (18, 0),
    "night": (20, 0),
    "noon": (12, 0),
    "midday": (12, 0),
    "midnight": (0, 0),
}

_WEEKDAYS: Dict[str, int] = {
    "monday": 0, "mon": 0,
    "tuesday": 1, "tues": 1, "tue": 1,
    "wednesday": 2, "wed": 2,
    "thursday": 3, "thurs": 3, "thur": 3, "thu": 3,
    "friday": 4, "fri": 4,
    "saturday": 5, "sat": 5,
    "sunday": 6, "sun": 6,
}

_WEEKDAY_RE = re.compile(r"\b(" + "|".join(sorted(_WEEKDAYS, key=len, reverse=True)) + r")\b")
_AMPM_RE = re.compile(r"\b(\d{1,2})(?::(\d{2}))?\s*([ap])\.?\s?m\.?(?![a-z])")
_CLOCK_RE = re.compile(r"\b(\d{1,2}):(\d{2})\b")
_BARE_HOUR_RE = re.compile(r"^(?:at\s+)?(\d{1,2})$")
_NAMED_TIME_RE = re.compile(r"\b(" + "|".join(_NAMED_TIMES) + r")\b")

_DATE_FORMATS = (
    "%Y-%m-%d",
    "%m/%d/%Y",
    "%d/%m/%Y",
    "%b %d, %Y",
    "%B %d, %Y",
    "%b %d %Y",
    "%B %d %Y",
)

_UTC_NAMES = {"UTC", "Etc/UTC", "GMT", "Etc/GMT", "Z"}


class ParsedDate(BaseModel):
    date: datetime
    formatted_date: str
    formatted_time: str
    iso_string: str
    timezone: str


def resolve_timezone(name: Optional[str]) -> Tuple[str, tzinfo]:
    """Return ``(name, tzinfo)``; unknown names resolve to UTC."""

    if name and name.strip():
        candidate = name.strip()
        if candidate in _UTC_NAMES:
            return "UTC", dt_timezone.utc
        try:
            return candidate, ZoneInfo(candidate)
        except (ZoneInfoNotFoundError, ValueError):
            logger.warning("Unknown timezone %r, using UTC", name)
    return "UTC", dt_timezone.utc


def parse_time(time_text: Optional[str]) -> Optional[Tuple[int, int]]:
    """Parse a time phrase into ``(hour, minute)`` or ``None``."""

    if not time_text:
        return None
    text = time_text.strip().lower()

    match = _AMPM_RE.search(text)
    if match:
        hour = int(match.group(1))
        minute = int(match.group(2) or 0)
        if not 1 <= hour <= 12 or minute > 59:
            return None
        if match.group(3) == "p" and hour < 12:
            hour += 12
        elif match.group(3) == "a" and hour == 12:
            hour = 0
        return hour, minute

    match = _CLOCK_RE.search(text)
    if match:
        hour, minute = int(match.group(1)), int(match.group(2))
        if hour > 23 or minute > 59:
            return None
        return hour, minute

    match = _NAMED_TIME_RE.search(text)
    if match:
        return _NAMED_TIMES[match.group(1)]

    match = _BARE_HOUR_RE.match(text)
    if match:
        hour = int(match.group(1))
        if hour > 23:
            return None
        # 1-7 without a meridiem means afternoon.
        if 1 <= hour <= 7:
            hour += 12
        return hour, 0

    return None


def split_time_phrase(text: str) -> Tuple[str, Optional[str]]:
    """Split "tomorrow 3pm" into ``("tomorrow", "3pm")``.

    Only meridiem, clock and named times are recognised; a phrase without
    one comes back unchanged with ``None`` as the time.
    """

    lowered = text.strip().lower()
    for pattern in (_AMPM_RE, _CLOCK_RE, _NAMED_TIME_RE):
        match = pattern.search(lowered)
        if match:
            rest = f"{lowered[:match.start()]} {lowered[match.end():]}"
            words = [word for word in rest.split() if word not in ("at", "@")]
            return " ".join(words), match.group(0)
    return text.strip(), None


def _add_months(value: datetime, months: int) -> datetime:
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def _matches_keyword(text: str, keyword: str) -> bool:
    return text == keyword or text.startswith(keyword + " ")


def _resolve_weekday(text: str, target: int, base: datetime) -> Tuple[datetime, str]:
    current = base.weekday()
    if "next week" in text:
        next_monday = base + timedelta(days=7 - current)
        return next_monday + timedelta(days=target), "next_week"
    if re.search(r"\blast\b", text):
        delta = (current - target) % 7 or 7
        return base - timedelta(days=delta), "last"
    if re.search(r"\bthis\b", text):
        return base + timedelta(days=(target - current) % 7), "this"
    return base + timedelta(days=(target - current) % 7 or 7), "plain"


def _resolve_date(
    raw: str,
    base: datetime,
    zone: tzinfo,
) -> Tuple[datetime, str, str, Optional[Tuple[int, int]]]:
    """Resolve the calendar day. Returns ``(day, kind, qualifier, embedded_time)``."""

    text = raw.strip().lower()

    if _matches_keyword(text, "today"):
        return base, "today", "", None
    if _matches_keyword(text, "tomorrow"):
        return base + timedelta(days=1), "keyword", "", None

    weekday = _WEEKDAY_RE.search(text)
    if weekday:
        day, qualifier = _resolve_weekday(text, _WEEKDAYS[weekday.group(1)], base)
        return day, "weekday", qualifier, None

    if _matches_keyword(text, "next week"):
        return base + timedelta(days=7), "keyword", "", None
    if _matches_keyword(text, "next month"):
        return _add_months(base, 1), "keyword", "", None
    if _matches_keyword(text, "next year"):
        return _add_months(base, 12), "keyword", "", None

    stripped = raw.strip()
    for fmt in _DATE_FORMATS:
        try:
            parsed = datetime.strptime(stripped, fmt)
        except ValueError:
            continue
        return parsed.replace(tzinfo=zone), "explicit", "", None

    try:
        parsed = datetime.fromisoformat(stripped.replace("Z", "+00:00"))
    except ValueError:
        logger.warning("Unrecognized date format %r, using base date", raw)
        return base, "fallback", "", None

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=zone)
    else:
        parsed = parsed.astimezone(zone)
    embedded = (parsed.hour, parsed.minute) if len(stripped) > 10 else None
    return parsed, "explicit", "", embedded


def format_iso(value: datetime, zone_name: str) -> str:
    wall = value.strftime("%Y-%m-%dT%H:%M:00")
    if zone_name == "UTC":
        return wall + "Z"
    offset = value.strftime("%z")
    return f"{wall}{offset[:3]}:{offset[3:]}" if offset else wall + "Z"


def format_time(value: datetime) -> str:
    hour = value.hour % 12 or 12
    suffix = "AM" if value.hour < 12 else "PM"
    return f"{hour}:{value.minute:02d} {suffix}"


def format_date(value: datetime) -> str:
    return f"{value.strftime('%B')} {value.day}, {value.year}"


def parse_relative_date(
    date_text: Optional[str],
    time_text: Optional[str] = None,
    base_date: Optional[datetime] = None,
    timezone: str = "UTC",
    now: Optional[datetime] = None,
) -> ParsedDate:
    """Resolve ``date_text`` / ``time_text`` into a ``ParsedDate``.

    ``now`` is the reference for past-date correction; it defaults to
    ``base_date`` and then to the wall clock. Weekday results and bare
    "today" that land in the past are moved forward unless the text is
    qualified by "this" or "last".
    """

    zone_name, zone = resolve_timezone(timezone)

    reference = now or base_date or datetime.now(zone)
    if reference.tzinfo is None:
        reference = reference.replace(tzinfo=zone)
    reference = reference.astimezone(zone)

    base = base_date or reference
    if base.tzinfo is None:
        base = base.replace(tzinfo=zone)
    base = base.astimezone(zone)

    day, kind, qualifier, embedded_time = _resolve_date(date_text or "today", base, zone)

    hour_minute = parse_time(time_text)
    if hour_minute is None:
        if time_text:
            logger.warning("Unrecognized time %r, using noon", time_text)
        hour_minute = embedded_time or DEFAULT_TIME

    result = datetime(day.year, day.month, day.day, hour_minute[0], hour_minute[1], tzinfo=zone)

    if result < reference and qualifier not in ("this", "last"):
        if kind == "weekday":
            result = result + timedelta(days=7)
        elif kind == "today":
            result = (reference + timedelta(hours=1)).replace(second=0, microsecond=0)

    return ParsedDate(
        date=result,
        formatted_date=format_date(result),
        formatted_time=format_time(result),
        iso_string=format_iso(result, zone_name),
        timezone=zone_name,
    )


def get_current_date_context(timezone: str = "UTC", now: Optional[datetime] = None) -> Dict[str, Any]:
    """Current date facts for prompts and validation messages."""

    zone_name, zone = resolve_timezone(timezone)
    current = (now or datetime.now(zone)).astimezone(zone)
    tomorrow = current + timedelta(days=1)
    next_week = current + timedelta(days=7)
    return {
        "currentDate": current.strftime("%Y-%m-%d"),
        "currentTime": format_time(current),
        "formattedDate": f"{current.strftime('%A')}, {format_date(current)}",
        "tomorrow": tomorrow.strftime("%Y-%m-%d"),
        "nextWeek": next_week.strftime("%Y-%m-%d"),
        "timezone": zone_name,
        "timestamp": current.isoformat(),
    }
