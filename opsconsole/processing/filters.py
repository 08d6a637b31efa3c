"""Date parsing and range helpers shared by the NDR, analytics and survey views."""
from __future__ import annotations

import re
from datetime import date, datetime, time, timedelta
from typing import Any, Optional, Tuple
from zoneinfo import ZoneInfo

IST = ZoneInfo("Asia/Kolkata")

_DMY = re.compile(r"^(\d{1,2})[/-](\d{1,2})[/-](\d{4})(?:[ T](\d{1,2}):(\d{2})(?::(\d{2}))?)?")
_YMD_PREFIX = re.compile(r"^\d{4}-\d{2}-\d{2}")

QUICK_RANGES = ("today", "yesterday", "last7", "last14", "last30", "thisMonth", "lastMonth", "all")


def _local(value: datetime) -> datetime:
    """Aware datetimes are shifted to IST and made naive for comparisons."""
    if value.tzinfo is not None:
        return value.astimezone(IST).replace(tzinfo=None)
    return value


def parse_date_flexible(value: Any) -> Optional[datetime]:
    """Parse ``dd/mm/yyyy``, ``dd-mm-yyyy`` (optionally with a time) or ISO text."""

    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        return _local(value)
    if isinstance(value, date):
        return datetime.combine(value, time.min)

    text = str(value).strip()
    match = _DMY.match(text)
    if match:
        day, month, year, hour, minute, second = match.groups()
        try:
            return datetime(int(year), int(month), int(day), int(hour or 0), int(minute or 0), int(second or 0))
        except ValueError:
            return None

    iso = text.replace("Z", "+00:00") if text.endswith("Z") else text
    try:
        return _local(datetime.fromisoformat(iso))
    except ValueError:
        return None


def to_ymd(value: Any) -> str:
    """Return ``YYYY-MM-DD`` for any parseable value, else an empty string."""

    if isinstance(value, str) and _YMD_PREFIX.match(value.strip()):
        return value.strip()[:10]
    parsed = parse_date_flexible(value)
    return parsed.strftime("%Y-%m-%d") if parsed else ""


def format_date_display(value: Any) -> str:
    """``YYYY-MM-DD`` becomes ``DD-MM-YYYY``; anything else is returned as text."""

    ymd = to_ymd(value)
    if not ymd:
        return str(value or "")
    year, month, day = ymd.split("-")
    return f"{day}-{month}-{year}"


def fmt_ist(value: Any) -> str:
    """Render a timestamp in IST, e.g. ``05 Mar 2024, 02:30 PM``."""

    parsed = parse_date_flexible(value)
    if not parsed:
        return "—"
    return parsed.strftime("%d %b %Y, %I:%M %p")


def _as_date(value: Any) -> Optional[date]:
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    parsed = parse_date_flexible(value)
    if not parsed:
        raise ValueError(f"Unrecognised date: {value!r}")
    return parsed.date()


def day_bounds(start: Any = None, end: Any = None) -> Tuple[Optional[datetime], Optional[datetime]]:
    """Inclusive bounds: ``start`` at 00:00:00 through ``end`` at 23:59:59.999999."""

    start_day = _as_date(start)
    end_day = _as_date(end)
    lower = datetime.combine(start_day, time.min) if start_day else None
    upper = datetime.combine(end_day, time.max) if end_day else None
    return lower, upper


def within_range(value: Any, start: Any = None, end: Any = None, keep_undated: bool = False) -> bool:
    """True when ``value`` falls inside the inclusive day range.

    With no bounds every row passes. Rows without a parseable date pass only
    when ``keep_undated`` is set.
    """

    lower, upper = day_bounds(start, end)
    if lower is None and upper is None:
        return True
    moment = parse_date_flexible(value)
    if moment is None:
        return keep_undated
    if lower is not None and moment < lower:
        return False
    if upper is not None and moment > upper:
        return False
    return True


def quick_range(key: str, today: Optional[date] = None) -> Tuple[Optional[date], Optional[date]]:
    """Resolve a named preset into ``(start, end)`` dates; unknown keys mean all time."""

    today = today or datetime.now(IST).date()
    if key == "today":
        return today, today
    if key == "yesterday":
        day = today - timedelta(days=1)
        return day, day
    if key in ("last7", "last14", "last30"):
        span = int(key[4:])
        return today - timedelta(days=span - 1), today
    if key == "thisMonth":
        return today.replace(day=1), today
    if key == "lastMonth":
        last_day = today.replace(day=1) - timedelta(days=1)
        return last_day.replace(day=1), last_day
    return None, None
