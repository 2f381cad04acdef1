"""Formatting helpers shared by the stats dashboard and other views."""

from __future__ import annotations

import math
import re
from datetime import datetime, timedelta, timezone
from typing import Optional

_KB = 1024
_MB = 1024 * _KB
_GB = 1024 * _MB

_BAR_CHAR = "\u2588"

_MONTHS = ("Jan", "Feb", "Mar", "Apr", "May", "Jun", "Jul", "Aug", "Sep", "Oct", "Nov", "Dec")

_RFC3339 = re.compile(
    r"(\d{4})-(\d{2})-(\d{2})[Tt ](\d{2}):(\d{2}):(\d{2})(?:\.(\d+))?([Zz]|[+-]\d{2}:\d{2})\Z"
)


def _round_half_away(value: float) -> int:
    return int(math.floor(value + 0.5)) if value >= 0 else -int(math.floor(-value + 0.5))


def parse_rfc3339(ts: str) -> Optional[datetime]:
    """Parse an RFC 3339 timestamp into an aware datetime, or None if invalid."""
    match = _RFC3339.match(ts)
    if match is None:
        return None
    year, month, day, hour, minute, second = (int(part) for part in match.groups()[:6])
    fraction, offset = match.group(7), match.group(8)
    microsecond = int((fraction + "000000")[:6]) if fraction else 0
    if offset in ("Z", "z"):
        tz = timezone.utc
    else:
        sign = -1 if offset[0] == "-" else 1
        off_hours, off_minutes = int(offset[1:3]), int(offset[4:6])
        if off_hours > 23 or off_minutes > 59:
            return None
        tz = timezone(sign * timedelta(hours=off_hours, minutes=off_minutes))
    try:
        return datetime(year, month, day, hour, minute, second, microsecond, tzinfo=tz)
    except ValueError:
        return None


def format_size(num_bytes: int) -> str:
    """Format a byte count as a human-readable size such as '1.2 KB'."""
    if num_bytes >= _GB:
        return f"{num_bytes / _GB:.1f} GB"
    if num_bytes >= _MB:
        return f"{num_bytes / _MB:.1f} MB"
    if num_bytes >= _KB:
        return f"{num_bytes / _KB:.1f} KB"
    return f"{num_bytes} B"


def format_count(n: int) -> str:
    """Format an integer with comma-separated thousands."""
    reversed_digits = str(n)[::-1]
    groups = [reversed_digits[start : start + 3] for start in range(0, len(reversed_digits), 3)]
    return ",".join(groups)[::-1]


def histogram_bar(value: int, max_value: int, max_width: int) -> str:
    """Render a bar for `value` relative to `max_value`, at most `max_width` wide.

    Non-zero values always get at least one block.
    """
    if value == 0 or max_value == 0:
        return ""
    width = max(_round_half_away(value / max_value * max_width), 1)
    return _BAR_CHAR * width


def truncate_path(path: str, max_width: int) -> str:
    """Shorten a path to `max_width`, keeping trailing segments behind '...'."""
    if len(path) <= max_width:
        return path

    segments = [segment for segment in path.split("/") if segment]
    prefix = "..."
    for start in range(1, len(segments)):
        candidate = f"{prefix}/{'/'.join(segments[start:])}"
        if len(candidate) <= max_width:
            return candidate

    keep = max(max_width - 3, 0)
    cut = max(len(path) - keep, 0)
    return prefix + path[cut:]


def format_duration(seconds: float) -> str:
    """Format a duration in seconds as e.g. '2h 4m', '3m 12s' or '42s'."""
    if seconds <= 0:
        return "< 1s"
    total = _round_half_away(seconds)
    if total == 0:
        return "< 1s"

    hours, remainder = divmod(total, 3600)
    mins, secs = divmod(remainder, 60)
    if hours > 0:
        return f"{hours}h {mins}m"
    if mins > 0:
        if secs > 0 and mins < 10:
            return f"{mins}m {secs}s"
        return f"{mins}m"
    return f"{secs}s"


def format_timestamp(ts: str) -> str:
    """Format an ISO 8601 timestamp as 'YYYY-MM-DD HH:MM:SS'; unparseable input is returned as is."""
    dt = parse_rfc3339(ts)
    if dt is None:
        return ts
    return (
        f"{dt.year:04d}-{dt.month:02d}-{dt.day:02d} "
        f"{dt.hour:02d}:{dt.minute:02d}:{dt.second:02d}"
    )


def format_period(since_ts: str) -> str:
    """Describe a --since period, e.g. 'since 2025-06-17 00:00:00 (7 days)'."""
    date_part = format_timestamp(since_ts)
    dt = parse_rfc3339(since_ts)
    if dt is not None:
        days = (datetime.now(timezone.utc) - dt).days
        if days > 0:
            return f"since {date_part} ({days} days)"
    return f"since {date_part}"


def format_date_label(date_str: str) -> str:
    """Format 'YYYY-MM-DD' as 'Mon DD' for histogram labels."""
    try:
        date = datetime.strptime(date_str, "%Y-%m-%d")
    except ValueError:
        return date_str
    return f"{_MONTHS[date.month - 1]} {date.day:02d}"