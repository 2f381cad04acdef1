"""The stats command: a dashboard of database metrics, as text or JSON."""

from __future__ import annotations

import argparse
import json
import os
import re
import sys
from contextlib import closing
from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timedelta, timezone
from typing import Optional

from scribe import analytics
from scribe.config import load_config
from scribe.formatting import (
    format_count,
    format_date_label,
    format_duration,
    format_period,
    format_size,
    format_timestamp,
    histogram_bar,
    parse_rfc3339,
    truncate_path,
)
from scribe.store import connect, resolve_db_path

TOP_TOOLS_LIMIT = 10
TOP_DIRECTORIES_LIMIT = 5
BAR_WIDTH = 40
PATH_WIDTH = 40
EM_DASH = "\u2014"

_UNIT_SECONDS = {
    **dict.fromkeys(("seconds", "second", "secs", "sec", "s"), 1),
    **dict.fromkeys(("minutes", "minute", "mins", "min", "m"), 60),
    **dict.fromkeys(("hours", "hour", "hrs", "hr", "h"), 3600),
    **dict.fromkeys(("days", "day", "d"), 86_400),
    **dict.fromkeys(("weeks", "week", "w"), 604_800),
    **dict.fromkeys(("months", "month", "M"), 2_630_016),
    **dict.fromkeys(("years", "year", "y"), 31_557_600),
}
_DURATION = re.compile(r"(?:\d+\s*[A-Za-z]+\s*)+")
_DURATION_PART = re.compile(r"(\d+)\s*([A-Za-z]+)")


@dataclass
class StatsReport:
    """Everything the stats dashboard shows."""

    stats: analytics.DbStats
    avg_session_duration: Optional[float]
    tools: list[analytics.ToolCount] = field(default_factory=list)
    event_types: list[analytics.EventTypeCount] = field(default_factory=list)
    errors: analytics.ErrorSummary = field(
        default_factory=lambda: analytics.ErrorSummary(0, 0)
    )
    directories: list[analytics.DirCount] = field(default_factory=list)
    activity: list[tuple[str, int]] = field(default_factory=list)


def _iso_utc(moment: datetime) -> str:
    moment = moment.astimezone(timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


def _parse_duration(text: str) -> Optional[timedelta]:
    text = text.strip()
    if not _DURATION.fullmatch(text):
        return None
    total = 0
    for amount, unit in _DURATION_PART.findall(text):
        if unit not in _UNIT_SECONDS:
            return None
        total += int(amount) * _UNIT_SECONDS[unit]
    return timedelta(seconds=total)


def _resolve_since(spec: str) -> str:
    """Turn a --since value (duration, date or timestamp) into an ISO 8601 UTC timestamp."""
    duration = _parse_duration(spec)
    if duration is not None:
        return _iso_utc(datetime.now(timezone.utc) - duration)
    try:
        day = datetime.strptime(spec, "%Y-%m-%d")
    except ValueError:
        pass
    else:
        return _iso_utc(day.replace(tzinfo=timezone.utc))
    moment = parse_rfc3339(spec)
    if moment is not None:
        return _iso_utc(moment)
    raise ValueError(
        f"invalid --since value '{spec}': expected a duration (e.g. 7d), "
        "a date (YYYY-MM-DD) or an ISO 8601 timestamp"
    )


def fill_zero_days(activity: list[analytics.DailyCount]) -> list[tuple[str, int]]:
    """Fill in zero-count days between the first and last dates of the activity."""
    if not activity:
        return []
    as_given = [(entry.date, entry.count) for entry in activity]
    try:
        start = datetime.strptime(activity[0].date, "%Y-%m-%d").date()
        end = datetime.strptime(activity[-1].date, "%Y-%m-%d").date()
    except ValueError:
        return as_given

    counts = {entry.date: entry.count for entry in activity}
    result = []
    current: date = start
    while current <= end:
        key = current.isoformat()
        result.append((key, counts.get(key, 0)))
        current += timedelta(days=1)
    return result


def gather_stats(conn, since: Optional[str] = None) -> StatsReport:
    """Collect all dashboard data, optionally from an ISO 8601 UTC `since` on."""
    return StatsReport(
        stats=analytics.get_stats(conn, since),
        avg_session_duration=analytics.avg_session_duration(conn, since),
        tools=analytics.top_tools(conn, since, TOP_TOOLS_LIMIT),
        event_types=analytics.event_type_breakdown(conn, since),
        errors=analytics.error_summary(conn, since),
        directories=analytics.top_directories(conn, since, TOP_DIRECTORIES_LIMIT),
        activity=fill_zero_days(analytics.daily_activity(conn, since)),
    )


def _file_size(db_path: str) -> Optional[int]:
    try:
        return os.stat(db_path).st_size
    except OSError:
        return None


def render_json(report: StatsReport, db_path: str) -> str:
    """Render the report as a single pretty-printed JSON object."""
    stats = report.stats
    errors = report.errors
    output = {
        "db_path": db_path,
        "db_size_bytes": _file_size(db_path) or 0,
        "event_count": stats.event_count,
        "session_count": stats.session_count,
        "oldest_event": stats.oldest_event,
        "newest_event": stats.newest_event,
        "avg_session_duration_seconds": report.avg_session_duration,
        "top_tools": [asdict(tool) for tool in report.tools],
        "event_types": [asdict(et) for et in report.event_types],
        "errors": {
            "post_tool_use_failure": errors.post_tool_use_failure_count,
            "stop_failure": errors.stop_failure_count,
            "stop_failure_types": [asdict(sf) for sf in errors.stop_failure_types],
        },
        "top_directories": [asdict(d) for d in report.directories],
        "daily_activity": [{"date": day, "count": count} for day, count in report.activity],
    }
    return json.dumps(output, indent=2, ensure_ascii=False)


def _count_width(counts) -> int:
    return len(format_count(max(counts, default=0)))


def render_text(report: StatsReport, db_path: str, since: Optional[str] = None) -> str:
    """Render the report as a human-readable dashboard."""
    stats = report.stats
    size = _file_size(db_path)
    oldest = format_timestamp(stats.oldest_event) if stats.oldest_event else EM_DASH
    newest = format_timestamp(stats.newest_event) if stats.newest_event else EM_DASH

    lines = [
        f"Database:  {db_path}",
        f"Size:      {format_size(size) if size is not None else 'unknown'}",
    ]
    if since is not None:
        lines.append(f"Period:    {format_period(since)}")
    lines.append(f"Events:    {format_count(stats.event_count)}")
    lines.append(f"Sessions:  {format_count(stats.session_count)}")
    if report.avg_session_duration is not None:
        lines.append(f"Avg duration:  {format_duration(report.avg_session_duration)}")
    lines.append(f"Oldest:    {oldest}")
    lines.append(f"Newest:    {newest}")

    if stats.event_count == 0:
        return "\n".join(lines) + "\n"

    if report.tools:
        width = _count_width(tool.count for tool in report.tools)
        lines += ["", "Top tools:"]
        for rank, tool in enumerate(report.tools, start=1):
            lines.append(
                f"  {rank:>2}. {tool.tool_name:<20} {format_count(tool.count):>{width}}"
            )

    if report.event_types:
        width = _count_width(et.count for et in report.event_types)
        lines += ["", "Event types:"]
        for et in report.event_types:
            lines.append(f"  {et.event_type:<24} {format_count(et.count):>{width}}")

    errors = report.errors
    lines.append("")
    if errors.post_tool_use_failure_count == 0 and errors.stop_failure_count == 0:
        lines.append("Errors:              none")
    else:
        lines.append("Errors:")
        if errors.post_tool_use_failure_count > 0:
            lines.append(
                f"  {'PostToolUseFailure':<24} "
                f"{format_count(errors.post_tool_use_failure_count):>6}"
            )
        if errors.stop_failure_count > 0:
            lines.append(f"  {'StopFailure':<24} {format_count(errors.stop_failure_count):>6}")
            for sf in errors.stop_failure_types:
                lines.append(f"    {sf.error_type:<22} {format_count(sf.count):>6}")

    if report.directories:
        width = _count_width(d.count for d in report.directories)
        lines += ["", "Top directories:"]
        for rank, directory in enumerate(report.directories, start=1):
            path = truncate_path(directory.cwd, PATH_WIDTH)
            lines.append(
                f"  {rank:>2}. {path:<{PATH_WIDTH}} {format_count(directory.count):>{width}}"
            )

    if report.activity:
        lines.append("")
        if since is not None:
            lines.append(f"Activity (since {format_timestamp(since)}):")
        else:
            lines.append(f"Activity (last {analytics.DEFAULT_ACTIVITY_DAYS} days):")
        max_count = max(count for _, count in report.activity)
        width = len(format_count(max_count))
        for day, count in report.activity:
            label = format_date_label(day)
            bar = histogram_bar(count, max_count, BAR_WIDTH)
            lines.append(f"  {label}  {bar:<{BAR_WIDTH}} {format_count(count):>{width}}")

    return "\n".join(lines) + "\n"


def run(conn, db_path: str, since: Optional[str] = None, as_json: bool = False) -> None:
    """Print the stats dashboard; `since` is a duration, date or timestamp.

    Raises ValueError when `since` cannot be understood.
    """
    resolved = _resolve_since(since) if since is not None else None
    report = gather_stats(conn, resolved)
    if as_json:
        print(render_json(report, db_path))
    else:
        sys.stdout.write(render_text(report, db_path, resolved))


def main(argv: Optional[list[str]] = None) -> int:
    """Command-line entry point for the stats dashboard."""
    parser = argparse.ArgumentParser(
        prog="scribe-stats", description="Show database metrics and activity."
    )
    parser.add_argument("--db", help="path to the SQLite database")
    parser.add_argument("--since", help="only include events since a duration, date or time")
    parser.add_argument("--json", action="store_true", help="print a single JSON object")
    args = parser.parse_args(argv)

    try:
        db_path = resolve_db_path(args.db, load_config().db_path)
        with closing(connect(db_path)) as conn:
            run(conn, db_path, args.since, args.json)
    except (ValueError, OSError) as exc:
        print(f"scribe: error: {exc}", file=sys.stderr)
        return 1
    except Exception as exc:  # database errors and the like
        print(f"scribe: error: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())