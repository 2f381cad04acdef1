"""Aggregate statistics over the event store for the stats dashboard."""

from __future__ import annotations

import json
import sqlite3
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Optional

DEFAULT_ACTIVITY_DAYS = 14


@dataclass(frozen=True)
class DbStats:
    """Overall event and session counts with the event time range."""

    event_count: int
    session_count: int
    oldest_event: Optional[str]
    newest_event: Optional[str]


@dataclass(frozen=True)
class ToolCount:
    """How many events mention a tool."""

    tool_name: str
    count: int


@dataclass(frozen=True)
class EventTypeCount:
    """How many events have a given type."""

    event_type: str
    count: int


@dataclass(frozen=True)
class StopFailureType:
    """How many StopFailure events carry a given error type."""

    error_type: str
    count: int


@dataclass(frozen=True)
class ErrorSummary:
    """Failure counts with a breakdown of StopFailure error types."""

    post_tool_use_failure_count: int
    stop_failure_count: int
    stop_failure_types: list[StopFailureType] = field(default_factory=list)


@dataclass(frozen=True)
class DirCount:
    """How many events were recorded in a working directory."""

    cwd: str
    count: int


@dataclass(frozen=True)
class DailyCount:
    """How many events were recorded on a day (YYYY-MM-DD)."""

    date: str
    count: int


def _since_clause(since: Optional[str], column: str = "timestamp") -> tuple[str, list[str]]:
    if since is None:
        return "", []
    return f" AND {column} >= ?", [since]


def _scalar(conn: sqlite3.Connection, sql: str, params: list[object]):
    return conn.execute(sql, params).fetchone()[0]


def get_stats(conn: sqlite3.Connection, since: Optional[str] = None) -> DbStats:
    """Return event and session counts, optionally only from `since` on."""
    clause, params = _since_clause(since)
    row = conn.execute(
        "SELECT COUNT(*), MIN(timestamp), MAX(timestamp) FROM events WHERE 1=1" + clause,
        params,
    ).fetchone()
    session_clause, session_params = _since_clause(since, "last_seen")
    session_count = _scalar(
        conn, "SELECT COUNT(*) FROM sessions WHERE 1=1" + session_clause, session_params
    )
    return DbStats(
        event_count=row[0],
        session_count=session_count,
        oldest_event=row[1],
        newest_event=row[2],
    )


def top_tools(
    conn: sqlite3.Connection, since: Optional[str] = None, limit: int = 10
) -> list[ToolCount]:
    """Return the most used tools, by event count, highest first."""
    clause, params = _since_clause(since)
    sql = (
        "SELECT tool_name, COUNT(*) AS count FROM events WHERE tool_name IS NOT NULL"
        + clause
        + " GROUP BY tool_name ORDER BY count DESC LIMIT ?"
    )
    return [
        ToolCount(tool_name=row["tool_name"], count=row["count"])
        for row in conn.execute(sql, [*params, limit])
    ]


def event_type_breakdown(
    conn: sqlite3.Connection, since: Optional[str] = None
) -> list[EventTypeCount]:
    """Return the count of each event type present, highest first."""
    clause, params = _since_clause(since)
    sql = (
        "SELECT event_type, COUNT(*) AS count FROM events WHERE 1=1"
        + clause
        + " GROUP BY event_type ORDER BY count DESC"
    )
    return [
        EventTypeCount(event_type=row["event_type"], count=row["count"])
        for row in conn.execute(sql, params)
    ]


def _stop_failure_error_type(payload: str) -> Optional[str]:
    try:
        value = json.loads(payload)
    except (json.JSONDecodeError, TypeError):
        return None
    error = value.get("error") if isinstance(value, dict) else None
    return error if isinstance(error, str) else "unknown"


def error_summary(conn: sqlite3.Connection, since: Optional[str] = None) -> ErrorSummary:
    """Count PostToolUseFailure and StopFailure events.

    StopFailure payloads are parsed for their "error" field; payloads that
    are not valid JSON are left out of the breakdown.
    """
    clause, params = _since_clause(since)
    post_failures = _scalar(
        conn,
        "SELECT COUNT(*) FROM events WHERE event_type = 'PostToolUseFailure'" + clause,
        params,
    )
    stop_failures = _scalar(
        conn,
        "SELECT COUNT(*) FROM events WHERE event_type = 'StopFailure'" + clause,
        params,
    )

    types: list[StopFailureType] = []
    if stop_failures > 0:
        payloads = conn.execute(
            "SELECT raw_payload FROM events WHERE event_type = 'StopFailure'" + clause,
            params,
        )
        counts = Counter(
            error_type
            for (payload,) in payloads
            if (error_type := _stop_failure_error_type(payload)) is not None
        )
        types = [
            StopFailureType(error_type=name, count=count)
            for name, count in counts.most_common()
        ]

    return ErrorSummary(
        post_tool_use_failure_count=post_failures,
        stop_failure_count=stop_failures,
        stop_failure_types=types,
    )


def top_directories(
    conn: sqlite3.Connection, since: Optional[str] = None, limit: int = 5
) -> list[DirCount]:
    """Return working directories with the most events, highest first."""
    clause, params = _since_clause(since)
    sql = (
        "SELECT cwd, COUNT(*) AS count FROM events WHERE cwd IS NOT NULL"
        + clause
        + " GROUP BY cwd ORDER BY count DESC LIMIT ?"
    )
    return [
        DirCount(cwd=row["cwd"], count=row["count"])
        for row in conn.execute(sql, [*params, limit])
    ]


def avg_session_duration(
    conn: sqlite3.Connection, since: Optional[str] = None
) -> Optional[float]:
    """Return the mean session length in seconds, ignoring single-event sessions.

    Returns None when no session qualifies.
    """
    clause, params = _since_clause(since, "last_seen")
    return _scalar(
        conn,
        "SELECT AVG((julianday(last_seen) - julianday(first_seen)) * 86400) "
        "FROM sessions WHERE first_seen != last_seen" + clause,
        params,
    )


def _default_activity_since() -> str:
    start = datetime.now(timezone.utc) - timedelta(days=DEFAULT_ACTIVITY_DAYS)
    return start.strftime("%Y-%m-%dT%H:%M:%S.") + f"{start.microsecond // 1000:03d}Z"


def daily_activity(
    conn: sqlite3.Connection, since: Optional[str] = None
) -> list[DailyCount]:
    """Return per-day event counts in date order.

    Without `since`, only the last 14 days are counted.
    """
    since_value = since if since is not None else _default_activity_since()
    rows = conn.execute(
        "SELECT DATE(timestamp) AS day, COUNT(*) AS count FROM events "
        "WHERE timestamp >= ? GROUP BY day ORDER BY day ASC",
        (since_value,),
    )
    return [DailyCount(date=row["day"], count=row["count"]) for row in rows]