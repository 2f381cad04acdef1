"""Event store: SQLite connection, schema, event logging and event queries."""

from __future__ import annotations

import os
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional, Union

DB_ENV_VAR = "SCRIBE_DB"
BUSY_TIMEOUT_MS = 5000

_NOW = "strftime('%Y-%m-%dT%H:%M:%fZ', 'now')"

# Each entry is applied once, in order; PRAGMA user_version records progress.
_MIGRATIONS: tuple[str, ...] = (
    f"""
    CREATE TABLE IF NOT EXISTS events (
        id              INTEGER PRIMARY KEY AUTOINCREMENT,
        timestamp       TEXT NOT NULL DEFAULT ({_NOW}),
        session_id      TEXT NOT NULL,
        event_type      TEXT NOT NULL,
        tool_name       TEXT,
        tool_input      TEXT,
        tool_response   TEXT,
        cwd             TEXT,
        permission_mode TEXT,
        raw_payload     TEXT NOT NULL
    );
    CREATE TABLE IF NOT EXISTS sessions (
        session_id  TEXT PRIMARY KEY,
        first_seen  TEXT NOT NULL,
        last_seen   TEXT NOT NULL,
        cwd         TEXT,
        event_count INTEGER NOT NULL DEFAULT 0
    );
    CREATE INDEX IF NOT EXISTS idx_events_ts ON events(timestamp);
    CREATE INDEX IF NOT EXISTS idx_events_session ON events(session_id);
    CREATE INDEX IF NOT EXISTS idx_events_type ON events(event_type);
    CREATE INDEX IF NOT EXISTS idx_events_tool ON events(tool_name);
    CREATE TABLE IF NOT EXISTS _metadata (
        key   TEXT PRIMARY KEY,
        value TEXT NOT NULL
    );
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_events_cwd ON events(cwd);
    """,
    f"""
    CREATE TABLE IF NOT EXISTS classifications (
        id            INTEGER PRIMARY KEY AUTOINCREMENT,
        timestamp     TEXT NOT NULL DEFAULT ({_NOW}),
        event_id      INTEGER,
        tool_name     TEXT NOT NULL,
        input_pattern TEXT NOT NULL,
        risk_level    TEXT NOT NULL,
        reason        TEXT NOT NULL,
        heuristic     TEXT NOT NULL
    );
    CREATE INDEX IF NOT EXISTS idx_classifications_event ON classifications(event_id);
    CREATE TABLE IF NOT EXISTS rules (
        id            INTEGER PRIMARY KEY AUTOINCREMENT,
        tool_pattern  TEXT NOT NULL,
        input_pattern TEXT,
        action        TEXT NOT NULL,
        reason        TEXT NOT NULL,
        priority      INTEGER NOT NULL DEFAULT 0,
        enabled       INTEGER NOT NULL DEFAULT 1,
        source        TEXT NOT NULL DEFAULT 'manual',
        created_at    TEXT NOT NULL DEFAULT ({_NOW}),
        updated_at    TEXT NOT NULL DEFAULT ({_NOW})
    );
    CREATE TABLE IF NOT EXISTS enforcements (
        id            INTEGER PRIMARY KEY AUTOINCREMENT,
        timestamp     TEXT NOT NULL DEFAULT ({_NOW}),
        session_id    TEXT NOT NULL,
        tool_name     TEXT NOT NULL,
        tool_input    TEXT,
        rule_id       INTEGER,
        action        TEXT NOT NULL,
        reason        TEXT,
        evaluation_ms REAL
    );
    CREATE INDEX IF NOT EXISTS idx_enforcements_ts ON enforcements(timestamp);
    """,
)


@dataclass(frozen=True)
class EventRow:
    """A row from the events table."""

    id: int
    timestamp: str
    session_id: str
    event_type: str
    tool_name: Optional[str]
    tool_input: Optional[str]
    tool_response: Optional[str]
    cwd: Optional[str]
    permission_mode: Optional[str]
    raw_payload: str


@dataclass
class EventFilter:
    """Filters for querying events; None means no constraint."""

    since: Optional[str] = None
    until: Optional[str] = None
    session_id: Optional[str] = None
    event_type: Optional[str] = None
    tool_name: Optional[str] = None
    search: Optional[str] = None
    limit: int = 50


@dataclass(frozen=True)
class SessionRow:
    """A row from the sessions table."""

    session_id: str
    first_seen: str
    last_seen: str
    cwd: Optional[str]
    event_count: int


@dataclass
class SessionFilter:
    """Filters for querying sessions."""

    since: Optional[str] = None
    limit: int = 50


def utc_now_iso() -> str:
    """Current UTC time as an ISO 8601 string with millisecond precision."""
    now = datetime.now(timezone.utc)
    return now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z"


def resolve_db_path(cli_db: Optional[str], config_db: Optional[str]) -> str:
    """Resolve the database path.

    Precedence: the --db argument, the SCRIBE_DB environment variable
    (if non-empty), the config file, then ~/.claude/scribe.db.
    """
    if cli_db is not None:
        return cli_db
    env_path = os.environ.get(DB_ENV_VAR)
    if env_path:
        return env_path
    if config_db is not None:
        return config_db
    return str(Path.home() / ".claude" / "scribe.db")


@contextmanager
def _transaction(conn: sqlite3.Connection) -> Iterator[sqlite3.Connection]:
    conn.execute("BEGIN")
    try:
        yield conn
    except BaseException:
        conn.execute("ROLLBACK")
        raise
    conn.execute("COMMIT")


def _migrate(conn: sqlite3.Connection) -> None:
    version = conn.execute("PRAGMA user_version").fetchone()[0]
    for number, script in enumerate(_MIGRATIONS, start=1):
        if number <= version:
            continue
        conn.executescript(f"BEGIN;\n{script}\nPRAGMA user_version = {number};\nCOMMIT;")


def connect(db_path: Union[str, os.PathLike]) -> sqlite3.Connection:
    """Open (or create) the database and apply any pending migrations.

    The database uses WAL journaling, incremental auto-vacuum and a
    five-second busy timeout. The parent directory is created if needed.
    """
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(
        os.fspath(db_path), timeout=BUSY_TIMEOUT_MS / 1000, isolation_level=None
    )
    try:
        conn.row_factory = sqlite3.Row
        # auto_vacuum only takes effect before any table exists.
        conn.execute("PRAGMA auto_vacuum = INCREMENTAL")
        conn.execute("PRAGMA journal_mode = WAL")
        conn.execute(f"PRAGMA busy_timeout = {BUSY_TIMEOUT_MS}")
        _migrate(conn)
    except BaseException:
        conn.close()
        raise
    return conn


def insert_event(
    conn: sqlite3.Connection,
    session_id: str,
    event_type: str,
    tool_name: Optional[str],
    tool_input: Optional[str],
    tool_response: Optional[str],
    cwd: str,
    permission_mode: Optional[str],
    raw_payload: str,
) -> None:
    """Record an event and update its session in a single transaction."""
    now = utc_now_iso()
    with _transaction(conn):
        conn.execute(
            "INSERT INTO events (session_id, event_type, tool_name, tool_input, "
            "tool_response, cwd, permission_mode, raw_payload) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            (
                session_id,
                event_type,
                tool_name,
                tool_input,
                tool_response,
                cwd,
                permission_mode,
                raw_payload,
            ),
        )
        conn.execute(
            "INSERT INTO sessions (session_id, first_seen, last_seen, cwd, event_count) "
            "VALUES (?, ?, ?, ?, 1) "
            "ON CONFLICT(session_id) DO UPDATE SET "
            "last_seen = excluded.last_seen, "
            "cwd = excluded.cwd, "
            "event_count = event_count + 1",
            (session_id, now, now, cwd),
        )


def query_events(conn: sqlite3.Connection, event_filter: EventFilter) -> list[EventRow]:
    """Return events matching the filter, newest first."""
    clauses = [
        ("timestamp >= ?", event_filter.since),
        ("timestamp <= ?", event_filter.until),
        ("session_id = ?", event_filter.session_id),
        ("event_type = ?", event_filter.event_type),
        ("tool_name = ?", event_filter.tool_name),
        ("tool_input LIKE '%' || ? || '%'", event_filter.search),
    ]
    active = [(clause, value) for clause, value in clauses if value is not None]
    sql = (
        "SELECT id, timestamp, session_id, event_type, tool_name, tool_input, "
        "tool_response, cwd, permission_mode, raw_payload FROM events WHERE 1=1"
        + "".join(f" AND {clause}" for clause, _ in active)
        + " ORDER BY timestamp DESC LIMIT ?"
    )
    params = [value for _, value in active] + [event_filter.limit]
    return [EventRow(**dict(row)) for row in conn.execute(sql, params)]


def query_sessions(
    conn: sqlite3.Connection, session_filter: SessionFilter
) -> list[SessionRow]:
    """Return sessions matching the filter, most recently seen first."""
    sql = "SELECT session_id, first_seen, last_seen, cwd, event_count FROM sessions WHERE 1=1"
    params: list[object] = []
    if session_filter.since is not None:
        sql += " AND last_seen >= ?"
        params.append(session_filter.since)
    sql += " ORDER BY last_seen DESC LIMIT ?"
    params.append(session_filter.limit)
    return [SessionRow(**dict(row)) for row in conn.execute(sql, params)]


def delete_events_before(conn: sqlite3.Connection, before: str) -> int:
    """Delete events older than the given ISO 8601 timestamp; return the count."""
    cursor = conn.execute("DELETE FROM events WHERE timestamp < ?", (before,))
    return cursor.rowcount


def delete_orphaned_sessions(conn: sqlite3.Connection) -> int:
    """Delete sessions with no remaining events; return the count."""
    cursor = conn.execute(
        "DELETE FROM sessions WHERE session_id NOT IN (SELECT DISTINCT session_id FROM events)"
    )
    return cursor.rowcount


def get_metadata(conn: sqlite3.Connection, key: str) -> Optional[str]:
    """Return the stored metadata value for key, or None."""
    row = conn.execute("SELECT value FROM _metadata WHERE key = ?", (key,)).fetchone()
    return None if row is None else row[0]


def set_metadata(conn: sqlite3.Connection, key: str, value: str) -> None:
    """Store a metadata value, replacing any previous one."""
    conn.execute(
        "INSERT INTO _metadata (key, value) VALUES (?, ?) "
        "ON CONFLICT(key) DO UPDATE SET value = excluded.value",
        (key, value),
    )