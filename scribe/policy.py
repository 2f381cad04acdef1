"""Classifications, policy rules and enforcement records in the event store."""

from __future__ import annotations

import sqlite3
from dataclasses import dataclass, field
from typing import Optional

TOP_DENIED_LIMIT = 10

_RULE_COLUMNS = "id, tool_pattern, input_pattern, action, reason, priority"
_FULL_RULE_COLUMNS = _RULE_COLUMNS + ", enabled, source, created_at"
_RULE_ORDER = " ORDER BY priority DESC, id DESC"


@dataclass(frozen=True)
class ClassificationCount:
    """How many classifications carry a given risk level."""

    risk_level: str
    count: int


@dataclass(frozen=True)
class RuleRow:
    """An enabled policy rule, as used during evaluation."""

    id: int
    tool_pattern: str
    input_pattern: Optional[str]
    action: str
    reason: str
    priority: int


@dataclass(frozen=True)
class FullRuleRow:
    """A policy rule with its status and provenance."""

    id: int
    tool_pattern: str
    input_pattern: Optional[str]
    action: str
    reason: str
    priority: int
    enabled: bool
    source: str
    created_at: str


@dataclass(frozen=True)
class ClassificationRow:
    """A stored classification result."""

    id: int
    tool_name: str
    input_pattern: str
    risk_level: str
    reason: str
    heuristic: str


@dataclass(frozen=True)
class TopDeniedRule:
    """A rule and how many times it denied a tool call."""

    rule_id: int
    reason: str
    count: int


@dataclass(frozen=True)
class EnforcementStats:
    """Totals of enforcement decisions with the rules that denied most."""

    total: int
    allowed: int
    denied: int
    top_denied: list[TopDeniedRule] = field(default_factory=list)


@dataclass(frozen=True)
class EnforcementRow:
    """A single recorded enforcement decision."""

    id: int
    timestamp: str
    session_id: str
    tool_name: str
    tool_input: Optional[str]
    action: str
    reason: Optional[str]
    rule_id: Optional[int]


def _since_clause(since: Optional[str], column: str = "timestamp") -> tuple[str, list[str]]:
    if since is None:
        return "", []
    return f" AND {column} >= ?", [since]


def _count(conn: sqlite3.Connection, sql: str, params: list[object]) -> int:
    return conn.execute(sql, params).fetchone()[0]


def has_classification_for_event(conn: sqlite3.Connection, event_id: int) -> bool:
    """Return True if the event already has a classification."""
    return (
        _count(conn, "SELECT COUNT(*) FROM classifications WHERE event_id = ?", [event_id])
        > 0
    )


def insert_classification(
    conn: sqlite3.Connection,
    event_id: Optional[int],
    tool_name: str,
    input_pattern: str,
    risk_level: str,
    reason: str,
    heuristic: str,
) -> int:
    """Store a classification result and return its id."""
    cursor = conn.execute(
        "INSERT INTO classifications "
        "(event_id, tool_name, input_pattern, risk_level, reason, heuristic) "
        "VALUES (?, ?, ?, ?, ?, ?)",
        (event_id, tool_name, input_pattern, str(risk_level), reason, heuristic),
    )
    return cursor.lastrowid


def classification_summary(
    conn: sqlite3.Connection, since: Optional[str] = None
) -> list[ClassificationCount]:
    """Return classification counts per risk level, highest first."""
    clause, params = _since_clause(since)
    sql = (
        "SELECT risk_level, COUNT(*) AS count FROM classifications WHERE 1=1"
        + clause
        + " GROUP BY risk_level ORDER BY count DESC"
    )
    return [
        ClassificationCount(risk_level=row["risk_level"], count=row["count"])
        for row in conn.execute(sql, params)
    ]


def load_enabled_rules(conn: sqlite3.Connection) -> list[RuleRow]:
    """Return enabled rules, highest priority first, newest first among equals."""
    rows = conn.execute(
        f"SELECT {_RULE_COLUMNS} FROM rules WHERE enabled = 1" + _RULE_ORDER
    )
    return [RuleRow(**dict(row)) for row in rows]


def insert_enforcement(
    conn: sqlite3.Connection,
    session_id: str,
    tool_name: str,
    tool_input: Optional[str],
    rule_id: Optional[int],
    action: str,
    reason: Optional[str],
    evaluation_ms: float,
) -> int:
    """Record an enforcement decision and return its id."""
    cursor = conn.execute(
        "INSERT INTO enforcements "
        "(session_id, tool_name, tool_input, rule_id, action, reason, evaluation_ms) "
        "VALUES (?, ?, ?, ?, ?, ?, ?)",
        (session_id, tool_name, tool_input, rule_id, action, reason, evaluation_ms),
    )
    return cursor.lastrowid


def insert_rule(
    conn: sqlite3.Connection,
    tool_pattern: str,
    input_pattern: Optional[str],
    action: str,
    reason: str,
    priority: int,
    source: str,
) -> int:
    """Add a policy rule and return its id."""
    cursor = conn.execute(
        "INSERT INTO rules (tool_pattern, input_pattern, action, reason, priority, source) "
        "VALUES (?, ?, ?, ?, ?, ?)",
        (tool_pattern, input_pattern, action, reason, priority, source),
    )
    return cursor.lastrowid


def delete_rule(conn: sqlite3.Connection, rule_id: int) -> bool:
    """Delete a rule; return True if it existed."""
    return conn.execute("DELETE FROM rules WHERE id = ?", (rule_id,)).rowcount > 0


def update_rule_enabled(conn: sqlite3.Connection, rule_id: int, enabled: bool) -> bool:
    """Enable or disable a rule; return True if it existed."""
    cursor = conn.execute(
        "UPDATE rules SET enabled = ?, "
        "updated_at = strftime('%Y-%m-%dT%H:%M:%fZ', 'now') WHERE id = ?",
        (1 if enabled else 0, rule_id),
    )
    return cursor.rowcount > 0


def list_rules(conn: sqlite3.Connection, include_disabled: bool = False) -> list[FullRuleRow]:
    """Return rules with their metadata, optionally including disabled ones."""
    where = "" if include_disabled else " WHERE enabled = 1"
    rows = conn.execute(f"SELECT {_FULL_RULE_COLUMNS} FROM rules" + where + _RULE_ORDER)
    result = []
    for row in rows:
        values = dict(row)
        values["enabled"] = values["enabled"] != 0
        result.append(FullRuleRow(**values))
    return result


def delete_all_rules(conn: sqlite3.Connection) -> int:
    """Delete every rule; return how many were removed."""
    return conn.execute("DELETE FROM rules").rowcount


def enforcement_stats(
    conn: sqlite3.Connection, since: Optional[str] = None
) -> EnforcementStats:
    """Summarise enforcement decisions, optionally only from `since` on."""
    clause, params = _since_clause(since)
    total = _count(conn, "SELECT COUNT(*) FROM enforcements WHERE 1=1" + clause, params)
    allowed = _count(
        conn,
        "SELECT COUNT(*) FROM enforcements WHERE action = 'allowed'" + clause,
        params,
    )
    denied = _count(
        conn,
        "SELECT COUNT(*) FROM enforcements WHERE action = 'denied'" + clause,
        params,
    )
    top_rows = conn.execute(
        "SELECT rule_id, COALESCE(reason, '') AS reason, COUNT(*) AS cnt "
        "FROM enforcements WHERE action = 'denied'"
        + clause
        + " AND rule_id IS NOT NULL GROUP BY rule_id ORDER BY cnt DESC LIMIT ?",
        [*params, TOP_DENIED_LIMIT],
    )
    top_denied = [
        TopDeniedRule(rule_id=row["rule_id"], reason=row["reason"], count=row["cnt"])
        for row in top_rows
    ]
    return EnforcementStats(total=total, allowed=allowed, denied=denied, top_denied=top_denied)


def get_classification(
    conn: sqlite3.Connection, classification_id: int
) -> Optional[ClassificationRow]:
    """Return the classification with the given id, or None."""
    row = conn.execute(
        "SELECT id, tool_name, input_pattern, risk_level, reason, heuristic "
        "FROM classifications WHERE id = ?",
        (classification_id,),
    ).fetchone()
    return None if row is None else ClassificationRow(**dict(row))


def recent_enforcements(conn: sqlite3.Connection, limit: int = 50) -> list[EnforcementRow]:
    """Return the most recent enforcement decisions, newest first."""
    rows = conn.execute(
        "SELECT id, timestamp, session_id, tool_name, tool_input, action, reason, rule_id "
        "FROM enforcements ORDER BY timestamp DESC LIMIT ?",
        (limit,),
    )
    return [EnforcementRow(**dict(row)) for row in rows]