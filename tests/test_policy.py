import pytest

from scribe import policy
from scribe.store import connect


@pytest.fixture
def conn(tmp_path):
    connection = connect(tmp_path / "policy.db")
    yield connection
    connection.close()


def _set_timestamp(conn, table, row_id, ts):
    conn.execute(f"UPDATE {table} SET timestamp = ? WHERE id = ?", (ts, row_id))


def test_has_classification_for_event(conn):
    assert policy.has_classification_for_event(conn, 7) is False
    policy.insert_classification(conn, 7, "Bash", "rm -rf", "high", "destructive", "rm")
    assert policy.has_classification_for_event(conn, 7) is True
    assert policy.has_classification_for_event(conn, 8) is False


def test_insert_and_get_classification_round_trip(conn):
    new_id = policy.insert_classification(
        conn, None, "Write", "/etc/*", "medium", "system path", "path"
    )
    row = policy.get_classification(conn, new_id)
    assert row == policy.ClassificationRow(
        id=new_id,
        tool_name="Write",
        input_pattern="/etc/*",
        risk_level="medium",
        reason="system path",
        heuristic="path",
    )


def test_get_classification_missing(conn):
    assert policy.get_classification(conn, 12345) is None


def test_classification_summary_orders_by_count(conn):
    levels = ["high", "low", "high", "high", "low", "medium"]
    for level in levels:
        policy.insert_classification(conn, None, "Bash", "x", level, "r", "h")
    summary = policy.classification_summary(conn)
    assert summary[0] == policy.ClassificationCount("high", levels.count("high"))
    assert sum(item.count for item in summary) == len(levels)
    counts = [item.count for item in summary]
    assert counts == sorted(counts, reverse=True)


def test_classification_summary_with_since(conn):
    old_id = policy.insert_classification(conn, None, "Bash", "x", "low", "r", "h")
    new_id = policy.insert_classification(conn, None, "Bash", "y", "high", "r", "h")
    _set_timestamp(conn, "classifications", old_id, "2025-01-01T00:00:00.000Z")
    _set_timestamp(conn, "classifications", new_id, "2025-02-01T00:00:00.000Z")
    summary = policy.classification_summary(conn, "2025-01-15T00:00:00.000Z")
    assert summary == [policy.ClassificationCount("high", 1)]


def test_load_enabled_rules_order_and_filter(conn):
    low = policy.insert_rule(conn, "Bash", None, "allow", "low", 1, "manual")
    high_a = policy.insert_rule(conn, "Write", "/etc/*", "deny", "a", 10, "manual")
    high_b = policy.insert_rule(conn, "Edit", None, "deny", "b", 10, "manual")
    disabled = policy.insert_rule(conn, "Read", None, "deny", "off", 100, "manual")
    policy.update_rule_enabled(conn, disabled, False)

    rules = policy.load_enabled_rules(conn)
    assert [rule.id for rule in rules] == [high_b, high_a, low]
    assert rules[1].input_pattern == "/etc/*"
    assert rules[2].input_pattern is None


def test_delete_rule(conn):
    rule_id = policy.insert_rule(conn, "Bash", None, "deny", "r", 0, "manual")
    assert policy.delete_rule(conn, rule_id) is True
    assert policy.delete_rule(conn, rule_id) is False
    assert policy.list_rules(conn, True) == []


def test_update_rule_enabled(conn):
    rule_id = policy.insert_rule(conn, "Bash", None, "deny", "r", 0, "promoted")
    assert policy.update_rule_enabled(conn, rule_id, False) is True
    assert policy.list_rules(conn) == []
    everything = policy.list_rules(conn, include_disabled=True)
    assert [rule.enabled for rule in everything] == [False]

    assert policy.update_rule_enabled(conn, rule_id, True) is True
    assert [rule.enabled for rule in policy.list_rules(conn)] == [True]
    assert policy.update_rule_enabled(conn, rule_id + 99, True) is False


def test_list_rules_fields(conn):
    rule_id = policy.insert_rule(conn, "Bash", "curl *", "deny", "network", 5, "promoted")
    (rule,) = policy.list_rules(conn)
    assert rule.id == rule_id
    assert rule.tool_pattern == "Bash"
    assert rule.input_pattern == "curl *"
    assert rule.action == "deny"
    assert rule.reason == "network"
    assert rule.priority == 5
    assert rule.source == "promoted"
    assert rule.enabled is True
    assert rule.created_at.endswith("Z")


def test_delete_all_rules(conn):
    for priority in range(3):
        policy.insert_rule(conn, "Bash", None, "deny", "r", priority, "manual")
    assert policy.delete_all_rules(conn) == 3
    assert policy.delete_all_rules(conn) == 0
    assert policy.load_enabled_rules(conn) == []


def test_insert_enforcement_returns_distinct_ids(conn):
    first = policy.insert_enforcement(conn, "s1", "Bash", "ls", None, "allowed", None, 0.5)
    second = policy.insert_enforcement(conn, "s1", "Bash", "ls", None, "allowed", None, 0.5)
    assert second > first


def test_enforcement_stats_empty(conn):
    stats = policy.enforcement_stats(conn)
    assert stats == policy.EnforcementStats(total=0, allowed=0, denied=0, top_denied=[])


def test_enforcement_stats_counts_and_top_denied(conn):
    rule_a = policy.insert_rule(conn, "Bash", "rm *", "deny", "no rm", 0, "manual")
    rule_b = policy.insert_rule(conn, "Write", None, "deny", "no write", 0, "manual")
    decisions = [
        ("allowed", None, None),
        ("allowed", None, None),
        ("denied", rule_a, "no rm"),
        ("denied", rule_a, "no rm"),
        ("denied", rule_b, "no write"),
        ("denied", None, None),
    ]
    for action, rule_id, reason in decisions:
        policy.insert_enforcement(conn, "s1", "Bash", "cmd", rule_id, action, reason, 1.0)

    stats = policy.enforcement_stats(conn)
    actions = [action for action, _, _ in decisions]
    assert stats.total == len(decisions)
    assert stats.allowed == actions.count("allowed")
    assert stats.denied == actions.count("denied")
    assert stats.top_denied[0] == policy.TopDeniedRule(rule_a, "no rm", 2)
    assert [entry.rule_id for entry in stats.top_denied] == [rule_a, rule_b]


def test_enforcement_stats_reason_defaults_to_empty(conn):
    policy.insert_enforcement(conn, "s1", "Bash", None, 42, "denied", None, 1.0)
    stats = policy.enforcement_stats(conn)
    assert stats.top_denied == [policy.TopDeniedRule(42, "", 1)]


def test_enforcement_stats_with_since(conn):
    old_id = policy.insert_enforcement(conn, "s1", "Bash", None, 1, "denied", "r", 1.0)
    new_id = policy.insert_enforcement(conn, "s1", "Bash", None, None, "allowed", None, 1.0)
    _set_timestamp(conn, "enforcements", old_id, "2025-01-01T00:00:00.000Z")
    _set_timestamp(conn, "enforcements", new_id, "2025-02-01T00:00:00.000Z")

    stats = policy.enforcement_stats(conn, "2025-01-15T00:00:00.000Z")
    assert (stats.total, stats.allowed, stats.denied) == (1, 1, 0)
    assert stats.top_denied == []


def test_recent_enforcements_order_and_limit(conn):
    stamps = [
        "2025-01-01T10:00:00.000Z",
        "2025-01-01T12:00:00.000Z",
        "2025-01-01T11:00:00.000Z",
    ]
    ids = []
    for ts in stamps:
        row_id = policy.insert_enforcement(
            conn, "s1", "Bash", "echo hi", 3, "denied", "r", 2.0
        )
        _set_timestamp(conn, "enforcements", row_id, ts)
        ids.append(row_id)

    recent = policy.recent_enforcements(conn, 10)
    assert [row.timestamp for row in recent] == sorted(stamps, reverse=True)
    assert recent[0].id == ids[1]
    assert recent[0].tool_input == "echo hi"
    assert recent[0].rule_id == 3

    limited = policy.recent_enforcements(conn, 2)
    assert [row.id for row in limited] == [ids[1], ids[2]]