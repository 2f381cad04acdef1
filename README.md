# scribe

`scribe` keeps coding-assistant hook events (tool calls, session starts and
ends, failures) in a local SQLite database and turns them into a readable
dashboard: top tools, event types, errors, busiest directories and a
day-by-day activity histogram. It also stores policy rules, risk
classifications and enforcement decisions alongside the events.

## Installation

```
pip install .
```

For running the test suite:

```
pip install ".[test]"
pytest
```

## The stats dashboard

```
scribe-stats
```

prints a summary of the database, for example:

```
Database:  /home/me/.claude/scribe.db
Size:      48.0 KB
Events:    1,204
Sessions:  37
Avg duration:  42m
Oldest:    2025-06-01 09:12:44
Newest:    2025-06-14 17:03:10

Top tools:
   1. Bash                 512
   2. Read                 301
...
```

After the header come the top ten tools, the event types, an error summary
(`PostToolUseFailure` and `StopFailure` counts, with StopFailure error types),
the top five working directories and an activity histogram. Without
`--since` the histogram covers the last 14 days. When the database holds no
events only the header is printed; missing dates show as an em dash.

Options:

```
scribe-stats --since 7d          # a duration: s, m, h, d, w, M, y (and long forms)
scribe-stats --since 2025-06-01  # a date, taken as midnight UTC
scribe-stats --json              # a single pretty-printed JSON object
scribe-stats --db /tmp/other.db  # use a different database file
```

`--since` also accepts an RFC 3339 timestamp. An unrecognised value, or a
database that cannot be opened, prints `scribe: error: ...` on stderr and
exits with status 1. In JSON output missing dates and a missing average
session duration are `null`.

## Where the database lives

`scribe.store.resolve_db_path` picks the path in this order:

1. the `--db` option,
2. the `SCRIBE_DB` environment variable, when set and not empty,
3. `db_path` in the configuration file,
4. `~/.claude/scribe.db`.

`scribe.store.connect` opens the database in WAL mode with incremental
auto-vacuum and a five-second busy timeout, creates the parent directory
when missing and applies the schema.

## Configuration

The configuration file is `claude-scribe/config.toml` inside the platform's
user configuration directory (`scribe.config.config_path()`). It knows
`db_path`, `retention`, `retention_check_interval` and
`default_query_limit`; `scribe-stats` reads only `db_path`.

- `load_config()` returns a `Config`; a missing file gives the defaults, and
  a file that cannot be read or parsed gives the defaults with a warning on
  stderr.
- `ensure_config_exists()` writes the template, in which every setting is
  commented out, when no file exists yet.
- `migrate_config()` appends any settings missing from an existing file as
  commented blocks, keeping your values, comments and unknown keys, and
  returns a `MigrationReport` (or `None` when nothing changed).
  `format_migration_report()` turns the report into a one-line message.

## Using it from Python

```python
from scribe.store import connect, insert_event, query_events, EventFilter
from scribe.analytics import top_tools
from scribe.stats import gather_stats, render_text

conn = connect("/tmp/scribe.db")
insert_event(conn, "s1", "PreToolUse", "Bash", '{"command":"ls"}', None,
             "/home/me/project", "default", "{}")

for event in query_events(conn, EventFilter(tool_name="Bash")):
    print(event.timestamp, event.event_type)

print(top_tools(conn, None, 10))

report = gather_stats(conn, None)
print(render_text(report, "/tmp/scribe.db", None))
```

- `scribe.store`: events and sessions (`insert_event`, `query_events`,
  `query_sessions`, `delete_events_before`, `delete_orphaned_sessions`,
  `get_metadata`, `set_metadata`).
- `scribe.analytics`: the aggregate queries behind the dashboard.
- `scribe.policy`: rules, classifications and enforcement records
  (`insert_rule`, `list_rules`, `update_rule_enabled`, `enforcement_stats`,
  and more).
- `scribe.formatting`: `format_size`, `format_count`, `format_duration`,
  `format_timestamp`, `histogram_bar`, `truncate_path` and friends.
- `scribe.stats`: `gather_stats`, `render_text`, `render_json`, `run`, `main`.

## What it does not do

The only command is `scribe-stats`. There is no command that reads hook
events from stdin and records them, no command-line event or session query,
no retention command, no command that writes hook settings, and no
interactive screen. Events are recorded by calling `insert_event`, old events
are removed with `delete_events_before` and `delete_orphaned_sessions`, and
the `retention` settings are read but never acted on. Rules and
classifications are stored, but nothing here evaluates rules or classifies
tool calls.