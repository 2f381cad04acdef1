"""User configuration: loading, first-run creation and schema migration."""

from __future__ import annotations

import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import platformdirs
import tomlkit
from tomlkit.exceptions import TOMLKitError

CONFIG_TEMPLATE = """\
# Path to the SQLite database file.
# Default: ~/.claude/scribe.db
# db_path = "~/.claude/scribe.db"

# Automatic retention period. Events older than this are periodically deleted.
# Examples: "30d", "90d", "1y"
# Default: disabled (no automatic deletion)
# retention = "90d"

# How often the auto-retention check runs during 'scribe log'.
# Only relevant when 'retention' is set.
# Default: "24h"
# retention_check_interval = "24h"

# Default number of rows returned by 'scribe query'.
# Can be overridden with --limit.
# Default: 50
# default_query_limit = 50
"""

# Field names removed from the schema; migration deletes them from user files.
OBSOLETE_FIELDS: tuple[str, ...] = ()

_STRING_FIELDS = ("db_path", "retention", "retention_check_interval")
_INTEGER_FIELDS = ("default_query_limit",)


class ConfigError(ValueError):
    """Raised when configuration text cannot be parsed into a Config."""


@dataclass(frozen=True)
class Config:
    """Settings read from the config file; unset fields are None."""

    db_path: Optional[str] = None
    retention: Optional[str] = None
    retention_check_interval: Optional[str] = None
    default_query_limit: Optional[int] = None


@dataclass
class MigrationReport:
    """Fields added to or removed from a config file by migration."""

    fields_added: list[str] = field(default_factory=list)
    fields_removed: list[str] = field(default_factory=list)

    def has_changes(self) -> bool:
        return bool(self.fields_added or self.fields_removed)


def _warn(message: str) -> None:
    print(f"Warning: {message}", file=sys.stderr)


def _read_text(path: Path) -> str:
    return path.read_bytes().decode("utf-8")


def config_path() -> Path:
    """Return the platform config file path, e.g. ~/.config/claude-scribe/config.toml."""
    return Path(platformdirs.user_config_dir()) / "claude-scribe" / "config.toml"


def ensure_config_exists(path: Optional[Path] = None) -> bool:
    """Create the config file from the template if missing.

    Returns True if the file was created. Failures are reported on stderr
    and yield False.
    """
    path = Path(path) if path is not None else config_path()
    if path.exists():
        return False

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        _warn(f"could not create config directory {path.parent}: {exc}")
        return False

    try:
        path.write_text(CONFIG_TEMPLATE, encoding="utf-8", newline="")
    except OSError as exc:
        _warn(f"could not create config file {path}: {exc}")
        return False

    return True


def _template_fields() -> list[str]:
    fields = []
    for line in CONFIG_TEMPLATE.splitlines():
        trimmed = line.strip()
        if trimmed.startswith("# ") and " = " in trimmed:
            fields.append(trimmed[2:].split(" = ", 1)[0])
    return fields


def _field_present_in_text(text: str, name: str) -> bool:
    pattern = f"# {name} ="
    return any(line.strip().startswith(pattern) for line in text.splitlines())


def _extract_template_block(name: str) -> str:
    target = f"# {name} ="
    lines = CONFIG_TEMPLATE.splitlines()
    field_idx = next(
        (idx for idx, line in enumerate(lines) if line.strip().startswith(target)),
        None,
    )
    if field_idx is None:
        return f"{target}\n"

    start = field_idx
    while start > 0 and lines[start - 1].startswith("#"):
        start -= 1
    return "".join(f"{line}\n" for line in lines[start : field_idx + 1])


def migrate_config(path: Optional[Path] = None) -> Optional[MigrationReport]:
    """Bring a config file up to date with the template.

    Missing fields are appended as commented-out blocks and obsolete fields
    removed; user values, comments and unknown keys are kept. Returns None
    when nothing changed or the file could not be read, parsed or written.
    """
    path = Path(path) if path is not None else config_path()
    try:
        content = _read_text(path)
    except FileNotFoundError:
        return None
    except (OSError, UnicodeDecodeError) as exc:
        _warn(f"could not read config file for migration {path}: {exc}")
        return None

    try:
        doc = tomlkit.parse(content)
    except TOMLKitError as exc:
        _warn(f"could not parse config file for migration {path}: {exc}")
        return None

    report = MigrationReport()
    append_blocks = ""
    for name in _template_fields():
        if name not in doc and not _field_present_in_text(content, name):
            append_blocks += "\n" + _extract_template_block(name)
            report.fields_added.append(name)

    for name in OBSOLETE_FIELDS:
        if name in doc:
            del doc[name]
            report.fields_removed.append(name)

    if not report.has_changes():
        return None

    output = tomlkit.dumps(doc)
    if append_blocks:
        if not output.endswith("\n"):
            output += "\n"
        output += append_blocks

    try:
        path.write_text(output, encoding="utf-8", newline="")
    except OSError as exc:
        _warn(f"could not write migrated config file {path}: {exc}")
        return None

    return report


def format_migration_report(report: MigrationReport) -> str:
    """Render a migration report as a one-line message for stderr."""
    parts = []
    if report.fields_added:
        parts.append("added " + ", ".join(f"'{name}'" for name in report.fields_added))
    if report.fields_removed:
        parts.append("removed " + ", ".join(f"'{name}'" for name in report.fields_removed))
    return f"scribe: config updated \u2014 {', '.join(parts)}"


def parse_config(text: str) -> Config:
    """Parse TOML text into a Config, ignoring unknown keys.

    Raises ConfigError on invalid TOML or a value of the wrong type.
    """
    try:
        data: dict[str, Any] = tomlkit.parse(text).unwrap()
    except TOMLKitError as exc:
        raise ConfigError(str(exc)) from exc

    values: dict[str, Any] = {}
    for name in _STRING_FIELDS:
        if name in data:
            value = data[name]
            if not isinstance(value, str):
                raise ConfigError(f"invalid type for '{name}': expected a string")
            values[name] = value
    for name in _INTEGER_FIELDS:
        if name in data:
            value = data[name]
            if isinstance(value, bool) or not isinstance(value, int):
                raise ConfigError(f"invalid type for '{name}': expected an integer")
            values[name] = value
    return Config(**values)


def load_config(path: Optional[Path] = None) -> Config:
    """Load the config file, falling back to defaults if missing or unreadable."""
    path = Path(path) if path is not None else config_path()
    try:
        content = _read_text(path)
    except FileNotFoundError:
        return Config()
    except (OSError, UnicodeDecodeError) as exc:
        _warn(f"could not read config file {path}: {exc}")
        return Config()

    try:
        return parse_config(content)
    except ConfigError as exc:
        _warn(f"failed to parse config file {path}: {exc}")
        return Config()