import pytest

from scribe.config import (
    CONFIG_TEMPLATE,
    Config,
    ConfigError,
    MigrationReport,
    config_path,
    ensure_config_exists,
    format_migration_report,
    load_config,
    migrate_config,
    parse_config,
)

ALL_FIELDS = ["db_path", "retention", "retention_check_interval", "default_query_limit"]


def read(path):
    return path.read_bytes().decode("utf-8")


def test_template_parses_to_defaults():
    assert parse_config(CONFIG_TEMPLATE) == Config()


def test_config_path_location():
    path = config_path()
    assert path.name == "config.toml"
    assert path.parent.name == "claude-scribe"


def test_ensure_config_creates_file(tmp_path):
    path = tmp_path / "claude-scribe" / "config.toml"
    assert ensure_config_exists(path) is True
    assert path.exists()
    content = read(path)
    assert content == CONFIG_TEMPLATE
    for name in ALL_FIELDS:
        assert f"# {name} =" in content


def test_ensure_config_creates_parent_dirs(tmp_path):
    path = tmp_path / "nested" / "deep" / "config.toml"
    assert ensure_config_exists(path) is True
    assert path.exists()


def test_ensure_config_noop_when_exists(tmp_path):
    path = tmp_path / "config.toml"
    path.write_text('db_path = "/custom.db"\n')
    assert ensure_config_exists(path) is False
    assert "/custom.db" in read(path)


def test_ensure_config_failure_warns(tmp_path, capsys):
    blocker = tmp_path / "file.txt"
    blocker.write_text("x")
    path = blocker / "sub" / "config.toml"
    assert ensure_config_exists(path) is False
    assert "Warning" in capsys.readouterr().err


def test_created_config_loads_as_default(tmp_path):
    path = tmp_path / "config.toml"
    ensure_config_exists(path)
    config = load_config(path)
    assert config == Config()
    assert config.default_query_limit is None


def test_parse_full_config():
    text = """
db_path = "/custom/scribe.db"
retention = "90d"
retention_check_interval = "12h"
default_query_limit = 100
"""
    config = parse_config(text)
    assert config.db_path == "/custom/scribe.db"
    assert config.retention == "90d"
    assert config.retention_check_interval == "12h"
    assert config.default_query_limit == 100


def test_parse_partial_config():
    config = parse_config('db_path = "/custom/scribe.db"\n')
    assert config.db_path == "/custom/scribe.db"
    assert config.retention is None
    assert config.default_query_limit is None


def test_parse_empty_file():
    assert parse_config("") == Config()


def test_parse_invalid_toml():
    with pytest.raises(ConfigError):
        parse_config("not valid {{{{ toml")


def test_parse_wrong_type():
    with pytest.raises(ConfigError):
        parse_config('default_query_limit = "lots"\n')


def test_parse_ignores_unknown_fields():
    config = parse_config('unknown_setting = true\ndb_path = "/x.db"\n')
    assert config == Config(db_path="/x.db")


def test_load_config_from_file(tmp_path):
    path = tmp_path / "config.toml"
    path.write_text('db_path = "/test/path.db"\ndefault_query_limit = 200\n')
    config = load_config(path)
    assert config.db_path == "/test/path.db"
    assert config.default_query_limit == 200


def test_load_config_missing_file(tmp_path):
    assert load_config(tmp_path / "nonexistent.toml") == Config()


def test_load_config_invalid_warns(tmp_path, capsys):
    path = tmp_path / "config.toml"
    path.write_text("not valid {{{{ toml")
    assert load_config(path) == Config()
    assert "failed to parse config file" in capsys.readouterr().err


def test_load_config_unreadable_warns(tmp_path, capsys):
    assert load_config(tmp_path) == Config()
    assert "could not read config file" in capsys.readouterr().err


def test_migrate_adds_missing_fields(tmp_path):
    path = tmp_path / "config.toml"
    path.write_text('db_path = "/custom.db"\n')
    report = migrate_config(path)
    assert report.has_changes()
    assert "retention" in report.fields_added
    assert "retention_check_interval" in report.fields_added
    assert "default_query_limit" in report.fields_added
    assert "db_path" not in report.fields_added

    content = read(path)
    assert "# retention =" in content
    assert "# retention_check_interval =" in content
    assert "# default_query_limit =" in content
    assert 'db_path = "/custom.db"' in content


def test_migrate_preserves_user_values(tmp_path):
    path = tmp_path / "config.toml"
    path.write_text('db_path = "/my/path.db"\ndefault_query_limit = 200\n')
    report = migrate_config(path)
    assert len(report.fields_added) == 2
    content = read(path)
    assert 'db_path = "/my/path.db"' in content
    assert "default_query_limit = 200" in content
    assert load_config(path) == Config(db_path="/my/path.db", default_query_limit=200)


def test_migrate_preserves_user_comments(tmp_path):
    path = tmp_path / "config.toml"
    path.write_text('# My custom comment about this config\ndb_path = "/custom.db"\n')
    migrate_config(path)
    content = read(path)
    assert "# My custom comment about this config" in content
    assert 'db_path = "/custom.db"' in content


def test_migrate_empty_file(tmp_path):
    path = tmp_path / "config.toml"
    path.write_text("")
    report = migrate_config(path)
    assert len(report.fields_added) == 4
    assert report.fields_added == ALL_FIELDS
    content = read(path)
    for name in ALL_FIELDS:
        assert f"# {name} =" in content
    assert "# Path to the SQLite database file." in content


def test_migrate_unparseable_file(tmp_path):
    path = tmp_path / "config.toml"
    bad_content = "not valid {{{{ toml ]]]]"
    path.write_text(bad_content)
    assert migrate_config(path) is None
    assert read(path) == bad_content


def test_migrate_noop_when_current(tmp_path):
    path = tmp_path / "config.toml"
    path.write_text(CONFIG_TEMPLATE)
    assert migrate_config(path) is None


def test_migrate_is_idempotent(tmp_path):
    path = tmp_path / "config.toml"
    path.write_text('db_path = "/custom.db"\n')
    assert migrate_config(path).fields_added == [
        "retention",
        "retention_check_interval",
        "default_query_limit",
    ]
    first = read(path)
    assert migrate_config(path) is None
    assert read(path) == first


def test_migrate_commented_out_field_not_readded(tmp_path):
    path = tmp_path / "config.toml"
    path.write_text('db_path = "/custom.db"\n# retention = "90d"\n')
    report = migrate_config(path)
    assert "db_path" not in report.fields_added
    assert "retention" not in report.fields_added
    assert "retention_check_interval" in report.fields_added
    assert "default_query_limit" in report.fields_added


def test_migrate_mix_active_and_commented(tmp_path):
    path = tmp_path / "config.toml"
    path.write_text(
        'db_path = "/custom.db"\n# retention = "90d"\n'
        '# retention_check_interval = "12h"\ndefault_query_limit = 100\n'
    )
    assert migrate_config(path) is None


def test_migrate_unknown_fields_left_alone(tmp_path):
    path = tmp_path / "config.toml"
    path.write_text(
        'db_path = "/custom.db"\nunknown_setting = true\n# retention = "90d"\n'
        '# retention_check_interval = "24h"\n# default_query_limit = 50\n'
    )
    assert migrate_config(path) is None
    assert "unknown_setting = true" in read(path)


def test_migrate_missing_file_returns_none(tmp_path):
    assert migrate_config(tmp_path / "nonexistent.toml") is None


def test_migration_report_has_changes():
    assert MigrationReport().has_changes() is False
    assert MigrationReport(fields_removed=["old_field"]).has_changes() is True


def test_migration_report_format():
    report = MigrationReport(fields_added=["retention", "default_query_limit"])
    assert (
        format_migration_report(report)
        == "scribe: config updated \u2014 added 'retention', 'default_query_limit'"
    )

    report2 = MigrationReport(fields_added=["new_field"], fields_removed=["old_field"])
    assert (
        format_migration_report(report2)
        == "scribe: config updated \u2014 added 'new_field', removed 'old_field'"
    )