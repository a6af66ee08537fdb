"""CLI integration tests for sqlmigrate."""

from contextlib import closing
from pathlib import Path

import pytest
from click.testing import CliRunner

from sqlmigrate.cli import cli
from sqlmigrate.version_store import VersionState, VersionStore, open_database
from tests.cli_helpers import (
    REQUIRES_SQLITE3,
    _table_names,
    _write_config,
    _write_migration,
    _write_table_migrations,
)


@pytest.fixture
def project(tmp_path: Path, monkeypatch) -> dict[str, Path]:
    """Config file pointing at a database and migrations directory under tmp_path."""
    db_file = tmp_path / "db" / "app.sqlite"
    migrations_dir = tmp_path / "migrations"
    config_path = tmp_path / "sqlmigrate.toml"
    _write_config(config_path, db_file, migrations_dir)

    monkeypatch.setenv("SQLMIGRATE_CONFIG", str(config_path))
    monkeypatch.delenv("SQLMIGRATE_DB_FILE", raising=False)
    return {"db_file": db_file, "migrations_dir": migrations_dir, "config": config_path}


def _state(db_file: Path) -> VersionState:
    with closing(open_database(db_file)) as conn:
        return VersionStore(conn).read()


def test_cli_up_down_round_trip(project: dict[str, Path]) -> None:
    """End-to-end: init, up to 2, up all, down to 0."""
    runner = CliRunner()
    db_file = project["db_file"]
    _write_table_migrations(project["migrations_dir"], [1, 2, 3])

    init_result = runner.invoke(cli, ["init"])
    assert init_result.exit_code == 0, init_result.output
    assert _state(db_file) == VersionState(version=0, dirty=False)

    up_result = runner.invoke(cli, ["up", "--to", "2"])
    assert up_result.exit_code == 0, up_result.output
    assert "00001_create_t1.up.sql" in up_result.output
    assert "00003_create_t3" not in up_result.output
    assert _table_names(db_file) == {"t1", "t2"}

    version_result = runner.invoke(cli, ["version"])
    assert version_result.exit_code == 0, version_result.output
    assert version_result.output.strip() == "00002"

    again_result = runner.invoke(cli, ["up", "--to", "2"])
    assert again_result.exit_code == 0, again_result.output
    assert "No migrations to apply" in again_result.output

    all_result = runner.invoke(cli, ["up"])
    assert all_result.exit_code == 0, all_result.output
    assert _state(db_file).version == 3

    down_result = runner.invoke(cli, ["down", "--to", "0"])
    assert down_result.exit_code == 0, down_result.output
    assert _table_names(db_file) == set()
    assert _state(db_file) == VersionState(version=0, dirty=False)


def test_cli_down_defaults_to_one_step(project: dict[str, Path]) -> None:
    """Plain `down` reverts only the latest migration."""
    runner = CliRunner()
    _write_table_migrations(project["migrations_dir"], [1, 2])

    assert runner.invoke(cli, ["init"]).exit_code == 0
    assert runner.invoke(cli, ["up"]).exit_code == 0

    result = runner.invoke(cli, ["down"])
    assert result.exit_code == 0, result.output
    assert _state(project["db_file"]).version == 1
    assert _table_names(project["db_file"]) == {"t1"}


def test_cli_down_all_confirmation(project: dict[str, Path]) -> None:
    """`down --all` asks first; declining changes nothing."""
    runner = CliRunner()
    _write_table_migrations(project["migrations_dir"], [1, 2])
    assert runner.invoke(cli, ["init"]).exit_code == 0
    assert runner.invoke(cli, ["up"]).exit_code == 0

    declined = runner.invoke(cli, ["down", "--all"], input="n\n")
    assert declined.exit_code == 0, declined.output
    assert "cancelled" in declined.output
    assert _state(project["db_file"]).version == 2

    accepted = runner.invoke(cli, ["down", "--all", "--yes"])
    assert accepted.exit_code == 0, accepted.output
    assert _state(project["db_file"]).version == 0


def test_cli_failed_migration_marks_dirty(project: dict[str, Path]) -> None:
    """A failing script leaves the version, sets dirty and blocks runs until force."""
    runner = CliRunner()
    migrations_dir = project["migrations_dir"]
    db_file = project["db_file"]
    _write_table_migrations(migrations_dir, [1, 3])
    _write_migration(migrations_dir, 2, "broken", up_sql="CREATE TABLE t2 (;\n", down_sql="DROP TABLE t2;\n")

    assert runner.invoke(cli, ["init"]).exit_code == 0

    failed = runner.invoke(cli, ["up"])
    assert failed.exit_code == 1
    assert "Error:" in failed.output
    assert _state(db_file) == VersionState(version=1, dirty=True)
    assert _table_names(db_file) == {"t1"}

    version_result = runner.invoke(cli, ["version"])
    assert "00001 (dirty)" in version_result.output

    blocked = runner.invoke(cli, ["up"])
    assert blocked.exit_code == 1
    assert "dirty" in blocked.output
    assert _table_names(db_file) == {"t1"}

    (migrations_dir / "00002_broken.up.sql").write_text("CREATE TABLE t2 (id INTEGER);\n", encoding="utf-8")
    force_result = runner.invoke(cli, ["force", "1"])
    assert force_result.exit_code == 0, force_result.output
    assert _state(db_file) == VersionState(version=1, dirty=False)

    retry = runner.invoke(cli, ["up"])
    assert retry.exit_code == 0, retry.output
    assert _state(db_file) == VersionState(version=3, dirty=False)
    assert _table_names(db_file) == {"t1", "t2", "t3"}


def test_cli_requires_init(project: dict[str, Path]) -> None:
    """Running before init fails with guidance."""
    runner = CliRunner()
    _write_table_migrations(project["migrations_dir"], [1])

    result = runner.invoke(cli, ["up"])

    assert result.exit_code == 1
    assert "sqlmigrate init" in result.output


@pytest.mark.parametrize("args", [["up"], ["down"], ["version"], ["force", "1"], ["unlock"]])
def test_cli_missing_database_not_created(project: dict[str, Path], args: list[str]) -> None:
    """Commands other than init refuse a missing database without creating it."""
    _write_table_migrations(project["migrations_dir"], [1])

    result = CliRunner().invoke(cli, args)

    assert result.exit_code == 1
    assert "does not exist" in " ".join(result.output.split())
    assert not project["db_file"].exists()
    assert not project["db_file"].parent.exists()


@pytest.mark.parametrize("args", [["up"], ["init"], ["version"], ["force", "1"], ["unlock"], ["list"]])
def test_cli_unopenable_database_reported(project: dict[str, Path], tmp_path: Path, args: list[str]) -> None:
    """A database path that cannot be opened is reported, not just an exit code."""
    _write_table_migrations(project["migrations_dir"], [1])
    not_a_database = tmp_path / "a_directory"
    not_a_database.mkdir()

    result = CliRunner().invoke(cli, ["--db-file", str(not_a_database), *args])

    assert result.exit_code == 1
    assert "Error:" in result.output


def test_cli_init_twice(project: dict[str, Path]) -> None:
    """A second init is an error."""
    runner = CliRunner()

    assert runner.invoke(cli, ["init"]).exit_code == 0
    result = runner.invoke(cli, ["init"])

    assert result.exit_code == 1
    assert "already initialized" in result.output


def test_cli_dry_run(project: dict[str, Path]) -> None:
    """--dry-run shows the plan without touching the database."""
    runner = CliRunner()
    _write_table_migrations(project["migrations_dir"], [1, 2])
    assert runner.invoke(cli, ["init"]).exit_code == 0

    result = runner.invoke(cli, ["up", "--dry-run"])

    assert result.exit_code == 0, result.output
    assert "00002_create_t2.up.sql" in result.output
    assert _state(project["db_file"]).version == 0
    assert _table_names(project["db_file"]) == set()


def test_cli_conflicting_bounds(project: dict[str, Path]) -> None:
    """--steps and --to cannot be combined."""
    result = CliRunner().invoke(cli, ["down", "--steps", "1", "--to", "0"])

    assert result.exit_code == 2
    assert "only one of" in result.output


def test_cli_create_and_list(project: dict[str, Path]) -> None:
    """create writes an empty pair; list shows it as pending."""
    runner = CliRunner()

    created = runner.invoke(cli, ["create", "add users"])
    assert created.exit_code == 0, created.output
    assert (project["migrations_dir"] / "00001_add_users.up.sql").exists()
    assert (project["migrations_dir"] / "00001_add_users.down.sql").exists()

    second = runner.invoke(cli, ["create", "add_email"])
    assert second.exit_code == 0, second.output
    assert (project["migrations_dir"] / "00002_add_email.up.sql").exists()

    listed = runner.invoke(cli, ["list"])
    assert listed.exit_code == 0, listed.output
    assert "add_users" in listed.output
    assert "pending" in listed.output

    duplicate = runner.invoke(cli, ["create", "again", "--version", "2"])
    assert duplicate.exit_code == 1
    assert "already exists" in duplicate.output


def test_cli_db_file_override(project: dict[str, Path], tmp_path: Path) -> None:
    """--db-file and path agree; the override wins over the config file."""
    runner = CliRunner()
    other = tmp_path / "other.sqlite"

    result = runner.invoke(cli, ["--db-file", str(other), "path"])
    assert result.exit_code == 0, result.output
    assert result.output.strip() == str(other.resolve())

    env_result = runner.invoke(cli, ["path"], env={"SQLMIGRATE_DB_FILE": str(other)})
    assert env_result.output.strip() == str(other.resolve())


def test_cli_drop(project: dict[str, Path]) -> None:
    """drop removes the database file."""
    runner = CliRunner()
    assert runner.invoke(cli, ["init"]).exit_code == 0

    result = runner.invoke(cli, ["drop", "--yes"])

    assert result.exit_code == 0, result.output
    assert not project["db_file"].exists()


def test_cli_unlock(project: dict[str, Path]) -> None:
    """unlock clears a lock left behind and unblocks runs."""
    runner = CliRunner()
    _write_table_migrations(project["migrations_dir"], [1])
    assert runner.invoke(cli, ["init"]).exit_code == 0

    with closing(open_database(project["db_file"])) as conn:
        conn.execute(
            "INSERT INTO schema_migrations_lock (id, owner, acquired_at) VALUES (1, 'crashed:42', 'earlier')"
        )

    blocked = runner.invoke(cli, ["up"])
    assert blocked.exit_code == 1
    assert "crashed:42" in blocked.output

    unlocked = runner.invoke(cli, ["unlock"])
    assert unlocked.exit_code == 0, unlocked.output
    assert "crashed:42" in unlocked.output

    assert runner.invoke(cli, ["up"]).exit_code == 0
    assert _state(project["db_file"]).version == 1


def test_cli_doctor(project: dict[str, Path]) -> None:
    """doctor reports state and unpaired files."""
    runner = CliRunner()
    _write_table_migrations(project["migrations_dir"], [1])
    _write_migration(project["migrations_dir"], 2, "half", down_sql=None)
    assert runner.invoke(cli, ["init"]).exit_code == 0

    result = runner.invoke(cli, ["doctor"])

    assert result.exit_code == 0, result.output
    assert "Version State" in result.output
    assert "clean" in result.output
    assert "has no down migration" in result.output


def test_cli_help(project: dict[str, Path]) -> None:
    """help lists the commands."""
    result = CliRunner().invoke(cli, ["help"])

    assert result.exit_code == 0
    for command in ("init", "up", "down", "force", "create"):
        assert command in result.output


@REQUIRES_SQLITE3
def test_cli_sqlite3_shell_executor(tmp_path: Path, monkeypatch) -> None:
    """Runs migrations through the sqlite3 command-line shell."""
    runner = CliRunner()
    db_file = tmp_path / "app.sqlite"
    migrations_dir = tmp_path / "migrations"
    config_path = tmp_path / "sqlmigrate.toml"
    _write_config(config_path, db_file, migrations_dir, executor_kind="sqlite3-cli")
    _write_table_migrations(migrations_dir, [1, 2])
    monkeypatch.setenv("SQLMIGRATE_CONFIG", str(config_path))
    monkeypatch.delenv("SQLMIGRATE_DB_FILE", raising=False)

    assert runner.invoke(cli, ["init"]).exit_code == 0
    result = runner.invoke(cli, ["up"])

    assert result.exit_code == 0, result.output
    assert _table_names(db_file) == {"t1", "t2"}
    assert _state(db_file).version == 2
