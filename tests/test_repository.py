"""Tests for repository module."""

from pathlib import Path

import pytest

from tests.cli_helpers import _write_migration
from sqlmigrate.constants import Direction
from sqlmigrate.repository import (
    DiscoveryError,
    MigrationRepository,
    parse_migration_filename,
)


class TestParseMigrationFilename:
    """Tests for parse_migration_filename."""

    def test_padded_version(self) -> None:
        """Test parsing a zero-padded file name."""
        migration = parse_migration_filename(Path("/m/00001_create_users.up.sql"))

        assert migration.version == 1
        assert migration.direction == Direction.UP
        assert migration.name == "create_users"
        assert migration.filename == "00001_create_users.up.sql"

    def test_any_width_digit_run(self) -> None:
        """Test that the version is not limited to five digits."""
        migration = parse_migration_filename(Path("20240101120000_add_index.down.sql"))

        assert migration.version == 20240101120000
        assert migration.direction == Direction.DOWN

    def test_name_is_optional(self) -> None:
        """Test a file name without a name part."""
        migration = parse_migration_filename(Path("7.up.sql"))

        assert migration.version == 7
        assert migration.name == ""

    def test_name_may_contain_separators(self) -> None:
        """Test that underscores in the name are kept."""
        migration = parse_migration_filename(Path("3_add_user_email_index.up.sql"))

        assert migration.name == "add_user_email_index"

    @pytest.mark.parametrize(
        "filename",
        ["create_users.up.sql", "v1_create.up.sql", "001-create.up.sql", "001_create.sideways.sql"],
    )
    def test_malformed_names(self, filename: str) -> None:
        """Test that malformed names raise DiscoveryError."""
        with pytest.raises(DiscoveryError, match="Malformed"):
            parse_migration_filename(Path(filename))

    def test_display_version(self) -> None:
        """Test zero-padded display."""
        migration = parse_migration_filename(Path("42_x.up.sql"))

        assert migration.display_version() == "00042"
        assert migration.display_version(3) == "042"


class TestMigrationRepositoryList:
    """Tests for MigrationRepository.list."""

    def test_up_ascending(self, tmp_path: Path) -> None:
        """Test that up migrations are sorted ascending by integer version."""
        for version in (10, 2, 1):
            _write_migration(tmp_path, version, f"m{version}")

        repository = MigrationRepository(tmp_path)

        assert [m.version for m in repository.list(Direction.UP)] == [1, 2, 10]

    def test_down_descending(self, tmp_path: Path) -> None:
        """Test that down migrations are sorted descending."""
        for version in (1, 10, 2):
            _write_migration(tmp_path, version, f"m{version}")

        repository = MigrationRepository(tmp_path)

        assert [m.version for m in repository.list(Direction.DOWN)] == [10, 2, 1]

    def test_integer_not_string_order(self, tmp_path: Path) -> None:
        """Test that unpadded versions compare as integers."""
        (tmp_path / "9_a.up.sql").write_text("", encoding="utf-8")
        (tmp_path / "10_b.up.sql").write_text("", encoding="utf-8")

        repository = MigrationRepository(tmp_path)

        assert [m.version for m in repository.list(Direction.UP)] == [9, 10]

    def test_ignores_unrelated_files(self, tmp_path: Path) -> None:
        """Test that files without a migration suffix are ignored."""
        _write_migration(tmp_path, 1, "init")
        (tmp_path / "README.md").write_text("notes", encoding="utf-8")
        (tmp_path / "seed.sql").write_text("", encoding="utf-8")

        repository = MigrationRepository(tmp_path)

        assert len(repository.list(Direction.UP)) == 1

    def test_empty_directory(self, tmp_path: Path) -> None:
        """Test listing an empty directory."""
        repository = MigrationRepository(tmp_path)

        assert repository.list(Direction.UP) == []
        assert repository.latest_version() == 0

    def test_missing_directory(self, tmp_path: Path) -> None:
        """Test that a missing directory raises DiscoveryError."""
        repository = MigrationRepository(tmp_path / "missing")

        with pytest.raises(DiscoveryError, match="not found"):
            repository.list(Direction.UP)

    def test_duplicate_version(self, tmp_path: Path) -> None:
        """Test that two files with the same version and direction are rejected."""
        (tmp_path / "1_a.up.sql").write_text("", encoding="utf-8")
        (tmp_path / "00001_b.up.sql").write_text("", encoding="utf-8")

        repository = MigrationRepository(tmp_path)

        with pytest.raises(DiscoveryError, match="Duplicate up migration version 1"):
            repository.list(Direction.UP)

    def test_duplicate_only_checked_per_direction(self, tmp_path: Path) -> None:
        """Test that a duplicate down does not block listing ups."""
        (tmp_path / "1_a.up.sql").write_text("", encoding="utf-8")
        (tmp_path / "1_a.down.sql").write_text("", encoding="utf-8")
        (tmp_path / "1_b.down.sql").write_text("", encoding="utf-8")

        repository = MigrationRepository(tmp_path)

        assert len(repository.list(Direction.UP)) == 1
        with pytest.raises(DiscoveryError):
            repository.list(Direction.DOWN)

    def test_read_only(self, tmp_path: Path) -> None:
        """Test that listing does not touch the directory."""
        _write_migration(tmp_path, 1, "init", up_sql="CREATE TABLE a (id INTEGER);")
        before = sorted(p.name for p in tmp_path.iterdir())

        MigrationRepository(tmp_path).list(Direction.UP)

        assert sorted(p.name for p in tmp_path.iterdir()) == before


class TestMigrationRepositoryQueries:
    """Tests for get, versions and find_unpaired."""

    def test_get(self, tmp_path: Path) -> None:
        """Test looking up a single migration."""
        _write_migration(tmp_path, 1, "init", up_sql="SELECT 1;")

        repository = MigrationRepository(tmp_path)
        migration = repository.get(1, Direction.UP)

        assert migration is not None
        assert migration.read_script() == "SELECT 1;"
        assert repository.get(2, Direction.UP) is None

    def test_find_unpaired(self, tmp_path: Path) -> None:
        """Test reporting migrations missing a counterpart."""
        _write_migration(tmp_path, 1, "ok")
        _write_migration(tmp_path, 2, "no_down", down_sql=None)
        _write_migration(tmp_path, 3, "no_up", up_sql=None)

        issues = MigrationRepository(tmp_path).find_unpaired()

        assert issues == [
            "00002_no_down.up.sql has no down migration",
            "00003_no_up.down.sql has no up migration",
        ]


class TestMigrationRepositoryCreate:
    """Tests for MigrationRepository.create."""

    def test_create_first(self, tmp_path: Path) -> None:
        """Test creating the first pair in a new directory."""
        migrations_dir = tmp_path / "migrations"

        up_path, down_path = MigrationRepository(migrations_dir).create("create users")

        assert up_path.name == "00001_create_users.up.sql"
        assert down_path.name == "00001_create_users.down.sql"
        assert up_path.read_text(encoding="utf-8") == ""
        assert down_path.exists()

    def test_create_next_version(self, tmp_path: Path) -> None:
        """Test that new migrations follow the latest version."""
        _write_migration(tmp_path, 7, "seven")

        up_path, _ = MigrationRepository(tmp_path).create("eight")

        assert up_path.name == "00008_eight.up.sql"

    def test_create_explicit_version_and_width(self, tmp_path: Path) -> None:
        """Test an explicit version with a custom width."""
        up_path, _ = MigrationRepository(tmp_path, version_width=3).create("x", version=12)

        assert up_path.name == "012_x.up.sql"

    def test_create_taken_version(self, tmp_path: Path) -> None:
        """Test that an existing version is refused."""
        _write_migration(tmp_path, 2, "two", up_sql=None)

        with pytest.raises(DiscoveryError, match="already exists"):
            MigrationRepository(tmp_path).create("again", version=2)

    def test_create_invalid_name(self, tmp_path: Path) -> None:
        """Test that a name with nothing usable is refused."""
        with pytest.raises(ValueError):
            MigrationRepository(tmp_path).create("  /// ")

    def test_created_files_are_discoverable(self, tmp_path: Path) -> None:
        """Test that created files parse back with the given name."""
        repository = MigrationRepository(tmp_path)
        repository.create("add.index")

        ups = repository.list(Direction.UP)

        assert [(m.version, m.name) for m in ups] == [(1, "add_index")]
