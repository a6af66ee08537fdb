"""Discovery of migration scripts on disk."""

import logging
import re
from pathlib import Path

from pydantic import BaseModel, Field

from .constants import DEFAULT_VERSION_WIDTH, MIGRATION_NAME_SEPARATOR, Direction
from .utils import ensure_dir, format_version, sanitize_migration_name

logger = logging.getLogger(__name__)

# <digits>[_<name>].<up|down>.sql; the digit run has no fixed width
MIGRATION_FILENAME_PATTERN = re.compile(r"^(?P<version>\d+)(?:_(?P<name>.+?))?\.(?P<direction>up|down)\.sql$")


class DiscoveryError(Exception):
    """
    Raised when migration scripts cannot be discovered.

    This exception is raised for:
    - Missing or unreadable migrations directory
    - File names with a migration suffix that don't match <version>_<name>
    - Two files sharing a version in the same direction
    - A migration whose up/down counterpart is missing when that direction is needed
    - Creating a migration that would overwrite an existing file
    """

    pass


class MigrationFile(BaseModel):
    """A single migration script, parsed once at discovery time."""

    version: int = Field(ge=0)
    direction: Direction
    name: str
    path: Path

    @property
    def filename(self) -> str:
        """File name without directory."""
        return self.path.name

    def display_version(self, width: int = DEFAULT_VERSION_WIDTH) -> str:
        """Zero-padded version for output."""
        return format_version(self.version, width)

    def read_script(self) -> str:
        """Read the script text. Only the executor ever looks at it."""
        return self.path.read_text(encoding="utf-8")


def parse_migration_filename(path: Path) -> MigrationFile:
    """
    Parse a migration file name into a MigrationFile.

    Args:
        path: Path to a *.up.sql or *.down.sql file

    Returns:
        Parsed MigrationFile

    Raises:
        DiscoveryError: If the name does not follow <version>_<name>.<direction>.sql
    """
    match = MIGRATION_FILENAME_PATTERN.match(path.name)
    if match is None:
        raise DiscoveryError(
            f"Malformed migration file name: {path.name} "
            f"(expected <version>_<name>.up.sql or <version>_<name>.down.sql)"
        )

    return MigrationFile(
        version=int(match.group("version")),
        direction=Direction(match.group("direction")),
        name=match.group("name") or "",
        path=path,
    )


class MigrationRepository:
    """Read-only view of the migrations directory, plus creation of new pairs."""

    def __init__(self, migrations_dir: Path, version_width: int = DEFAULT_VERSION_WIDTH):
        """
        Initialize migration repository.

        Args:
            migrations_dir: Directory holding the *.up.sql / *.down.sql files
            version_width: Zero-padding width for newly created files
        """
        self.migrations_dir = migrations_dir
        self.version_width = version_width

    def _scan(self, direction: Direction) -> list[MigrationFile]:
        if not self.migrations_dir.is_dir():
            raise DiscoveryError(f"Migrations directory not found: {self.migrations_dir}")

        try:
            candidates = [p for p in self.migrations_dir.iterdir() if p.name.endswith(direction.suffix)]
        except OSError as e:
            raise DiscoveryError(f"Cannot read migrations directory {self.migrations_dir}: {e}") from e

        migrations = [parse_migration_filename(p) for p in candidates if p.is_file()]

        seen: dict[int, MigrationFile] = {}
        for migration in migrations:
            previous = seen.get(migration.version)
            if previous is not None:
                first, second = sorted([previous.filename, migration.filename])
                raise DiscoveryError(
                    f"Duplicate {direction.value} migration version {migration.version}: {first}, {second}"
                )
            seen[migration.version] = migration

        return migrations

    def versions(self, direction: Direction) -> set[int]:
        """Set of available versions in a direction."""
        return {m.version for m in self._scan(direction)}

    def get(self, version: int, direction: Direction) -> MigrationFile | None:
        """
        Get the migration for a version and direction.

        Args:
            version: Migration version
            direction: Up or down

        Returns:
            MigrationFile if found, None otherwise
        """
        for migration in self._scan(direction):
            if migration.version == version:
                return migration
        return None

    def latest_version(self) -> int:
        """Highest up migration version, or 0 if there are none."""
        return max(self.versions(Direction.UP), default=0)

    def find_unpaired(self) -> list[str]:
        """
        Report versions missing their up or down counterpart.

        Returns:
            List of human-readable issues (empty if every migration is paired)
        """
        ups = {m.version: m for m in self._scan(Direction.UP)}
        downs = {m.version: m for m in self._scan(Direction.DOWN)}

        issues = []
        for version in sorted(ups.keys() - downs.keys()):
            issues.append(f"{ups[version].filename} has no down migration")
        for version in sorted(downs.keys() - ups.keys()):
            issues.append(f"{downs[version].filename} has no up migration")
        return issues

    def create(self, name: str, version: int | None = None) -> tuple[Path, Path]:
        """
        Create an empty up/down migration pair.

        Args:
            name: Migration name (sanitized before use)
            version: Explicit version, defaults to the latest version plus one

        Returns:
            Tuple of (up_path, down_path)

        Raises:
            DiscoveryError: If either file, or another file with that version, already exists
            ValueError: If the name is unusable or the version is negative
        """
        slug = sanitize_migration_name(name)
        ensure_dir(self.migrations_dir)

        if version is None:
            version = self.latest_version() + 1
        if version < 0:
            raise ValueError(f"Migration version must be >= 0, got {version}")

        taken = self.versions(Direction.UP) | self.versions(Direction.DOWN)
        if version in taken:
            raise DiscoveryError(f"A migration with version {version} already exists")

        prefix = f"{format_version(version, self.version_width)}{MIGRATION_NAME_SEPARATOR}{slug}"
        up_path = self.migrations_dir / f"{prefix}{Direction.UP.suffix}"
        down_path = self.migrations_dir / f"{prefix}{Direction.DOWN.suffix}"

        for path in (up_path, down_path):
            if path.exists():
                raise DiscoveryError(f"Migration file already exists: {path}")

        up_path.touch()
        down_path.touch()
        logger.info(f"Created migration pair {up_path.name} / {down_path.name}")
        return up_path, down_path

    def list(self, direction: Direction) -> list[MigrationFile]:
        """
        List migrations for a direction.

        Args:
            direction: Up or down

        Returns:
            Migrations sorted by version, ascending for up and descending for down

        Raises:
            DiscoveryError: If the directory is unreadable or a file name is invalid
        """
        migrations = self._scan(direction)
        migrations.sort(key=lambda m: m.version, reverse=direction == Direction.DOWN)
        logger.debug(f"Discovered {len(migrations)} {direction.value} migration(s) in {self.migrations_dir}")
        return migrations
