"""Create and list command handlers for sqlmigrate."""

from contextlib import closing
from pathlib import Path

from rich.console import Console

from ..config import Config
from ..constants import Direction
from ..display import display_migrations_table
from ..error_guidance import GuidanceProvider, print_error
from ..repository import DiscoveryError, MigrationFile, MigrationRepository
from ..version_store import VersionStore, VersionStoreError
from .database import connect


class CreateHandler:
    """Handles migration file creation and listing."""

    def __init__(self, config: Config, console: Console):
        """
        Initialize create handler.

        Args:
            config: Application configuration
            console: Rich console for output
        """
        self.config = config
        self.console = console
        self.repository = MigrationRepository(config.migrations_dir, config.version_width)

    def create(self, name: str, version: int | None = None) -> tuple[Path, Path]:
        """
        Create an empty up/down migration pair.

        Args:
            name: Migration name
            version: Explicit version (defaults to latest + 1)

        Returns:
            Tuple of (up_path, down_path)

        Raises:
            DiscoveryError: If the files would collide with existing migrations
            ValueError: If the name or version is invalid
        """
        try:
            up_path, down_path = self.repository.create(name, version)
        except DiscoveryError as e:
            print_error(self.console, e, GuidanceProvider.get_discovery_failed(str(self.config.migrations_dir)))
            raise
        except ValueError as e:
            print_error(self.console, e)
            raise

        self.console.print(f"[green]✓[/green] Created {up_path}")
        self.console.print(f"[green]✓[/green] Created {down_path}")
        return up_path, down_path

    def list_migrations(self) -> list[MigrationFile]:
        """
        Show available up migrations and whether each is applied.

        The stored version is read when the database exists; otherwise every
        migration is shown as pending.

        Returns:
            Up migrations, ascending

        Raises:
            DiscoveryError: If migration files are unreadable or inconsistent
            VersionStoreError: If the database cannot be read
        """
        try:
            ups = self.repository.list(Direction.UP)
            down_versions = self.repository.versions(Direction.DOWN)
        except DiscoveryError as e:
            print_error(self.console, e, GuidanceProvider.get_discovery_failed(str(self.config.migrations_dir)))
            raise

        if not ups:
            self.console.print(f"No migrations in {self.config.migrations_dir}.")
            return ups

        current = 0
        if self.config.db_file.exists():
            with closing(connect(self.config, self.console)) as conn:
                try:
                    current = VersionStore(conn).current_version()
                except VersionStoreError as e:
                    print_error(self.console, e)
                    raise

        display_migrations_table(ups, down_versions, current, self.console, self.config.version_width)
        return ups
