"""Database command handler for sqlmigrate: bootstrap, drop, version and force."""

import logging
import sqlite3
from contextlib import closing

from rich.console import Console

from ..config import Config
from ..display import display_status
from ..engine import MigrationEngine
from ..error_guidance import GuidanceProvider, print_error
from ..executor import SqliteExecutor
from ..utils import format_version, prompt_confirm
from ..version_store import (
    AlreadyInitializedError,
    NotInitializedError,
    VersionState,
    VersionStore,
    VersionStoreError,
    open_database,
)

logger = logging.getLogger(__name__)


def connect(config: Config, console: Console, must_exist: bool = True) -> sqlite3.Connection:
    """
    Open the configured database, reporting failures on the console.

    Args:
        config: Application configuration
        console: Rich console for error output
        must_exist: Refuse to create a missing database file

    Returns:
        Open connection

    Raises:
        NotInitializedError: If must_exist and the database file is missing
        VersionStoreError: If the database cannot be opened
    """
    db_file = config.db_file
    try:
        if must_exist and not db_file.exists():
            raise NotInitializedError(f"Database {db_file} does not exist, run 'sqlmigrate init' first")
        return open_database(db_file)
    except NotInitializedError as e:
        print_error(console, e, GuidanceProvider.get_not_initialized(str(db_file)))
        raise
    except VersionStoreError as e:
        print_error(console, e)
        raise


class DatabaseHandler:
    """Handles version-table bootstrap and manual state changes."""

    def __init__(self, config: Config, console: Console):
        """
        Initialize database handler.

        Args:
            config: Application configuration
            console: Rich console for output
        """
        self.config = config
        self.console = console

    def _report(self, error: VersionStoreError) -> None:
        if isinstance(error, NotInitializedError):
            print_error(self.console, error, GuidanceProvider.get_not_initialized(str(self.config.db_file)))
        else:
            print_error(self.console, error)

    def init(self) -> None:
        """
        Create the version table with version 0.

        Raises:
            AlreadyInitializedError: If the table already has its row
            VersionStoreError: If the database cannot be opened or written
        """
        db_file = self.config.db_file
        self.console.print(f"Creating database: {db_file}")

        with closing(connect(self.config, self.console, must_exist=False)) as conn:
            try:
                VersionStore(conn).initialize()
            except AlreadyInitializedError as e:
                print_error(self.console, e)
                raise
            except VersionStoreError as e:
                self._report(e)
                raise

        self.console.print(f"[green]✓[/green] Database {db_file} created OK")

    def drop(self, yes: bool) -> bool:
        """
        Delete the database file.

        Args:
            yes: Skip confirmation prompt

        Returns:
            True if the file was removed
        """
        db_file = self.config.db_file
        if not db_file.exists():
            self.console.print(f"Database {db_file} does not exist.")
            return False

        if not yes and not prompt_confirm(f"Delete database {db_file}?", default=False):
            self.console.print("Drop cancelled.")
            return False

        db_file.unlink()
        logger.info(f"Removed database {db_file}")
        self.console.print(f"[green]✓[/green] Removed {db_file}")
        return True

    def status(self) -> VersionState:
        """
        Print and return the stored version and dirty flag.

        Raises:
            NotInitializedError: If the database or its version table is missing
            VersionStoreError: If the database cannot be read
        """
        with closing(connect(self.config, self.console)) as conn:
            try:
                state = VersionStore(conn).read()
            except VersionStoreError as e:
                self._report(e)
                raise

        display_status(state, self.console, self.config.version_width)
        return state

    def force(self, version: int) -> None:
        """
        Set the version and clear the dirty flag without running any script.

        Args:
            version: Version to record

        Raises:
            NotInitializedError: If the database or its version table is missing
            VersionStoreError: If the database cannot be written
            ValueError: If version is negative
        """
        with closing(connect(self.config, self.console)) as conn:
            store = VersionStore(conn)
            engine = MigrationEngine(store, SqliteExecutor(conn), self.console)
            try:
                previous = store.read()
                engine.force_version(version)
            except VersionStoreError as e:
                self._report(e)
                raise

        logger.info(
            f"Forced version {format_version(previous.version)} (dirty={previous.dirty}) "
            f"-> {format_version(version)}"
        )

    def unlock(self) -> bool:
        """
        Remove a stale migration lock.

        Returns:
            True if a lock was removed

        Raises:
            NotInitializedError: If the database file is missing
            VersionStoreError: If the lock table cannot be read or written
        """
        with closing(connect(self.config, self.console)) as conn:
            store = VersionStore(conn)
            try:
                holder = store.lock_holder()
                removed = store.unlock()
            except VersionStoreError as e:
                self._report(e)
                raise

        if removed:
            self.console.print(f"[green]✓[/green] Removed migration lock held by {holder}")
        else:
            self.console.print("No migration lock held.")
        return removed
