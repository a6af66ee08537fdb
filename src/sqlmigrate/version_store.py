"""Persistent version/dirty state stored inside the migrated database."""

import logging
import os
import socket
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path

from pydantic import BaseModel, Field

from .constants import DB_SINGLETON_ROW_ID, DB_TABLE_MIGRATION_LOCK, DB_TABLE_SCHEMA_MIGRATIONS
from .utils import ensure_dir

logger = logging.getLogger(__name__)

_CREATE_VERSION_TABLE = f"""
CREATE TABLE IF NOT EXISTS {DB_TABLE_SCHEMA_MIGRATIONS} (
    id INTEGER PRIMARY KEY CHECK (id = {DB_SINGLETON_ROW_ID}),
    version INTEGER NOT NULL CHECK (version >= 0),
    dirty INTEGER NOT NULL DEFAULT 0
)
"""

_CREATE_LOCK_TABLE = f"""
CREATE TABLE IF NOT EXISTS {DB_TABLE_MIGRATION_LOCK} (
    id INTEGER PRIMARY KEY CHECK (id = {DB_SINGLETON_ROW_ID}),
    owner TEXT NOT NULL,
    acquired_at TEXT NOT NULL
)
"""


class VersionStoreError(Exception):
    """
    Raised when the version table cannot be read or written.

    Subclasses narrow the failure down to a specific precondition; a bare
    VersionStoreError wraps an underlying sqlite3 error.
    """

    pass


class AlreadyInitializedError(VersionStoreError):
    """Raised when the version table is bootstrapped a second time."""

    pass


class NotInitializedError(VersionStoreError):
    """Raised when the version row is written or read before `init`."""

    pass


class LockError(VersionStoreError):
    """Raised when another process holds the migration lock."""

    pass


class VersionState(BaseModel):
    """The single persisted version record."""

    version: int = Field(default=0, ge=0)
    dirty: bool = False


def open_database(db_file: Path) -> sqlite3.Connection:
    """
    Open a SQLite connection in autocommit mode.

    Every version write is durable as soon as the statement returns, so a
    crash mid-plan leaves the store pointing at the last finished step.

    Args:
        db_file: Path to the SQLite database file

    Returns:
        Open connection

    Raises:
        VersionStoreError: If the database cannot be opened
    """
    try:
        ensure_dir(db_file.parent)
        return sqlite3.connect(str(db_file), isolation_level=None)
    except (OSError, sqlite3.Error) as e:
        raise VersionStoreError(f"Failed to open database {db_file}: {e}") from e


class VersionStore:
    """Reads and writes the schema_migrations singleton row."""

    def __init__(self, connection: sqlite3.Connection):
        """
        Initialize version store.

        Args:
            connection: Connection to the database being migrated
        """
        self.conn = connection

    def _execute(self, sql: str, params: tuple = ()) -> sqlite3.Cursor:
        try:
            return self.conn.execute(sql, params)
        except sqlite3.Error as e:
            raise VersionStoreError(f"Version table query failed: {e}") from e

    def is_initialized(self) -> bool:
        """Return True when the version row exists."""
        table = self._execute(
            "SELECT name FROM sqlite_master WHERE type = 'table' AND name = ?",
            (DB_TABLE_SCHEMA_MIGRATIONS,),
        ).fetchone()
        if table is None:
            return False
        row = self._execute(f"SELECT 1 FROM {DB_TABLE_SCHEMA_MIGRATIONS}").fetchone()
        return row is not None

    def initialize(self) -> None:
        """
        Create the version table and its single row (version=0, dirty=false).

        Raises:
            AlreadyInitializedError: If the row already exists
        """
        if self.is_initialized():
            raise AlreadyInitializedError("Version table is already initialized")

        self._execute(_CREATE_VERSION_TABLE)
        self._execute(_CREATE_LOCK_TABLE)
        try:
            self.conn.execute(
                f"INSERT INTO {DB_TABLE_SCHEMA_MIGRATIONS} (id, version, dirty) VALUES (?, 0, 0)",
                (DB_SINGLETON_ROW_ID,),
            )
        except sqlite3.IntegrityError as e:
            # Another process inserted the row between the check and the insert
            raise AlreadyInitializedError("Version table is already initialized") from e
        except sqlite3.Error as e:
            raise VersionStoreError(f"Failed to initialize version table: {e}") from e
        logger.info("Initialized version table")

    def read(self) -> VersionState:
        """
        Read the version record.

        Returns:
            Current VersionState

        Raises:
            NotInitializedError: If the version row does not exist
        """
        if not self.is_initialized():
            raise NotInitializedError("Database is not initialized, run 'sqlmigrate init' first")
        version, dirty = self._execute(
            f"SELECT COALESCE(version, 0), COALESCE(dirty, 0) FROM {DB_TABLE_SCHEMA_MIGRATIONS} WHERE id = ?",
            (DB_SINGLETON_ROW_ID,),
        ).fetchone()
        return VersionState(version=version, dirty=bool(dirty))

    def current_version(self) -> int:
        """
        Get the persisted version.

        Returns:
            Current version, or 0 if the store is not initialized
        """
        if not self.is_initialized():
            return 0
        return self.read().version

    def is_dirty(self) -> bool:
        """Return the dirty flag (False when not initialized)."""
        if not self.is_initialized():
            return False
        return self.read().dirty

    def _update(self, assignments: str, params: tuple) -> None:
        cursor = self._execute(
            f"UPDATE {DB_TABLE_SCHEMA_MIGRATIONS} SET {assignments} WHERE id = ?",
            (*params, DB_SINGLETON_ROW_ID),
        )
        if cursor.rowcount == 0:
            raise NotInitializedError("Database is not initialized, run 'sqlmigrate init' first")

    def set_version(self, version: int) -> None:
        """
        Overwrite the stored version.

        Args:
            version: New version

        Raises:
            ValueError: If version is negative
            NotInitializedError: If the version row does not exist
        """
        if version < 0:
            raise ValueError(f"Version must be >= 0, got {version}")
        self._update("version = ?", (version,))
        logger.debug(f"Stored version set to {version}")

    def set_dirty(self, dirty: bool) -> None:
        """
        Overwrite the dirty flag.

        Args:
            dirty: New flag value

        Raises:
            NotInitializedError: If the version row does not exist
        """
        self._update("dirty = ?", (int(dirty),))
        logger.debug(f"Stored dirty flag set to {dirty}")

    def force(self, version: int) -> None:
        """
        Clear the dirty flag and overwrite the version in one statement.

        Args:
            version: Version to force

        Raises:
            ValueError: If version is negative
            NotInitializedError: If the version row does not exist
        """
        if version < 0:
            raise ValueError(f"Version must be >= 0, got {version}")
        self._update("version = ?, dirty = 0", (version,))
        logger.info(f"Forced version to {version}")

    @contextmanager
    def lock(self, owner: str | None = None) -> Iterator[None]:
        """
        Hold the database-level migration lock for the duration of the block.

        The lock is a singleton row rather than an open transaction because
        migration scripts may commit on their own.

        Args:
            owner: Description of the lock holder, defaults to host:pid

        Raises:
            LockError: If another holder already has the lock
        """
        owner = owner or f"{socket.gethostname()}:{os.getpid()}"
        self._execute(_CREATE_LOCK_TABLE)
        try:
            self.conn.execute(
                f"INSERT INTO {DB_TABLE_MIGRATION_LOCK} (id, owner, acquired_at) VALUES (?, ?, ?)",
                (DB_SINGLETON_ROW_ID, owner, datetime.now().isoformat(timespec="seconds")),
            )
        except sqlite3.IntegrityError as e:
            holder = self.lock_holder()
            raise LockError(f"Migration lock is held by {holder or 'another process'}") from e
        except sqlite3.Error as e:
            raise VersionStoreError(f"Failed to acquire migration lock: {e}") from e

        logger.debug(f"Acquired migration lock as {owner}")
        try:
            yield
        finally:
            self.unlock()

    def lock_holder(self) -> str | None:
        """Return "<owner> since <time>" for the current lock, or None."""
        table = self._execute(
            "SELECT name FROM sqlite_master WHERE type = 'table' AND name = ?",
            (DB_TABLE_MIGRATION_LOCK,),
        ).fetchone()
        if table is None:
            return None
        row = self._execute(
            f"SELECT owner, acquired_at FROM {DB_TABLE_MIGRATION_LOCK} WHERE id = ?",
            (DB_SINGLETON_ROW_ID,),
        ).fetchone()
        if row is None:
            return None
        return f"{row[0]} since {row[1]}"

    def unlock(self) -> bool:
        """
        Remove the migration lock row.

        Returns:
            True if a lock was removed
        """
        if self.lock_holder() is None:
            return False
        self._execute(f"DELETE FROM {DB_TABLE_MIGRATION_LOCK} WHERE id = ?", (DB_SINGLETON_ROW_ID,))
        logger.debug("Released migration lock")
        return True
