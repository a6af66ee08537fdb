"""Database executors: run a raw migration script against the target database."""

import logging
import sqlite3
import subprocess
from abc import ABC, abstractmethod
from pathlib import Path

from .constants import SQLITE3_DEFAULT_BINARY, SQLITE3_DEFAULT_TIMEOUT
from .utils import check_command_exists, run_command

logger = logging.getLogger(__name__)


class ScriptExecutionError(Exception):
    """
    Raised when the database rejects a migration script.

    The message carries the database's own error text (sqlite3 exception
    message or sqlite3 shell stderr).
    """

    pass


class ExecutorUnavailableError(Exception):
    """
    Raised when the script could not be handed to the database at all.

    Examples: the sqlite3 shell is not installed, the shell timed out, or
    the connection has been closed.
    """

    pass


class Executor(ABC):
    """Executes raw script text. Never inspects the script."""

    @abstractmethod
    def execute(self, script: str) -> None:
        """
        Execute a script against the target database.

        Args:
            script: Raw SQL script text

        Raises:
            ScriptExecutionError: If the script fails
            ExecutorUnavailableError: If the database cannot be reached
        """
        pass

    @abstractmethod
    def description(self) -> str:
        """Return a human-readable description of this executor."""
        pass


class SqliteExecutor(Executor):
    """Runs scripts in-process through sqlite3.Connection.executescript."""

    def __init__(self, connection: sqlite3.Connection):
        self.conn = connection

    def description(self) -> str:
        """Return executor description."""
        return "builtin sqlite3 module"

    def execute(self, script: str) -> None:
        """Run the script with executescript."""
        try:
            self.conn.executescript(script)
        except sqlite3.ProgrammingError as e:
            # Closed connection and similar misuse, not a script failure
            raise ExecutorUnavailableError(f"SQLite connection unusable: {e}") from e
        except sqlite3.Error as e:
            # A script that failed after its own BEGIN leaves the transaction open
            if self.conn.in_transaction:
                self.conn.rollback()
            raise ScriptExecutionError(str(e)) from e


class SqliteShellExecutor(Executor):
    """Runs scripts through the sqlite3 command-line shell, one process per script."""

    def __init__(
        self,
        db_file: Path,
        binary: str = SQLITE3_DEFAULT_BINARY,
        timeout: float = SQLITE3_DEFAULT_TIMEOUT,
    ):
        """
        Initialize shell executor.

        Args:
            db_file: Database file passed to the shell
            binary: sqlite3 executable name or path
            timeout: Seconds to wait for one script
        """
        self.db_file = db_file
        self.binary = binary
        self.timeout = timeout

    def description(self) -> str:
        """Return executor description."""
        return f"{self.binary} command-line shell"

    def is_available(self) -> bool:
        """Return True when the sqlite3 binary can be found."""
        return check_command_exists(self.binary)

    def execute(self, script: str) -> None:
        """Pipe the script into `sqlite3 -bail <db_file>`."""
        cmd = [self.binary, "-bail", str(self.db_file)]
        try:
            result = run_command(cmd, input_text=script, check=False, timeout=self.timeout)
        except FileNotFoundError as e:
            raise ExecutorUnavailableError(f"{self.binary} not found in PATH") from e
        except subprocess.TimeoutExpired as e:
            raise ExecutorUnavailableError(f"{self.binary} timed out after {self.timeout}s") from e
        except OSError as e:
            raise ExecutorUnavailableError(f"Failed to start {self.binary}: {e}") from e

        if result.returncode != 0:
            details = (result.stderr or result.stdout or "").strip()
            raise ScriptExecutionError(details or f"{self.binary} exited with code {result.returncode}")

        logger.debug(f"{self.binary} finished script for {self.db_file}")
