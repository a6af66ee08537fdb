"""Migrate command handler for sqlmigrate."""

import logging
import sqlite3
from contextlib import closing

from rich.console import Console

from ..config import Config
from ..constants import Direction, PlanMode
from ..display import display_plan, display_run_result
from ..engine import DirtyStateError, ExecutionError, MigrationEngine, MigrationResult, StalePlanError
from ..error_guidance import GuidanceProvider, print_error
from ..executor import Executor, ExecutorUnavailableError, SqliteExecutor, SqliteShellExecutor
from ..planner import MigrationPlan, MigrationPlanner, PlanRequest
from ..repository import DiscoveryError, MigrationRepository
from ..utils import format_version
from ..version_store import LockError, NotInitializedError, VersionStore, VersionStoreError
from .database import connect

logger = logging.getLogger(__name__)


def build_executor(config: Config, connection: sqlite3.Connection) -> Executor:
    """
    Create the executor selected in the config.

    Args:
        config: Application configuration
        connection: Open connection to the target database (used by the builtin executor)

    Returns:
        Executor instance
    """
    if config.uses_sqlite3_cli:
        return SqliteShellExecutor(
            config.db_file,
            binary=config.executor.sqlite3_binary,
            timeout=config.executor.timeout,
        )
    return SqliteExecutor(connection)


def describe_request(request: PlanRequest) -> str:
    """Short human-readable form of a plan request."""
    if request.mode == PlanMode.ALL:
        return "all"
    if request.mode == PlanMode.STEP:
        return f"{request.steps} step" + ("s" if request.steps != 1 else "")
    return f"to {format_version(request.target)}"


class MigrateHandler:
    """Handles up/down migration runs."""

    def __init__(self, config: Config, console: Console):
        """
        Initialize migrate handler.

        Args:
            config: Application configuration
            console: Rich console for output
        """
        self.config = config
        self.console = console
        self.repository = MigrationRepository(config.migrations_dir, config.version_width)
        self.planner = MigrationPlanner(self.repository)

    def migrate(
        self,
        direction: Direction,
        request: PlanRequest,
        dry_run: bool = False,
    ) -> MigrationResult | MigrationPlan:
        """
        Migrate the database up or down.

        Args:
            direction: Up or down
            request: Step count, all, or target version
            dry_run: Only show the plan

        Returns:
            MigrationPlan when dry_run, otherwise MigrationResult

        Raises:
            NotInitializedError: If the database or its version table is missing
            DirtyStateError: If the database is dirty
            StalePlanError: If another run moved the version after planning
            DiscoveryError: If migration files are unreadable or inconsistent
            ExecutionError: If a script fails
            ExecutorUnavailableError: If the sqlite3 shell is configured but missing
            LockError: If another run holds the lock
            VersionStoreError: If the database cannot be opened or read
        """
        width = self.config.version_width

        with closing(connect(self.config, self.console)) as conn:
            store = VersionStore(conn)

            try:
                state = store.read()
                if state.dirty:
                    raise DirtyStateError(state.version)

                self.console.print(
                    f"Migrating {direction.value} ({describe_request(request)}). "
                    f"Current version: {format_version(state.version, width)}"
                )
                plan = self.planner.plan(direction, state.version, request)

                if dry_run:
                    display_plan(plan, self.console, width)
                    return plan

                executor = build_executor(self.config, conn)
                if isinstance(executor, SqliteShellExecutor) and not executor.is_available():
                    raise ExecutorUnavailableError(f"{executor.binary} not found in PATH")

                engine = MigrationEngine(store, executor, self.console)
                result = engine.run(plan)
            except NotInitializedError as e:
                print_error(self.console, e, GuidanceProvider.get_not_initialized(str(self.config.db_file)))
                raise
            except DirtyStateError as e:
                print_error(self.console, e, GuidanceProvider.get_dirty_state(e.version))
                raise
            except StalePlanError as e:
                print_error(self.console, e)
                raise
            except DiscoveryError as e:
                guidance = GuidanceProvider.get_discovery_failed(str(self.config.migrations_dir))
                print_error(self.console, e, guidance)
                raise
            except ExecutionError as e:
                guidance = GuidanceProvider.get_execution_failed(
                    e.migration.filename,
                    e.migration.direction,
                    e.stored_version,
                    e.unavailable,
                )
                print_error(self.console, e, guidance)
                raise
            except ExecutorUnavailableError as e:
                guidance = GuidanceProvider.get_sqlite3_not_found(self.config.executor.sqlite3_binary)
                print_error(self.console, e, guidance)
                raise
            except LockError as e:
                guidance = GuidanceProvider.get_lock_held(store.lock_holder() or "another process")
                print_error(self.console, e, guidance)
                raise
            except VersionStoreError as e:
                print_error(self.console, e)
                raise

        display_run_result(result, self.console, width)
        return result
