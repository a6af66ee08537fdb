"""Migration engine: applies a plan step by step and maintains the dirty flag."""

import logging
from dataclasses import dataclass, field

from rich.console import Console

from .constants import Direction
from .executor import Executor, ExecutorUnavailableError, ScriptExecutionError
from .planner import MigrationPlan, PlanStep
from .repository import MigrationFile
from .utils import format_version
from .version_store import VersionStore

logger = logging.getLogger(__name__)


class DirtyStateError(Exception):
    """
    Raised when a run is attempted while the stored state is dirty.

    A previous run failed part-way. The schema may be half-migrated, so no
    further steps run until the version is forced by hand.
    """

    def __init__(self, version: int):
        self.version = version
        super().__init__(
            f"Database is dirty at version {format_version(version)}. "
            f"Fix the schema by hand, then run 'sqlmigrate force <version>'"
        )


class StalePlanError(Exception):
    """
    Raised when the stored version moved between planning and running.

    Another run migrated the database after this plan was computed. Nothing
    is applied; planning again from the new version is safe.
    """

    def __init__(self, planned_version: int, stored_version: int):
        self.planned_version = planned_version
        self.stored_version = stored_version
        super().__init__(
            f"Plan was computed from version {format_version(planned_version)} but the database "
            f"is now at version {format_version(stored_version)}. Run the command again"
        )


class ExecutionError(Exception):
    """
    Raised when a migration script fails.

    The store has been marked dirty and every later step of the plan was
    abandoned. The original executor error is chained as __cause__.
    `stored_version` is the version the store still holds, the last step
    that finished. `unavailable` tells a database that could not be reached
    apart from a script the database rejected.
    """

    def __init__(
        self,
        migration: MigrationFile,
        details: str,
        stored_version: int,
        unavailable: bool = False,
    ):
        self.migration = migration
        self.details = details
        self.stored_version = stored_version
        self.unavailable = unavailable
        super().__init__(
            f"Migration {migration.filename} ({migration.direction.value}, "
            f"version {migration.version}) failed: {details}"
        )


@dataclass
class MigrationResult:
    """Outcome of one engine run."""

    start_version: int
    final_version: int
    applied: list[PlanStep] = field(default_factory=list)

    @property
    def applied_count(self) -> int:
        return len(self.applied)


class MigrationEngine:
    """Runs plans against an executor, checkpointing the version after every step."""

    def __init__(self, store: VersionStore, executor: Executor, console: Console | None = None):
        """
        Initialize migration engine.

        Args:
            store: Version store of the target database
            executor: Executor that runs the scripts
            console: Rich console for progress output (silent when None)
        """
        self.store = store
        self.executor = executor
        self.console = console

    def _print(self, message: str) -> None:
        if self.console is not None:
            self.console.print(message)

    def run(self, plan: MigrationPlan) -> MigrationResult:
        """
        Apply a plan.

        Args:
            plan: Steps to apply, in order

        Returns:
            MigrationResult with the steps that ran

        Raises:
            DirtyStateError: If the store is dirty (no step runs)
            StalePlanError: If the stored version is no longer the plan's start version
            ExecutionError: If a script fails (store is left dirty)
            NotInitializedError: If the version table does not exist
            LockError: If another process is migrating the same database
        """
        with self.store.lock():
            state = self.store.read()
            if state.dirty:
                raise DirtyStateError(state.version)
            if state.version != plan.start_version:
                raise StalePlanError(plan.start_version, state.version)

            result = MigrationResult(start_version=plan.start_version, final_version=plan.start_version)
            if plan.is_empty:
                logger.debug(f"Nothing to apply at version {state.version}")
                return result

            for step in plan:
                self._apply(step, result.final_version)
                result.applied.append(step)
                result.final_version = step.resulting_version

            logger.info(
                f"Applied {result.applied_count} step(s), "
                f"version {result.start_version} -> {result.final_version}"
            )
            return result

    def _apply(self, step: PlanStep, stored_version: int) -> None:
        migration = step.migration

        if not step.run_script:
            self._print(f"  Setting version to {format_version(step.resulting_version)}")
            self.store.set_version(step.resulting_version)
            return

        verb = "Applying" if migration.direction == Direction.UP else "Reverting"
        self._print(
            f"  {verb} migration {migration.filename} "
            f"(new version: {format_version(step.resulting_version)})"
        )
        logger.info(f"{verb} {migration.filename} via {self.executor.description()}")

        try:
            script = migration.read_script()
            self.executor.execute(script)
        except (ScriptExecutionError, ExecutorUnavailableError, OSError, UnicodeDecodeError) as e:
            logger.error(f"Migration {migration.filename} failed: {e}")
            self.store.set_dirty(True)
            raise ExecutionError(
                migration,
                str(e),
                stored_version,
                unavailable=isinstance(e, ExecutorUnavailableError),
            ) from e

        self.store.set_version(step.resulting_version)

    def force_version(self, version: int) -> None:
        """
        Overwrite the stored version and clear the dirty flag.

        Bypasses planning and execution entirely. Meant for manual recovery.

        Args:
            version: Version to record

        Raises:
            ValueError: If version is negative
            NotInitializedError: If the version table does not exist
        """
        self.store.force(version)
        self._print(f"Version forced to {format_version(version)}, dirty flag cleared")
