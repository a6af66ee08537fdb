"""Selection of the migrations a run applies, and the version each one leaves behind."""

from collections.abc import Iterable
from dataclasses import dataclass, field

from .constants import Direction, PlanMode
from .repository import DiscoveryError, MigrationFile, MigrationRepository


@dataclass(frozen=True)
class PlanRequest:
    """How far to migrate: a number of steps, everything, or up to a target version."""

    mode: PlanMode = PlanMode.ALL
    steps: int = 1
    target: int | None = None

    def __post_init__(self) -> None:
        if self.mode == PlanMode.STEP and self.steps < 1:
            raise ValueError(f"Step count must be >= 1, got {self.steps}")
        if self.mode == PlanMode.TO:
            if self.target is None:
                raise ValueError("A target version is required")
            if self.target < 0:
                raise ValueError(f"Target version must be >= 0, got {self.target}")

    @classmethod
    def step(cls, steps: int = 1) -> "PlanRequest":
        return cls(mode=PlanMode.STEP, steps=steps)

    @classmethod
    def all(cls) -> "PlanRequest":
        return cls(mode=PlanMode.ALL)

    @classmethod
    def to(cls, target: int) -> "PlanRequest":
        return cls(mode=PlanMode.TO, target=target)


@dataclass(frozen=True)
class PlanStep:
    """One migration in a plan.

    run_script is False for the version-only step that lands a down-to-target
    run exactly on its target without reverting that migration.
    """

    migration: MigrationFile
    resulting_version: int
    run_script: bool = True


@dataclass
class MigrationPlan:
    """Ordered steps for one invocation. Never persisted."""

    direction: Direction
    start_version: int
    steps: list[PlanStep] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.steps

    @property
    def final_version(self) -> int:
        """Version the store holds once every step has run."""
        return self.steps[-1].resulting_version if self.steps else self.start_version

    def __len__(self) -> int:
        return len(self.steps)

    def __iter__(self):
        return iter(self.steps)


def _plan_up(current: int, request: PlanRequest, migrations: list[MigrationFile]) -> list[PlanStep]:
    steps = []
    for migration in migrations:
        if migration.version <= current:
            continue
        if request.mode == PlanMode.TO and migration.version > request.target:
            break
        steps.append(PlanStep(migration, migration.version))
        if request.mode == PlanMode.STEP and len(steps) == request.steps:
            break
    return steps


def _plan_down(current: int, request: PlanRequest, migrations: list[MigrationFile]) -> list[PlanStep]:
    steps: list[PlanStep] = []
    for migration in migrations:
        if migration.version > current:
            continue
        if request.mode == PlanMode.TO and migration.version <= request.target:
            # Snap to target: that migration stays applied, only the version moves
            last_version = steps[-1].resulting_version if steps else current
            if last_version != request.target:
                steps.append(PlanStep(migration, request.target, run_script=False))
            break
        steps.append(PlanStep(migration, migration.version - 1))
        if request.mode == PlanMode.STEP and len(steps) == request.steps:
            break
    return steps


def plan(
    direction: Direction,
    current: int,
    request: PlanRequest,
    migrations: Iterable[MigrationFile],
) -> MigrationPlan:
    """
    Compute the ordered steps that move the database from current towards the request.

    Args:
        direction: Up or down
        current: Stored version
        request: Step count, all, or target version
        migrations: Available migrations for the direction (any order)

    Returns:
        MigrationPlan, empty when current is already at or past the bound
    """
    ordered = sorted(migrations, key=lambda m: m.version, reverse=direction == Direction.DOWN)
    result = MigrationPlan(direction=direction, start_version=current)

    if request.mode == PlanMode.TO:
        if direction == Direction.UP and request.target <= current:
            return result
        if direction == Direction.DOWN and request.target >= current:
            return result

    if direction == Direction.UP:
        result.steps = _plan_up(current, request, ordered)
    else:
        result.steps = _plan_down(current, request, ordered)
    return result


class MigrationPlanner:
    """Plans runs against a repository, checking that counterparts exist where needed."""

    def __init__(self, repository: MigrationRepository):
        self.repository = repository

    def plan(self, direction: Direction, current: int, request: PlanRequest) -> MigrationPlan:
        """
        Plan a run from the repository's current listing.

        Args:
            direction: Up or down
            current: Stored version
            request: Step count, all, or target version

        Returns:
            MigrationPlan

        Raises:
            DiscoveryError: If the directory is unreadable, or a migration in the
                covered range has no file for the requested direction
        """
        result = plan(direction, current, request, self.repository.list(direction))
        self._check_counterparts(result, request)
        return result

    def _check_counterparts(self, result: MigrationPlan, request: PlanRequest) -> None:
        """Fail when the plan would silently skip a migration missing in this direction."""
        if result.is_empty:
            return

        if result.direction == Direction.UP:
            low, high = result.start_version, result.final_version
        else:
            low, high = result.final_version, result.start_version

        planned = {step.migration.version for step in result}
        opposite = Direction.DOWN if result.direction == Direction.UP else Direction.UP
        for version in sorted(self.repository.versions(opposite)):
            if low < version <= high and version not in planned:
                counterpart = self.repository.get(version, opposite)
                raise DiscoveryError(
                    f"Missing {result.direction.value} migration for version {version} "
                    f"({counterpart.filename if counterpart else version} has no counterpart)"
                )
