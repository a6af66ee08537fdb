"""Display functions for sqlmigrate CLI output."""

from rich.console import Console
from rich.table import Table

from .constants import DEFAULT_VERSION_WIDTH, Direction
from .engine import MigrationResult
from .planner import MigrationPlan
from .repository import MigrationFile
from .utils import format_version
from .version_store import VersionState


def display_migrations_table(
    ups: list[MigrationFile],
    down_versions: set[int],
    current_version: int,
    console: Console,
    width: int = DEFAULT_VERSION_WIDTH,
) -> None:
    """
    Display available migrations in a table.

    Only up migrations are listed; the Down column shows whether the
    counterpart exists.

    Args:
        ups: Up migrations, ascending
        down_versions: Versions that have a down migration
        current_version: Stored version (migrations at or below it are applied)
        console: Rich console instance for output
        width: Zero-padding width for versions
    """
    table = Table(title="Migrations")
    table.add_column("Version", style="cyan")
    table.add_column("Name", style="magenta")
    table.add_column("Down")
    table.add_column("Status")

    for migration in ups:
        down = "[green]✓[/green]" if migration.version in down_versions else "[red]✗ missing[/red]"
        if migration.version <= current_version:
            status = "[green]applied[/green]"
        else:
            status = "[yellow]pending[/yellow]"
        table.add_row(migration.display_version(width), migration.name or "-", down, status)

    console.print(table)


def display_status(state: VersionState, console: Console, width: int = DEFAULT_VERSION_WIDTH) -> None:
    """
    Display the stored version and dirty flag.

    Args:
        state: Stored version state
        console: Rich console instance for output
        width: Zero-padding width for the version
    """
    version = format_version(state.version, width)
    if state.dirty:
        console.print(f"{version} [red](dirty)[/red]")
    else:
        console.print(version)


def display_plan(plan: MigrationPlan, console: Console, width: int = DEFAULT_VERSION_WIDTH) -> None:
    """
    Display the steps a run would take.

    Args:
        plan: Migration plan
        console: Rich console instance for output
        width: Zero-padding width for versions
    """
    if plan.is_empty:
        console.print(f"No migrations to apply (version {format_version(plan.start_version, width)})")
        return

    verb = "Apply" if plan.direction == Direction.UP else "Revert"
    table = Table(title=f"Plan ({plan.direction.value})")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Action", style="cyan")
    table.add_column("Migration")
    table.add_column("New version", style="green")

    for index, step in enumerate(plan, start=1):
        action = verb if step.run_script else "Set version"
        table.add_row(
            str(index),
            action,
            step.migration.filename,
            format_version(step.resulting_version, width),
        )

    console.print(table)


def display_run_result(result: MigrationResult, console: Console, width: int = DEFAULT_VERSION_WIDTH) -> None:
    """
    Display the outcome of a migration run.

    Args:
        result: Engine result
        console: Rich console instance for output
        width: Zero-padding width for versions
    """
    start = format_version(result.start_version, width)
    final = format_version(result.final_version, width)

    if result.applied_count == 0:
        console.print(f"No migrations to apply (version {final})")
        return

    console.print(
        f"[green]✓[/green] Migration complete: {result.applied_count} step(s), version {start} -> {final}"
    )
