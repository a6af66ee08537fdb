"""CLI interface for sqlmigrate."""

import sys
from pathlib import Path

# Runtime version check - must be before other imports
if sys.version_info < (3, 11):
    print("Error: sqlmigrate requires Python 3.11 or higher", file=sys.stderr)
    version = f"Python {sys.version_info.major}.{sys.version_info.minor}.{sys.version_info.micro}"
    print(f"Current version: {version}", file=sys.stderr)
    print("\nPlease upgrade your Python installation:", file=sys.stderr)
    print("  https://www.python.org/downloads/", file=sys.stderr)
    sys.exit(1)

import logging

import click
from rich.console import Console

from . import __version__
from .commands import CreateHandler, DatabaseHandler, MigrateHandler
from .config import load_config
from .constants import DB_FILE_ENV_VAR, LOG_DATE_FORMAT, LOG_FORMAT, Direction
from .engine import DirtyStateError, ExecutionError, StalePlanError
from .executor import ExecutorUnavailableError
from .planner import PlanRequest
from .repository import DiscoveryError
from .utils import prompt_confirm
from .version_store import VersionStoreError

console = Console()

# Errors the handlers have already reported; the CLI only sets the exit code
MIGRATION_ERRORS = (
    DirtyStateError,
    ExecutionError,
    StalePlanError,
    DiscoveryError,
    ExecutorUnavailableError,
    VersionStoreError,
)


def _build_request(steps: int | None, to: int | None, run_all: bool, default: PlanRequest) -> PlanRequest:
    """Turn mutually exclusive --steps / --to / --all options into a PlanRequest."""
    chosen = sum([steps is not None, to is not None, run_all])
    if chosen > 1:
        raise click.UsageError("Use only one of --steps, --to and --all")
    if steps is not None:
        return PlanRequest.step(steps)
    if to is not None:
        return PlanRequest.to(to)
    if run_all:
        return PlanRequest.all()
    return default


@click.group()
@click.version_option(version=__version__)
@click.option(
    "--config",
    type=click.Path(exists=True, path_type=Path),
    help="Custom config file path",
)
@click.option(
    "--db-file",
    type=click.Path(path_type=Path),
    envvar=DB_FILE_ENV_VAR,
    help="Database file (overrides config)",
)
@click.option(
    "--migrations-dir",
    type=click.Path(path_type=Path),
    help="Migrations directory (overrides config)",
)
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(
    ctx: click.Context,
    config: Path | None,
    db_file: Path | None,
    migrations_dir: Path | None,
    verbose: bool,
) -> None:
    """sqlmigrate: Apply versioned SQL migrations to a SQLite database."""
    ctx.ensure_object(dict)

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format=LOG_FORMAT,
        datefmt=LOG_DATE_FORMAT,
    )

    # Load configuration
    try:
        loaded = load_config(config)
    except (FileNotFoundError, ValueError, OSError, PermissionError) as e:
        console.print(f"[red]Error:[/red] Configuration: {e}")
        sys.exit(1)

    ctx.obj["config"] = loaded.with_overrides(db_file=db_file, migrations_dir=migrations_dir)


@cli.command("init")
@click.pass_context
def init_db(ctx: click.Context) -> None:
    """
    Initialize the database version table.

    Creates the schema_migrations table holding version 0 and a clear
    dirty flag. Fails if the table has already been initialized.

    Examples:

        \b
        # Initialize the configured database
        sqlmigrate init

        \b
        # Initialize a specific database file
        sqlmigrate --db-file db/test.sqlite init
    """
    handler = DatabaseHandler(ctx.obj["config"], console)

    try:
        handler.init()
    except VersionStoreError:
        sys.exit(1)


@cli.command("drop")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation prompt")
@click.pass_context
def drop_db(ctx: click.Context, yes: bool) -> None:
    """
    Delete the database file.

    Examples:

        \b
        # Delete after confirmation
        sqlmigrate drop

        \b
        # Delete without asking
        sqlmigrate drop --yes
    """
    handler = DatabaseHandler(ctx.obj["config"], console)

    try:
        handler.drop(yes)
    except OSError as e:
        console.print(f"[red]Error:[/red] {e}")
        sys.exit(1)


@cli.command("path")
@click.pass_context
def db_path(ctx: click.Context) -> None:
    """Print the database file path."""
    click.echo(str(ctx.obj["config"].db_file))


@cli.command()
@click.argument("name")
@click.option("--version", "version", type=click.IntRange(min=0), help="Explicit version (default: latest + 1)")
@click.pass_context
def create(ctx: click.Context, name: str, version: int | None) -> None:
    """
    Create an empty up/down migration pair.

    Files are named <version>_<name>.up.sql and <version>_<name>.down.sql,
    with the version zero-padded (00001).

    Examples:

        \b
        # Create the next migration
        sqlmigrate create add_users_table

        \b
        # Create with an explicit version
        sqlmigrate create "add index" --version 10
    """
    handler = CreateHandler(ctx.obj["config"], console)

    try:
        handler.create(name, version)
    except (DiscoveryError, ValueError):
        sys.exit(1)


@cli.command("list")
@click.pass_context
def list_migrations(ctx: click.Context) -> None:
    """
    List available migrations.

    Shows each up migration with whether its down counterpart exists and
    whether it is applied to the database.
    """
    handler = CreateHandler(ctx.obj["config"], console)

    try:
        handler.list_migrations()
    except MIGRATION_ERRORS:
        sys.exit(1)


@cli.command("version")
@click.pass_context
def show_version(ctx: click.Context) -> None:
    """Print the current migration version (and dirty flag)."""
    handler = DatabaseHandler(ctx.obj["config"], console)

    try:
        handler.status()
    except VersionStoreError:
        sys.exit(1)


@cli.command()
@click.option("--steps", "-n", type=click.IntRange(min=1), help="Apply this many migrations")
@click.option("--to", "to", type=click.IntRange(min=0), help="Migrate up to this version")
@click.option("--dry-run", is_flag=True, help="Show the plan without applying it")
@click.pass_context
def up(ctx: click.Context, steps: int | None, to: int | None, dry_run: bool) -> None:
    """
    Apply pending migrations.

    Without options, applies every migration newer than the current version.

    Examples:

        \b
        # Migrate to the latest version
        sqlmigrate up

        \b
        # Apply one migration
        sqlmigrate up --steps 1

        \b
        # Migrate up to version 3
        sqlmigrate up --to 3
    """
    request = _build_request(steps, to, False, PlanRequest.all())
    handler = MigrateHandler(ctx.obj["config"], console)

    try:
        handler.migrate(Direction.UP, request, dry_run=dry_run)
    except MIGRATION_ERRORS:
        sys.exit(1)


@cli.command()
@click.option("--steps", "-n", type=click.IntRange(min=1), help="Revert this many migrations")
@click.option("--to", "to", type=click.IntRange(min=0), help="Migrate down to this version")
@click.option("--all", "run_all", is_flag=True, help="Revert every applied migration")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation prompt for --all")
@click.option("--dry-run", is_flag=True, help="Show the plan without applying it")
@click.pass_context
def down(
    ctx: click.Context,
    steps: int | None,
    to: int | None,
    run_all: bool,
    yes: bool,
    dry_run: bool,
) -> None:
    """
    Revert applied migrations.

    Without options, reverts one migration.

    Examples:

        \b
        # Revert the last migration
        sqlmigrate down

        \b
        # Migrate down to version 1
        sqlmigrate down --to 1

        \b
        # Roll back everything without asking
        sqlmigrate down --all --yes
    """
    request = _build_request(steps, to, run_all, PlanRequest.step(1))

    if run_all and not yes and not dry_run:
        if not prompt_confirm("Revert ALL applied migrations?", default=False):
            console.print("Rollback cancelled.")
            return

    handler = MigrateHandler(ctx.obj["config"], console)

    try:
        handler.migrate(Direction.DOWN, request, dry_run=dry_run)
    except MIGRATION_ERRORS:
        sys.exit(1)


@cli.command()
@click.argument("version", type=click.IntRange(min=0))
@click.pass_context
def force(ctx: click.Context, version: int) -> None:
    """
    Force the migration version without running any script.

    Clears the dirty flag. Use after repairing a failed migration by hand.

    Examples:

        \b
        # Record that the schema matches version 2
        sqlmigrate force 2
    """
    handler = DatabaseHandler(ctx.obj["config"], console)

    try:
        handler.force(version)
    except (VersionStoreError, ValueError):
        sys.exit(1)


@cli.command()
@click.pass_context
def unlock(ctx: click.Context) -> None:
    """Remove a stale migration lock left by a crashed run."""
    handler = DatabaseHandler(ctx.obj["config"], console)

    try:
        handler.unlock()
    except VersionStoreError:
        sys.exit(1)


@cli.command("doctor")
@click.pass_context
def doctor(ctx: click.Context) -> None:
    """
    Run diagnostics and show migration health information.

    Displays configuration paths, verifies the executor, shows the stored
    version state and checks migration files for problems.
    """
    from contextlib import closing

    from rich.markup import escape
    from rich.table import Table

    from .error_guidance import GuidanceProvider
    from .executor import SqliteShellExecutor
    from .repository import MigrationRepository
    from .utils import format_version
    from .version_store import VersionStore, open_database

    config = ctx.obj["config"]

    # Configuration paths section
    console.print("\n[bold]Configuration[/bold]")
    config_table = Table(show_header=False, box=None, padding=(0, 2))
    config_table.add_column("Label", style="dim")
    config_table.add_column("Path")
    config_table.add_column("Status", justify="right")

    config_table.add_row("Config file:", str(config.source) if config.source else "(defaults)", "")
    config_table.add_row(
        "Database file:",
        str(config.db_file),
        "[green]✓[/green]" if config.db_file.exists() else "[yellow]![/yellow]",
    )
    config_table.add_row(
        "Migrations directory:",
        str(config.migrations_dir),
        "[green]✓[/green]" if config.migrations_dir.is_dir() else "[red]✗[/red]",
    )
    console.print(config_table)

    # Executor section
    console.print("\n[bold]Executor[/bold]")
    if config.uses_sqlite3_cli:
        shell = SqliteShellExecutor(config.db_file, binary=config.executor.sqlite3_binary)
        if shell.is_available():
            console.print(f"[green]✓[/green] {shell.description()}")
        else:
            console.print(f"[red]✗[/red] {shell.binary} not found")
            guidance = GuidanceProvider.get_sqlite3_not_found(shell.binary)
            console.print(GuidanceProvider.format_guidance(guidance))
    else:
        console.print("[green]✓[/green] builtin sqlite3 module")

    # Version state section
    console.print("\n[bold]Version State[/bold]")
    if not config.db_file.exists():
        console.print("[yellow]![/yellow] Database does not exist - run 'sqlmigrate init'")
    else:
        try:
            with closing(open_database(config.db_file)) as conn:
                store = VersionStore(conn)
                if not store.is_initialized():
                    console.print("[yellow]![/yellow] Version table missing - run 'sqlmigrate init'")
                else:
                    state = store.read()
                    shown = format_version(state.version, config.version_width)
                    if state.dirty:
                        console.print(f"[red]✗[/red] Version {shown} is dirty - repair and run 'sqlmigrate force'")
                    else:
                        console.print(f"[green]✓[/green] Version {shown}, clean")
                    holder = store.lock_holder()
                    if holder:
                        console.print(f"[yellow]![/yellow] Migration lock held by {holder}")
        except VersionStoreError as e:
            console.print(f"[red]✗[/red] {escape(str(e))}")

    # Migration files section
    console.print("\n[bold]Migration Files[/bold]")
    repository = MigrationRepository(config.migrations_dir, config.version_width)
    try:
        count = len(repository.list(Direction.UP))
        issues = repository.find_unpaired()
    except DiscoveryError as e:
        console.print(f"[red]✗[/red] {e}")
    else:
        if not issues:
            console.print(f"[green]✓[/green] {count} migration(s), all paired")
        else:
            console.print(f"[yellow]![/yellow] Found {len(issues)} issue(s):\n")
            for issue in issues:
                console.print(f"  • {issue}")

    console.print()


@cli.command("help")
@click.pass_context
def show_help(ctx: click.Context) -> None:
    """Print this help."""
    click.echo(ctx.parent.get_help() if ctx.parent else ctx.get_help())


if __name__ == "__main__":
    cli()
