"""Actionable error guidance for common failure scenarios."""

import platform
from dataclasses import dataclass

from rich.console import Console
from rich.markup import escape

from .constants import Direction
from .utils import format_version


@dataclass
class ErrorGuidance:
    """Structured error guidance with checks and suggestions."""

    title: str
    checks: list[str]  # Things to check
    fixes: list[str]  # How to fix
    examples: list[str] | None = None  # Example commands


class GuidanceProvider:
    """Provides context-aware guidance for errors."""

    @staticmethod
    def get_dirty_state(version: int) -> ErrorGuidance:
        """Guidance when the database is marked dirty."""
        shown = format_version(version)
        return ErrorGuidance(
            title=f"Database is dirty at version {shown}",
            checks=[
                "A previous migration failed part-way; the schema may be half-applied",
                "Inspect the schema: sqlite3 <db_file> .schema",
                "Find which script failed in the output of the previous run",
            ],
            fixes=[
                "Repair the schema by hand (or restore a backup)",
                "Record the version the schema now matches with 'sqlmigrate force'",
            ],
            examples=[f"sqlmigrate force {version}", "sqlmigrate version"],
        )

    @staticmethod
    def get_execution_failed(
        filename: str, direction: Direction, stored_version: int, unavailable: bool
    ) -> ErrorGuidance:
        """Guidance when a migration script fails; stored_version is the last finished step."""
        if unavailable:
            checks = [
                "The database could not be reached, the script was not run",
                "Verify the database file path: sqlmigrate path",
                "Verify the executor is installed: sqlmigrate doctor",
            ]
        else:
            checks = [
                f"Read the error above and the statements in {filename}",
                "Statements before the failing one may already have been applied",
            ]

        return ErrorGuidance(
            title=f"Migration {filename} failed; database marked dirty",
            checks=checks,
            fixes=[
                f"Fix {filename} and undo any partial changes it made",
                f"Force the version the schema now matches (before this script: {stored_version})",
                "Then re-run the migration",
            ],
            examples=[f"sqlmigrate force {stored_version}", f"sqlmigrate {direction.value}"],
        )

    @staticmethod
    def get_not_initialized(db_file: str) -> ErrorGuidance:
        """Guidance when the version table is missing."""
        return ErrorGuidance(
            title="Database has no version table",
            checks=[f"Check the database path is the one you expect: {db_file}"],
            fixes=["Create the version table with 'sqlmigrate init'"],
            examples=["sqlmigrate init", f"sqlmigrate --db-file {db_file} init"],
        )

    @staticmethod
    def get_lock_held(holder: str) -> ErrorGuidance:
        """Guidance when another run holds the migration lock."""
        return ErrorGuidance(
            title=f"Migration lock is held by {holder}",
            checks=[
                "Another sqlmigrate process may be migrating this database",
                "Check running processes: ps aux | grep sqlmigrate",
            ],
            fixes=[
                "Wait for the other run to finish",
                "If that process crashed, remove the stale lock with 'sqlmigrate unlock'",
            ],
            examples=["sqlmigrate unlock"],
        )

    @staticmethod
    def get_sqlite3_not_found(binary: str) -> ErrorGuidance:
        """Guidance when the sqlite3 shell is not installed."""
        os_name = platform.system()

        fixes = {
            "Linux": [
                "Debian/Ubuntu: sudo apt-get install sqlite3",
                "RHEL/CentOS: sudo yum install sqlite",
                "Arch: sudo pacman -S sqlite",
            ],
            "Darwin": ["Homebrew: brew install sqlite", "Or use the system one: /usr/bin/sqlite3"],
            "Windows": [
                "Download from: https://www.sqlite.org/download.html",
                "Or use winget: winget install SQLite.SQLite",
            ],
        }.get(os_name, ["Download from: https://www.sqlite.org/download.html"])

        fixes.append('Or switch to the builtin executor: kind = "builtin" in the executor section')

        return ErrorGuidance(
            title=f"{binary} is not installed or not in PATH",
            checks=[f"Verify {binary} is installed: which {binary}", "Check PATH environment variable"],
            fixes=fixes,
            examples=[f"{binary} --version"],
        )

    @staticmethod
    def get_discovery_failed(migrations_dir: str) -> ErrorGuidance:
        """Guidance when migration files cannot be discovered."""
        return ErrorGuidance(
            title="Could not read migration files",
            checks=[
                f"Directory exists and is readable: ls -l {migrations_dir}",
                "File names follow <version>_<name>.up.sql / <version>_<name>.down.sql",
                "No two files share a version in the same direction",
                "Each up migration has a down migration with the same version",
            ],
            fixes=[
                "Rename or remove offending files",
                "Create new pairs with 'sqlmigrate create <name>'",
            ],
            examples=[f"ls {migrations_dir}", "sqlmigrate doctor"],
        )

    @staticmethod
    def format_guidance(guidance: ErrorGuidance) -> str:
        """Format guidance as rich-compatible string."""
        lines = [f"[bold yellow]{guidance.title}[/bold yellow]\n"]

        if guidance.checks:
            lines.append("[cyan]Checks:[/cyan]")
            for check in guidance.checks:
                lines.append(f"  • {check}")
            lines.append("")

        if guidance.fixes:
            lines.append("[cyan]How to fix:[/cyan]")
            for fix in guidance.fixes:
                lines.append(f"  • {fix}")
            lines.append("")

        if guidance.examples:
            lines.append("[cyan]Try these commands:[/cyan]")
            for example in guidance.examples:
                lines.append(f"  $ {example}")

        return "\n".join(lines)


def print_error(console: Console, error: Exception, guidance: ErrorGuidance | None = None) -> None:
    """
    Print an error line, followed by guidance when available.

    Args:
        console: Rich console for output
        error: The exception being reported
        guidance: Optional actionable guidance
    """
    console.print(f"[red]Error:[/red] {escape(str(error))}")
    if guidance is not None:
        console.print(GuidanceProvider.format_guidance(guidance))
