"""Utility functions for sqlmigrate."""

import logging
import os
import re
import shutil
import subprocess
from pathlib import Path

from pathvalidate import sanitize_filename
from rich.prompt import Confirm

from .constants import DEFAULT_VERSION_WIDTH, MIGRATION_NAME_SEPARATOR

logger = logging.getLogger(__name__)

_WHITESPACE_PATTERN = re.compile(r"\s+")


def ensure_dir(path: Path) -> Path:
    """
    Create directory if it doesn't exist.

    Args:
        path: Directory path to create

    Returns:
        The created/existing directory path
    """
    path.mkdir(parents=True, exist_ok=True)
    return path


def check_command_exists(cmd: str) -> bool:
    """
    Check if a command exists in PATH.

    Args:
        cmd: Command name to check

    Returns:
        True if command exists, False otherwise
    """
    return shutil.which(cmd) is not None


def expand_path(path: str | Path, base_dir: Path | None = None) -> Path:
    """
    Expand ~ and environment variables in path.

    Relative paths are anchored at base_dir when given, otherwise at the
    current working directory.

    Args:
        path: Path string to expand
        base_dir: Directory relative paths are resolved against

    Returns:
        Expanded Path object
    """
    expanded = Path(os.path.expanduser(os.path.expandvars(str(path))))
    if not expanded.is_absolute() and base_dir is not None:
        expanded = base_dir / expanded
    return expanded.resolve()


def format_version(version: int, width: int = DEFAULT_VERSION_WIDTH) -> str:
    """
    Format a migration version for display, zero-padded to width.

    Versions wider than width are printed in full.

    Args:
        version: Version number
        width: Minimum number of digits

    Returns:
        Zero-padded version string
    """
    return f"{version:0{width}d}"


def sanitize_migration_name(name: str) -> str:
    """
    Turn a free-form migration name into a file-name-safe slug.

    Whitespace runs become underscores and characters invalid in file names
    are dropped.

    Args:
        name: Migration name as typed by the user

    Returns:
        Sanitized name

    Raises:
        ValueError: If nothing usable remains after sanitizing
    """
    slug = _WHITESPACE_PATTERN.sub(MIGRATION_NAME_SEPARATOR, name.strip())
    slug = sanitize_filename(slug, replacement_text="")
    # Dots would be confused with the .up.sql / .down.sql suffix
    slug = slug.replace(".", MIGRATION_NAME_SEPARATOR).strip(MIGRATION_NAME_SEPARATOR)
    if not slug:
        raise ValueError(f"Invalid migration name: {name!r}")
    return slug


def prompt_confirm(message: str, default: bool = False) -> bool:
    """
    Prompt user for confirmation.

    Args:
        message: Confirmation message
        default: Default value if user just presses Enter

    Returns:
        True if confirmed, False otherwise
    """
    return Confirm.ask(message, default=default)


def run_command(
    cmd: list[str],
    cwd: Path | None = None,
    input_text: str | None = None,
    capture_output: bool = True,
    check: bool = True,
    timeout: float | None = None,
) -> subprocess.CompletedProcess:
    """
    Run a shell command.

    Args:
        cmd: Command and arguments as list
        cwd: Working directory for command
        input_text: Text passed to the command on stdin
        capture_output: Whether to capture stdout/stderr
        check: Whether to raise exception on non-zero exit
        timeout: Timeout in seconds (None for no timeout)

    Returns:
        CompletedProcess instance

    Raises:
        subprocess.CalledProcessError: If command fails and check=True
        subprocess.TimeoutExpired: If command times out
    """
    logger.debug(f"Running command: {' '.join(cmd)}")
    return subprocess.run(
        cmd,
        cwd=cwd,
        input=input_text,
        capture_output=capture_output,
        text=True,
        check=check,
        timeout=timeout,
    )
