"""Configuration management for sqlmigrate."""

import logging
import os
import tomllib
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator

from .constants import (
    CONFIG_ENV_VAR,
    DEFAULT_VERSION_WIDTH,
    EXECUTOR_BUILTIN,
    EXECUTOR_SQLITE3_CLI,
    LOCAL_CONFIG_FILENAME,
    SQLITE3_DEFAULT_BINARY,
    SQLITE3_DEFAULT_TIMEOUT,
)
from .utils import expand_path

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_TEMPLATE_PATH = Path(__file__).with_name("config.toml")


def _load_default_template() -> dict[str, Any]:
    """Load the packaged default config template."""
    with open(DEFAULT_CONFIG_TEMPLATE_PATH, "rb") as f:
        return tomllib.load(f)


def _merge_config_data(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Merge config dictionaries recursively."""
    merged = dict(base)
    for key, value in override.items():
        base_value = merged.get(key)
        if isinstance(base_value, dict) and isinstance(value, dict):
            merged[key] = _merge_config_data(base_value, value)
        else:
            merged[key] = value
    return merged


class PathsConfig(BaseModel):
    """Database and migrations locations."""

    db_file: Path
    migrations_dir: Path

    @field_validator("db_file", "migrations_dir", mode="before")
    @classmethod
    def expand_paths(cls, v: str | Path, info: ValidationInfo) -> Path:
        """Expand ~ and environment variables, anchoring relative paths at the config directory."""
        base_dir = None
        if info.context:
            base_dir = info.context.get("base_dir")
        return expand_path(v, base_dir)


class ExecutorConfig(BaseModel):
    """How migration scripts are executed."""

    kind: Literal["builtin", "sqlite3-cli"] = EXECUTOR_BUILTIN
    sqlite3_binary: str = SQLITE3_DEFAULT_BINARY
    timeout: float = Field(default=SQLITE3_DEFAULT_TIMEOUT, gt=0, description="Seconds per script")


class CreateConfig(BaseModel):
    """Settings for the create command."""

    version_width: int = Field(default=DEFAULT_VERSION_WIDTH, ge=1, le=20)


class Config(BaseModel):
    """Configuration for sqlmigrate."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    paths: PathsConfig
    executor: ExecutorConfig = Field(default_factory=ExecutorConfig)
    create: CreateConfig = Field(default_factory=CreateConfig)
    source: Path | None = Field(default=None, exclude=True)

    @property
    def db_file(self) -> Path:
        """SQLite database file being migrated."""
        return self.paths.db_file

    @property
    def migrations_dir(self) -> Path:
        """Directory holding *.up.sql / *.down.sql files."""
        return self.paths.migrations_dir

    @property
    def executor_kind(self) -> str:
        """Executor name: builtin or sqlite3-cli."""
        return self.executor.kind

    @property
    def uses_sqlite3_cli(self) -> bool:
        """Whether scripts go through the sqlite3 shell."""
        return self.executor.kind == EXECUTOR_SQLITE3_CLI

    @property
    def version_width(self) -> int:
        """Zero-padding width for version display and new file names."""
        return self.create.version_width

    def with_overrides(self, db_file: Path | None = None, migrations_dir: Path | None = None) -> "Config":
        """
        Return a copy with command-line path overrides applied.

        Args:
            db_file: Database file override
            migrations_dir: Migrations directory override

        Returns:
            New Config (self when nothing is overridden)
        """
        updates: dict[str, Path] = {}
        if db_file is not None:
            updates["db_file"] = expand_path(db_file)
        if migrations_dir is not None:
            updates["migrations_dir"] = expand_path(migrations_dir)
        if not updates:
            return self
        return self.model_copy(update={"paths": self.paths.model_copy(update=updates)})


def get_config_path() -> Path | None:
    """
    Get configuration file path.

    Priority:
    1. SQLMIGRATE_CONFIG environment variable
    2. ./sqlmigrate.toml when it exists

    Returns:
        Path to config file, or None to use packaged defaults
    """
    env_config = os.environ.get(CONFIG_ENV_VAR)
    if env_config:
        return expand_path(env_config)

    local_config = Path.cwd() / LOCAL_CONFIG_FILENAME
    if local_config.exists():
        return local_config.resolve()

    return None


def create_default_config(base_dir: Path | None = None) -> Config:
    """Create default configuration from the packaged template, anchored at base_dir (cwd by default)."""
    return Config.model_validate(
        _load_default_template(),
        context={"base_dir": base_dir or Path.cwd()},
    )


def load_config(config_path: Path | None = None) -> Config:
    """
    Load configuration from TOML file using Pydantic validation.

    Values from the file are merged over the packaged defaults. Relative
    paths are resolved against the config file's directory.

    Args:
        config_path: Optional custom config path

    Returns:
        Config instance with validated values

    Raises:
        FileNotFoundError: If an explicit config path does not exist
        ValueError: If config parsing or validation fails
    """
    if config_path is None:
        config_path = get_config_path()

    if config_path is None:
        logger.debug("No config file found, using defaults")
        return create_default_config()

    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    try:
        with open(config_path, "rb") as f:
            data = tomllib.load(f)
    except tomllib.TOMLDecodeError as e:
        raise ValueError(f"Invalid TOML in {config_path}: {e}") from e

    merged_values = _merge_config_data(_load_default_template(), data)
    config = Config.model_validate(merged_values, context={"base_dir": config_path.parent.resolve()})
    config.source = config_path
    logger.debug(f"Loaded config from {config_path}")
    return config
