"""Constants used throughout sqlmigrate."""

from enum import Enum


# Migration directions
class Direction(str, Enum):
    """Migration directions.

    Attributes:
        UP: Advance schema from version N-1 to N
        DOWN: Revert schema from version N to N-1
    """

    UP = "up"
    DOWN = "down"

    @property
    def suffix(self) -> str:
        """File name suffix for migrations in this direction."""
        return f".{self.value}.sql"


# Plan request modes
class PlanMode(str, Enum):
    """How far a migration run should go."""

    STEP = "step"
    ALL = "all"
    TO = "to"


# Migration file naming
MIGRATION_NAME_SEPARATOR = "_"
DEFAULT_VERSION_WIDTH = 5  # Display convention: 00001

# Version table
DB_TABLE_SCHEMA_MIGRATIONS = "schema_migrations"
DB_TABLE_MIGRATION_LOCK = "schema_migrations_lock"

# Singleton row ID for the version table and the lock table
DB_SINGLETON_ROW_ID = 1

# Executor kinds
EXECUTOR_BUILTIN = "builtin"
EXECUTOR_SQLITE3_CLI = "sqlite3-cli"

# sqlite3 shell configuration
SQLITE3_DEFAULT_BINARY = "sqlite3"
SQLITE3_DEFAULT_TIMEOUT = 300.0  # seconds

# Config lookup
CONFIG_ENV_VAR = "SQLMIGRATE_CONFIG"
DB_FILE_ENV_VAR = "SQLMIGRATE_DB_FILE"
LOCAL_CONFIG_FILENAME = "sqlmigrate.toml"

# Logging configuration
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
