"""Command handlers for the sqlmigrate CLI."""

from .create import CreateHandler
from .database import DatabaseHandler
from .migrate import MigrateHandler, build_executor

__all__ = ["CreateHandler", "DatabaseHandler", "MigrateHandler", "build_executor"]
