"""sqlmigrate: versioned SQL migrations for SQLite databases."""

__version__ = "0.1.0"
