"""SQLite connector."""

from .connector import SqliteConnector

__all__ = ["SqliteConnector"]
