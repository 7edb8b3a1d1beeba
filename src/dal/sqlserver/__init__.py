"""SQL Server connector."""

from .connector import SqlServerConnector

__all__ = ["SqlServerConnector"]
