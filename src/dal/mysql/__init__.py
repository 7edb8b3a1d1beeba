"""MySQL and MariaDB connectors."""

from .connector import MariadbConnector, MysqlConnector

__all__ = ["MariadbConnector", "MysqlConnector"]
