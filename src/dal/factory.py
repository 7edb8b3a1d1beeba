"""Connector factory with lazy, engine-keyed provider selection.

Driver modules are imported only when a source of that engine is configured,
so a deployment without ODBC libraries can still serve PostgreSQL or SQLite.

Canonical Provider IDs:
    - "postgres": asyncpg
    - "mysql", "mariadb": aiomysql
    - "sqlserver": pyodbc
    - "sqlite": aiosqlite

Example:
    >>> from dal.factory import create_connector
    >>> connector = create_connector("local", "sqlite", "sqlite://app.db")
"""

import importlib
import logging
from typing import Any, Union

from dal.connector import Connector, ConnectorError
from dal.engines import EngineType, parse_engine

logger = logging.getLogger(__name__)

CONNECTOR_PROVIDERS: "dict[EngineType, str]" = {
    EngineType.POSTGRES: "dal.postgres.connector:PostgresConnector",
    EngineType.MYSQL: "dal.mysql.connector:MysqlConnector",
    EngineType.MARIADB: "dal.mysql.connector:MariadbConnector",
    EngineType.SQLSERVER: "dal.sqlserver.connector:SqlServerConnector",
    EngineType.SQLITE: "dal.sqlite.connector:SqliteConnector",
}


def get_connector_class(engine: Union[str, EngineType]) -> "type[Connector]":
    """Import and return the connector class for an engine."""
    engine = parse_engine(engine.value if isinstance(engine, EngineType) else engine)
    module_name, _, class_name = CONNECTOR_PROVIDERS[engine].partition(":")
    module = importlib.import_module(module_name)
    return getattr(module, class_name)


def create_connector(
    source_id: str, engine: Union[str, EngineType], dsn: str, **options: Any
) -> Connector:
    """Instantiate an unconnected connector for a source."""
    try:
        connector_cls = get_connector_class(engine)
    except ImportError as exc:
        raise ConnectorError(source_id, f"Driver for {engine} is not available: {exc}") from exc
    connector = connector_cls(source_id, dsn, **options)
    logger.debug(
        "event=connector_created source=%s engine=%s", source_id, connector.engine.value
    )
    return connector
