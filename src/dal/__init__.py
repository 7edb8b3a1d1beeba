"""Data Abstraction Layer (DAL) for the SQL gateway.

This package exposes the connector interface, the connector manager and the
engine-keyed factory. Engine drivers are imported lazily by the factory.
"""

from dal.connector import Connector, ConnectorError
from dal.engines import EngineType
from dal.factory import create_connector
from dal.manager import ConnectorManager
from dal.query_result import QueryResult

__all__ = [
    "Connector",
    "ConnectorError",
    "ConnectorManager",
    "EngineType",
    "QueryResult",
    "create_connector",
]
