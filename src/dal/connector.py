"""Connector interface shared by every engine adapter."""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from dal.engines import EngineType
from dal.query_result import QueryResult
from dal.util.timeouts import CancelScope

logger = logging.getLogger(__name__)


class ConnectorError(RuntimeError):
    """Raised when a connector cannot be created, connected or used."""

    def __init__(self, source_id: str, message: str) -> None:
        """Attach the source id to the message."""
        super().__init__(f"[{source_id}] {message}")
        self.source_id = source_id


class Connector(ABC):
    """One database source.

    Implementations own their driver resources (pool, file handle, thread).
    ``execute_sql`` runs the text exactly as given; policy checks happen
    before it is called.
    """

    engine: EngineType

    def __init__(self, source_id: str, dsn: str, **options: Any) -> None:
        """Store connection settings; no I/O happens until ``connect``."""
        self.source_id = source_id
        self.dsn = dsn
        self.options = dict(options)
        self._connected = False
        self._connect_lock = asyncio.Lock()

    @property
    def is_connected(self) -> bool:
        return self._connected

    @abstractmethod
    async def connect(self) -> None:
        """Open driver resources."""

    @abstractmethod
    async def disconnect(self) -> None:
        """Release driver resources; safe to call when not connected."""

    @abstractmethod
    async def execute_sql(
        self,
        sql: str,
        *,
        timeout_seconds: Optional[float],
        cancel_scope: Optional[CancelScope] = None,
    ) -> QueryResult:
        """Run ``sql`` and return all rows it produces.

        While the statement runs, ``cancel_scope`` holds a hook that stops
        this statement and nothing else.
        """

    @abstractmethod
    async def get_schemas(self) -> List[str]:
        """List schema (or database) names visible to the connection."""

    @abstractmethod
    async def get_tables(self, schema: Optional[str] = None) -> List[Dict[str, Any]]:
        """List tables as ``{"schema", "name"}`` dicts."""

    @abstractmethod
    async def get_table_columns(
        self, table: str, schema: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        """List columns of ``table`` as ``{"name", "type", "nullable"}`` dicts."""

    def clone(self) -> "Connector":
        """Return an unconnected connector for the same source."""
        return type(self)(self.source_id, self.dsn, **self.options)

    async def ensure_connected(self) -> None:
        """Connect once; concurrent callers share a single attempt."""
        if self._connected:
            return
        async with self._connect_lock:
            if self._connected:
                return
            await self.connect()
            self._connected = True
            logger.info(
                "event=connector_connected source=%s engine=%s",
                self.source_id,
                self.engine.value,
            )

    async def close(self) -> None:
        """Disconnect and mark the connector as closed."""
        try:
            await self.disconnect()
        finally:
            self._connected = False
