"""Ownership of one connector per configured source."""

from __future__ import annotations

import asyncio
import logging
from types import MappingProxyType
from typing import Dict, Iterable, List, Mapping

from dal.connector import Connector, ConnectorError

logger = logging.getLogger(__name__)


class ConnectorManager:
    """Holds the connectors of a gateway instance.

    Created explicitly and passed to whoever needs it; there is no process
    singleton. Startup connection failures are logged and the connector is
    retried on first use.
    """

    def __init__(self, connectors: Iterable[Connector] = ()) -> None:
        """Register connectors; ids must be unique."""
        self._connectors: Dict[str, Connector] = {}
        for connector in connectors:
            self.add(connector)

    def add(self, connector: Connector) -> None:
        """Register a connector under its source id."""
        if connector.source_id in self._connectors:
            raise ValueError(f"Duplicate source id '{connector.source_id}'.")
        self._connectors[connector.source_id] = connector

    @property
    def connectors(self) -> Mapping[str, Connector]:
        return MappingProxyType(self._connectors)

    @property
    def source_ids(self) -> List[str]:
        return list(self._connectors)

    def get_connector(self, source_id: str) -> Connector:
        """Return the connector for a source; raises ConnectorError when unknown."""
        connector = self._connectors.get(source_id)
        if connector is None:
            raise ConnectorError(source_id, "Unknown source.")
        return connector

    async def ensure_connected(self, source_id: str) -> Connector:
        """Return the connector for a source, connecting it if needed."""
        connector = self.get_connector(source_id)
        await connector.ensure_connected()
        return connector

    async def connect_all(self) -> Dict[str, bool]:
        """Connect every source concurrently; failures are logged, not raised."""
        ids = list(self._connectors)
        results = await asyncio.gather(
            *(self._connectors[source_id].ensure_connected() for source_id in ids),
            return_exceptions=True,
        )
        status: Dict[str, bool] = {}
        for source_id, result in zip(ids, results):
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                logger.warning(
                    "event=connector_connect_failed source=%s error=%s", source_id, result
                )
                status[source_id] = False
            else:
                status[source_id] = True
        return status

    async def disconnect_all(self) -> None:
        """Disconnect every source; errors are logged so shutdown always completes."""
        for source_id, connector in self._connectors.items():
            try:
                await connector.close()
            except Exception as exc:
                logger.warning(
                    "event=connector_disconnect_failed source=%s error=%s", source_id, exc
                )
