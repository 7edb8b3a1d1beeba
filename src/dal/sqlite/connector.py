import asyncio
import logging
import sqlite3
from typing import Any, Dict, List, Optional

import aiosqlite

from dal.connector import Connector, ConnectorError
from dal.dsn import parse_dsn
from dal.engines import EngineType
from dal.query_result import QueryResult
from dal.tracing import trace_query_operation
from dal.util.column_metadata import columns_from_cursor_description
from dal.util.timeouts import CancelScope, run_shielded

logger = logging.getLogger(__name__)


class SqliteConnector(Connector):
    """SQLite connector over a single aiosqlite connection.

    SQLite has no server-side statement timeout. A timed-out call is stopped
    with ``interrupt()``, which ends the running statement at its next VM step
    but cannot preempt a long native call that never yields to the VM.
    """

    engine = EngineType.SQLITE

    def __init__(self, source_id: str, dsn: str, **options: Any) -> None:
        """Resolve the database path; the file is opened on connect."""
        super().__init__(source_id, dsn, **options)
        self._db_path = parse_dsn(dsn).path
        self._conn: Optional[aiosqlite.Connection] = None
        self._statement_lock = asyncio.Lock()

    async def connect(self) -> None:
        """Open the database file (autocommit mode)."""
        if self._conn is not None:
            return
        try:
            conn = await aiosqlite.connect(self._db_path, isolation_level=None)
        except sqlite3.Error as exc:
            raise ConnectorError(self.source_id, f"SQLite open failed: {exc}") from exc
        conn.row_factory = sqlite3.Row
        self._conn = conn

    async def disconnect(self) -> None:
        """Close the database connection."""
        if self._conn is not None:
            conn, self._conn = self._conn, None
            await conn.close()

    def _require_conn(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise ConnectorError(self.source_id, "SQLite connection not open.")
        return self._conn

    async def execute_sql(
        self,
        sql: str,
        *,
        timeout_seconds: Optional[float],
        cancel_scope: Optional[CancelScope] = None,
    ) -> QueryResult:
        """Run one statement; the deadline is enforced by the caller.

        Statements take turns on the shared connection, so the ``interrupt()``
        hook attached to ``cancel_scope`` can only hit this statement.
        """
        _ = timeout_seconds
        conn = self._require_conn()

        async def _run() -> QueryResult:
            async with self._statement_lock:
                if cancel_scope is not None and not cancel_scope.attach(conn.interrupt):
                    raise ConnectorError(self.source_id, "Statement cancelled before it started.")
                try:
                    async with conn.execute(sql) as cursor:
                        if cursor.description is None:
                            return QueryResult(
                                rows=[], columns=[], status=f"{cursor.rowcount} rows"
                            )
                        rows = await cursor.fetchall()
                        columns = columns_from_cursor_description(
                            cursor.description, provider="sqlite"
                        )
                        return QueryResult(rows=[dict(row) for row in rows], columns=columns)
                finally:
                    if cancel_scope is not None:
                        cancel_scope.detach()

        return await trace_query_operation(
            "dal.query.execute",
            provider=self.engine.value,
            execution_model="sync",
            sql=sql,
            operation=run_shielded(_run()),
        )

    async def get_schemas(self) -> List[str]:
        """List attached database names (``main``, ``temp``, attachments)."""
        rows = await self._fetch_catalog("PRAGMA database_list")
        return [row["name"] for row in rows]

    async def get_tables(self, schema: Optional[str] = None) -> List[Dict[str, Any]]:
        """List tables and views in one attached database (``main`` by default)."""
        schema = schema or "main"
        rows = await self._fetch_catalog(
            f"SELECT name FROM {_quote_identifier(schema)}.sqlite_master "
            "WHERE type IN ('table', 'view') AND name NOT LIKE 'sqlite_%' ORDER BY name"
        )
        return [{"schema": schema, "name": row["name"]} for row in rows]

    async def get_table_columns(
        self, table: str, schema: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        """List columns for a table."""
        schema = schema or "main"
        rows = await self._fetch_catalog(
            f"PRAGMA {_quote_identifier(schema)}.table_info({_quote_identifier(table)})"
        )
        return [
            {"name": row["name"], "type": row["type"], "nullable": not row["notnull"]}
            for row in rows
        ]

    async def _fetch_catalog(self, sql: str) -> List[Dict[str, Any]]:
        conn = self._require_conn()

        async def _run():
            async with self._statement_lock:
                async with conn.execute(sql) as cursor:
                    return [dict(row) for row in await cursor.fetchall()]

        return await trace_query_operation(
            "dal.catalog.fetch",
            provider=self.engine.value,
            execution_model="sync",
            sql=sql,
            operation=run_shielded(_run()),
        )


def _quote_identifier(name: str) -> str:
    return '"' + name.replace('"', '""') + '"'
