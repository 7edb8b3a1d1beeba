"""SQL Server connector.

pyodbc is blocking, so every call runs in a worker thread via
``asyncio.to_thread``. Connections come from the ODBC driver manager pool.
Connection string pattern (ODBC Driver 18)::

    Driver={ODBC Driver 18 for SQL Server};
    Server=tcp:<host>,1433;
    Database=<db>;
    UID=<user>;PWD=<password>;
    Encrypt=yes;TrustServerCertificate=no;
"""

from __future__ import annotations

import asyncio
import logging
import math
from typing import Any, Dict, List, Optional

import pyodbc

from dal.connector import Connector, ConnectorError
from dal.dsn import DsnInfo, parse_dsn
from dal.engines import EngineType
from dal.query_result import QueryResult
from dal.tracing import trace_query_operation
from dal.util.column_metadata import columns_from_cursor_description
from dal.util.timeouts import CancelScope

logger = logging.getLogger(__name__)

DEFAULT_ODBC_DRIVER = "ODBC Driver 18 for SQL Server"


def build_connection_string(info: DsnInfo) -> str:
    """Build an ODBC connection string from parsed DSN settings."""
    params = dict(info.params)
    driver = params.pop("driver", None) or DEFAULT_ODBC_DRIVER
    parts = [f"Driver={_odbc_value(driver, force=True)}"]
    parts.append(f"Server=tcp:{info.host},{info.port}")
    if info.database:
        parts.append(f"Database={_odbc_value(info.database)}")
    if info.user:
        parts.append(f"UID={_odbc_value(info.user)}")
    if info.password:
        parts.append(f"PWD={_odbc_value(info.password)}")
    for key, value in params.items():
        parts.append(f"{key}={_odbc_value(value)}")
    return ";".join(parts) + ";"


def _odbc_value(value: str, force: bool = False) -> str:
    if force or any(char in value for char in ";{}= "):
        return "{" + value.replace("}", "}}") + "}"
    return value


class SqlServerConnector(Connector):
    """SQL Server connector using pyodbc in worker threads.

    The deadline is applied to each cursor through ``cursor.timeout``. A
    timed-out call has ``cursor.cancel()`` invoked on its own cursor.
    """

    engine = EngineType.SQLSERVER

    def __init__(self, source_id: str, dsn: str, **options: Any) -> None:
        """Build the ODBC connection string; nothing is opened yet."""
        super().__init__(source_id, dsn, **options)
        self._conn_str = build_connection_string(parse_dsn(dsn))
        self._login_timeout = int(options.get("login_timeout", 15))

    def _open(self) -> "pyodbc.Connection":
        return pyodbc.connect(self._conn_str, timeout=self._login_timeout, autocommit=True)

    async def connect(self) -> None:
        """Open and close one connection to validate settings."""
        try:
            conn = await asyncio.to_thread(self._open)
        except pyodbc.Error as exc:
            raise ConnectorError(self.source_id, f"SQL Server connection failed: {exc}") from exc
        await asyncio.to_thread(conn.close)

    async def disconnect(self) -> None:
        """Nothing is held open between calls."""
        return None

    async def execute_sql(
        self,
        sql: str,
        *,
        timeout_seconds: Optional[float],
        cancel_scope: Optional[CancelScope] = None,
    ) -> QueryResult:
        """Run a batch in a worker thread with a per-cursor timeout."""

        async def _run() -> QueryResult:
            return await asyncio.to_thread(
                self._execute_blocking, sql, timeout_seconds, cancel_scope
            )

        return await trace_query_operation(
            "dal.query.execute",
            provider=self.engine.value,
            execution_model="sync",
            sql=sql,
            operation=_run(),
        )

    def _execute_blocking(
        self, sql: str, timeout_seconds: Optional[float], cancel_scope: Optional[CancelScope]
    ) -> QueryResult:
        conn = self._open()
        try:
            cursor = conn.cursor()
            if timeout_seconds and timeout_seconds > 0:
                cursor.timeout = max(1, math.ceil(timeout_seconds))
            if cancel_scope is not None and not cancel_scope.attach(
                lambda: asyncio.to_thread(cursor.cancel)
            ):
                cursor.close()
                raise ConnectorError(self.source_id, "Statement cancelled before it started.")
            try:
                cursor.execute(sql)
                # Skip leading row-count results from batches (SET NOCOUNT OFF).
                while cursor.description is None and cursor.nextset():
                    pass
                if cursor.description is None:
                    return QueryResult(rows=[], columns=[], status=f"{cursor.rowcount} rows")
                names = [column[0] for column in cursor.description]
                rows = [dict(zip(names, row)) for row in cursor.fetchall()]
                columns = columns_from_cursor_description(cursor.description, provider="sqlserver")
                return QueryResult(rows=rows, columns=columns)
            finally:
                if cancel_scope is not None:
                    cancel_scope.detach()
                cursor.close()
        finally:
            conn.close()

    async def get_schemas(self) -> List[str]:
        """List schemas, excluding built-in role schemas."""
        rows = await self._fetch_catalog(
            "SELECT s.name AS schema_name FROM sys.schemas s "
            "JOIN sys.database_principals p ON s.principal_id = p.principal_id "
            "WHERE p.type <> 'R' AND s.name NOT IN ('sys', 'INFORMATION_SCHEMA', 'guest') "
            "ORDER BY s.name"
        )
        return [row["schema_name"] for row in rows]

    async def get_tables(self, schema: Optional[str] = None) -> List[Dict[str, Any]]:
        """List tables and views, optionally within one schema."""
        rows = await self._fetch_catalog(
            "SELECT TABLE_SCHEMA, TABLE_NAME FROM INFORMATION_SCHEMA.TABLES "
            "WHERE (? IS NULL OR TABLE_SCHEMA = ?) ORDER BY TABLE_SCHEMA, TABLE_NAME",
            schema,
            schema,
        )
        return [{"schema": row["TABLE_SCHEMA"], "name": row["TABLE_NAME"]} for row in rows]

    async def get_table_columns(
        self, table: str, schema: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        """List columns for a table (``dbo`` when no schema is given)."""
        rows = await self._fetch_catalog(
            "SELECT COLUMN_NAME, DATA_TYPE, IS_NULLABLE FROM INFORMATION_SCHEMA.COLUMNS "
            "WHERE TABLE_NAME = ? AND TABLE_SCHEMA = ? ORDER BY ORDINAL_POSITION",
            table,
            schema or "dbo",
        )
        return [
            {
                "name": row["COLUMN_NAME"],
                "type": row["DATA_TYPE"],
                "nullable": row["IS_NULLABLE"] == "YES",
            }
            for row in rows
        ]

    async def _fetch_catalog(self, sql: str, *params: Any) -> List[Dict[str, Any]]:
        def _blocking() -> List[Dict[str, Any]]:
            conn = self._open()
            try:
                cursor = conn.cursor()
                cursor.execute(sql, *params)
                names = [column[0] for column in cursor.description]
                return [dict(zip(names, row)) for row in cursor.fetchall()]
            finally:
                conn.close()

        return await trace_query_operation(
            "dal.catalog.fetch",
            provider=self.engine.value,
            execution_model="sync",
            sql=sql,
            operation=asyncio.to_thread(_blocking),
        )
