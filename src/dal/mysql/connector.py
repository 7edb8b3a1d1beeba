import logging
from typing import Any, Dict, List, Optional

import aiomysql

from dal.connector import Connector, ConnectorError
from dal.dsn import parse_dsn
from dal.engines import EngineType
from dal.query_result import QueryResult
from dal.tracing import trace_query_operation
from dal.util.column_metadata import columns_from_cursor_description
from dal.util.timeouts import CancelScope, run_shielded

logger = logging.getLogger(__name__)

_SYSTEM_SCHEMAS = ("information_schema", "mysql", "performance_schema", "sys")


class MysqlConnector(Connector):
    """MySQL connector using an aiomysql pool.

    The deadline is pushed to the server with ``max_execution_time``
    (milliseconds, SELECT only). A timed-out call is stopped with ``KILL QUERY``
    for its own session, issued from a separate connection.
    """

    engine = EngineType.MYSQL

    def __init__(self, source_id: str, dsn: str, **options: Any) -> None:
        """Initialize pool settings."""
        super().__init__(source_id, dsn, **options)
        self._pool: Optional[aiomysql.Pool] = None

    async def connect(self) -> None:
        """Create the connection pool."""
        if self._pool is not None:
            return
        info = parse_dsn(self.dsn)
        try:
            self._pool = await aiomysql.create_pool(
                host=info.host,
                port=info.port,
                user=info.user,
                password=info.password or "",
                db=info.database,
                minsize=1,
                maxsize=int(self.options.get("pool_size", 10)),
                autocommit=True,
                cursorclass=aiomysql.DictCursor,
            )
        except Exception as exc:
            raise ConnectorError(
                self.source_id, f"{self.engine.value} connection failed: {exc}"
            ) from exc

    async def disconnect(self) -> None:
        """Close the connection pool."""
        if self._pool is not None:
            self._pool.close()
            await self._pool.wait_closed()
            self._pool = None

    def _require_pool(self) -> aiomysql.Pool:
        if self._pool is None:
            raise ConnectorError(self.source_id, f"{self.engine.value} pool not initialized.")
        return self._pool

    def _timeout_statement(self, timeout_seconds: Optional[float]) -> str:
        milliseconds = 0
        if timeout_seconds and timeout_seconds > 0:
            milliseconds = int(timeout_seconds * 1000)
        return f"SET SESSION max_execution_time = {milliseconds}"

    async def execute_sql(
        self,
        sql: str,
        *,
        timeout_seconds: Optional[float],
        cancel_scope: Optional[CancelScope] = None,
    ) -> QueryResult:
        """Run one statement with a server-side execution limit.

        Cancelling through ``cancel_scope`` kills only the query running on
        the session that serves this call.
        """

        async def _run() -> QueryResult:
            async with self._require_pool().acquire() as conn:
                thread_id = conn.thread_id()
                if cancel_scope is not None and not cancel_scope.attach(
                    lambda: self._kill_query(thread_id)
                ):
                    raise ConnectorError(self.source_id, "Statement cancelled before it started.")
                try:
                    async with conn.cursor() as cursor:
                        # Set on every call so pooled sessions never keep a stale limit.
                        await cursor.execute(self._timeout_statement(timeout_seconds))
                        await cursor.execute(sql)
                        rows = list(await cursor.fetchall()) if cursor.description else []
                        columns = columns_from_cursor_description(
                            cursor.description, provider=self.engine.value
                        )
                        status = None if cursor.description else f"{cursor.rowcount} rows"
                        return QueryResult(rows=rows, columns=columns, status=status)
                finally:
                    if cancel_scope is not None:
                        cancel_scope.detach()

        return await trace_query_operation(
            "dal.query.execute",
            provider=self.engine.value,
            execution_model="async",
            sql=sql,
            operation=run_shielded(_run()),
        )

    async def _kill_query(self, thread_id: int) -> None:
        """Kill the statement running on one server session, from another session."""
        if self._pool is None:
            return
        async with self._pool.acquire() as conn:
            async with conn.cursor() as cursor:
                try:
                    await cursor.execute("KILL QUERY %s", (thread_id,))
                except aiomysql.Error as exc:
                    logger.warning(
                        "event=cancel_failed source=%s thread_id=%s error=%s",
                        self.source_id,
                        thread_id,
                        exc,
                    )

    async def get_schemas(self) -> List[str]:
        """List databases visible to the user."""
        rows = await self._fetch_catalog(
            """
            SELECT schema_name AS schema_name
            FROM information_schema.schemata
            WHERE schema_name NOT IN %s
            ORDER BY schema_name
            """,
            (_SYSTEM_SCHEMAS,),
        )
        return [row["schema_name"] for row in rows]

    async def get_tables(self, schema: Optional[str] = None) -> List[Dict[str, Any]]:
        """List tables and views (current database when no schema is given)."""
        rows = await self._fetch_catalog(
            """
            SELECT table_schema AS table_schema, table_name AS table_name
            FROM information_schema.tables
            WHERE table_schema = COALESCE(%s, DATABASE())
            ORDER BY table_name
            """,
            (schema,),
        )
        return [{"schema": row["table_schema"], "name": row["table_name"]} for row in rows]

    async def get_table_columns(
        self, table: str, schema: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        """List columns for a table."""
        rows = await self._fetch_catalog(
            """
            SELECT column_name AS column_name, column_type AS column_type,
                   is_nullable AS is_nullable
            FROM information_schema.columns
            WHERE table_schema = COALESCE(%s, DATABASE())
              AND table_name = %s
            ORDER BY ordinal_position
            """,
            (schema, table),
        )
        return [
            {
                "name": row["column_name"],
                "type": row["column_type"],
                "nullable": row["is_nullable"] == "YES",
            }
            for row in rows
        ]

    async def _fetch_catalog(self, sql: str, params: tuple) -> List[Dict[str, Any]]:
        async def _run():
            async with self._require_pool().acquire() as conn:
                async with conn.cursor() as cursor:
                    await cursor.execute(sql, params)
                    return list(await cursor.fetchall())

        return await trace_query_operation(
            "dal.catalog.fetch",
            provider=self.engine.value,
            execution_model="async",
            sql=sql,
            operation=_run(),
        )


class MariadbConnector(MysqlConnector):
    """MariaDB connector; its execution limit is ``max_statement_time`` in seconds."""

    engine = EngineType.MARIADB

    def _timeout_statement(self, timeout_seconds: Optional[float]) -> str:
        seconds = float(timeout_seconds) if timeout_seconds and timeout_seconds > 0 else 0.0
        return f"SET SESSION max_statement_time = {seconds:g}"
