import logging
from typing import Any, Dict, List, Optional

import asyncpg

from dal.connector import Connector, ConnectorError
from dal.engines import EngineType
from dal.query_result import QueryResult
from dal.tracing import trace_query_operation
from dal.util.column_metadata import columns_from_asyncpg_attributes
from dal.util.timeouts import CancelScope, run_shielded

logger = logging.getLogger(__name__)

_SYSTEM_SCHEMAS = ("pg_catalog", "information_schema")


class PostgresConnector(Connector):
    """PostgreSQL connector backed by an asyncpg pool.

    The statement deadline is also applied server-side through
    ``statement_timeout`` so an abandoned query stops on the server.
    """

    engine = EngineType.POSTGRES

    def __init__(self, source_id: str, dsn: str, **options: Any) -> None:
        """Initialize pool settings."""
        super().__init__(source_id, dsn, **options)
        self._pool: Optional[asyncpg.Pool] = None

    async def connect(self) -> None:
        """Create the connection pool."""
        if self._pool is not None:
            return
        try:
            self._pool = await asyncpg.create_pool(
                self.dsn,
                min_size=1,
                max_size=int(self.options.get("pool_size", 10)),
                command_timeout=None,
                server_settings={"application_name": "sql_gateway"},
            )
        except Exception as exc:
            raise ConnectorError(self.source_id, f"PostgreSQL connection failed: {exc}") from exc

    async def disconnect(self) -> None:
        """Close the connection pool."""
        if self._pool is not None:
            await self._pool.close()
            self._pool = None

    def _require_pool(self) -> asyncpg.Pool:
        if self._pool is None:
            raise ConnectorError(self.source_id, "PostgreSQL pool not initialized.")
        return self._pool

    async def execute_sql(
        self,
        sql: str,
        *,
        timeout_seconds: Optional[float],
        cancel_scope: Optional[CancelScope] = None,
    ) -> QueryResult:
        """Run a statement with a server-side statement timeout.

        Cancelling through ``cancel_scope`` terminates the one connection
        running this statement.
        """

        async def _run() -> QueryResult:
            async with self._require_pool().acquire() as conn:
                if cancel_scope is not None and not cancel_scope.attach(conn.terminate):
                    raise ConnectorError(self.source_id, "Statement cancelled before it started.")
                try:
                    # Session setting; the pool runs RESET ALL on release.
                    await _apply_statement_timeout(conn, timeout_seconds)
                    return await _fetch(conn, sql)
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

    async def get_schemas(self) -> List[str]:
        """List user-visible schemas."""
        rows = await self._fetch_catalog(
            """
            SELECT schema_name
            FROM information_schema.schemata
            WHERE schema_name <> ALL($1::text[])
              AND schema_name NOT LIKE 'pg_toast%'
              AND schema_name NOT LIKE 'pg_temp%'
            ORDER BY schema_name
            """,
            list(_SYSTEM_SCHEMAS),
        )
        return [row["schema_name"] for row in rows]

    async def get_tables(self, schema: Optional[str] = None) -> List[Dict[str, Any]]:
        """List tables and views, optionally within one schema."""
        rows = await self._fetch_catalog(
            """
            SELECT table_schema, table_name
            FROM information_schema.tables
            WHERE table_schema <> ALL($1::text[])
              AND ($2::text IS NULL OR table_schema = $2)
            ORDER BY table_schema, table_name
            """,
            list(_SYSTEM_SCHEMAS),
            schema,
        )
        return [{"schema": row["table_schema"], "name": row["table_name"]} for row in rows]

    async def get_table_columns(
        self, table: str, schema: Optional[str] = None
    ) -> List[Dict[str, Any]]:
        """List columns for a table (current schema when none is given)."""
        rows = await self._fetch_catalog(
            """
            SELECT column_name, data_type, is_nullable
            FROM information_schema.columns
            WHERE table_name = $1
              AND table_schema = COALESCE($2::text, current_schema())
            ORDER BY ordinal_position
            """,
            table,
            schema,
        )
        return [
            {
                "name": row["column_name"],
                "type": row["data_type"],
                "nullable": row["is_nullable"] == "YES",
            }
            for row in rows
        ]

    async def _fetch_catalog(self, sql: str, *params: Any) -> List[Dict[str, Any]]:
        async def _run():
            async with self._require_pool().acquire() as conn:
                return [dict(row) for row in await conn.fetch(sql, *params)]

        return await trace_query_operation(
            "dal.catalog.fetch",
            provider=self.engine.value,
            execution_model="async",
            sql=sql,
            operation=_run(),
        )


async def _apply_statement_timeout(conn: asyncpg.Connection, timeout_seconds: Optional[float]):
    if not timeout_seconds or timeout_seconds <= 0:
        return
    await conn.execute(
        "SELECT set_config('statement_timeout', $1, false)",
        f"{int(timeout_seconds * 1000)}ms",
    )


async def _fetch(conn: asyncpg.Connection, sql: str) -> QueryResult:
    try:
        statement = await conn.prepare(sql)
    except asyncpg.exceptions.PostgresSyntaxError as exc:
        # Multiple commands cannot be prepared; run them as a simple query.
        if "multiple commands" not in str(exc):
            raise
        status = await conn.execute(sql)
        return QueryResult(rows=[], columns=[], status=status)

    records = await statement.fetch()
    columns = columns_from_asyncpg_attributes(statement.get_attributes())
    return QueryResult(
        rows=[dict(record) for record in records],
        columns=columns,
        status=statement.get_statusmsg(),
    )
