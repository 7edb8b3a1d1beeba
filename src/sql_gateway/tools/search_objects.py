"""MCP tool: search_objects - Find schemas, tables or columns by name."""

import logging
import re
from typing import Any, Awaitable, Callable, Dict, List, Optional

from common.errors.error_codes import ErrorCategory
from dal.connector import Connector
from dal.error_classification import classify_error, emit_classified_error
from dal.manager import ConnectorManager
from dal.util.timeouts import QueryTimeoutError, run_with_timeout
from sql_gateway.tools.registry import ToolBinding
from sql_gateway.utils.response_formatter import (
    ToolResponse,
    create_tool_error_response,
    create_tool_success_response,
)

TOOL_NAME = "search_objects"
logger = logging.getLogger(__name__)

OBJECT_TYPES = ("schema", "table", "column")
DEFAULT_LIMIT = 100
MAX_LIMIT = 1000


def describe(binding: ToolBinding) -> str:
    """Tool description shown to the client."""
    return (
        f"Search schemas, tables or columns of the '{binding.source_id}' "
        f"{binding.engine.value} database by name. Patterns use SQL LIKE wildcards "
        "('%' any run of characters, '_' one character) and match case-insensitively."
    )


def like_to_regex(pattern: Optional[str]) -> "re.Pattern[str]":
    """Compile a LIKE pattern into an anchored, case-insensitive regex."""
    if not pattern:
        return re.compile(r".*", re.DOTALL)
    parts = []
    for char in pattern:
        if char == "%":
            parts.append(".*")
        elif char == "_":
            parts.append(".")
        else:
            parts.append(re.escape(char))
    return re.compile("^" + "".join(parts) + "$", re.IGNORECASE | re.DOTALL)


def clamp_limit(limit: Any) -> int:
    """Bound the result limit to ``[1, MAX_LIMIT]``; invalid values use the default."""
    try:
        value = int(limit)
    except (TypeError, ValueError):
        return DEFAULT_LIMIT
    return max(1, min(value, MAX_LIMIT))


async def find_objects(
    connector: Connector,
    object_type: str,
    matcher: "re.Pattern[str]",
    *,
    schema: Optional[str],
    table: Optional[str],
    limit: int,
) -> tuple[List[Dict[str, Any]], bool]:
    """Collect matching catalog objects; returns (objects, truncated)."""
    found: List[Dict[str, Any]] = []

    def _add(entry: Dict[str, Any]) -> bool:
        if len(found) >= limit:
            return False
        found.append(entry)
        return True

    if object_type == "schema":
        for name in await connector.get_schemas():
            if matcher.match(name) and not _add({"name": name}):
                return found, True
        return found, False

    tables = await connector.get_tables(schema)
    if object_type == "table":
        for entry in tables:
            if matcher.match(entry["name"]) and not _add(
                {"schema": entry["schema"], "name": entry["name"]}
            ):
                return found, True
        return found, False

    for entry in tables:
        if table and entry["name"].lower() != table.lower():
            continue
        for column in await connector.get_table_columns(entry["name"], entry["schema"]):
            if matcher.match(column["name"]) and not _add(
                {
                    "schema": entry["schema"],
                    "table": entry["name"],
                    "name": column["name"],
                    "type": column.get("type"),
                    "nullable": column.get("nullable"),
                }
            ):
                return found, True
    return found, False


def create_search_objects_tool_handler(
    binding: ToolBinding, manager: ConnectorManager
) -> Callable[..., Awaitable[ToolResponse]]:
    """Build the handler for one ``search_objects`` binding."""

    async def search_objects(
        object_type: str,
        pattern: Optional[str] = None,
        schema: Optional[str] = None,
        table: Optional[str] = None,
        limit: int = DEFAULT_LIMIT,
    ):
        """Search catalog object names.

        Args:
            object_type: One of "schema", "table" or "column".
            pattern: LIKE pattern for the object name (default: everything).
            schema: Restrict tables and columns to one schema.
            table: Restrict columns to one table.
            limit: Maximum number of objects to return (1-1000, default 100).
        """
        normalized_type = (object_type or "").strip().lower()
        if normalized_type not in OBJECT_TYPES:
            return create_tool_error_response(
                f"object_type must be one of {', '.join(OBJECT_TYPES)}."
            )
        bounded_limit = clamp_limit(limit)
        engine = binding.engine.value

        async def _run():
            connector = await manager.ensure_connected(binding.source_id)
            return await find_objects(
                connector,
                normalized_type,
                like_to_regex(pattern),
                schema=schema,
                table=table,
                limit=bounded_limit,
            )

        try:
            objects, truncated = await run_with_timeout(
                _run,
                binding.policy.timeout_seconds,
                provider=engine,
                operation_name="search_objects",
            )
        except QueryTimeoutError as exc:
            emit_classified_error(engine, "search_objects", ErrorCategory.TIMEOUT, exc)
            return create_tool_error_response(str(exc))
        except Exception as exc:
            category = classify_error(engine, exc)
            emit_classified_error(engine, "search_objects", category, exc)
            return create_tool_error_response(exc)

        return create_tool_success_response(
            {"object_type": normalized_type, "objects": objects, "truncated": truncated}
        )

    return search_objects
