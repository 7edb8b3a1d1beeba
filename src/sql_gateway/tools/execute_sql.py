"""MCP tool: execute_sql - Run SQL against one source and stage the result."""

import logging
from typing import Awaitable, Callable

from common.errors.sanitization import sanitize_error_message
from dal.manager import ConnectorManager
from sql_gateway.services.execution.coordinator import ExecutionCoordinator
from sql_gateway.services.execution.models import (
    ExecutionOutcome,
    ExecutionPolicy,
    ExecutionRequest,
    ExecutionSuccess,
)
from sql_gateway.tools.registry import ToolBinding
from sql_gateway.utils.response_formatter import (
    ToolResponse,
    create_pii_safe_tool_response,
    create_tool_error_response,
)

TOOL_NAME = "execute_sql"
logger = logging.getLogger(__name__)


def describe(binding: ToolBinding) -> str:
    """Tool description shown to the client."""
    mode = "read-only" if binding.policy.readonly else "read-write"
    return (
        f"Execute SQL on the '{binding.source_id}' {binding.engine.value} database "
        f"({mode}, timeout {binding.policy.timeout_seconds:g}s). "
        "Results are saved server-side; the response reports success or failure only."
    )


def response_for_outcome(outcome: ExecutionOutcome, policy: ExecutionPolicy) -> ToolResponse:
    """Map an execution outcome to the public response shape."""
    if isinstance(outcome, ExecutionSuccess):
        data = {}
        if policy.report_truncation and outcome.truncated:
            data["truncated"] = True
        return create_pii_safe_tool_response(data)
    return create_tool_error_response(outcome.message, outcome.code)


def create_execute_sql_tool_handler(
    binding: ToolBinding,
    manager: ConnectorManager,
    coordinator: ExecutionCoordinator,
) -> Callable[[str], Awaitable[ToolResponse]]:
    """Build the handler for one ``execute_sql`` binding."""

    async def execute_sql(sql: str):
        """Execute a SQL statement against the bound source.

        Failure Modes:
            - READONLY_VIOLATION: the statement may modify data on a read-only binding.
            - EXECUTION_ERROR: the database rejected the statement, it timed out,
              or the result could not be saved.
        """
        try:
            connector = manager.get_connector(binding.source_id)
        except Exception as exc:
            logger.error("event=connector_lookup_failed source=%s", binding.source_id)
            return create_tool_error_response(sanitize_error_message(exc))

        request = ExecutionRequest(
            sql=sql if isinstance(sql, str) else "",
            policy=binding.policy,
            source_id=binding.source_id,
            engine=binding.engine,
            tool_label=binding.source_id,
        )
        outcome = await coordinator.execute(request, connector)
        return response_for_outcome(outcome, binding.policy)

    return execute_sql
