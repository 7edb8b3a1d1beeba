"""Tracing wrapper for MCP tools."""

import functools
import logging
import time
import uuid
from typing import Any, Awaitable, Callable, ParamSpec, TypeVar

from opentelemetry import trace
from opentelemetry.trace import Status, StatusCode

from common.config.env import get_env_str
from common.observability.context import request_id_var, source_id_var
from common.observability.metrics import gateway_metrics

logger = logging.getLogger(__name__)

P = ParamSpec("P")
R = TypeVar("R")


def _response_is_error(response: Any) -> bool:
    return bool(getattr(response, "is_error", False))


def trace_tool(
    tool_name: str, source_id: str
) -> Callable[[Callable[P, Awaitable[R]]], Callable[P, Awaitable[R]]]:
    """Add OpenTelemetry tracing to an MCP tool handler.

    ``TELEMETRY_ENFORCEMENT_MODE`` decides what happens when no recording span
    is active: ``warn`` (default) logs, ``error`` refuses the call before the
    handler runs and ``off`` does nothing.

    Args:
        tool_name: The exposed tool name (e.g. "execute_sql_reporting").
        source_id: The source the tool is bound to.
    """

    def decorator(func: Callable[P, Awaitable[R]]) -> Callable[P, Awaitable[R]]:
        @functools.wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            mode = (get_env_str("TELEMETRY_ENFORCEMENT_MODE", "warn") or "warn").lower()
            tracer = trace.get_tracer("sql_gateway")
            request_id = uuid.uuid4().hex
            request_token = request_id_var.set(request_id)
            source_token = source_id_var.set(source_id)

            try:
                with tracer.start_as_current_span(
                    f"mcp.tool.{tool_name}", kind=trace.SpanKind.SERVER
                ) as span:
                    span.set_attribute("mcp.tool.name", tool_name)
                    span.set_attribute("mcp.tool.source_id", source_id)
                    span.set_attribute("request_id", request_id)
                    if not span.is_recording() and mode == "error":
                        raise RuntimeError(
                            f"Tool {tool_name} executed without active recording span "
                            "and TELEMETRY_ENFORCEMENT_MODE=error."
                        )
                    if not span.is_recording() and mode == "warn":
                        logger.warning(
                            "Tool %s executed without active recording span. Mode=%s.",
                            tool_name,
                            mode,
                        )

                    started = time.monotonic()
                    is_error = True
                    try:
                        response = await func(*args, **kwargs)
                        is_error = _response_is_error(response)
                    except Exception as exc:
                        span.record_exception(exc)
                        span.set_status(Status(StatusCode.ERROR, type(exc).__name__))
                        raise
                    finally:
                        duration_ms = max(0.0, (time.monotonic() - started) * 1000.0)
                        span.set_attribute("mcp.tool.duration_ms", duration_ms)
                        gateway_metrics.record_tool_call(
                            tool_name, is_error=is_error, duration_ms=duration_ms
                        )

                    span.set_attribute("mcp.tool.is_error", is_error)
                    span.set_status(Status(StatusCode.ERROR if is_error else StatusCode.OK))
                    return response
            finally:
                source_id_var.reset(source_token)
                request_id_var.reset(request_token)

        return wrapper

    return decorator
