import hashlib
from typing import Awaitable, Optional, TypeVar

from opentelemetry import trace

from common.observability.context import request_id_var, source_id_var
from common.observability.metrics import is_metrics_enabled

T = TypeVar("T")


def trace_enabled() -> bool:
    """Return True when DAL query tracing is enabled or OTEL exporter defaults apply."""
    return is_metrics_enabled("DAL_TRACE_QUERIES")


def _hash_sql(sql: str) -> str:
    return hashlib.sha256(sql.encode("utf-8")).hexdigest()


async def trace_query_operation(
    name: str,
    provider: str,
    execution_model: str,
    sql: Optional[str],
    operation: Awaitable[T],
) -> T:
    """Trace a DAL query operation with OTEL when enabled.

    Only a hash of the statement is recorded; SQL text and rows never reach
    span attributes.
    """
    if not trace_enabled():
        return await operation

    tracer = trace.get_tracer("dal")
    with tracer.start_as_current_span(name) as span:
        request_id = request_id_var.get()
        if request_id:
            span.set_attribute("request_id", request_id)
        source_id = source_id_var.get()
        if source_id:
            span.set_attribute("db.source_id", source_id)
        span.set_attribute("db.provider", provider)
        span.set_attribute("db.execution_model", execution_model)
        if sql:
            span.set_attribute("db.statement_hash", _hash_sql(sql))
        try:
            result = await operation
            span.set_attribute("db.status", "ok")
            return result
        except Exception:
            span.set_attribute("db.status", "error")
            raise
