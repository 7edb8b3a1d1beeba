import hashlib
from unittest.mock import patch

import pytest
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

from common.observability.context import request_id_var, source_id_var
from dal.tracing import trace_enabled, trace_query_operation


@pytest.fixture
def exporter():
    exporter = InMemorySpanExporter()
    provider = TracerProvider()
    provider.add_span_processor(SimpleSpanProcessor(exporter))
    with patch("opentelemetry.trace.get_tracer") as mock_get_tracer:
        mock_get_tracer.side_effect = lambda name: provider.get_tracer(name)
        yield exporter


def test_trace_enabled_defaults_true_when_otel_exporter_configured(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    """DAL tracing should default to enabled when OTEL exporter is configured."""
    monkeypatch.setenv("OTEL_EXPORTER_OTLP_ENDPOINT", "http://otel-collector:4317")

    assert trace_enabled() is True


def test_trace_enabled_respects_explicit_false_override(monkeypatch: pytest.MonkeyPatch) -> None:
    """Explicit DAL_TRACE_QUERIES=false should disable tracing despite exporter config."""
    monkeypatch.setenv("OTEL_EXPORTER_OTLP_ENDPOINT", "http://otel-collector:4317")
    monkeypatch.setenv("DAL_TRACE_QUERIES", "false")

    assert trace_enabled() is False


@pytest.mark.asyncio
async def test_query_span_records_hash_not_sql(monkeypatch, exporter) -> None:
    """Only a statement hash and request correlation reach span attributes."""
    monkeypatch.setenv("DAL_TRACE_QUERIES", "true")

    async def _operation() -> str:
        return "OK"

    request_token = request_id_var.set("req-1")
    source_token = source_id_var.set("reporting")
    try:
        result = await trace_query_operation(
            "dal.query.execute",
            provider="postgres",
            execution_model="async",
            sql="select email from customers",
            operation=_operation(),
        )
    finally:
        source_id_var.reset(source_token)
        request_id_var.reset(request_token)

    assert result == "OK"
    (span,) = exporter.get_finished_spans()
    assert span.name == "dal.query.execute"
    assert span.attributes["db.provider"] == "postgres"
    assert span.attributes["db.execution_model"] == "async"
    assert span.attributes["db.source_id"] == "reporting"
    assert span.attributes["request_id"] == "req-1"
    assert (
        span.attributes["db.statement_hash"]
        == hashlib.sha256("select email from customers".encode("utf-8")).hexdigest()
    )
    assert span.attributes["db.status"] == "ok"
    assert "db.statement" not in span.attributes


@pytest.mark.asyncio
async def test_query_span_marks_errors(monkeypatch, exporter) -> None:
    """Failures are re-raised and the span is marked as an error."""
    monkeypatch.setenv("DAL_TRACE_QUERIES", "true")

    async def _operation() -> str:
        raise RuntimeError("relation does not exist")

    with pytest.raises(RuntimeError):
        await trace_query_operation(
            "dal.query.execute",
            provider="sqlite",
            execution_model="sync",
            sql="select 1",
            operation=_operation(),
        )

    (span,) = exporter.get_finished_spans()
    assert span.attributes["db.status"] == "error"


@pytest.mark.asyncio
async def test_disabled_tracing_awaits_operation_without_span(exporter) -> None:
    """With tracing off the operation runs untraced."""

    async def _operation() -> int:
        return 42

    result = await trace_query_operation(
        "dal.query.execute",
        provider="mysql",
        execution_model="async",
        sql="select 42",
        operation=_operation(),
    )

    assert result == 42
    assert exporter.get_finished_spans() == ()
