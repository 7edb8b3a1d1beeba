"""Unit test environment helpers."""

import pytest

_GATEWAY_ENV = (
    "GATEWAY_CONFIG",
    "DSN",
    "ALLOW_DESTRUCTIVE",
    "TRANSPORT",
    "HOST",
    "PORT",
    "SAFE_SQL_RESULTS_DIR",
    "SAFE_SQL_RESULTS_METADATA",
    "OTEL_EXPORTER_OTLP_ENDPOINT",
    "GATEWAY_METRICS_ENABLED",
    "DAL_TRACE_QUERIES",
    "DAL_CLASSIFIED_ERROR_TELEMETRY",
)


@pytest.fixture(autouse=True)
def _minimal_env(monkeypatch):
    """Isolate unit tests from gateway settings in the developer's shell."""
    for name in _GATEWAY_ENV:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("TELEMETRY_ENFORCEMENT_MODE", "off")
    yield


@pytest.fixture
def staging_dir(tmp_path):
    """A fresh staging directory under the test's temp path."""
    return tmp_path / ".safe-sql-results"
