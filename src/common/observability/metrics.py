"""Optional low-cardinality metrics for the gateway.

Metrics stay off unless ``GATEWAY_METRICS_ENABLED`` says otherwise or an OTLP
exporter is configured. Attributes are limited to tool names, engines and
outcomes; SQL text and source data never become metric labels.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from opentelemetry import metrics

from common.config.env import get_env_bool

logger = logging.getLogger(__name__)


def is_otel_exporter_configured() -> bool:
    """Whether the standard OTEL variables point at an exporter."""
    if get_env_bool("OTEL_DISABLE_EXPORTER", False):
        return False
    if (os.getenv("OTEL_METRICS_EXPORTER") or "").strip().lower() == "none":
        return False
    return any(
        (os.getenv(name) or "").strip()
        for name in ("OTEL_EXPORTER_OTLP_ENDPOINT", "OTEL_EXPORTER_OTLP_METRICS_ENDPOINT")
    )


def is_metrics_enabled(enabled_env_var: str) -> bool:
    """An explicit flag wins; otherwise follow the exporter configuration."""
    raw = os.getenv(enabled_env_var)
    if raw is None:
        return is_otel_exporter_configured()
    try:
        return get_env_bool(enabled_env_var, False) is True
    except ValueError:
        logger.warning("Invalid %s value '%s'; metrics disabled.", enabled_env_var, raw)
        return False


def _label(value: Any) -> Any:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (str, int, float)):
        return value
    return str(value)


def _labels(attributes: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    return {key: _label(value) for key, value in (attributes or {}).items() if value is not None}


@dataclass
class OptionalMetrics:
    """OTEL counters and histograms behind an enablement flag.

    Instruments are created lazily, once per name. Emission failures are
    logged at debug level and never reach callers.
    """

    meter_name: str
    enabled_env_var: str
    _meter: Any = None
    _instruments: Dict[str, Any] = field(default_factory=dict)

    def _instrument(self, kind: str, name: str, description: str, unit: str):
        instrument = self._instruments.get(name)
        if instrument is None:
            if self._meter is None:
                self._meter = metrics.get_meter(self.meter_name)
            factory = getattr(self._meter, f"create_{kind}")
            instrument = factory(name=name, description=description, unit=unit)
            self._instruments[name] = instrument
        return instrument

    def _emit(self, kind, name, value, description, unit, attributes) -> None:
        if not is_metrics_enabled(self.enabled_env_var):
            return
        try:
            instrument = self._instrument(kind, name, description, unit)
            if kind == "counter":
                instrument.add(int(value), _labels(attributes))
            else:
                instrument.record(float(value), _labels(attributes))
        except Exception as exc:
            logger.debug("Metric emission failed for %s: %s", name, exc)

    def add_counter(
        self,
        name: str,
        value: int = 1,
        *,
        description: str = "",
        unit: str = "1",
        attributes: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Add to a monotonic counter."""
        self._emit("counter", name, value, description, unit, attributes)

    def record_histogram(
        self,
        name: str,
        value: float,
        *,
        description: str = "",
        unit: str = "1",
        attributes: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Record one histogram datapoint."""
        self._emit("histogram", name, value, description, unit, attributes)


class GatewayMetrics(OptionalMetrics):
    """Named gateway instruments."""

    def record_tool_call(self, tool_name: str, *, is_error: bool, duration_ms: float) -> None:
        attributes = {"tool_name": tool_name, "is_error": is_error}
        self.add_counter(
            "mcp.tool.calls",
            description="Count of MCP tool calls by outcome",
            attributes=attributes,
        )
        self.record_histogram(
            "mcp.tool.duration_ms",
            duration_ms,
            unit="ms",
            description="MCP tool end-to-end duration in milliseconds",
            attributes={"tool_name": tool_name},
        )

    def record_readonly_violation(self, *, engine: str, source_id: str) -> None:
        self.add_counter(
            "gateway.readonly_violation.count",
            description="Statements rejected on read-only bindings",
            attributes={"engine": engine, "source_id": source_id},
        )

    def record_query_duration(self, duration_ms: float, *, engine: str, source_id: str) -> None:
        self.record_histogram(
            "gateway.query.duration_ms",
            duration_ms,
            unit="ms",
            description="Statement execution time excluding staging",
            attributes={"engine": engine, "source_id": source_id},
        )


gateway_metrics = GatewayMetrics(
    meter_name="sql-gateway",
    enabled_env_var="GATEWAY_METRICS_ENABLED",
)
