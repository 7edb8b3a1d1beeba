"""Shared observability helpers."""

from common.observability.metrics import gateway_metrics

__all__ = ["gateway_metrics"]
