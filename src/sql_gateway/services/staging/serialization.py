"""Conversion of driver values to JSON primitives for staged results."""

import datetime
import decimal
import math
import uuid
from typing import Any


def to_json_value(value: Any) -> Any:
    """Return a JSON-serialisable equivalent of a driver value.

    Decimal becomes a number, temporal values ISO-8601 strings, UUID a string,
    binary a hex string, timedelta seconds and anything else ``str``.
    Non-finite floats become null.
    """
    if value is None or isinstance(value, (bool, int, str)):
        return value
    if isinstance(value, float):
        return value if math.isfinite(value) else None
    if isinstance(value, decimal.Decimal):
        if not value.is_finite():
            return None
        if value == value.to_integral_value():
            return int(value)
        return float(value)
    if isinstance(value, (datetime.datetime, datetime.date, datetime.time)):
        return value.isoformat()
    if isinstance(value, datetime.timedelta):
        return value.total_seconds()
    if isinstance(value, uuid.UUID):
        return str(value)
    if isinstance(value, (bytes, bytearray, memoryview)):
        return bytes(value).hex()
    if isinstance(value, dict):
        return {str(key): to_json_value(item) for key, item in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [to_json_value(item) for item in value]
    return str(value)


def rows_to_json(rows: Any) -> list:
    """Normalise a sequence of row mappings."""
    return [
        {str(key): to_json_value(item) for key, item in dict(row).items()} for row in rows
    ]
