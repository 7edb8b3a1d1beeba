"""Canonical error-code taxonomy for the gateway.

The public contract is deliberately two-valued: callers can tell a policy
rejection apart from everything else, and nothing more. Richer detail lives in
``ErrorCategory`` and only reaches logs and telemetry.
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    """Error codes exposed in tool responses."""

    READONLY_VIOLATION = "READONLY_VIOLATION"
    EXECUTION_ERROR = "EXECUTION_ERROR"


class ErrorCategory(str, Enum):
    """Internal failure categories (logs/telemetry only)."""

    READONLY_VIOLATION = "readonly_violation"
    TIMEOUT = "timeout"
    CONNECTIVITY = "connectivity"
    SYNTAX = "syntax"
    AUTH = "auth"
    STAGING = "staging"
    UNKNOWN = "unknown"


_CATEGORY_TO_CODE: dict[ErrorCategory, ErrorCode] = {
    ErrorCategory.READONLY_VIOLATION: ErrorCode.READONLY_VIOLATION,
}


def canonical_error_code_for_category(category: str | ErrorCategory | None) -> ErrorCode:
    """Collapse an internal category into the public two-valued taxonomy."""
    if category is None:
        return ErrorCode.EXECUTION_ERROR
    try:
        parsed = ErrorCategory(category)
    except ValueError:
        return ErrorCode.EXECUTION_ERROR
    return _CATEGORY_TO_CODE.get(parsed, ErrorCode.EXECUTION_ERROR)


def parse_error_code(
    value: Any,
    *,
    fallback: ErrorCode = ErrorCode.EXECUTION_ERROR,
) -> ErrorCode:
    """Parse string-like values to `ErrorCode` with safe fallback."""
    if isinstance(value, ErrorCode):
        return value
    if value is None:
        return fallback
    try:
        return ErrorCode(str(value).strip())
    except ValueError:
        return fallback
