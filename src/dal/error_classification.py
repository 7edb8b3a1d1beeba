from __future__ import annotations

import logging
from dataclasses import dataclass

from opentelemetry import trace

from common.config.env import get_env_bool
from common.errors.error_codes import ErrorCategory

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ErrorClassification:
    """Structured provider-aware error classification."""

    category: ErrorCategory
    provider: str
    is_retryable: bool


_TIMEOUT_FRAGMENTS = (
    "timeout",
    "timed out",
    "canceling statement due to statement timeout",
    "maximum statement execution time exceeded",
    "query execution was interrupted",
    "interrupted",
)
_CONNECTIVITY_FRAGMENTS = (
    "could not connect",
    "connection refused",
    "connection reset",
    "connection closed",
    "connection is closed",
    "lost connection",
    "server has gone away",
    "network",
    "dns",
    "connection failed",
    "unable to open database",
)
_AUTH_FRAGMENTS = (
    "permission denied",
    "not authorized",
    "access denied",
    "unauthorized",
    "insufficient privileges",
    "password authentication failed",
    "login failed",
    "attempt to write a readonly database",
    "read-only transaction",
)
_SYNTAX_FRAGMENTS = (
    "syntax error",
    "you have an error in your sql syntax",
    "incorrect syntax",
    "parse error",
    "no such table",
    "no such column",
    "does not exist",
    "doesn't exist",
    "invalid object name",
    "invalid column name",
    "unknown column",
)


def classify_error(provider: str, exc: BaseException) -> ErrorCategory:
    """Classify an error into a provider-agnostic category."""
    return classify_error_info(provider, exc).category


def classify_error_info(provider: str, exc: BaseException) -> ErrorClassification:
    """Classify an error into a provider-aware category with retryability."""
    message = str(exc).lower()
    class_name = exc.__class__.__name__.lower()
    module_name = exc.__class__.__module__.lower()
    provider = (provider or "unknown").lower()

    if isinstance(exc, TimeoutError) or _matches_any(message, _TIMEOUT_FRAGMENTS):
        return _classification(ErrorCategory.TIMEOUT, provider)
    if isinstance(exc, (ConnectionError, OSError)) or _matches_any(
        message, _CONNECTIVITY_FRAGMENTS
    ):
        return _classification(ErrorCategory.CONNECTIVITY, provider)
    if _matches_any(message, _AUTH_FRAGMENTS):
        return _classification(ErrorCategory.AUTH, provider)
    if _matches_any(message, _SYNTAX_FRAGMENTS):
        return _classification(ErrorCategory.SYNTAX, provider)

    if module_name.startswith("asyncpg"):
        if "syntax" in class_name or "undefined" in class_name:
            return _classification(ErrorCategory.SYNTAX, provider)
        if "invalidauthorization" in class_name or "invalidpassword" in class_name:
            return _classification(ErrorCategory.AUTH, provider)
        if "querycanceled" in class_name:
            return _classification(ErrorCategory.TIMEOUT, provider)

    if class_name in {"programmingerror"}:
        return _classification(ErrorCategory.SYNTAX, provider)
    if class_name in {"interfaceerror", "connectionerror"}:
        return _classification(ErrorCategory.CONNECTIVITY, provider)

    return _classification(ErrorCategory.UNKNOWN, provider)


# Recovery hints for each error category
RECOVERY_HINTS: dict[ErrorCategory, str] = {
    ErrorCategory.TIMEOUT: "Consider reducing query complexity or increasing the source timeout",
    ErrorCategory.CONNECTIVITY: "Check network configuration and database availability",
    ErrorCategory.AUTH: "Verify credentials and permission grants for the requested operation",
    ErrorCategory.SYNTAX: "Review SQL syntax; the query may reference invalid identifiers",
    ErrorCategory.STAGING: "Check that the result staging directory is writable",
    ErrorCategory.READONLY_VIOLATION: "The source is read-only; only read statements may run",
    ErrorCategory.UNKNOWN: "Inspect error details for root cause",
}


def emit_classified_error(
    provider: str, operation: str, category: ErrorCategory, exc: BaseException
) -> None:
    """Emit structured telemetry for a classified error.

    Sets error.classification.* attributes on the current span and logs one
    structured line. The exception message itself is not attached.
    """
    if not get_env_bool("DAL_CLASSIFIED_ERROR_TELEMETRY", True):
        return

    category = ErrorCategory(category)
    recovery_hint = RECOVERY_HINTS.get(category, RECOVERY_HINTS[ErrorCategory.UNKNOWN])
    retryable = category in _RETRYABLE

    span = trace.get_current_span()
    if span.is_recording():
        span.set_attribute("error.classification.category", category.value)
        span.set_attribute("error.classification.provider", provider)
        span.set_attribute("error.classification.operation", operation)
        span.set_attribute("error.classification.is_retryable", retryable)
        span.set_attribute("error.classification.recovery_hint", recovery_hint)
        span.add_event(
            "dal.error.classified",
            {
                "provider": provider,
                "category": category.value,
                "operation": operation,
                "error_type": exc.__class__.__name__,
            },
        )

    logger.error(
        "event=dal_error_classified provider=%s operation=%s category=%s error_type=%s",
        provider,
        operation,
        category.value,
        exc.__class__.__name__,
    )


_RETRYABLE = {ErrorCategory.TIMEOUT, ErrorCategory.CONNECTIVITY}


def _matches_any(text: str, fragments: tuple[str, ...]) -> bool:
    return any(fragment in text for fragment in fragments)


def _classification(category: ErrorCategory, provider: str) -> ErrorClassification:
    return ErrorClassification(
        category=category,
        provider=provider,
        is_retryable=category in _RETRYABLE,
    )
