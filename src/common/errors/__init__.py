"""Common error taxonomy helpers."""

from common.errors.error_codes import (
    ErrorCategory,
    ErrorCode,
    canonical_error_code_for_category,
    parse_error_code,
)
from common.errors.sanitization import (
    MAX_LLM_ERROR_LENGTH,
    TRUNCATION_MARKER,
    sanitize_error_message,
    truncate_for_llm,
)

__all__ = [
    "ErrorCategory",
    "ErrorCode",
    "MAX_LLM_ERROR_LENGTH",
    "TRUNCATION_MARKER",
    "canonical_error_code_for_category",
    "parse_error_code",
    "sanitize_error_message",
    "truncate_for_llm",
]
