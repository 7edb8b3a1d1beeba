"""Sanitization helpers for model-facing error text."""

from __future__ import annotations

from typing import Any

from common.sanitization.text import redact_sensitive_info

MAX_LLM_ERROR_LENGTH = 256
TRUNCATION_MARKER = "... (truncated, see server logs)"


def truncate_for_llm(text: str, max_length: int = MAX_LLM_ERROR_LENGTH) -> str:
    """Bound text that is about to reach the model-facing channel.

    Inputs up to ``max_length`` characters are returned unchanged. Longer
    inputs keep their first ``max_length`` characters followed by
    ``TRUNCATION_MARKER``. Applying the function twice gives the same result
    as applying it once.
    """
    if text is None:
        return ""
    if len(text) <= max_length:
        return text
    return text[:max_length] + TRUNCATION_MARKER


def sanitize_error_message(
    message: Any,
    *,
    fallback: str = "Query execution failed.",
    max_length: int = MAX_LLM_ERROR_LENGTH,
) -> str:
    """Return redacted, length-bounded error text safe for tool responses."""
    raw_text = "" if message is None else str(message)
    safe_text = redact_sensitive_info(raw_text.strip())
    if not safe_text:
        safe_text = fallback
    return truncate_for_llm(safe_text, max_length=max_length)
