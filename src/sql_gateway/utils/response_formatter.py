"""Tool response construction.

Responses carry a single JSON text item. Successful ``execute_sql`` calls go
through ``create_pii_safe_tool_response``, which refuses to carry row data,
column names, counts or file locations even when a caller passes them.
"""

from __future__ import annotations

import json
from typing import Any, Dict, List, Literal, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field

from common.errors.error_codes import ErrorCode, parse_error_code
from common.errors.sanitization import sanitize_error_message

JSON_MIME_TYPE = "application/json"

# Keys that would leak result content or its location into the conversation.
FORBIDDEN_DATA_KEYS = frozenset({"file_path", "rows", "columns", "count"})


class ToolContent(BaseModel):
    """One text content item."""

    type: Literal["text"] = "text"
    text: str
    mimeType: str = JSON_MIME_TYPE


class ToolResponse(BaseModel):
    """Transport-neutral tool result."""

    model_config = ConfigDict(populate_by_name=True)

    content: List[ToolContent]
    is_error: bool = Field(False, alias="isError")

    @property
    def payload(self) -> Dict[str, Any]:
        """Decode the JSON payload of the first content item."""
        return json.loads(self.content[0].text)

    def to_mcp(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


def _json_response(payload: Mapping[str, Any], *, is_error: bool = False) -> ToolResponse:
    text = json.dumps(payload, ensure_ascii=False, separators=(",", ":"), default=str)
    return ToolResponse(content=[ToolContent(text=text)], is_error=is_error)


def _strip_forbidden(value: Any) -> Any:
    if isinstance(value, Mapping):
        return {
            str(key): _strip_forbidden(item)
            for key, item in value.items()
            if key not in FORBIDDEN_DATA_KEYS
        }
    if isinstance(value, (list, tuple)):
        return [_strip_forbidden(item) for item in value]
    return value


def create_tool_success_response(data: Optional[Mapping[str, Any]] = None) -> ToolResponse:
    """Build ``{"success": true, "data": ...}`` without filtering."""
    return _json_response({"success": True, "data": dict(data or {})})


def create_pii_safe_tool_response(data: Optional[Mapping[str, Any]] = None) -> ToolResponse:
    """Build a success response that cannot expose result content.

    Any ``file_path``, ``rows``, ``columns`` or ``count`` key is removed at
    every nesting level before the payload is serialised.
    """
    return _json_response({"success": True, "data": _strip_forbidden(dict(data or {}))})


def create_tool_error_response(message: Any, code: Any = ErrorCode.EXECUTION_ERROR) -> ToolResponse:
    """Build an ``isError`` response with a redacted, length-bounded message."""
    error_code = parse_error_code(code)
    return _json_response(
        {
            "success": False,
            "error": sanitize_error_message(message),
            "code": error_code.value,
        },
        is_error=True,
    )
