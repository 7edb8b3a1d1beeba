"""Request, policy and outcome types for statement execution."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from common.errors.error_codes import ErrorCategory, ErrorCode
from dal.engines import EngineType
from dal.util.timeouts import DEFAULT_TIMEOUT_SECONDS


@dataclass(frozen=True)
class ExecutionPolicy:
    """Effective policy of one tool binding."""

    readonly: bool = True
    timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS
    max_rows: Optional[int] = None
    report_truncation: bool = False


@dataclass(frozen=True)
class ExecutionRequest:
    """One statement execution; never persisted."""

    sql: str
    policy: ExecutionPolicy
    source_id: str
    engine: EngineType
    tool_label: str


@dataclass(frozen=True)
class StagedResult:
    """Where a result set was written."""

    path: Path
    ordering_key: str
    tool_label: str
    row_count: int
    metadata_path: Optional[Path] = None


@dataclass(frozen=True)
class ExecutionSuccess:
    rows: List[Dict[str, Any]]
    columns: List[Dict[str, Any]]
    truncated: bool
    staged: StagedResult
    duration_ms: float = 0.0

    is_error = False


@dataclass(frozen=True)
class ReadonlyViolation:
    statement: Optional[str]
    reason: Optional[str]
    keyword: Optional[str] = None
    code: ErrorCode = field(default=ErrorCode.READONLY_VIOLATION, init=False)
    category: ErrorCategory = field(default=ErrorCategory.READONLY_VIOLATION, init=False)

    is_error = True

    @property
    def message(self) -> str:
        detail = f" ({self.reason})" if self.reason else ""
        return (
            "Read-only violation: destructive statements are not allowed "
            f"on this source{detail}."
        )


@dataclass(frozen=True)
class ExecutionFailure:
    message: str
    category: ErrorCategory = ErrorCategory.UNKNOWN
    code: ErrorCode = ErrorCode.EXECUTION_ERROR

    is_error = True


@dataclass(frozen=True)
class ExecutionTimeout:
    timeout_seconds: float
    elapsed_seconds: Optional[float] = None
    code: ErrorCode = field(default=ErrorCode.EXECUTION_ERROR, init=False)
    category: ErrorCategory = field(default=ErrorCategory.TIMEOUT, init=False)

    is_error = True

    @property
    def message(self) -> str:
        return f"Query timed out after {float(self.timeout_seconds):g}s and was cancelled."


ExecutionOutcome = Union[ExecutionSuccess, ReadonlyViolation, ExecutionFailure, ExecutionTimeout]
