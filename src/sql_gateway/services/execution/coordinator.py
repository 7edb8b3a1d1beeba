"""Statement execution under policy, deadline and staging.

Order of operations for one call:

1. classify the SQL for the source's dialect;
2. destructive under a read-only policy stops here and the connector is
   never touched;
3. otherwise connect if needed and execute under the policy deadline;
   on expiry only this call's statement is cancelled and it is not retried;
4. successful rows are capped and staged to disk.

Every failure becomes an outcome value; ``execute`` does not raise.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Callable, Optional

from opentelemetry import trace

from common.errors.error_codes import ErrorCategory
from common.observability.metrics import gateway_metrics
from common.sanitization.text import redact_sensitive_info
from common.sql.classifier import ClassificationResult, classify
from dal.connector import Connector
from dal.error_classification import classify_error, emit_classified_error
from dal.util.row_limits import cap_rows_with_metadata
from dal.util.timeouts import CancelScope, QueryTimeoutError, run_with_timeout
from sql_gateway.services.execution.models import (
    ExecutionFailure,
    ExecutionOutcome,
    ExecutionRequest,
    ExecutionSuccess,
    ExecutionTimeout,
    ReadonlyViolation,
)
from sql_gateway.services.staging.stager import ResultStager

logger = logging.getLogger(__name__)

Classifier = Callable[[str, Optional[str]], ClassificationResult]


class ExecutionCoordinator:
    """Runs statements for tool bindings; holds no per-call state."""

    def __init__(self, stager: ResultStager, *, classifier: Classifier = classify) -> None:
        """Bind the stager and the statement classifier."""
        self._stager = stager
        self._classify = classifier

    async def execute(self, request: ExecutionRequest, connector: Connector) -> ExecutionOutcome:
        """Execute one request and return its outcome."""
        span = trace.get_current_span()
        engine = request.engine.value

        verdict = self._classify(request.sql, engine)
        if verdict.is_destructive and request.policy.readonly:
            logger.warning(
                "event=readonly_violation source=%s keyword=%s reason=%s",
                request.source_id,
                verdict.keyword,
                verdict.reason,
            )
            span.set_attribute("gateway.outcome", ErrorCategory.READONLY_VIOLATION.value)
            gateway_metrics.record_readonly_violation(engine=engine, source_id=request.source_id)
            return ReadonlyViolation(
                statement=verdict.statement, reason=verdict.reason, keyword=verdict.keyword
            )

        timeout_seconds = request.policy.timeout_seconds
        cancel_scope = CancelScope()

        async def _run():
            await connector.ensure_connected()
            return await connector.execute_sql(
                request.sql, timeout_seconds=timeout_seconds, cancel_scope=cancel_scope
            )

        started = time.monotonic()
        try:
            result = await run_with_timeout(
                _run,
                timeout_seconds,
                cancel=cancel_scope.cancel,
                provider=engine,
                operation_name="execute_sql",
            )
        except QueryTimeoutError as exc:
            span.set_attribute("gateway.outcome", ErrorCategory.TIMEOUT.value)
            emit_classified_error(engine, "execute_sql", ErrorCategory.TIMEOUT, exc)
            return ExecutionTimeout(
                timeout_seconds=timeout_seconds, elapsed_seconds=exc.elapsed_seconds
            )
        except Exception as exc:
            category = classify_error(engine, exc)
            span.set_attribute("gateway.outcome", category.value)
            emit_classified_error(engine, "execute_sql", category, exc)
            logger.error(
                "event=execution_failed source=%s category=%s error=%s",
                request.source_id,
                category.value,
                redact_sensitive_info(str(exc)),
            )
            return ExecutionFailure(message=str(exc), category=category)
        duration_ms = (time.monotonic() - started) * 1000.0

        rows, truncated = cap_rows_with_metadata(result.rows, request.policy.max_rows)
        columns = list(result.columns or [])
        try:
            staged = await asyncio.to_thread(
                self._stager.stage,
                rows,
                tool_label=request.tool_label,
                columns=columns,
                truncated=truncated,
                source_id=request.source_id,
                duration_ms=round(duration_ms, 3),
            )
        except (OSError, TypeError, ValueError) as exc:
            span.set_attribute("gateway.outcome", ErrorCategory.STAGING.value)
            logger.error(
                "event=staging_failed source=%s error=%s", request.source_id, exc, exc_info=True
            )
            return ExecutionFailure(
                message="Query succeeded but its result could not be staged.",
                category=ErrorCategory.STAGING,
            )

        span.set_attribute("gateway.outcome", "success")
        gateway_metrics.record_query_duration(
            duration_ms, engine=engine, source_id=request.source_id
        )
        logger.info(
            "event=execution_succeeded source=%s rows=%d truncated=%s duration_ms=%.1f",
            request.source_id,
            len(rows),
            truncated,
            duration_ms,
        )
        return ExecutionSuccess(
            rows=rows,
            columns=columns,
            truncated=truncated,
            staged=staged,
            duration_ms=duration_ms,
        )
