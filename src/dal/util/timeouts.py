import asyncio
import inspect
import logging
import threading
import time
from typing import Awaitable, Callable, Optional, TypeVar

T = TypeVar("T")
logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 60.0

# Upper bound on how long a best-effort cancel may hold up the caller.
CANCEL_GRACE_SECONDS = 5.0


class QueryTimeoutError(TimeoutError):
    """Canonical DAL timeout error with provider and operation context."""

    def __init__(
        self,
        provider: str,
        operation_name: str,
        timeout_seconds: Optional[float],
        elapsed_seconds: Optional[float] = None,
    ) -> None:
        """Initialize timeout details with provider/operation context."""
        self.provider = provider
        self.operation_name = operation_name
        self.timeout_seconds = timeout_seconds
        self.elapsed_seconds = elapsed_seconds
        timeout_display = "unknown"
        if isinstance(timeout_seconds, (int, float)):
            timeout_display = f"{float(timeout_seconds):g}"
        super().__init__(f"{provider} {operation_name} timed out after {timeout_display}s.")


class CancelScope:
    """Cancellation target for one request.

    A connector attaches a hook that stops the statement it runs for this
    request and detaches it once that statement has finished. Firing the
    scope only reaches a statement attached to it, so a deadline on one
    request never interrupts another request on the same source.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._hook: Optional[Callable[[], object]] = None
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def attach(self, hook: Callable[[], object]) -> bool:
        """Register the hook of the running statement.

        Returns False when the scope was already cancelled; the statement
        must not start then. Safe to call from a worker thread.
        """
        with self._lock:
            if self._cancelled:
                return False
            self._hook = hook
            return True

    def detach(self) -> None:
        with self._lock:
            self._hook = None

    async def cancel(self) -> None:
        """Fire the attached hook once; later calls do nothing."""
        with self._lock:
            self._cancelled = True
            hook, self._hook = self._hook, None
        if hook is None:
            return
        result = hook()
        if inspect.isawaitable(result):
            await result


def _log_abandoned(task: "asyncio.Task") -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.debug("event=abandoned_statement_finished error=%s", exc)


async def run_shielded(operation: Awaitable[T]) -> T:
    """Await ``operation`` in its own task that the caller's cancellation cannot stop.

    A statement abandoned at its deadline keeps its connection until it has
    actually stopped, so no other request can pick that connection up while a
    ``CancelScope`` hook may still target it.
    """
    task = asyncio.ensure_future(operation)
    task.add_done_callback(_log_abandoned)
    return await asyncio.shield(task)


async def cancel_best_effort(cancel: Optional[Callable[[], object]], provider: str) -> None:
    """Invoke a sync or async cancel hook without letting it fail or hang the caller."""
    if cancel is None:
        return
    try:
        result = cancel()
        if inspect.isawaitable(result):
            await asyncio.wait_for(result, timeout=CANCEL_GRACE_SECONDS)
    except Exception as exc:
        logger.warning("event=cancel_failed provider=%s error=%s", provider, exc)


async def run_with_timeout(
    operation: Callable[[], Awaitable[T]],
    timeout_seconds: Optional[float],
    cancel: Optional[Callable[[], object]] = None,
    *,
    provider: str = "unknown",
    operation_name: str = "operation",
) -> T:
    """Run an awaitable operation under a deadline.

    On expiry the operation is abandoned, ``cancel`` is invoked best-effort
    and ``QueryTimeoutError`` is raised. The operation is never retried.
    A missing or non-positive timeout falls back to ``DEFAULT_TIMEOUT_SECONDS``.
    """
    if not timeout_seconds or timeout_seconds <= 0:
        timeout_seconds = DEFAULT_TIMEOUT_SECONDS
    started = time.monotonic()
    try:
        return await asyncio.wait_for(operation(), timeout=timeout_seconds)
    except asyncio.TimeoutError as exc:
        elapsed = time.monotonic() - started
        logger.warning(
            "event=query_timeout provider=%s operation=%s timeout_s=%s elapsed_s=%.3f",
            provider,
            operation_name,
            timeout_seconds,
            elapsed,
        )
        await cancel_best_effort(cancel, provider)
        raise QueryTimeoutError(
            provider=provider,
            operation_name=operation_name,
            timeout_seconds=timeout_seconds,
            elapsed_seconds=elapsed,
        ) from exc
