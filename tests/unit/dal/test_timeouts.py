"""Unit tests for the query deadline helper."""

import asyncio

import pytest

from dal.util.timeouts import (
    DEFAULT_TIMEOUT_SECONDS,
    CancelScope,
    QueryTimeoutError,
    cancel_best_effort,
    run_shielded,
    run_with_timeout,
)


@pytest.mark.asyncio
async def test_run_with_timeout_returns_result():
    """The operation result is returned unchanged."""

    async def _op():
        await asyncio.sleep(0)
        return "ok"

    assert await run_with_timeout(_op, 1) == "ok"


@pytest.mark.asyncio
async def test_timeout_raises_and_cancels():
    """Expiry invokes the cancel hook and raises QueryTimeoutError."""
    cancelled = []

    async def _op():
        await asyncio.sleep(5)

    async def _cancel():
        cancelled.append(True)

    with pytest.raises(QueryTimeoutError) as excinfo:
        await run_with_timeout(
            _op, 0.05, cancel=_cancel, provider="postgres", operation_name="execute_sql"
        )

    assert cancelled == [True]
    err = excinfo.value
    assert err.provider == "postgres"
    assert err.operation_name == "execute_sql"
    assert err.timeout_seconds == 0.05
    assert err.elapsed_seconds >= 0.04
    assert "timed out after 0.05s" in str(err)
    assert isinstance(err, TimeoutError)


@pytest.mark.asyncio
async def test_sync_cancel_hook_is_supported():
    """Plain callables work as cancel hooks."""
    cancelled = []

    async def _op():
        await asyncio.sleep(5)

    with pytest.raises(QueryTimeoutError):
        await run_with_timeout(_op, 0.01, cancel=lambda: cancelled.append(1))
    assert cancelled == [1]


@pytest.mark.asyncio
async def test_failing_cancel_hook_does_not_mask_timeout(caplog):
    """A broken cancel hook is logged; the timeout still surfaces."""

    async def _op():
        await asyncio.sleep(5)

    def _cancel():
        raise RuntimeError("cancel exploded")

    with pytest.raises(QueryTimeoutError):
        await run_with_timeout(_op, 0.01, cancel=_cancel, provider="mysql")
    assert "event=cancel_failed" in caplog.text


@pytest.mark.asyncio
async def test_operation_errors_propagate():
    """Non-timeout errors are not converted."""

    async def _op():
        raise ValueError("bad sql")

    with pytest.raises(ValueError, match="bad sql"):
        await run_with_timeout(_op, 1)


@pytest.mark.asyncio
@pytest.mark.parametrize("timeout", [None, 0, -3])
async def test_missing_timeout_uses_default(monkeypatch, timeout):
    """Non-positive and missing timeouts fall back to the default deadline."""
    monkeypatch.setattr("dal.util.timeouts.DEFAULT_TIMEOUT_SECONDS", 0.01)

    async def _op():
        await asyncio.sleep(5)

    with pytest.raises(QueryTimeoutError) as excinfo:
        await run_with_timeout(_op, timeout)
    assert excinfo.value.timeout_seconds == 0.01


def test_default_timeout_is_sixty_seconds():
    assert DEFAULT_TIMEOUT_SECONDS == 60.0


@pytest.mark.asyncio
async def test_cancel_best_effort_none_is_noop():
    await cancel_best_effort(None, "sqlite")


@pytest.mark.asyncio
async def test_cancel_scope_fires_attached_hook_once():
    fired = []
    scope = CancelScope()
    assert scope.attach(lambda: fired.append("stmt")) is True

    await scope.cancel()
    await scope.cancel()

    assert fired == ["stmt"]
    assert scope.cancelled is True


@pytest.mark.asyncio
async def test_cancel_scope_awaits_async_hook():
    fired = []
    scope = CancelScope()

    async def _kill():
        fired.append("killed")

    scope.attach(_kill)
    await scope.cancel()

    assert fired == ["killed"]


@pytest.mark.asyncio
async def test_detached_scope_does_not_reach_finished_statement():
    fired = []
    scope = CancelScope()
    scope.attach(lambda: fired.append("stmt"))
    scope.detach()

    await scope.cancel()

    assert fired == []


@pytest.mark.asyncio
async def test_cancelled_scope_refuses_new_statements():
    scope = CancelScope()
    await scope.cancel()

    assert scope.attach(lambda: None) is False


@pytest.mark.asyncio
async def test_run_shielded_outlives_caller_cancellation():
    finished = asyncio.Event()

    async def _statement():
        await asyncio.sleep(0.05)
        finished.set()
        return "done"

    with pytest.raises(QueryTimeoutError):
        await run_with_timeout(lambda: run_shielded(_statement()), 0.01)

    await asyncio.wait_for(finished.wait(), timeout=1)
