"""Tests for policy-checked, deadline-bound statement execution."""

import asyncio
import json

import pytest

from common.errors.error_codes import ErrorCategory, ErrorCode
from dal.engines import EngineType
from sql_gateway.services.execution.coordinator import ExecutionCoordinator
from sql_gateway.services.execution.models import (
    ExecutionFailure,
    ExecutionPolicy,
    ExecutionRequest,
    ExecutionSuccess,
    ExecutionTimeout,
    ReadonlyViolation,
)
from sql_gateway.services.staging.stager import ResultStager
from tests._support.fake_connectors import RecordingConnector


def _request(sql, **policy):
    return ExecutionRequest(
        sql=sql,
        policy=ExecutionPolicy(**policy),
        source_id="default",
        engine=EngineType.POSTGRES,
        tool_label="default",
    )


@pytest.fixture
def coordinator(staging_dir):
    return ExecutionCoordinator(ResultStager(staging_dir))


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "sql",
    [
        "UPDATE users SET name = 'x'",
        "DELETE FROM users",
        "INSERT INTO users VALUES (1)",
        "DROP TABLE users",
        "ALTER TABLE users ADD COLUMN x int",
        "TRUNCATE users",
    ],
)
async def test_readonly_violation_never_reaches_connector(coordinator, staging_dir, sql):
    connector = RecordingConnector()

    outcome = await coordinator.execute(_request(sql, readonly=True), connector)

    assert isinstance(outcome, ReadonlyViolation)
    assert outcome.code is ErrorCode.READONLY_VIOLATION
    assert outcome.is_error
    assert connector.calls == []
    assert not staging_dir.exists()


@pytest.mark.asyncio
async def test_destructive_statement_runs_when_writable(coordinator):
    connector = RecordingConnector(rows=[], columns=[])

    outcome = await coordinator.execute(_request("DELETE FROM users", readonly=False), connector)

    assert isinstance(outcome, ExecutionSuccess)
    assert connector.executed == ["DELETE FROM users"]


@pytest.mark.asyncio
async def test_success_stages_rows(coordinator):
    connector = RecordingConnector(rows=[{"id": 1}, {"id": 2}])

    outcome = await coordinator.execute(_request("SELECT id FROM users"), connector)

    assert isinstance(outcome, ExecutionSuccess)
    assert outcome.truncated is False
    assert connector.calls == ["ensure_connected", "connect", "execute_sql"]
    staged = json.loads(outcome.staged.path.read_text(encoding="utf-8"))
    assert staged == [{"id": 1}, {"id": 2}]
    assert outcome.staged.tool_label == "default"


@pytest.mark.asyncio
async def test_max_rows_caps_staged_rows(coordinator):
    connector = RecordingConnector(rows=[{"n": i} for i in range(10)])

    outcome = await coordinator.execute(_request("SELECT n FROM t", max_rows=3), connector)

    assert outcome.truncated is True
    assert json.loads(outcome.staged.path.read_text(encoding="utf-8")) == [
        {"n": 0},
        {"n": 1},
        {"n": 2},
    ]


@pytest.mark.asyncio
async def test_timeout_cancels_and_reports_execution_error(coordinator):
    connector = RecordingConnector(delay=5)

    outcome = await coordinator.execute(
        _request("SELECT pg_sleep(120)", timeout_seconds=0.05), connector
    )

    assert isinstance(outcome, ExecutionTimeout)
    assert outcome.code is ErrorCode.EXECUTION_ERROR
    assert outcome.category is ErrorCategory.TIMEOUT
    assert outcome.message == "Query timed out after 0.05s and was cancelled."
    assert 0.04 <= outcome.elapsed_seconds < 1
    assert connector.cancelled == 1
    assert connector.executed == ["SELECT pg_sleep(120)"]


@pytest.mark.asyncio
async def test_timeout_cancels_only_the_expired_call(coordinator):
    connector = RecordingConnector(delays={"SELECT 5": 5, "SELECT 2": 0.2})

    slow, fast = await asyncio.gather(
        coordinator.execute(_request("SELECT 5", timeout_seconds=0.05), connector),
        coordinator.execute(_request("SELECT 2", timeout_seconds=30), connector),
    )

    assert isinstance(slow, ExecutionTimeout)
    assert isinstance(fast, ExecutionSuccess)
    assert connector.cancelled_sql == ["SELECT 5"]
    assert json.loads(fast.staged.path.read_text(encoding="utf-8")) == [{"id": 1, "name": "Ada"}]


@pytest.mark.asyncio
async def test_driver_error_becomes_execution_failure(coordinator):
    connector = RecordingConnector(error=RuntimeError('relation "nope" does not exist'))

    outcome = await coordinator.execute(_request("SELECT * FROM nope"), connector)

    assert isinstance(outcome, ExecutionFailure)
    assert outcome.code is ErrorCode.EXECUTION_ERROR
    assert outcome.category is ErrorCategory.SYNTAX
    assert "does not exist" in outcome.message


@pytest.mark.asyncio
async def test_connect_failure_becomes_execution_failure(coordinator):
    connector = RecordingConnector()

    async def _fail():
        raise ConnectionRefusedError("connection refused")

    connector.connect = _fail

    outcome = await coordinator.execute(_request("SELECT 1"), connector)

    assert isinstance(outcome, ExecutionFailure)
    assert outcome.category is ErrorCategory.CONNECTIVITY


@pytest.mark.asyncio
async def test_staging_failure_is_reported(tmp_path):
    blocker = tmp_path / "file"
    blocker.write_text("", encoding="utf-8")
    coordinator = ExecutionCoordinator(ResultStager(blocker / "results"))

    outcome = await coordinator.execute(_request("SELECT 1"), RecordingConnector())

    assert isinstance(outcome, ExecutionFailure)
    assert outcome.category is ErrorCategory.STAGING
    assert outcome.message == "Query succeeded but its result could not be staged."


@pytest.mark.asyncio
async def test_classifier_receives_engine_dialect(staging_dir):
    seen = []

    def _classifier(sql, dialect):
        from common.sql.classifier import classify

        seen.append(dialect)
        return classify(sql, dialect)

    coordinator = ExecutionCoordinator(ResultStager(staging_dir), classifier=_classifier)
    await coordinator.execute(_request("SELECT 1"), RecordingConnector())
    assert seen == ["postgres"]


@pytest.mark.asyncio
async def test_concurrent_calls_produce_independent_files(coordinator, staging_dir):
    connectors = [RecordingConnector(rows=[{"call": i}], delay=0.01) for i in range(8)]

    outcomes = await asyncio.gather(
        *(
            coordinator.execute(_request(f"SELECT {i} AS call"), connector)
            for i, connector in enumerate(connectors)
        )
    )

    paths = {outcome.staged.path for outcome in outcomes}
    assert len(paths) == 8
    for i, outcome in enumerate(outcomes):
        assert json.loads(outcome.staged.path.read_text(encoding="utf-8")) == [{"call": i}]
