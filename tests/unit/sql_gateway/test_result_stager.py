"""Tests for out-of-band result staging."""

import datetime
import decimal
import json
import threading
import uuid

import pytest

from sql_gateway.services.staging.serialization import rows_to_json, to_json_value
from sql_gateway.services.staging.stager import (
    METADATA_SUFFIX,
    RESULT_SUFFIX,
    ResultStager,
    latest_staged_result,
    sanitize_label,
)


def test_stage_writes_rows_as_json_array(staging_dir):
    stager = ResultStager(staging_dir)
    rows = [{"id": 1, "name": "Ada"}, {"id": 2, "name": "Linus"}]

    staged = stager.stage(rows, tool_label="prod", columns=[{"name": "id"}], source_id="prod")

    assert staged.path.parent == staging_dir
    assert staged.path.name.endswith(f"_prod{RESULT_SUFFIX}")
    assert staged.path.name.startswith(staged.ordering_key)
    assert staged.row_count == 2
    assert json.loads(staged.path.read_text(encoding="utf-8")) == rows


def test_metadata_sidecar(staging_dir):
    stager = ResultStager(staging_dir)
    staged = stager.stage(
        [{"a": 1}],
        tool_label="prod",
        columns=[{"name": "a", "type": "integer"}],
        truncated=True,
        source_id="prod",
        duration_ms=12.5,
    )

    assert staged.metadata_path.name.endswith(METADATA_SUFFIX)
    metadata = json.loads(staged.metadata_path.read_text(encoding="utf-8"))
    assert metadata == {
        "ordering_key": staged.ordering_key,
        "tool_label": "prod",
        "source_id": "prod",
        "row_count": 1,
        "truncated": True,
        "duration_ms": 12.5,
        "columns": [{"name": "a", "type": "integer"}],
        "result_file": staged.path.name,
    }


def test_metadata_can_be_disabled(staging_dir):
    staged = ResultStager(staging_dir, write_metadata=False).stage([], tool_label="x")
    assert staged.metadata_path is None
    assert [p.name for p in staging_dir.iterdir()] == [staged.path.name]
    assert json.loads(staged.path.read_text(encoding="utf-8")) == []


def test_ordering_keys_sort_by_creation(staging_dir):
    stager = ResultStager(staging_dir)
    first = stager.stage([{"n": 1}], tool_label="a")
    second = stager.stage([{"n": 2}], tool_label="b")
    assert first.ordering_key < second.ordering_key
    assert latest_staged_result(staging_dir) == second.path


def test_existing_files_are_never_overwritten(staging_dir, monkeypatch):
    """A name collision moves on to the next sequence number."""
    stager = ResultStager(staging_dir)
    keys = iter(["20260101T000000000000Z-000001", "20260101T000000000000Z-000002"])
    monkeypatch.setattr(stager, "next_ordering_key", lambda: next(keys))
    staging_dir.mkdir(parents=True)
    taken = staging_dir / f"20260101T000000000000Z-000001_t{RESULT_SUFFIX}"
    taken.write_text("[\"original\"]", encoding="utf-8")

    staged = stager.stage([{"n": 1}], tool_label="t")

    assert staged.ordering_key == "20260101T000000000000Z-000002"
    assert json.loads(taken.read_text(encoding="utf-8")) == ["original"]


def test_concurrent_staging_produces_independent_files(staging_dir):
    stager = ResultStager(staging_dir)
    results = []
    lock = threading.Lock()

    def _stage(index):
        staged = stager.stage([{"i": index}], tool_label=f"tool{index % 3}")
        with lock:
            results.append((index, staged.path))

    threads = [threading.Thread(target=_stage, args=(i,)) for i in range(20)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    paths = {path for _, path in results}
    assert len(paths) == 20
    for index, path in results:
        assert json.loads(path.read_text(encoding="utf-8")) == [{"i": index}]


def test_unwritable_directory_raises(tmp_path):
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("", encoding="utf-8")
    with pytest.raises(OSError):
        ResultStager(blocker / "results").stage([{"a": 1}], tool_label="x")


def test_latest_staged_result_missing_dir(tmp_path):
    assert latest_staged_result(tmp_path / "absent") is None
    (tmp_path / "empty").mkdir()
    assert latest_staged_result(tmp_path / "empty") is None


@pytest.mark.parametrize(
    "label, expected",
    [("prod", "prod"), ("a/../b", "a____b"), ("", "default"), ("x y", "x_y")],
)
def test_sanitize_label(label, expected):
    assert sanitize_label(label) == expected


def test_driver_values_become_json_primitives():
    value = uuid.UUID("12345678-1234-5678-1234-567812345678")
    row = {
        "d": decimal.Decimal("10.50"),
        "i": decimal.Decimal("3"),
        "ts": datetime.datetime(2026, 1, 2, 3, 4, 5),
        "day": datetime.date(2026, 1, 2),
        "u": value,
        "b": b"\x01\xff",
        "nan": float("nan"),
        "span": datetime.timedelta(minutes=1),
        "tags": ("a", "b"),
    }
    assert rows_to_json([row]) == [
        {
            "d": 10.5,
            "i": 3,
            "ts": "2026-01-02T03:04:05",
            "day": "2026-01-02",
            "u": str(value),
            "b": "01ff",
            "nan": None,
            "span": 60.0,
            "tags": ["a", "b"],
        }
    ]
    assert to_json_value(ValueError("boom")) == "boom"
