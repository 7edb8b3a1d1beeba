"""Tests for the search_objects tool handler."""

import pytest

from dal.engines import EngineType
from dal.manager import ConnectorManager
from sql_gateway.services.execution.models import ExecutionPolicy
from sql_gateway.tools.registry import ToolBinding
from sql_gateway.tools.search_objects import (
    MAX_LIMIT,
    clamp_limit,
    create_search_objects_tool_handler,
    like_to_regex,
)
from tests._support.fake_connectors import RecordingConnector

CATALOG = {
    "public": {
        "customers": [
            {"name": "id", "type": "integer", "nullable": False},
            {"name": "email", "type": "text", "nullable": True},
        ],
        "orders": [
            {"name": "id", "type": "integer", "nullable": False},
            {"name": "customer_id", "type": "integer", "nullable": True},
        ],
    },
    "sales": {"customer_notes": [{"name": "note", "type": "text", "nullable": True}]},
}


def _handler(connector, timeout=5.0):
    binding = ToolBinding(
        name="search_objects",
        kind="search_objects",
        source_id=connector.source_id,
        engine=EngineType.POSTGRES,
        policy=ExecutionPolicy(timeout_seconds=timeout),
    )
    return create_search_objects_tool_handler(binding, ConnectorManager([connector]))


@pytest.mark.parametrize(
    "pattern, name, expected",
    [
        ("cust%", "Customers", True),
        ("cust%", "orders", False),
        ("ord_rs", "orders", True),
        ("a.b", "axb", False),
        (None, "anything", True),
    ],
)
def test_like_to_regex(pattern, name, expected):
    assert bool(like_to_regex(pattern).match(name)) is expected


def test_clamp_limit():
    assert clamp_limit(0) == 1
    assert clamp_limit(50) == 50
    assert clamp_limit(10**6) == MAX_LIMIT
    assert clamp_limit("oops") == 100


@pytest.mark.asyncio
async def test_search_schemas():
    response = await _handler(RecordingConnector(catalog=CATALOG))(object_type="schema")
    assert response.payload == {
        "success": True,
        "data": {
            "object_type": "schema",
            "objects": [{"name": "public"}, {"name": "sales"}],
            "truncated": False,
        },
    }


@pytest.mark.asyncio
async def test_search_tables_by_pattern():
    response = await _handler(RecordingConnector(catalog=CATALOG))(
        object_type="TABLE", pattern="cust%"
    )
    assert response.payload["data"]["objects"] == [
        {"schema": "public", "name": "customers"},
        {"schema": "sales", "name": "customer_notes"},
    ]


@pytest.mark.asyncio
async def test_search_columns_within_table():
    response = await _handler(RecordingConnector(catalog=CATALOG))(
        object_type="column", pattern="%id", schema="public", table="orders"
    )
    assert response.payload["data"]["objects"] == [
        {"schema": "public", "table": "orders", "name": "id", "type": "integer", "nullable": False},
        {
            "schema": "public",
            "table": "orders",
            "name": "customer_id",
            "type": "integer",
            "nullable": True,
        },
    ]


@pytest.mark.asyncio
async def test_limit_truncates():
    response = await _handler(RecordingConnector(catalog=CATALOG))(
        object_type="table", limit=1
    )
    data = response.payload["data"]
    assert len(data["objects"]) == 1
    assert data["truncated"] is True


@pytest.mark.asyncio
async def test_invalid_object_type():
    connector = RecordingConnector(catalog=CATALOG)
    response = await _handler(connector)(object_type="procedure")
    assert response.is_error is True
    assert response.payload["code"] == "EXECUTION_ERROR"
    assert connector.calls == []


@pytest.mark.asyncio
async def test_catalog_timeout():
    connector = RecordingConnector(catalog=CATALOG, delay=5)
    response = await _handler(connector, timeout=0.05)(object_type="schema")
    assert response.is_error is True
    assert "timed out" in response.payload["error"]

    connector.delay = 0
    follow_up = await _handler(connector, timeout=0.05)(object_type="schema")
    assert follow_up.is_error is False
