import pytest

from dal.util.logical_types import (
    logical_type_from_asyncpg_oid,
    logical_type_from_db_type,
    logical_type_from_type_code,
)


class TestLogicalTypeMapping:
    """Tests for logical type mapping utilities."""

    @pytest.mark.parametrize(
        "db_type,expected",
        [
            ("timestamptz", "timestamp"),
            ("timestamp", "timestamp"),
            ("date", "date"),
            ("time", "time"),
            ("boolean", "boolean"),
            ("uuid", "uuid"),
            ("jsonb", "json"),
            ("numeric(10,2)", "numeric"),
            ("decimal", "numeric"),
            ("float8", "float"),
            ("double precision", "float"),
            ("int4", "integer"),
            ("varchar", "string"),
            ("text", "string"),
        ],
    )
    def test_logical_type_from_db_type(self, db_type, expected):
        """Map db type strings to logical types."""
        assert logical_type_from_db_type(db_type) == expected

    @pytest.mark.parametrize(
        "oid,expected",
        [
            (16, "boolean"),
            (20, "integer"),
            (701, "float"),
            (1700, "numeric"),
            (1082, "date"),
            (1083, "time"),
            (1114, "timestamp"),
            (1184, "timestamp"),
            (114, "json"),
            (2950, "uuid"),
            (25, "string"),
            (999999, "unknown"),
        ],
    )
    def test_logical_type_from_asyncpg_oid(self, oid, expected):
        """Map asyncpg OIDs to logical types."""
        assert logical_type_from_asyncpg_oid(oid) == expected

    @pytest.mark.parametrize(
        "type_code,provider,expected",
        [
            (3, "mysql", "integer"),
            (246, "mariadb", "numeric"),
            (3, "sqlite", "unknown"),
            (bool, "sqlserver", "boolean"),
            (int, "sqlserver", "integer"),
            ("INTEGER", "sqlite", "integer"),
            ("datetime2", "sqlserver", "timestamp"),
            ("uniqueidentifier", "sqlserver", "uuid"),
            (None, "sqlite", "unknown"),
        ],
    )
    def test_logical_type_from_type_code(self, type_code, provider, expected):
        """Map DB-API cursor description type codes per provider."""
        assert logical_type_from_type_code(type_code, provider=provider) == expected
