from __future__ import annotations

import datetime
import decimal
import uuid
from typing import Any, Optional

LogicalType = str

LOGICAL_TYPES = {
    "integer",
    "float",
    "numeric",
    "boolean",
    "string",
    "binary",
    "timestamp",
    "date",
    "time",
    "json",
    "uuid",
    "unknown",
}

_ASYNCPG_OIDS = {
    16: "boolean",
    17: "binary",
    20: "integer",
    21: "integer",
    23: "integer",
    700: "float",
    701: "float",
    1700: "numeric",
    1082: "date",
    1083: "time",
    1114: "timestamp",
    1184: "timestamp",
    114: "json",
    3802: "json",
    2950: "uuid",
    25: "string",
    1042: "string",
    1043: "string",
}

_MYSQL_TYPE_CODES = {
    0: "numeric",  # DECIMAL
    1: "integer",  # TINY
    2: "integer",  # SHORT
    3: "integer",  # LONG
    4: "float",  # FLOAT
    5: "float",  # DOUBLE
    7: "timestamp",  # TIMESTAMP
    8: "integer",  # LONGLONG
    9: "integer",  # INT24
    10: "date",  # DATE
    11: "time",  # TIME
    12: "timestamp",  # DATETIME
    13: "integer",  # YEAR
    245: "json",  # JSON
    246: "numeric",  # NEWDECIMAL
    252: "string",  # BLOB/TEXT
    253: "string",  # VAR_STRING
    254: "string",  # STRING
}

# pyodbc reports Python types as the cursor description type code.
_PYTHON_TYPES = (
    (bool, "boolean"),
    (int, "integer"),
    (float, "float"),
    (decimal.Decimal, "numeric"),
    (datetime.datetime, "timestamp"),
    (datetime.date, "date"),
    (datetime.time, "time"),
    (uuid.UUID, "uuid"),
    (bytes, "binary"),
    (bytearray, "binary"),
    (str, "string"),
)


def logical_type_from_db_type(db_type: Optional[str]) -> LogicalType:
    """Map an engine-specific type name to a logical type."""
    if not db_type:
        return "unknown"
    normalized = db_type.strip().lower()
    if "timestamp" in normalized or "datetime" in normalized:
        return "timestamp"
    if normalized == "date" or normalized.endswith(" date"):
        return "date"
    if normalized == "time" or normalized.startswith("time "):
        return "time"
    if "bool" in normalized or normalized == "bit":
        return "boolean"
    if "uuid" in normalized or normalized == "uniqueidentifier":
        return "uuid"
    if "json" in normalized:
        return "json"
    if "numeric" in normalized or "decimal" in normalized or "money" in normalized:
        return "numeric"
    if any(token in normalized for token in ("double", "float", "real")):
        return "float"
    if "int" in normalized:
        return "integer"
    if any(token in normalized for token in ("blob", "bytea", "binary")):
        return "binary"
    if any(token in normalized for token in ("char", "text", "string", "clob")):
        return "string"
    return "unknown"


def logical_type_from_asyncpg_oid(oid: int) -> LogicalType:
    """Map asyncpg OIDs to logical types."""
    return _ASYNCPG_OIDS.get(int(oid), "unknown")


def logical_type_from_type_code(type_code: Any, provider: Optional[str] = None) -> LogicalType:
    """Map a DB-API cursor description type code to a logical type."""
    if type_code is None:
        return "unknown"
    if isinstance(type_code, str):
        return logical_type_from_db_type(type_code)
    if isinstance(type_code, int) and provider in {"mysql", "mariadb"}:
        return _MYSQL_TYPE_CODES.get(type_code, "unknown")
    if isinstance(type_code, type):
        for python_type, logical_type in _PYTHON_TYPES:
            if issubclass(type_code, python_type):
                return logical_type
    return "unknown"
