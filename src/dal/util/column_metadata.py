"""Column descriptors for staged result metadata.

Every connector reports columns as ``{"name", "type", "db_type", "nullable"}``
where ``type`` is a logical type shared across engines.
"""

from __future__ import annotations

from typing import Any, List, Optional, Sequence

from dal.util.logical_types import (
    logical_type_from_asyncpg_oid,
    logical_type_from_db_type,
    logical_type_from_type_code,
)


def build_column_meta(
    name: str,
    logical_type: str,
    db_type: Optional[str] = None,
    nullable: Optional[bool] = None,
) -> dict:
    """Return a normalized column metadata payload."""
    return {"name": name, "type": logical_type, "db_type": db_type, "nullable": nullable}


def _asyncpg_column(attr: Any) -> dict:
    attr_type = getattr(attr, "type", None)
    db_type = getattr(attr_type, "name", None)
    oid = getattr(attr_type, "oid", None)
    if oid is None:
        logical_type = logical_type_from_db_type(db_type)
    else:
        logical_type = logical_type_from_asyncpg_oid(oid)
    return build_column_meta(getattr(attr, "name", None) or str(attr), logical_type, db_type)


def columns_from_asyncpg_attributes(attrs: Optional[Sequence[Any]]) -> List[dict]:
    """Columns of an asyncpg prepared statement (``get_attributes()``)."""
    return [_asyncpg_column(attr) for attr in attrs or ()]


def _db_type_name(type_code: Any) -> Optional[str]:
    # pyodbc reports Python classes, aiosqlite nothing, aiomysql integer codes.
    if isinstance(type_code, str):
        return type_code
    if isinstance(type_code, type):
        return type_code.__name__
    return None


def columns_from_cursor_description(
    description: Optional[Sequence[Sequence[Any]]], provider: Optional[str] = None
) -> List[dict]:
    """Columns from a DB-API ``cursor.description``.

    The seventh item of each entry (``null_ok``) is used when the driver
    fills it in.
    """
    columns: List[dict] = []
    for entry in description or ():
        type_code = entry[1] if len(entry) > 1 else None
        null_ok = entry[6] if len(entry) > 6 else None
        columns.append(
            build_column_meta(
                entry[0],
                logical_type_from_type_code(type_code, provider=provider),
                db_type=_db_type_name(type_code),
                nullable=None if null_ok is None else bool(null_ok),
            )
        )
    return columns
