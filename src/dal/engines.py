"""Supported database engines."""

from enum import Enum
from typing import Optional


class EngineType(str, Enum):
    """Canonical engine identifiers used in configuration and telemetry."""

    POSTGRES = "postgres"
    MYSQL = "mysql"
    MARIADB = "mariadb"
    SQLSERVER = "sqlserver"
    SQLITE = "sqlite"


_ENGINE_ALIASES = {
    "postgres": EngineType.POSTGRES,
    "postgresql": EngineType.POSTGRES,
    "mysql": EngineType.MYSQL,
    "mariadb": EngineType.MARIADB,
    "sqlserver": EngineType.SQLSERVER,
    "mssql": EngineType.SQLSERVER,
    "sqlite": EngineType.SQLITE,
    "sqlite3": EngineType.SQLITE,
}


def parse_engine(value: Optional[str]) -> EngineType:
    """Resolve an engine name or alias; raises ValueError when unsupported."""
    normalized = (value or "").strip().lower()
    engine = _ENGINE_ALIASES.get(normalized)
    if engine is None:
        supported = ", ".join(sorted(member.value for member in EngineType))
        raise ValueError(f"Unsupported database type '{value}'. Supported: {supported}.")
    return engine
