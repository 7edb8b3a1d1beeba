"""Shared utilities for SQL dialect handling."""

from typing import Optional, Tuple

from common.sql.lexer import (
    MYSQL_NO_BACKSLASH_PROFILE,
    MYSQL_PROFILE,
    POSTGRES_PROFILE,
    SQLITE_PROFILE,
    SQLSERVER_PROFILE,
    LexProfile,
)

_DIALECT_ALIASES = {
    "postgresql": "postgres",
    "postgres": "postgres",
    "pg": "postgres",
    "mysql": "mysql",
    "mariadb": "mysql",
    "sqlserver": "sqlserver",
    "mssql": "sqlserver",
    "tsql": "sqlserver",
    "sqlite": "sqlite",
    "sqlite3": "sqlite",
}

# MySQL may run with or without NO_BACKSLASH_ESCAPES; both readings are lexed.
_PROFILES = {
    "postgres": (POSTGRES_PROFILE,),
    "mysql": (MYSQL_PROFILE, MYSQL_NO_BACKSLASH_PROFILE),
    "sqlserver": (SQLSERVER_PROFILE,),
    "sqlite": (SQLITE_PROFILE,),
}

ALL_PROFILES: Tuple[LexProfile, ...] = (
    POSTGRES_PROFILE,
    MYSQL_PROFILE,
    MYSQL_NO_BACKSLASH_PROFILE,
    SQLSERVER_PROFILE,
    SQLITE_PROFILE,
)


def normalize_dialect(dialect: Optional[str]) -> Optional[str]:
    """Normalize an engine or dialect name; None when unknown."""
    if not dialect:
        return None
    return _DIALECT_ALIASES.get(str(dialect).lower().strip())


def lex_profiles_for_dialect(dialect: Optional[str]) -> Tuple[LexProfile, ...]:
    """Return every lexical reading that must be checked for a dialect.

    Unknown dialects get every supported reading.
    """
    normalized = normalize_dialect(dialect)
    if normalized is None:
        return ALL_PROFILES
    return _PROFILES[normalized]
