"""Centralized SQL statement policy.

Keyword and function sets used by the statement classifier. Treat every set as
a floor: anything the classifier does not recognise is rejected on read-only
sources regardless of whether it appears here.
"""

from typing import FrozenSet

# Leading keywords of statements that only read.
READ_ONLY_LEADERS: FrozenSet[str] = frozenset(
    {
        "SELECT",
        "WITH",
        "VALUES",
        "TABLE",
        "SHOW",
        "DESCRIBE",
        "DESC",
        "EXPLAIN",
        "PRAGMA",
    }
)

# Data-modifying and DDL keywords. Destructive as a leading token and anywhere
# inside a statement that otherwise reads (writable CTEs, EXPLAIN ANALYZE,
# FOR UPDATE locking).
DESTRUCTIVE_KEYWORDS: FrozenSet[str] = frozenset(
    {
        "INSERT",
        "UPDATE",
        "DELETE",
        "DROP",
        "ALTER",
        "TRUNCATE",
        "CREATE",
        "GRANT",
        "REVOKE",
        "DENY",
        "REPLACE",
        "MERGE",
        "UPSERT",
        "RENAME",
    }
)

# Destructive keywords that are also ordinary scalar function names.
FUNCTION_NAME_KEYWORDS: FrozenSet[str] = frozenset({"REPLACE"})

# Keywords that run code, write files or change server state even inside a
# SELECT (SELECT ... INTO, T-SQL batches chained without ';' such as
# "SELECT 1 DISABLE TRIGGER t ON dbo.x").
EXECUTION_KEYWORDS: FrozenSet[str] = frozenset(
    {
        "INTO",
        "EXEC",
        "EXECUTE",
        "CALL",
        "COPY",
        "LOCK",
        "VACUUM",
        "REINDEX",
        "ATTACH",
        "DETACH",
        "DBCC",
        "KILL",
        "SHUTDOWN",
        "BACKUP",
        "RESTORE",
        "RECONFIGURE",
        "CHECKPOINT",
        "DISABLE",
        "ENABLE",
        "SETUSER",
    }
)

# Engine-specific administrative and session statements. All of them are
# rejected on read-only sources; the set only sharpens the rejection reason.
ADMINISTRATIVE_STATEMENTS: FrozenSet[str] = EXECUTION_KEYWORDS | frozenset(
    {
        "ANALYZE",
        "BEGIN",
        "BULK",
        "CLUSTER",
        "COMMENT",
        "COMMIT",
        "DEALLOCATE",
        "DECLARE",
        "DISCARD",
        "DO",
        "END",
        "FLUSH",
        "HANDLER",
        "IMPORT",
        "INSTALL",
        "LISTEN",
        "LOAD",
        "NOTIFY",
        "OPTIMIZE",
        "PREPARE",
        "PURGE",
        "REFRESH",
        "RELEASE",
        "REPAIR",
        "RESET",
        "REVERT",
        "ROLLBACK",
        "SAVEPOINT",
        "SECURITY",
        "SET",
        "START",
        "UNINSTALL",
        "UNLISTEN",
        "USE",
        "XA",
    }
)

# Functions with side effects on data, sequences, sessions or the server.
SIDE_EFFECT_FUNCTIONS: FrozenSet[str] = frozenset(
    {
        # PostgreSQL sequences and settings
        "nextval",
        "setval",
        "set_config",
        # PostgreSQL server administration
        "pg_cancel_backend",
        "pg_terminate_backend",
        "pg_reload_conf",
        "pg_rotate_logfile",
        "pg_switch_wal",
        "pg_create_restore_point",
        "pg_promote",
        "pg_advisory_lock",
        "pg_advisory_lock_shared",
        "pg_advisory_xact_lock",
        "pg_advisory_xact_lock_shared",
        "pg_try_advisory_lock",
        "pg_try_advisory_xact_lock",
        # PostgreSQL large objects and adminpack file access
        "lo_create",
        "lo_import",
        "lo_export",
        "lo_unlink",
        "lo_put",
        "lo_from_bytea",
        "pg_file_write",
        "pg_file_rename",
        "pg_file_unlink",
        # Remote execution
        "dblink",
        "dblink_exec",
        # MySQL named locks
        "get_lock",
        "release_lock",
        "release_all_locks",
        # SQLite extension loading
        "load_extension",
        # SQL Server
        "openrowset",
        "opendatasource",
        "openquery",
    }
)

# PRAGMA names that take a parenthesised argument and still only read.
READ_ONLY_PRAGMA_FUNCTIONS: FrozenSet[str] = frozenset(
    {
        "table_info",
        "table_xinfo",
        "table_list",
        "index_list",
        "index_info",
        "index_xinfo",
        "foreign_key_list",
        "foreign_key_check",
        "integrity_check",
        "quick_check",
    }
)

# PRAGMA names that change the database even without an assignment.
WRITE_PRAGMAS: FrozenSet[str] = frozenset(
    {
        "optimize",
        "shrink_memory",
        "incremental_vacuum",
        "wal_checkpoint",
        "case_sensitive_like",
    }
)
