"""
prdgate Database Package

Local SQLite store with a versioned schema chain.
"""

from prdgate.db.database import (
    Database,
    SQLiteDatabase,
    get_database,
)
from prdgate.db.schema import LATEST_SCHEMA, SCHEMA_SQLITE, SCHEMA_VERSIONS, SchemaVersion

__all__ = [
    "Database",
    "SQLiteDatabase",
    "get_database",
    "SchemaVersion",
    "SCHEMA_VERSIONS",
    "LATEST_SCHEMA",
    "SCHEMA_SQLITE",
]
