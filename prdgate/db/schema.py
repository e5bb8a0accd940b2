"""
prdgate Database Schema Definitions

Raw SQL schema for the local SQLite store, expressed as an ordered chain of
named snapshots. Each snapshot re-declares every table of the one before it,
so applying any snapshot to an older store only adds what is missing.
"""

from dataclasses import dataclass, field
from typing import Dict, Tuple


@dataclass(frozen=True)
class SchemaVersion:
    """
    One named schema snapshot, tracked through PRAGMA user_version.

    ``repairs`` run between the tables and the indexes, so rows that were
    valid under the previous snapshot can be brought in line with new
    unique indexes.
    """
    version: int
    name: str
    tables: Dict[str, str]
    indexes: Dict[str, str] = field(default_factory=dict)
    repairs: Tuple[str, ...] = ()

    def script(self) -> str:
        statements = list(self.tables.values()) + list(self.repairs) + list(self.indexes.values())
        return "\n".join(statements)


_PROJECTS = """
CREATE TABLE IF NOT EXISTS projects (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    project_id TEXT NOT NULL UNIQUE,
    name TEXT NOT NULL,
    description TEXT,
    data TEXT,
    created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
    updated_at DATETIME DEFAULT CURRENT_TIMESTAMP
);
"""

_SETTINGS = """
CREATE TABLE IF NOT EXISTS settings (
    key TEXT PRIMARY KEY,
    value TEXT,
    updated_at DATETIME DEFAULT CURRENT_TIMESTAMP
);
"""

_RECENT_PROJECTS = """
CREATE TABLE IF NOT EXISTS recent_projects (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    project_id TEXT NOT NULL,
    name TEXT NOT NULL,
    accessed_at DATETIME DEFAULT CURRENT_TIMESTAMP
);
"""

_GENERATED_FILES = """
CREATE TABLE IF NOT EXISTS generated_files (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    project_id TEXT NOT NULL,
    task_id TEXT NOT NULL,
    path TEXT NOT NULL,
    content TEXT NOT NULL,
    language TEXT NOT NULL DEFAULT 'plaintext',
    status TEXT NOT NULL DEFAULT 'pending',
    created_at DATETIME DEFAULT CURRENT_TIMESTAMP,
    updated_at DATETIME DEFAULT CURRENT_TIMESTAMP
);
"""

_TASK_STATUS = """
CREATE TABLE IF NOT EXISTS task_status (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    project_id TEXT NOT NULL,
    task_id TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'pending',
    error_message TEXT,
    updated_at DATETIME DEFAULT CURRENT_TIMESTAMP
);
"""


V1_INITIAL = SchemaVersion(
    version=1,
    name="initial",
    tables={
        "projects": _PROJECTS,
        "settings": _SETTINGS,
        "recent_projects": _RECENT_PROJECTS,
    },
    indexes={
        "idx_recent_projects_project": (
            "CREATE INDEX IF NOT EXISTS idx_recent_projects_project ON recent_projects(project_id);"
        ),
    },
)

V2_GENERATED_ARTIFACTS = SchemaVersion(
    version=2,
    name="generated_artifacts",
    tables={
        **V1_INITIAL.tables,
        "generated_files": _GENERATED_FILES,
        "task_status": _TASK_STATUS,
    },
    indexes=dict(V1_INITIAL.indexes),
)

V3_COMPOUND_KEYS = SchemaVersion(
    version=3,
    name="compound_keys",
    tables=dict(V2_GENERATED_ARTIFACTS.tables),
    # Newest row per compound key wins.
    repairs=(
        "DELETE FROM generated_files WHERE id NOT IN "
        "(SELECT MAX(id) FROM generated_files GROUP BY project_id, task_id, path);",
        "DELETE FROM task_status WHERE id NOT IN "
        "(SELECT MAX(id) FROM task_status GROUP BY project_id, task_id);",
    ),
    indexes={
        **V2_GENERATED_ARTIFACTS.indexes,
        "idx_generated_files_key": (
            "CREATE UNIQUE INDEX IF NOT EXISTS idx_generated_files_key "
            "ON generated_files(project_id, task_id, path);"
        ),
        "idx_generated_files_task": (
            "CREATE INDEX IF NOT EXISTS idx_generated_files_task "
            "ON generated_files(project_id, task_id);"
        ),
        "idx_generated_files_status": (
            "CREATE INDEX IF NOT EXISTS idx_generated_files_status "
            "ON generated_files(project_id, status);"
        ),
        "idx_task_status_key": (
            "CREATE UNIQUE INDEX IF NOT EXISTS idx_task_status_key "
            "ON task_status(project_id, task_id);"
        ),
    },
)

SCHEMA_VERSIONS: Tuple[SchemaVersion, ...] = (
    V1_INITIAL,
    V2_GENERATED_ARTIFACTS,
    V3_COMPOUND_KEYS,
)

LATEST_SCHEMA = SCHEMA_VERSIONS[-1]
SCHEMA_SQLITE = LATEST_SCHEMA.script()
