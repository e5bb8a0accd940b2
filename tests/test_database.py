"""
Tests for the SQLite store: schema chain, projects, settings and the
recent-projects list.
"""

import sqlite3

import pytest

from prdgate.db.database import SQLiteDatabase, get_database
from prdgate.db.schema import LATEST_SCHEMA, SCHEMA_VERSIONS, V1_INITIAL, V2_GENERATED_ARTIFACTS
from prdgate.errors import StorageError
from prdgate.models.domain import NewGeneratedFile


def _tables(path) -> set:
    conn = sqlite3.connect(path)
    try:
        rows = conn.execute("SELECT name FROM sqlite_master WHERE type = 'table'").fetchall()
    finally:
        conn.close()
    return {r[0] for r in rows}


def _indexes(path) -> set:
    conn = sqlite3.connect(path)
    try:
        rows = conn.execute("SELECT name FROM sqlite_master WHERE type = 'index'").fetchall()
    finally:
        conn.close()
    return {r[0] for r in rows}


# =============================================================================
# Schema chain
# =============================================================================

def test_schema_versions_are_ordered_supersets():
    assert [s.version for s in SCHEMA_VERSIONS] == list(range(1, len(SCHEMA_VERSIONS) + 1))
    for older, newer in zip(SCHEMA_VERSIONS, SCHEMA_VERSIONS[1:]):
        assert set(older.tables) <= set(newer.tables)
        assert set(older.indexes) <= set(newer.indexes)
        for name, ddl in older.tables.items():
            assert newer.tables[name] == ddl


def test_init_schema_creates_latest(db):
    assert db.schema_version() == LATEST_SCHEMA.version
    assert set(LATEST_SCHEMA.tables) <= _tables(db.db_path)
    assert set(LATEST_SCHEMA.indexes) <= _indexes(db.db_path)


def test_init_schema_is_idempotent(db):
    db.save_project("p1", "Demo")
    db.init_schema()
    db.init_schema()
    assert db.schema_version() == LATEST_SCHEMA.version
    assert db.load_project("p1") is not None


def test_upgrade_from_initial_snapshot(tmp_path):
    path = tmp_path / "old.sqlite"
    conn = sqlite3.connect(path)
    conn.executescript(V1_INITIAL.script())
    conn.execute("INSERT INTO projects (project_id, name, data) VALUES ('p-old', 'Old', '{}')")
    conn.execute("PRAGMA user_version = 1")
    conn.commit()
    conn.close()
    assert "generated_files" not in _tables(path)

    database = SQLiteDatabase(path)
    database.init_schema()

    assert database.schema_version() == LATEST_SCHEMA.version
    assert {"generated_files", "task_status"} <= _tables(path)
    assert database.load_project("p-old").name == "Old"
    database.save_generated_file("p-old", "T-1", "a.py", "x")
    assert len(database.list_generated_files("p-old")) == 1


def test_upgrade_keeps_newest_row_per_compound_key(tmp_path):
    path = tmp_path / "v2.sqlite"
    conn = sqlite3.connect(path)
    conn.executescript(V2_GENERATED_ARTIFACTS.script())
    conn.executemany(
        "INSERT INTO generated_files (project_id, task_id, path, content) VALUES (?, ?, ?, ?)",
        [
            ("p", "T-1", "a.py", "old"),
            ("p", "T-1", "a.py", "new"),
            ("p", "T-1", "b.py", "only"),
            ("p", "T-2", "a.py", "other task"),
        ],
    )
    conn.executemany(
        "INSERT INTO task_status (project_id, task_id, status) VALUES (?, ?, ?)",
        [("p", "T-1", "generating"), ("p", "T-1", "generated"), ("p", "T-2", "pending")],
    )
    conn.execute("PRAGMA user_version = 2")
    conn.commit()
    conn.close()

    database = SQLiteDatabase(path)
    database.init_schema()

    assert database.schema_version() == LATEST_SCHEMA.version
    files = {(f.task_id, f.path): f.content for f in database.list_generated_files("p")}
    assert files == {("T-1", "a.py"): "new", ("T-1", "b.py"): "only", ("T-2", "a.py"): "other task"}
    statuses = {s.task_id: s.status for s in database.list_task_statuses("p")}
    assert statuses == {"T-1": "generated", "T-2": "pending"}
    assert {"idx_generated_files_key", "idx_task_status_key"} <= _indexes(path)

    database.save_generated_file("p", "T-1", "a.py", "newer")
    assert database.get_generated_file("p", "T-1", "a.py").content == "newer"


def test_get_database_uses_configured_path(tmp_path, monkeypatch):
    monkeypatch.setenv("PRDGATE_DB_PATH", str(tmp_path / "configured.sqlite"))
    monkeypatch.setenv("PRDGATE_RECENT_PROJECTS_LIMIT", "3")

    database = get_database()

    assert database.db_path == tmp_path / "configured.sqlite"
    assert database.recent_projects_limit == 3
    assert database.schema_version() == LATEST_SCHEMA.version


# =============================================================================
# Projects
# =============================================================================

def test_save_project_upserts(db):
    first = db.save_project("p1", "Demo", data={"phases": {"currentPhase": 1}})
    second = db.save_project("p1", "Demo renamed", description="desc", data={"phases": {"currentPhase": 2}})

    assert second.id == first.id
    assert second.name == "Demo renamed"
    assert second.description == "desc"
    assert second.data == {"phases": {"currentPhase": 2}}
    assert second.created_at == first.created_at
    assert len(db.list_projects()) == 1


def test_load_missing_project_returns_none(db):
    assert db.load_project("nope") is None


def test_list_projects_most_recent_first(db):
    db.save_project("a", "A")
    db.save_project("b", "B")
    db.save_project("a", "A again")

    assert [p.project_id for p in db.list_projects()] == ["a", "b"]


def test_delete_project_removes_dependents(db):
    db.save_project("p1", "Demo")
    db.add_recent_project("p1", "Demo")
    db.save_generated_file("p1", "T-1", "a.py", "x")
    db.upsert_task_status("p1", "T-1", "generated")
    db.save_project("p2", "Other")
    db.save_generated_file("p2", "T-1", "a.py", "y")

    db.delete_project("p1")

    assert db.load_project("p1") is None
    assert db.get_recent_projects() == []
    assert db.list_generated_files("p1") == []
    assert db.list_task_statuses("p1") == []
    assert len(db.list_generated_files("p2")) == 1


def test_corrupt_project_data_loads_as_empty(db):
    db.save_project("p1", "Demo")
    conn = sqlite3.connect(db.db_path)
    conn.execute("UPDATE projects SET data = 'not json' WHERE project_id = 'p1'")
    conn.commit()
    conn.close()

    assert db.load_project("p1").data == {}


# =============================================================================
# Settings
# =============================================================================

def test_settings_round_trip_json(db):
    assert db.get_setting("theme", "light") == "light"

    db.set_setting("theme", "dark")
    db.set_setting("tiers", {"prdAnalysis": "openai/gpt-4o"})

    assert db.get_setting("theme") == "dark"
    assert db.get_setting("tiers") == {"prdAnalysis": "openai/gpt-4o"}

    db.set_setting("theme", "solarized")
    assert db.get_setting("theme") == "solarized"

    db.delete_setting("theme")
    assert db.get_setting("theme") is None


# =============================================================================
# Recent projects
# =============================================================================

def test_recent_projects_move_to_front(db):
    db.add_recent_project("a", "A")
    db.add_recent_project("b", "B")
    db.add_recent_project("a", "A")

    recent = db.get_recent_projects()

    assert [r.project_id for r in recent] == ["a", "b"]


def test_recent_projects_capped(db):
    for i in range(15):
        db.add_recent_project(f"p{i}", f"Project {i}")

    recent = db.get_recent_projects(limit=100)

    assert len(recent) == 10
    assert recent[0].project_id == "p14"
    assert recent[-1].project_id == "p5"


def test_recent_projects_limit_is_configurable(tmp_path):
    database = SQLiteDatabase(tmp_path / "small.sqlite", recent_projects_limit=2)
    database.init_schema()
    for name in ("a", "b", "c"):
        database.add_recent_project(name, name.upper())

    assert [r.project_id for r in database.get_recent_projects()] == ["c", "b"]


# =============================================================================
# Errors
# =============================================================================

def test_sqlite_errors_surface_as_storage_error(db):
    db.save_generated_files("p1", [NewGeneratedFile(task_id="T-1", path="a.py", content="x")])
    with pytest.raises(StorageError):
        db.save_generated_files("p1", [NewGeneratedFile(task_id="T-1", path="a.py", content="y")])
    assert db.get_generated_file("p1", "T-1", "a.py").content == "x"
