"""
prdgate Database Service

SQLite-backed persistence for projects, settings, recent projects, generated
files and per-task execution status.
"""

import json
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence, Union

from prdgate.db.schema import LATEST_SCHEMA, SCHEMA_VERSIONS
from prdgate.errors import EntityNotFoundError, StorageError, ValidationError
from prdgate.logging import get_logger
from prdgate.models.domain import (
    ExecutionMode,
    FileStatus,
    GeneratedFile,
    NewGeneratedFile,
    ProjectRecord,
    RecentProject,
    TaskExecutionStatus,
    TaskStatusRecord,
)

logger = get_logger(__name__)

# Sentinel for unset optional parameters
_UNSET = object()

_INITIAL_TASK_STATUS = {
    ExecutionMode.CODE_GENERATION: TaskExecutionStatus.PENDING,
    ExecutionMode.MANUAL: TaskExecutionStatus.MANUAL_PENDING,
    ExecutionMode.SKIP: TaskExecutionStatus.SKIPPED,
}


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat()


def _validate_file_status(status: str) -> None:
    if status not in FileStatus.ALL:
        raise ValidationError(
            f"Unknown file status: {status}",
            metadata={"status": status, "allowed": list(FileStatus.ALL)},
        )


def _validate_task_status(status: str) -> None:
    if status not in TaskExecutionStatus.ALL:
        raise ValidationError(
            f"Unknown task status: {status}",
            metadata={"status": status, "allowed": list(TaskExecutionStatus.ALL)},
        )


class SQLiteDatabase:
    """
    SQLite-backed persistence for prdgate state.

    Every public operation runs in its own short-lived connection. Failures
    from sqlite3 surface as StorageError and are never retried here.
    """

    def __init__(self, db_path: Path, *, recent_projects_limit: int = 10) -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self.recent_projects_limit = recent_projects_limit

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        return conn

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """Context manager for database transactions."""
        try:
            conn = self._connect()
        except sqlite3.Error as exc:
            raise StorageError(f"Cannot open database: {exc}", metadata={"db_path": str(self.db_path)}) from exc
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as exc:
            conn.rollback()
            raise StorageError(str(exc), metadata={"db_path": str(self.db_path)}) from exc
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

    def _fetchone(self, query: str, params: Iterable[Any] = ()) -> Optional[sqlite3.Row]:
        with self._transaction() as conn:
            cur = conn.execute(query, tuple(params))
            return cur.fetchone()

    def _fetchall(self, query: str, params: Iterable[Any] = ()) -> List[sqlite3.Row]:
        with self._transaction() as conn:
            cur = conn.execute(query, tuple(params))
            return cur.fetchall()

    def schema_version(self) -> int:
        row = self._fetchone("PRAGMA user_version")
        return int(row[0]) if row else 0

    def init_schema(self) -> None:
        """Apply every schema snapshot newer than the store's recorded version."""
        with self._transaction() as conn:
            current = int(conn.execute("PRAGMA user_version").fetchone()[0])
            for snapshot in SCHEMA_VERSIONS:
                if snapshot.version <= current:
                    continue
                conn.executescript(snapshot.script())
                conn.execute(f"PRAGMA user_version = {int(snapshot.version)}")
                logger.info(
                    "schema_migrated",
                    extra={"schema_version": snapshot.version, "schema_name": snapshot.name},
                )
        if current > LATEST_SCHEMA.version:
            logger.warning(
                "schema_version_newer_than_code",
                extra={"schema_version": current, "latest_known": LATEST_SCHEMA.version},
            )

    # Helper methods for JSON and timestamp parsing
    @staticmethod
    def _parse_json(value: Any) -> Optional[Union[dict, list]]:
        if value is None:
            return None
        if isinstance(value, (dict, list)):
            return value
        try:
            return json.loads(value)
        except (TypeError, ValueError):
            return None

    @staticmethod
    def _coerce_ts(value: Any) -> str:
        if isinstance(value, datetime):
            if value.tzinfo is None:
                value = value.replace(tzinfo=timezone.utc)
            return value.isoformat()
        if isinstance(value, str):
            text = value.strip()
            if not text:
                return ""
            try:
                parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
                if parsed.tzinfo is None:
                    parsed = parsed.replace(tzinfo=timezone.utc)
                return parsed.isoformat()
            except ValueError:
                return text
        return str(value) if value else ""

    # Row to model converters
    def _row_to_project(self, row: sqlite3.Row) -> ProjectRecord:
        data = self._parse_json(row["data"])
        return ProjectRecord(
            id=row["id"],
            project_id=row["project_id"],
            name=row["name"],
            description=row["description"],
            data=data if isinstance(data, dict) else {},
            created_at=self._coerce_ts(row["created_at"]),
            updated_at=self._coerce_ts(row["updated_at"]),
        )

    def _row_to_recent_project(self, row: sqlite3.Row) -> RecentProject:
        return RecentProject(
            id=row["id"],
            project_id=row["project_id"],
            name=row["name"],
            accessed_at=self._coerce_ts(row["accessed_at"]),
        )

    def _row_to_generated_file(self, row: sqlite3.Row) -> GeneratedFile:
        return GeneratedFile(
            id=row["id"],
            project_id=row["project_id"],
            task_id=row["task_id"],
            path=row["path"],
            content=row["content"],
            language=row["language"],
            status=row["status"],
            created_at=self._coerce_ts(row["created_at"]),
            updated_at=self._coerce_ts(row["updated_at"]),
        )

    def _row_to_task_status(self, row: sqlite3.Row) -> TaskStatusRecord:
        return TaskStatusRecord(
            id=row["id"],
            project_id=row["project_id"],
            task_id=row["task_id"],
            status=row["status"],
            error_message=row["error_message"],
            updated_at=self._coerce_ts(row["updated_at"]),
        )

    # Projects

    def save_project(
        self,
        project_id: str,
        name: str,
        *,
        description: Optional[str] = None,
        data: Optional[Dict[str, Any]] = None,
    ) -> ProjectRecord:
        """Insert or update a project by its project_id."""
        now = _utcnow()
        with self._transaction() as conn:
            conn.execute(
                """
                INSERT INTO projects (project_id, name, description, data, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(project_id) DO UPDATE SET
                    name=excluded.name,
                    description=excluded.description,
                    data=excluded.data,
                    updated_at=excluded.updated_at
                """,
                (project_id, name, description, json.dumps(data or {}), now, now),
            )
        record = self.load_project(project_id)
        if record is None:
            raise EntityNotFoundError("Project not found after upsert", metadata={"project_id": project_id})
        return record

    def load_project(self, project_id: str) -> Optional[ProjectRecord]:
        row = self._fetchone("SELECT * FROM projects WHERE project_id = ?", (project_id,))
        return self._row_to_project(row) if row else None

    def list_projects(self) -> List[ProjectRecord]:
        rows = self._fetchall("SELECT * FROM projects ORDER BY updated_at DESC, id DESC")
        return [self._row_to_project(r) for r in rows]

    def delete_project(self, project_id: str) -> None:
        """Delete a project together with its recent entries, files and task statuses."""
        with self._transaction() as conn:
            conn.execute("DELETE FROM recent_projects WHERE project_id = ?", (project_id,))
            conn.execute("DELETE FROM generated_files WHERE project_id = ?", (project_id,))
            conn.execute("DELETE FROM task_status WHERE project_id = ?", (project_id,))
            conn.execute("DELETE FROM projects WHERE project_id = ?", (project_id,))
        logger.info("project_deleted", extra={"project_id": project_id})

    # Settings

    def get_setting(self, key: str, default: Any = None) -> Any:
        row = self._fetchone("SELECT value FROM settings WHERE key = ?", (key,))
        if row is None or row["value"] is None:
            return default
        try:
            return json.loads(row["value"])
        except ValueError:
            return default

    def set_setting(self, key: str, value: Any) -> None:
        with self._transaction() as conn:
            conn.execute(
                """
                INSERT INTO settings (key, value, updated_at)
                VALUES (?, ?, ?)
                ON CONFLICT(key) DO UPDATE SET
                    value=excluded.value,
                    updated_at=excluded.updated_at
                """,
                (key, json.dumps(value), _utcnow()),
            )

    def delete_setting(self, key: str) -> None:
        with self._transaction() as conn:
            conn.execute("DELETE FROM settings WHERE key = ?", (key,))

    # Recent projects

    def add_recent_project(self, project_id: str, name: str) -> RecentProject:
        """Move a project to the front of the recent list, keeping only the newest entries."""
        with self._transaction() as conn:
            conn.execute("DELETE FROM recent_projects WHERE project_id = ?", (project_id,))
            cur = conn.execute(
                "INSERT INTO recent_projects (project_id, name, accessed_at) VALUES (?, ?, ?)",
                (project_id, name, _utcnow()),
            )
            recent_id = cur.lastrowid
            conn.execute(
                """
                DELETE FROM recent_projects
                WHERE id NOT IN (
                    SELECT id FROM recent_projects ORDER BY id DESC LIMIT ?
                )
                """,
                (self.recent_projects_limit,),
            )
        row = self._fetchone("SELECT * FROM recent_projects WHERE id = ?", (recent_id,))
        if row is None:
            raise EntityNotFoundError("Recent project not found after insert", metadata={"project_id": project_id})
        return self._row_to_recent_project(row)

    def get_recent_projects(self, limit: Optional[int] = None) -> List[RecentProject]:
        rows = self._fetchall(
            "SELECT * FROM recent_projects ORDER BY id DESC LIMIT ?",
            (limit if limit is not None else self.recent_projects_limit,),
        )
        return [self._row_to_recent_project(r) for r in rows]

    # Generated files

    def save_generated_file(
        self,
        project_id: str,
        task_id: str,
        path: str,
        content: str,
        *,
        language: str = "plaintext",
        status: str = FileStatus.PENDING,
    ) -> GeneratedFile:
        """
        Insert or update a generated file keyed by (project_id, task_id, path).

        An existing record keeps its id and created_at; content, language and
        status are replaced and updated_at is refreshed.
        """
        _validate_file_status(status)
        now = _utcnow()
        with self._transaction() as conn:
            conn.execute(
                """
                INSERT INTO generated_files (
                    project_id, task_id, path, content, language, status, created_at, updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(project_id, task_id, path) DO UPDATE SET
                    content=excluded.content,
                    language=excluded.language,
                    status=excluded.status,
                    updated_at=excluded.updated_at
                """,
                (project_id, task_id, path, content, language, status, now, now),
            )
        record = self.get_generated_file(project_id, task_id, path)
        if record is None:
            raise EntityNotFoundError(
                "Generated file not found after upsert",
                metadata={"project_id": project_id, "task_id": task_id, "path": path},
            )
        return record

    def save_generated_files(self, project_id: str, files: Iterable[NewGeneratedFile]) -> int:
        """
        Bulk insert freshly generated files without looking up existing keys.

        A key that already exists fails the whole batch with StorageError.
        """
        batch = list(files)
        for item in batch:
            _validate_file_status(item.status)
        now = _utcnow()
        with self._transaction() as conn:
            conn.executemany(
                """
                INSERT INTO generated_files (
                    project_id, task_id, path, content, language, status, created_at, updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                [
                    (project_id, f.task_id, f.path, f.content, f.language, f.status, now, now)
                    for f in batch
                ],
            )
        return len(batch)

    def get_generated_file(self, project_id: str, task_id: str, path: str) -> Optional[GeneratedFile]:
        row = self._fetchone(
            "SELECT * FROM generated_files WHERE project_id = ? AND task_id = ? AND path = ? LIMIT 1",
            (project_id, task_id, path),
        )
        return self._row_to_generated_file(row) if row else None

    def list_generated_files(
        self,
        project_id: str,
        task_id: Optional[str] = None,
        status: Optional[str] = None,
    ) -> List[GeneratedFile]:
        query = "SELECT * FROM generated_files WHERE project_id = ?"
        params: List[Any] = [project_id]
        if task_id is not None:
            query += " AND task_id = ?"
            params.append(task_id)
        if status is not None:
            _validate_file_status(status)
            query += " AND status = ?"
            params.append(status)
        query += " ORDER BY id ASC"
        rows = self._fetchall(query, params)
        return [self._row_to_generated_file(r) for r in rows]

    def update_file_status(self, project_id: str, task_id: str, path: str, status: str) -> GeneratedFile:
        _validate_file_status(status)
        with self._transaction() as conn:
            cur = conn.execute(
                """
                UPDATE generated_files SET status = ?, updated_at = ?
                WHERE project_id = ? AND task_id = ? AND path = ?
                """,
                (status, _utcnow(), project_id, task_id, path),
            )
            updated = cur.rowcount
        if not updated:
            raise EntityNotFoundError(
                f"Generated file {path} not found",
                metadata={"project_id": project_id, "task_id": task_id, "path": path},
            )
        record = self.get_generated_file(project_id, task_id, path)
        if record is None:
            raise EntityNotFoundError(
                f"Generated file {path} not found after update",
                metadata={"project_id": project_id, "task_id": task_id, "path": path},
            )
        return record

    def approve_all_files(self, project_id: str, task_id: str) -> int:
        """Mark every file of a task approved, whatever its current status."""
        with self._transaction() as conn:
            cur = conn.execute(
                """
                UPDATE generated_files SET status = ?, updated_at = ?
                WHERE project_id = ? AND task_id = ?
                """,
                (FileStatus.APPROVED, _utcnow(), project_id, task_id),
            )
            return cur.rowcount

    def mark_files_committed(self, project_id: str, *task_ids: str) -> int:
        """
        Mark only the approved files of the given tasks committed.

        All tasks of a batch commit in one transaction.
        """
        with self._transaction() as conn:
            return self._commit_approved_files(conn, project_id, task_ids)

    @staticmethod
    def _commit_approved_files(conn: sqlite3.Connection, project_id: str, task_ids: Sequence[str]) -> int:
        if not task_ids:
            return 0
        placeholders = ", ".join("?" for _ in task_ids)
        cur = conn.execute(
            f"""
            UPDATE generated_files SET status = ?, updated_at = ?
            WHERE project_id = ? AND task_id IN ({placeholders}) AND status = ?
            """,
            (FileStatus.COMMITTED, _utcnow(), project_id, *task_ids, FileStatus.APPROVED),
        )
        return cur.rowcount

    def delete_generated_files(self, project_id: str, task_id: Optional[str] = None) -> int:
        with self._transaction() as conn:
            if task_id is None:
                cur = conn.execute("DELETE FROM generated_files WHERE project_id = ?", (project_id,))
            else:
                cur = conn.execute(
                    "DELETE FROM generated_files WHERE project_id = ? AND task_id = ?",
                    (project_id, task_id),
                )
            return cur.rowcount

    # Task status

    def upsert_task_status(
        self,
        project_id: str,
        task_id: str,
        status: str,
        error_message: Optional[str] = None,
    ) -> TaskStatusRecord:
        """Insert or update the status of a task keyed by (project_id, task_id)."""
        _validate_task_status(status)
        with self._transaction() as conn:
            self._upsert_task_status(conn, project_id, task_id, status, error_message)
        record = self.get_task_status(project_id, task_id)
        if record is None:
            raise EntityNotFoundError(
                "Task status not found after upsert",
                metadata={"project_id": project_id, "task_id": task_id},
            )
        return record

    @staticmethod
    def _upsert_task_status(
        conn: sqlite3.Connection,
        project_id: str,
        task_id: str,
        status: str,
        error_message: Optional[str],
    ) -> None:
        conn.execute(
            """
            INSERT INTO task_status (project_id, task_id, status, error_message, updated_at)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(project_id, task_id) DO UPDATE SET
                status=excluded.status,
                error_message=excluded.error_message,
                updated_at=excluded.updated_at
            """,
            (project_id, task_id, status, error_message, _utcnow()),
        )

    def get_task_status(self, project_id: str, task_id: str) -> Optional[TaskStatusRecord]:
        row = self._fetchone(
            "SELECT * FROM task_status WHERE project_id = ? AND task_id = ? LIMIT 1",
            (project_id, task_id),
        )
        return self._row_to_task_status(row) if row else None

    def list_task_statuses(self, project_id: str) -> List[TaskStatusRecord]:
        rows = self._fetchall(
            "SELECT * FROM task_status WHERE project_id = ? ORDER BY id ASC",
            (project_id,),
        )
        return [self._row_to_task_status(r) for r in rows]

    def delete_task_statuses(self, project_id: str, task_id: Optional[str] = None) -> int:
        with self._transaction() as conn:
            if task_id is None:
                cur = conn.execute("DELETE FROM task_status WHERE project_id = ?", (project_id,))
            else:
                cur = conn.execute(
                    "DELETE FROM task_status WHERE project_id = ? AND task_id = ?",
                    (project_id, task_id),
                )
            return cur.rowcount

    def initialize_task_status(self, project_id: str, task_id: str, execution_mode: str) -> TaskStatusRecord:
        """Seed a task's status from its execution mode unless it already has one."""
        initial = _INITIAL_TASK_STATUS.get(execution_mode)
        if initial is None:
            raise ValidationError(
                f"Unknown execution mode: {execution_mode}",
                metadata={"execution_mode": execution_mode},
            )
        with self._transaction() as conn:
            conn.execute(
                """
                INSERT INTO task_status (project_id, task_id, status, updated_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(project_id, task_id) DO NOTHING
                """,
                (project_id, task_id, initial, _utcnow()),
            )
        return self._require_task_status(project_id, task_id)

    def _require_task_status(self, project_id: str, task_id: str) -> TaskStatusRecord:
        record = self.get_task_status(project_id, task_id)
        if record is None:
            raise EntityNotFoundError(
                f"Task status {task_id} not found",
                metadata={"project_id": project_id, "task_id": task_id},
            )
        return record

    def mark_task_error(self, project_id: str, task_id: str, message: str) -> TaskStatusRecord:
        return self.upsert_task_status(project_id, task_id, TaskExecutionStatus.ERROR, error_message=message)

    def mark_task_committed(self, project_id: str, task_id: str) -> TaskStatusRecord:
        """Commit a task's approved files and record the task as committed, atomically."""
        with self._transaction() as conn:
            committed = self._commit_approved_files(conn, project_id, (task_id,))
            self._upsert_task_status(conn, project_id, task_id, TaskExecutionStatus.COMMITTED, None)
        logger.info(
            "task_committed",
            extra={"project_id": project_id, "task_id": task_id, "files_committed": committed},
        )
        return self._require_task_status(project_id, task_id)


Database = SQLiteDatabase


def get_database(db_path: Optional[Path] = None, *, init: bool = True) -> SQLiteDatabase:
    """
    Factory function to create the database instance.

    Falls back to the configured PRDGATE_DB_PATH when no path is given.
    """
    from prdgate.config import get_config

    config = get_config()
    db = SQLiteDatabase(
        db_path or config.db_path,
        recent_projects_limit=config.recent_projects_limit,
    )
    if init:
        db.init_schema()
    return db
