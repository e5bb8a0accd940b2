"""
prdgate Artifact Service

Lifecycle of generated code files and per-task execution status:
generate -> review (approve/reject) -> commit. Storage failures propagate
as StorageError; nothing here retries.
"""

from typing import Iterable, List, Optional, Sequence

from prdgate.db.database import SQLiteDatabase
from prdgate.models.domain import (
    FileStatus,
    GeneratedFile,
    GenerationSummary,
    NewGeneratedFile,
    TaskExecutionStatus,
    TaskStatusRecord,
)
from prdgate.services.base import Service, ServiceContext


class ArtifactService(Service):
    """Generated files and task status for one store."""

    def __init__(self, context: ServiceContext, db: SQLiteDatabase) -> None:
        super().__init__(context)
        self.db = db

    def start_generation(self, project_id: str, task_id: str) -> TaskStatusRecord:
        return self.db.upsert_task_status(project_id, task_id, TaskExecutionStatus.GENERATING)

    def record_generation(
        self,
        project_id: str,
        task_id: str,
        files: Iterable[NewGeneratedFile],
    ) -> List[GeneratedFile]:
        """
        Store the output of one generation pass and mark the task generated.

        Files are upserted one by one so a regeneration replaces earlier
        content for the same path instead of failing.
        """
        saved = [
            self.db.save_generated_file(
                project_id,
                task_id,
                f.path,
                f.content,
                language=f.language,
                status=f.status,
            )
            for f in files
        ]
        self.db.upsert_task_status(project_id, task_id, TaskExecutionStatus.GENERATED)
        self.logger.info(
            "generation_recorded",
            extra=self.log_extra(project_id=project_id, task_id=task_id, file_count=len(saved)),
        )
        return saved

    def record_failure(self, project_id: str, task_id: str, message: str) -> TaskStatusRecord:
        self.logger.warning(
            "generation_failed",
            extra=self.log_extra(project_id=project_id, task_id=task_id, error=message),
        )
        return self.db.mark_task_error(project_id, task_id, message)

    def approve_task(self, project_id: str, task_id: str) -> int:
        approved = self.db.approve_all_files(project_id, task_id)
        self.db.upsert_task_status(project_id, task_id, TaskExecutionStatus.APPROVED)
        return approved

    def reject_file(self, project_id: str, task_id: str, path: str) -> GeneratedFile:
        return self.db.update_file_status(project_id, task_id, path, FileStatus.REJECTED)

    def commit_task(self, project_id: str, task_id: str) -> TaskStatusRecord:
        record = self.db.mark_task_committed(project_id, task_id)
        self.logger.info("task_committed", extra=self.log_extra(project_id=project_id, task_id=task_id))
        return record

    def commit_batch(self, project_id: str, task_ids: Sequence[str]) -> int:
        """Commit the approved files of a generation batch together."""
        committed = self.db.mark_files_committed(project_id, *task_ids)
        self.logger.info(
            "batch_committed",
            extra=self.log_extra(project_id=project_id, task_count=len(task_ids), files_committed=committed),
        )
        return committed

    def complete_manual_task(self, project_id: str, task_id: str) -> TaskStatusRecord:
        return self.db.upsert_task_status(project_id, task_id, TaskExecutionStatus.MANUAL_COMPLETE)

    def files_for_task(self, project_id: str, task_id: str, status: Optional[str] = None) -> List[GeneratedFile]:
        return self.db.list_generated_files(project_id, task_id=task_id, status=status)

    def reset_project(self, project_id: str) -> None:
        """Drop every generated file and task status of a project."""
        self.db.delete_generated_files(project_id)
        self.db.delete_task_statuses(project_id)

    def generation_summary(self, project_id: str) -> GenerationSummary:
        """Count a project's files by status and by task. Read-only."""
        summary = GenerationSummary(project_id=project_id)
        for record in self.db.list_generated_files(project_id):
            summary.total += 1
            if record.status == FileStatus.PENDING:
                summary.pending += 1
            elif record.status == FileStatus.APPROVED:
                summary.approved += 1
            elif record.status == FileStatus.REJECTED:
                summary.rejected += 1
            elif record.status == FileStatus.COMMITTED:
                summary.committed += 1
            summary.files_per_task[record.task_id] = summary.files_per_task.get(record.task_id, 0) + 1
        return summary
