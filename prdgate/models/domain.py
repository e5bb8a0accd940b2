"""
prdgate Domain Models

Data classes for the records kept in the local store.
These are used for data transfer between storage and services.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional


# Status Constants

class FileStatus:
    """Generated file status values."""
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    COMMITTED = "committed"

    ALL = (PENDING, APPROVED, REJECTED, COMMITTED)


class TaskExecutionStatus:
    """Per-task generation/completion status values."""
    PENDING = "pending"
    GENERATING = "generating"
    GENERATED = "generated"
    APPROVED = "approved"
    COMMITTED = "committed"
    ERROR = "error"
    SKIPPED = "skipped"
    MANUAL_PENDING = "manual-pending"
    MANUAL_COMPLETE = "manual-complete"

    ALL = (
        PENDING, GENERATING, GENERATED, APPROVED, COMMITTED,
        ERROR, SKIPPED, MANUAL_PENDING, MANUAL_COMPLETE,
    )


class ExecutionMode:
    """How a generated task is meant to be carried out."""
    CODE_GENERATION = "code-generation"
    MANUAL = "manual"
    SKIP = "skip"


# Records

@dataclass
class ProjectRecord:
    """A saved project and its serialized working state."""
    project_id: str
    name: str
    created_at: str
    updated_at: str
    description: Optional[str] = None
    data: Dict[str, Any] = field(default_factory=dict)
    id: Optional[int] = None


@dataclass
class RecentProject:
    id: int
    project_id: str
    name: str
    accessed_at: str


@dataclass
class GeneratedFile:
    """A generated code file, unique per (project_id, task_id, path)."""
    id: int
    project_id: str
    task_id: str
    path: str
    content: str
    language: str
    status: str
    created_at: str
    updated_at: str


@dataclass
class NewGeneratedFile:
    """Input for bulk inserts of files produced in one generation pass."""
    task_id: str
    path: str
    content: str
    language: str = "plaintext"
    status: str = FileStatus.PENDING


@dataclass
class TaskStatusRecord:
    """Execution status of one task, unique per (project_id, task_id)."""
    id: int
    project_id: str
    task_id: str
    status: str
    updated_at: str
    error_message: Optional[str] = None


@dataclass
class GenerationSummary:
    """File counts for one project, computed by scanning its generated files."""
    project_id: str
    total: int = 0
    pending: int = 0
    approved: int = 0
    rejected: int = 0
    committed: int = 0
    files_per_task: Dict[str, int] = field(default_factory=dict)
