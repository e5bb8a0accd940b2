"""
prdgate Models

Dataclass domain objects for analysis results, the entity model and stored records.
"""

from prdgate.models.analysis import (
    AnalysisResult,
    AnalysisWarning,
    BlockingIssue,
    IssueCategory,
    IssueLocation,
    IssueSeverity,
    IssueSource,
    PrdSummary,
    SemanticAnalysisResult,
)
from prdgate.models.domain import (
    # Status Constants
    ExecutionMode,
    FileStatus,
    TaskExecutionStatus,
    # Records
    GeneratedFile,
    GenerationSummary,
    NewGeneratedFile,
    ProjectRecord,
    RecentProject,
    TaskStatusRecord,
)
from prdgate.models.entity import (
    Entity,
    EntitySuggestion,
    ExtractionSnapshot,
    Field,
    FieldConstraints,
    Relationship,
    RelationshipEnd,
    Source,
    SourceType,
)

__all__ = [
    "AnalysisResult",
    "AnalysisWarning",
    "BlockingIssue",
    "IssueCategory",
    "IssueLocation",
    "IssueSeverity",
    "IssueSource",
    "PrdSummary",
    "SemanticAnalysisResult",
    "ExecutionMode",
    "FileStatus",
    "TaskExecutionStatus",
    "GeneratedFile",
    "GenerationSummary",
    "NewGeneratedFile",
    "ProjectRecord",
    "RecentProject",
    "TaskStatusRecord",
    "Entity",
    "EntitySuggestion",
    "ExtractionSnapshot",
    "Field",
    "FieldConstraints",
    "Relationship",
    "RelationshipEnd",
    "Source",
    "SourceType",
]
