"""
prdgate Analysis Models

Rule-based analysis results, AI-derived semantic analysis results, and the
issue records both of them produce.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional


class IssueSeverity:
    """Severity values for blocking issues and warnings."""
    CRITICAL = "critical"
    MAJOR = "major"
    MEDIUM = "medium"
    LOW = "low"


class IssueCategory:
    """Issue categories from pattern checks and AI findings."""
    MISSING_REQUIREMENT = "missing-requirement"
    UNDEFINED_ENTITY = "undefined-entity"
    MISSING_SCREEN = "missing-screen"
    INCOMPLETE_WORKFLOW = "incomplete-workflow"
    CIRCULAR_DEPENDENCY = "circular-dependency"
    MISSING_BUSINESS_RULE = "missing-business-rule"
    INVALID_REFERENCE = "invalid-reference"
    SECURITY_CONCERN = "security-concern"
    REQUIREMENT_CONFLICT = "requirement-conflict"
    RULE_CONFLICT = "rule-conflict"
    MISSING_VALIDATION = "missing-validation"
    UNCERTAIN_ENTITY = "uncertain-entity"
    AI_DETECTED = "ai-detected"


class IssueSource:
    RULE = "rule"
    AI = "ai"


@dataclass
class IssueLocation:
    """Where an issue points: a requirement, rule, screen, entity, workflow or the whole PRD."""
    type: str = "general"  # fr | br | screen | entity | workflow | general
    id: Optional[str] = None
    section: Optional[str] = None
    line: Optional[int] = None


@dataclass
class BlockingIssue:
    """A defect that prevents phase advancement until resolved."""
    id: str
    severity: str
    category: str
    title: str
    description: str = ""
    location: IssueLocation = field(default_factory=IssueLocation)
    impact: str = ""
    suggested_fix: str = ""
    auto_fixable: bool = False
    source: str = IssueSource.RULE

    @property
    def reference(self) -> str:
        return issue_reference(self.location, self.title)


@dataclass
class AnalysisWarning:
    """A non-blocking finding."""
    id: str
    severity: str
    category: str
    title: str
    description: str = ""
    location: IssueLocation = field(default_factory=IssueLocation)
    suggestion: Optional[str] = None
    source: str = IssueSource.RULE

    @property
    def reference(self) -> str:
        return issue_reference(self.location, self.title)


@dataclass
class AnalysisSuggestion:
    id: str
    type: str
    title: str
    description: str = ""
    benefit: str = ""
    effort: str = "medium"
    priority: int = 0


@dataclass
class QualityScore:
    overall: float = 0.0
    grade: str = "F"


@dataclass
class AnalysisResult:
    """
    Deterministic (pattern-based) analysis of a PRD.

    Replaced as a whole on every analysis run.
    """
    prd_id: str
    analyzed_at: datetime
    quality_score: QualityScore = field(default_factory=QualityScore)
    blocking_issues: List[BlockingIssue] = field(default_factory=list)
    warnings: List[AnalysisWarning] = field(default_factory=list)
    suggestions: List[AnalysisSuggestion] = field(default_factory=list)


def issue_reference(location: IssueLocation, title: str) -> str:
    """Identity used to deduplicate the same defect reported by different sources."""
    if location.id:
        return location.id.strip().lower()
    return " ".join(title.lower().split())


# Semantic (LLM-derived) analysis

@dataclass
class Completeness:
    score: float = 0.0
    missing_elements: List[str] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)


@dataclass
class Gaps:
    missing_screens: List[str] = field(default_factory=list)
    undefined_entities: List[str] = field(default_factory=list)
    incomplete_workflows: List[str] = field(default_factory=list)
    missing_validations: List[str] = field(default_factory=list)


@dataclass
class RequirementConflict:
    fr1: str = ""
    fr2: str = ""
    description: str = ""


@dataclass
class RuleConflict:
    rule1: str = ""
    rule2: str = ""
    description: str = ""


@dataclass
class Conflicts:
    requirement_conflicts: List[RequirementConflict] = field(default_factory=list)
    rule_conflicts: List[RuleConflict] = field(default_factory=list)


@dataclass
class EntityReadiness:
    ready: bool = False
    identified_entities: List[str] = field(default_factory=list)
    uncertain_entities: List[str] = field(default_factory=list)
    recommendations: List[str] = field(default_factory=list)


@dataclass
class OverallAssessment:
    can_proceed: bool = False
    confidence_score: float = 0.0
    blocking_issues: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    summary: str = "Analysis incomplete."


@dataclass
class SemanticAnalysisResult:
    """
    AI-derived structural assessment of a PRD.

    Always fully populated; build it through
    prdgate.analysis.normalizer rather than from raw model output.
    """
    completeness: Completeness = field(default_factory=Completeness)
    gaps: Gaps = field(default_factory=Gaps)
    conflicts: Conflicts = field(default_factory=Conflicts)
    entity_readiness: EntityReadiness = field(default_factory=EntityReadiness)
    overall_assessment: OverallAssessment = field(default_factory=OverallAssessment)
    analyzed_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the camelCase wire format."""
        return {
            "completeness": {
                "score": self.completeness.score,
                "missingElements": list(self.completeness.missing_elements),
                "recommendations": list(self.completeness.recommendations),
            },
            "gaps": {
                "missingScreens": list(self.gaps.missing_screens),
                "undefinedEntities": list(self.gaps.undefined_entities),
                "incompleteWorkflows": list(self.gaps.incomplete_workflows),
                "missingValidations": list(self.gaps.missing_validations),
            },
            "conflicts": {
                "requirementConflicts": [
                    {"fr1": c.fr1, "fr2": c.fr2, "description": c.description}
                    for c in self.conflicts.requirement_conflicts
                ],
                "ruleConflicts": [
                    {"rule1": c.rule1, "rule2": c.rule2, "description": c.description}
                    for c in self.conflicts.rule_conflicts
                ],
            },
            "entityReadiness": {
                "ready": self.entity_readiness.ready,
                "identifiedEntities": list(self.entity_readiness.identified_entities),
                "uncertainEntities": list(self.entity_readiness.uncertain_entities),
                "recommendations": list(self.entity_readiness.recommendations),
            },
            "overallAssessment": {
                "canProceed": self.overall_assessment.can_proceed,
                "confidenceScore": self.overall_assessment.confidence_score,
                "blockingIssues": list(self.overall_assessment.blocking_issues),
                "warnings": list(self.overall_assessment.warnings),
                "summary": self.overall_assessment.summary,
            },
            "analyzedAt": self.analyzed_at.isoformat() if self.analyzed_at else None,
        }


@dataclass
class PrdSummary:
    """Counts from the parsed PRD that accompany the raw text in analysis prompts."""
    fr_count: int = 0
    br_count: int = 0
    screen_count: int = 0
    entity_count: int = 0
    workflow_count: int = 0
    user_roles: List[str] = field(default_factory=list)
    functional_requirements: str = ""
