"""
prdgate Analysis Aggregator

Merges deterministic rule findings with normalized semantic findings into one
deduplicated issue set and a proceed/block verdict for the PRD analysis gate.
"""

from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Set, Tuple, TypeVar, Union

from prdgate.logging import get_logger
from prdgate.models.analysis import (
    AnalysisResult,
    AnalysisWarning,
    BlockingIssue,
    IssueCategory,
    IssueLocation,
    IssueSeverity,
    IssueSource,
    SemanticAnalysisResult,
)
from prdgate.services.phases import Phase

logger = get_logger(__name__)

_NAVIGATION: Dict[str, Phase] = {
    IssueCategory.MISSING_SCREEN: Phase.PRD_ANALYSIS,
    IssueCategory.MISSING_REQUIREMENT: Phase.PRD_ANALYSIS,
    IssueCategory.MISSING_BUSINESS_RULE: Phase.PRD_ANALYSIS,
    IssueCategory.INCOMPLETE_WORKFLOW: Phase.PRD_ANALYSIS,
    IssueCategory.REQUIREMENT_CONFLICT: Phase.PRD_ANALYSIS,
    IssueCategory.RULE_CONFLICT: Phase.PRD_ANALYSIS,
    IssueCategory.UNDEFINED_ENTITY: Phase.ENTITY_EXTRACTION,
    IssueCategory.CIRCULAR_DEPENDENCY: Phase.ENTITY_EXTRACTION,
    IssueCategory.INVALID_REFERENCE: Phase.ENTITY_EXTRACTION,
}


def navigation_target(category: str) -> Optional[Phase]:
    """Phase where an issue of this category gets fixed, if any."""
    return _NAVIGATION.get(category)


Issue = TypeVar("Issue", BlockingIssue, AnalysisWarning)
IssueKey = Tuple[str, str]


def issue_key(issue: Union[BlockingIssue, AnalysisWarning]) -> IssueKey:
    return (issue.category, issue.reference)


@dataclass
class AggregatedAnalysis:
    """Combined view of one PRD's findings and the gate verdict."""
    blocking_issues: List[BlockingIssue] = field(default_factory=list)
    warnings: List[AnalysisWarning] = field(default_factory=list)
    can_proceed: bool = False
    has_semantic_analysis: bool = False
    semantic_blocking_issues: List[BlockingIssue] = field(default_factory=list)

    @property
    def blocking_count(self) -> int:
        return len(self.blocking_issues)

    @property
    def warning_count(self) -> int:
        return len(self.warnings)


def _dedupe(issues: Iterable[Issue], seen: Set[IssueKey]) -> List[Issue]:
    kept: List[Issue] = []
    for issue in issues:
        key = issue_key(issue)
        if key in seen:
            continue
        seen.add(key)
        kept.append(issue)
    return kept


class AnalysisAggregator:
    """
    Builds the gate verdict for the PRD analysis phase.

    Only the semantic assessment can open the gate: rule findings add issues
    but never make a PRD proceedable on their own.
    """

    def aggregate(
        self,
        rule_result: Optional[AnalysisResult],
        semantic_result: Optional[SemanticAnalysisResult],
    ) -> AggregatedAnalysis:
        rule_blocking = list(rule_result.blocking_issues) if rule_result else []
        rule_warnings = list(rule_result.warnings) if rule_result else []

        semantic_blocking: List[BlockingIssue] = []
        semantic_warnings: List[AnalysisWarning] = []
        if semantic_result is not None:
            semantic_blocking = self.semantic_blocking_issues(semantic_result)
            semantic_warnings = self.semantic_warnings(semantic_result)

        seen: Set[IssueKey] = set()
        blocking = _dedupe(rule_blocking + semantic_blocking, seen)
        # Shares `seen` so a warning repeating a blocking issue is dropped.
        warnings = _dedupe(rule_warnings + semantic_warnings, seen)

        blocking_ids = {id(issue) for issue in blocking}
        can_proceed = bool(
            semantic_result is not None and semantic_result.overall_assessment.can_proceed
        )
        aggregated = AggregatedAnalysis(
            blocking_issues=blocking,
            warnings=warnings,
            can_proceed=can_proceed,
            has_semantic_analysis=semantic_result is not None,
            semantic_blocking_issues=[i for i in semantic_blocking if id(i) in blocking_ids],
        )
        logger.debug(
            "analysis_aggregated",
            extra={
                "blocking_count": aggregated.blocking_count,
                "warning_count": aggregated.warning_count,
                "can_proceed": can_proceed,
            },
        )
        return aggregated

    @staticmethod
    def semantic_blocking_issues(result: SemanticAnalysisResult) -> List[BlockingIssue]:
        """Blocking issues contributed by one semantic result, before deduplication."""
        issues: List[BlockingIssue] = []

        for i, text in enumerate(result.overall_assessment.blocking_issues):
            issues.append(BlockingIssue(
                id=f"semantic-blocking-{i}",
                severity=IssueSeverity.CRITICAL,
                category=IssueCategory.AI_DETECTED,
                title=text,
                description=text,
                source=IssueSource.AI,
            ))
        for i, screen in enumerate(result.gaps.missing_screens):
            issues.append(BlockingIssue(
                id=f"semantic-missing-screen-{i}",
                severity=IssueSeverity.MAJOR,
                category=IssueCategory.MISSING_SCREEN,
                title=f"Missing Screen: {screen}",
                description=screen,
                location=IssueLocation(type="screen"),
                suggested_fix="Define the screen in the PRD.",
                source=IssueSource.AI,
            ))
        for i, workflow in enumerate(result.gaps.incomplete_workflows):
            issues.append(BlockingIssue(
                id=f"semantic-incomplete-workflow-{i}",
                severity=IssueSeverity.MAJOR,
                category=IssueCategory.INCOMPLETE_WORKFLOW,
                title=f"Incomplete Workflow: {workflow}",
                description=workflow,
                location=IssueLocation(type="workflow"),
                suggested_fix="Define every state and transition of the workflow.",
                source=IssueSource.AI,
            ))
        for i, conflict in enumerate(result.conflicts.requirement_conflicts):
            issues.append(BlockingIssue(
                id=f"semantic-requirement-conflict-{i}",
                severity=IssueSeverity.CRITICAL,
                category=IssueCategory.REQUIREMENT_CONFLICT,
                title=f"Conflict: {conflict.fr1} vs {conflict.fr2} - {conflict.description}",
                description=conflict.description,
                location=IssueLocation(type="fr"),
                suggested_fix=f"Reconcile {conflict.fr1} and {conflict.fr2}.",
                source=IssueSource.AI,
            ))
        for i, conflict in enumerate(result.conflicts.rule_conflicts):
            issues.append(BlockingIssue(
                id=f"semantic-rule-conflict-{i}",
                severity=IssueSeverity.CRITICAL,
                category=IssueCategory.RULE_CONFLICT,
                title=f"Rule Conflict: {conflict.rule1} vs {conflict.rule2} - {conflict.description}",
                description=conflict.description,
                location=IssueLocation(type="br"),
                suggested_fix=f"Reconcile {conflict.rule1} and {conflict.rule2}.",
                source=IssueSource.AI,
            ))
        return issues

    @staticmethod
    def semantic_warnings(result: SemanticAnalysisResult) -> List[AnalysisWarning]:
        """Warnings contributed by one semantic result, before deduplication."""
        warnings: List[AnalysisWarning] = []

        for i, text in enumerate(result.overall_assessment.warnings):
            warnings.append(AnalysisWarning(
                id=f"semantic-warning-{i}",
                severity=IssueSeverity.MEDIUM,
                category=IssueCategory.AI_DETECTED,
                title=text,
                description=text,
                source=IssueSource.AI,
            ))
        for i, entity in enumerate(result.gaps.undefined_entities):
            warnings.append(AnalysisWarning(
                id=f"semantic-undefined-entity-{i}",
                severity=IssueSeverity.MEDIUM,
                category=IssueCategory.UNDEFINED_ENTITY,
                title=f"Undefined Entity: {entity}",
                description=entity,
                location=IssueLocation(type="entity", id=entity),
                suggestion="Define the entity and its attributes in the data requirements.",
                source=IssueSource.AI,
            ))
        for i, validation in enumerate(result.gaps.missing_validations):
            warnings.append(AnalysisWarning(
                id=f"semantic-missing-validation-{i}",
                severity=IssueSeverity.MEDIUM,
                category=IssueCategory.MISSING_VALIDATION,
                title=f"Missing Validation: {validation}",
                description=validation,
                source=IssueSource.AI,
            ))
        readiness = result.entity_readiness
        if not readiness.ready and readiness.uncertain_entities:
            names = ", ".join(readiness.uncertain_entities)
            warnings.append(AnalysisWarning(
                id="semantic-uncertain-entities",
                severity=IssueSeverity.LOW,
                category=IssueCategory.UNCERTAIN_ENTITY,
                title=f"Uncertain Entities: {names}",
                description="Entity readiness is not confirmed for these entities.",
                suggestion=readiness.recommendations[0] if readiness.recommendations else None,
                source=IssueSource.AI,
            ))
        return warnings

    @staticmethod
    def navigation_target(category: str) -> Optional[Phase]:
        return navigation_target(category)
