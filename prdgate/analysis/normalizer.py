"""
prdgate Semantic Result Normalizer

Turns raw model output into a fully-populated SemanticAnalysisResult.
Nothing the model returns is trusted: every recognized field is type-checked
and replaced by its default when missing or malformed, and unparseable text
yields a degraded result instead of an exception.
"""

import json
import math
import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from prdgate.logging import get_logger
from prdgate.models.analysis import (
    Completeness,
    Conflicts,
    EntityReadiness,
    Gaps,
    OverallAssessment,
    RequirementConflict,
    RuleConflict,
    SemanticAnalysisResult,
)

logger = get_logger(__name__)

PARSE_FAILURE_MESSAGE = "Failed to parse LLM response. Please try again."
RERUN_RECOMMENDATION = "Re-run semantic analysis"
DEFAULT_SUMMARY = "Analysis incomplete."

_FENCE_RE = re.compile(r"```(?:json)?\s*([\s\S]*?)```")


def strip_code_fence(content: str) -> str:
    """Return the body of a leading ``` fence (optionally tagged json), else the trimmed text."""
    text = content.strip()
    if text.startswith("```"):
        match = _FENCE_RE.search(text)
        if match:
            return match.group(1).strip()
    return text


def load_json_object(content: str) -> Optional[Dict[str, Any]]:
    """Parse fenced or bare JSON text; None unless it is a JSON object."""
    try:
        parsed = json.loads(strip_code_fence(content))
    except (ValueError, RecursionError):
        return None
    return parsed if isinstance(parsed, dict) else None


# Typed accessors

def _section(payload: Dict[str, Any], key: str) -> Dict[str, Any]:
    value = payload.get(key)
    return value if isinstance(value, dict) else {}


def _str_list(section: Dict[str, Any], key: str) -> List[str]:
    value = section.get(key)
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, str)]


def _bool(section: Dict[str, Any], key: str, default: bool = False) -> bool:
    value = section.get(key)
    return value if isinstance(value, bool) else default


def _str(section: Dict[str, Any], key: str, default: str = "") -> str:
    value = section.get(key)
    return value if isinstance(value, str) else default


def _score(section: Dict[str, Any], key: str) -> float:
    value = section.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0.0
    try:
        number = float(value)
    except OverflowError:
        number = math.inf if value > 0 else -math.inf
    if math.isnan(number):
        return 0.0
    return max(0.0, min(100.0, number))


def _dicts(section: Dict[str, Any], key: str) -> List[Dict[str, Any]]:
    value = section.get(key)
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, dict)]


def _timestamp(section: Dict[str, Any], key: str) -> Optional[datetime]:
    value = section.get(key)
    if not isinstance(value, str):
        return None
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def normalize_semantic_payload(payload: Dict[str, Any]) -> SemanticAnalysisResult:
    """
    Walk a decoded wire-format document and build a total result from it.

    Unknown fields are ignored. Also used to reload persisted results.
    """
    completeness = _section(payload, "completeness")
    gaps = _section(payload, "gaps")
    conflicts = _section(payload, "conflicts")
    readiness = _section(payload, "entityReadiness")
    overall = _section(payload, "overallAssessment")

    return SemanticAnalysisResult(
        completeness=Completeness(
            score=_score(completeness, "score"),
            missing_elements=_str_list(completeness, "missingElements"),
            recommendations=_str_list(completeness, "recommendations"),
        ),
        gaps=Gaps(
            missing_screens=_str_list(gaps, "missingScreens"),
            undefined_entities=_str_list(gaps, "undefinedEntities"),
            incomplete_workflows=_str_list(gaps, "incompleteWorkflows"),
            missing_validations=_str_list(gaps, "missingValidations"),
        ),
        conflicts=Conflicts(
            requirement_conflicts=[
                RequirementConflict(
                    fr1=_str(item, "fr1"),
                    fr2=_str(item, "fr2"),
                    description=_str(item, "description"),
                )
                for item in _dicts(conflicts, "requirementConflicts")
            ],
            rule_conflicts=[
                RuleConflict(
                    rule1=_str(item, "rule1"),
                    rule2=_str(item, "rule2"),
                    description=_str(item, "description"),
                )
                for item in _dicts(conflicts, "ruleConflicts")
            ],
        ),
        entity_readiness=EntityReadiness(
            ready=_bool(readiness, "ready"),
            identified_entities=_str_list(readiness, "identifiedEntities"),
            uncertain_entities=_str_list(readiness, "uncertainEntities"),
            recommendations=_str_list(readiness, "recommendations"),
        ),
        overall_assessment=OverallAssessment(
            can_proceed=_bool(overall, "canProceed"),
            confidence_score=_score(overall, "confidenceScore"),
            blocking_issues=_str_list(overall, "blockingIssues"),
            warnings=_str_list(overall, "warnings"),
            summary=_str(overall, "summary", DEFAULT_SUMMARY),
        ),
        analyzed_at=_timestamp(payload, "analyzedAt"),
    )


def degraded_result(message: str = PARSE_FAILURE_MESSAGE) -> SemanticAnalysisResult:
    """Result used when the model output cannot be understood at all."""
    return SemanticAnalysisResult(
        completeness=Completeness(recommendations=[RERUN_RECOMMENDATION]),
        overall_assessment=OverallAssessment(
            can_proceed=False,
            confidence_score=0.0,
            blocking_issues=[message],
            summary=message,
        ),
    )


def parse_semantic_analysis_response(content: str) -> SemanticAnalysisResult:
    """Normalize raw model text; never raises."""
    payload = load_json_object(content if isinstance(content, str) else "")
    if payload is None:
        logger.warning(
            "semantic_analysis_parse_failed",
            extra={"content_length": len(content) if isinstance(content, str) else 0},
        )
        return degraded_result()
    return normalize_semantic_payload(payload)
