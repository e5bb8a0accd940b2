"""
Tests for phase sequencing.
"""

import pytest

from prdgate.services.phases import Phase, PhaseController, PhaseStatus
from prdgate.services.project import ProjectSession


def test_initial_state():
    phases = PhaseController()

    assert phases.current_phase is Phase.PRD_ANALYSIS
    assert phases.current_status == PhaseStatus.IN_PROGRESS
    assert [phases.status_of(p) for p in Phase][1:] == [PhaseStatus.NOT_STARTED] * 3


def test_advance_requires_completed_phase():
    phases = PhaseController()

    assert phases.advance_phase() is False
    assert phases.current_phase is Phase.PRD_ANALYSIS

    phases.complete_current_phase()
    assert phases.advance_phase() is True
    assert phases.current_phase is Phase.ENTITY_EXTRACTION
    assert phases.current_status == PhaseStatus.IN_PROGRESS
    assert phases.status_of(Phase.PRD_ANALYSIS) == PhaseStatus.COMPLETED


def test_cannot_advance_past_last_phase():
    phases = PhaseController()
    for _ in range(3):
        phases.complete_current_phase()
        assert phases.advance_phase()

    phases.complete_current_phase()

    assert phases.current_phase is Phase.TASK_GENERATION
    assert phases.advance_phase() is False


def test_has_issues_blocks_advance():
    phases = PhaseController()
    phases.set_phase_status(Phase.PRD_ANALYSIS, PhaseStatus.HAS_ISSUES)
    assert phases.advance_phase() is False


def test_unknown_status_is_rejected():
    with pytest.raises(ValueError):
        PhaseController().set_phase_status(Phase.PRD_ANALYSIS, "done")


def test_transitions_mark_session_dirty():
    session = ProjectSession()
    phases = PhaseController(session)

    phases.complete_current_phase()

    assert session.is_dirty is True


# =============================================================================
# Navigation
# =============================================================================

def test_navigation_rules():
    phases = PhaseController()

    assert phases.can_navigate_to(Phase.PRD_ANALYSIS)
    assert not phases.can_navigate_to(Phase.ENTITY_EXTRACTION)
    assert not phases.can_navigate_to(Phase.ERD_BUILD)

    phases.complete_current_phase()
    assert phases.can_navigate_to(Phase.ENTITY_EXTRACTION)
    assert not phases.can_navigate_to(Phase.ERD_BUILD)


def test_navigate_back_and_forward():
    phases = PhaseController()
    phases.complete_current_phase()
    phases.advance_phase()

    assert phases.navigate_to(Phase.PRD_ANALYSIS)
    assert phases.current_phase is Phase.PRD_ANALYSIS
    assert phases.status_of(Phase.PRD_ANALYSIS) == PhaseStatus.COMPLETED

    assert phases.navigate_to(Phase.ENTITY_EXTRACTION)
    assert phases.current_phase is Phase.ENTITY_EXTRACTION
    assert phases.navigate_to(Phase.TASK_GENERATION) is False


def test_reset():
    phases = PhaseController()
    phases.complete_current_phase()
    phases.advance_phase()

    phases.reset()

    assert phases.current_phase is Phase.PRD_ANALYSIS
    assert phases.current_status == PhaseStatus.IN_PROGRESS


# =============================================================================
# Serialization
# =============================================================================

def test_to_dict_shape():
    phases = PhaseController()
    phases.complete_current_phase()
    phases.advance_phase()

    assert phases.to_dict() == {
        "currentPhase": 2,
        "phaseStatus": {
            "1": PhaseStatus.COMPLETED,
            "2": PhaseStatus.IN_PROGRESS,
            "3": PhaseStatus.NOT_STARTED,
            "4": PhaseStatus.NOT_STARTED,
        },
    }


def test_from_dict_restores_state():
    phases = PhaseController()
    phases.complete_current_phase()
    phases.advance_phase()

    restored = PhaseController.from_dict(phases.to_dict())

    assert restored.current_phase is Phase.ENTITY_EXTRACTION
    assert restored.statuses == phases.statuses


@pytest.mark.parametrize("data", [
    {},
    {"currentPhase": 9},
    {"currentPhase": "abc", "phaseStatus": "oops"},
    {"phaseStatus": {"x": "completed", "1": "bogus"}},
])
def test_from_dict_tolerates_garbage(data):
    restored = PhaseController.from_dict(data)
    assert restored.current_phase is Phase.PRD_ANALYSIS
    assert restored.status_of(Phase.PRD_ANALYSIS) == PhaseStatus.IN_PROGRESS
