"""
prdgate Phase Controller

Sequences the pipeline phases and holds per-phase status. It records
transitions only; whether a phase may be completed is decided by the caller
(see PipelineService.try_advance).
"""

from enum import IntEnum
from typing import Any, Dict, Optional

from prdgate.logging import get_logger
from prdgate.services.project import ProjectSession

logger = get_logger(__name__)


class Phase(IntEnum):
    PRD_ANALYSIS = 1
    ENTITY_EXTRACTION = 2
    ERD_BUILD = 3
    TASK_GENERATION = 4


class PhaseStatus:
    """Phase status values."""
    NOT_STARTED = "not-started"
    IN_PROGRESS = "in-progress"
    COMPLETED = "completed"
    HAS_ISSUES = "has-issues"

    ALL = (NOT_STARTED, IN_PROGRESS, COMPLETED, HAS_ISSUES)


def _initial_statuses() -> Dict[Phase, str]:
    statuses = {phase: PhaseStatus.NOT_STARTED for phase in Phase}
    statuses[Phase.PRD_ANALYSIS] = PhaseStatus.IN_PROGRESS
    return statuses


class PhaseController:
    """
    Current phase plus the status of every phase.

    Example:
        phases = PhaseController()
        phases.complete_current_phase()
        phases.advance_phase()  # -> True, now ENTITY_EXTRACTION
    """

    def __init__(self, session: Optional[ProjectSession] = None) -> None:
        self.session = session
        self.current_phase: Phase = Phase.PRD_ANALYSIS
        self.statuses: Dict[Phase, str] = _initial_statuses()

    def status_of(self, phase: Phase) -> str:
        return self.statuses[Phase(phase)]

    @property
    def current_status(self) -> str:
        return self.statuses[self.current_phase]

    def _next_phase(self) -> Optional[Phase]:
        try:
            return Phase(self.current_phase + 1)
        except ValueError:
            return None

    def _touch(self) -> None:
        if self.session is not None:
            self.session.mark_dirty()

    def set_phase_status(self, phase: Phase, status: str) -> None:
        if status not in PhaseStatus.ALL:
            raise ValueError(f"Unknown phase status: {status}")
        self.statuses[Phase(phase)] = status
        self._touch()

    def complete_current_phase(self) -> None:
        self.set_phase_status(self.current_phase, PhaseStatus.COMPLETED)

    def advance_phase(self) -> bool:
        """Move to the next phase if the current one is completed and a next one exists."""
        next_phase = self._next_phase()
        if next_phase is None or self.current_status != PhaseStatus.COMPLETED:
            logger.debug(
                "phase_advance_rejected",
                extra={"phase": int(self.current_phase), "status": self.current_status},
            )
            return False
        self.current_phase = next_phase
        self.statuses[next_phase] = PhaseStatus.IN_PROGRESS
        self._touch()
        logger.info("phase_advanced", extra={"phase": int(next_phase)})
        return True

    def can_navigate_to(self, phase: Phase) -> bool:
        target = Phase(phase)
        if target == self.current_phase:
            return True
        if target < self.current_phase:
            return self.statuses[target] in (PhaseStatus.COMPLETED, PhaseStatus.IN_PROGRESS)
        return target == self._next_phase() and self.current_status == PhaseStatus.COMPLETED

    def navigate_to(self, phase: Phase) -> bool:
        if not self.can_navigate_to(phase):
            return False
        target = Phase(phase)
        if self.statuses[target] == PhaseStatus.NOT_STARTED:
            self.statuses[target] = PhaseStatus.IN_PROGRESS
        self.current_phase = target
        self._touch()
        return True

    def reset(self) -> None:
        self.current_phase = Phase.PRD_ANALYSIS
        self.statuses = _initial_statuses()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "currentPhase": int(self.current_phase),
            "phaseStatus": {str(int(p)): s for p, s in self.statuses.items()},
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], session: Optional[ProjectSession] = None) -> "PhaseController":
        """Restore from to_dict() output, falling back to the initial state for anything unrecognized."""
        controller = cls(session)
        try:
            controller.current_phase = Phase(int(data.get("currentPhase", 1)))
        except (TypeError, ValueError):
            controller.current_phase = Phase.PRD_ANALYSIS
        raw_statuses = data.get("phaseStatus")
        if isinstance(raw_statuses, dict):
            for key, status in raw_statuses.items():
                try:
                    phase = Phase(int(key))
                except (TypeError, ValueError):
                    continue
                if status in PhaseStatus.ALL:
                    controller.statuses[phase] = status
        return controller
