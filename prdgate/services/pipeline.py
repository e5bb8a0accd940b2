"""
prdgate Pipeline Service

Glue between analysis, the extraction workflow and the phase controller.
Phase advancement always goes through a gate check here; the controller
itself never re-validates.
"""

from typing import Any, Dict, Optional

from prdgate.analysis.aggregator import AggregatedAnalysis, AnalysisAggregator
from prdgate.analysis.normalizer import normalize_semantic_payload
from prdgate.analysis.semantic import SemanticAnalysisService
from prdgate.db.database import SQLiteDatabase
from prdgate.extraction.workflow import EntityExtractionWorkflow, ExtractionMode
from prdgate.llm.gateway import CancellationToken
from prdgate.logging import log_context
from prdgate.models.analysis import AnalysisResult, PrdSummary, SemanticAnalysisResult
from prdgate.models.domain import ProjectRecord
from prdgate.services.base import Service, ServiceContext
from prdgate.services.phases import Phase, PhaseController, PhaseStatus
from prdgate.services.project import ProjectSession


class PipelineService(Service):
    """
    Runs one project through its phases.

    Example:
        pipeline = PipelineService(context, session, PhaseController(session), semantic)
        pipeline.set_rule_result(rule_result)
        await pipeline.run_semantic_analysis(raw_prd, summary)
        if pipeline.try_advance():
            ...  # now in ENTITY_EXTRACTION
    """

    def __init__(
        self,
        context: ServiceContext,
        session: ProjectSession,
        phases: PhaseController,
        semantic: SemanticAnalysisService,
        *,
        workflow: Optional[EntityExtractionWorkflow] = None,
        aggregator: Optional[AnalysisAggregator] = None,
    ) -> None:
        super().__init__(context)
        self.session = session
        self.phases = phases
        self.semantic = semantic
        self.workflow = workflow
        self.aggregator = aggregator or AnalysisAggregator()
        self.rule_result: Optional[AnalysisResult] = None
        self.semantic_result: Optional[SemanticAnalysisResult] = None

    def set_rule_result(self, result: AnalysisResult) -> None:
        """Replace the rule-based result as a whole."""
        self.rule_result = result
        self.session.mark_dirty()

    async def run_semantic_analysis(
        self,
        raw_content: str,
        prd_summary: PrdSummary,
        cancellation: Optional[CancellationToken] = None,
    ) -> AggregatedAnalysis:
        with log_context(project_id=self.session.project_id, request_id=self.context.request_id):
            self.semantic_result = await self.semantic.analyze(
                raw_content,
                prd_summary,
                cancellation,
                project_id=self.session.project_id,
            )
        self.session.mark_dirty()
        return self.current_analysis()

    def current_analysis(self) -> AggregatedAnalysis:
        return self.aggregator.aggregate(self.rule_result, self.semantic_result)

    def gate_open(self, phase: Optional[Phase] = None) -> bool:
        """Whether the given phase (default: current) may be completed."""
        target = phase or self.phases.current_phase
        if target == Phase.PRD_ANALYSIS:
            return self.current_analysis().can_proceed
        if target == Phase.ENTITY_EXTRACTION and self.workflow is not None:
            return self.workflow.mode == ExtractionMode.CONFIRMED and bool(self.workflow.entities)
        return True

    def try_advance(self) -> bool:
        """
        Complete the current phase and move on, but only if its gate is open.

        A closed gate marks the phase has-issues and nothing advances.
        """
        phase = self.phases.current_phase
        if not self.gate_open(phase):
            self.phases.set_phase_status(phase, PhaseStatus.HAS_ISSUES)
            self.logger.info(
                "phase_gate_closed",
                extra=self.log_extra(project_id=self.session.project_id, phase=int(phase)),
            )
            return False
        self.phases.complete_current_phase()
        advanced = self.phases.advance_phase()
        self.logger.info(
            "phase_gate_passed",
            extra=self.log_extra(project_id=self.session.project_id, phase=int(phase), advanced=advanced),
        )
        return advanced

    # Persistence

    def snapshot(self) -> Dict[str, Any]:
        return {
            "phases": self.phases.to_dict(),
            "semanticAnalysis": self.semantic_result.to_dict() if self.semantic_result else None,
        }

    def save(self, db: SQLiteDatabase) -> ProjectRecord:
        record = db.save_project(
            self.session.project_id,
            self.session.name,
            description=self.session.description,
            data=self.snapshot(),
        )
        db.add_recent_project(record.project_id, record.name)
        self.session.mark_saved()
        return record

    def restore(self, record: ProjectRecord) -> None:
        """Load phase state and the semantic result saved by save()."""
        data = record.data or {}
        phases = data.get("phases")
        restored = PhaseController.from_dict(phases if isinstance(phases, dict) else {}, self.session)
        self.phases.current_phase = restored.current_phase
        self.phases.statuses = restored.statuses
        semantic = data.get("semanticAnalysis")
        self.semantic_result = normalize_semantic_payload(semantic) if isinstance(semantic, dict) else None
        self.session.project_id = record.project_id
        self.session.name = record.name
        self.session.description = record.description
        self.session.is_dirty = False
