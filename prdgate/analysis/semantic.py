"""
prdgate Semantic Analysis Service

Runs the AI review of a PRD on the prdAnalysis tier and normalizes whatever
comes back into a SemanticAnalysisResult.
"""

from datetime import datetime, timezone
from typing import Optional

from prdgate.analysis.normalizer import parse_semantic_analysis_response
from prdgate.llm.gateway import CancellationToken, LLMGateway
from prdgate.llm.prompts import SEMANTIC_ANALYSIS_SYSTEM_PROMPT, build_semantic_analysis_prompt
from prdgate.models.analysis import PrdSummary, SemanticAnalysisResult
from prdgate.services.base import Service, ServiceContext

SEMANTIC_ANALYSIS_TIER = "prdAnalysis"
SEMANTIC_ANALYSIS_MAX_TOKENS = 8192


class SemanticAnalysisService(Service):
    """
    AI-backed structural assessment of a PRD.

    Transport failures and cancellation propagate; malformed model output
    does not, it becomes a degraded result.
    """

    def __init__(
        self,
        context: ServiceContext,
        gateway: LLMGateway,
        *,
        system_prompt: Optional[str] = None,
    ) -> None:
        super().__init__(context)
        self.gateway = gateway
        self.system_prompt = system_prompt or SEMANTIC_ANALYSIS_SYSTEM_PROMPT

    async def analyze(
        self,
        raw_content: str,
        prd_summary: PrdSummary,
        cancellation: Optional[CancellationToken] = None,
        *,
        project_id: Optional[str] = None,
    ) -> SemanticAnalysisResult:
        self.logger.info(
            "semantic_analysis_started",
            extra=self.log_extra(project_id=project_id, fr_count=prd_summary.fr_count),
        )
        response = await self.gateway.call(
            SEMANTIC_ANALYSIS_TIER,
            self.system_prompt,
            build_semantic_analysis_prompt(raw_content, prd_summary),
            max_tokens=SEMANTIC_ANALYSIS_MAX_TOKENS,
            max_retries=self.config.llm_max_retries,
            cancellation=cancellation,
        )
        result = parse_semantic_analysis_response(response.content)
        result.analyzed_at = datetime.now(timezone.utc)
        self.logger.info(
            "semantic_analysis_completed",
            extra=self.log_extra(
                project_id=project_id,
                can_proceed=result.overall_assessment.can_proceed,
                confidence_score=result.overall_assessment.confidence_score,
                total_tokens=response.usage.total_tokens,
            ),
        )
        return result
