"""
prdgate Entity Extraction Service

Asks the entityExtraction tier for the PRD's data model and normalizes the
answer into a pending ExtractionSnapshot.
"""

from typing import Callable, Optional

from prdgate.extraction.normalizer import parse_extraction_response
from prdgate.llm.gateway import CancellationToken, LLMGateway
from prdgate.llm.prompts import ENTITY_EXTRACTION_SYSTEM_PROMPT, build_entity_extraction_prompt
from prdgate.models.analysis import PrdSummary
from prdgate.models.entity import ExtractionSnapshot
from prdgate.services.base import Service, ServiceContext

ENTITY_EXTRACTION_TIER = "entityExtraction"
ENTITY_EXTRACTION_MAX_TOKENS = 8192

ProgressCallback = Callable[[int], None]


class EntityExtractionService(Service):
    """
    AI entity extraction.

    Reports progress 10 before the model call, 80 after it and 100 once the
    response is normalized.
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
        self.system_prompt = system_prompt or ENTITY_EXTRACTION_SYSTEM_PROMPT

    async def extract(
        self,
        raw_content: str,
        prd_summary: Optional[PrdSummary] = None,
        on_progress: Optional[ProgressCallback] = None,
        cancellation: Optional[CancellationToken] = None,
        *,
        project_id: Optional[str] = None,
    ) -> ExtractionSnapshot:
        def report(pct: int) -> None:
            if on_progress is not None:
                on_progress(pct)

        user_prompt = build_entity_extraction_prompt(
            raw_content,
            prd_summary.functional_requirements if prd_summary else None,
        )
        report(10)
        response = await self.gateway.call(
            ENTITY_EXTRACTION_TIER,
            self.system_prompt,
            user_prompt,
            max_tokens=ENTITY_EXTRACTION_MAX_TOKENS,
            max_retries=self.config.llm_max_retries,
            cancellation=cancellation,
        )
        report(80)
        snapshot = parse_extraction_response(response.content)
        report(100)
        self.logger.info(
            "entity_extraction_completed",
            extra=self.log_extra(
                project_id=project_id,
                entity_count=len(snapshot.entities),
                relationship_count=len(snapshot.relationships),
                suggestion_count=len(snapshot.suggestions),
            ),
        )
        return snapshot
