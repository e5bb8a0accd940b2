"""
prdgate Entity Extraction Workflow

Review state machine that gates promotion of AI-proposed entities and
relationships into the committed data model, plus the manual edits made to
that model afterwards.

States: idle -> extracting -> reviewing -> confirmed, with discard taking
reviewing back to idle and failure taking any state back to idle. Misuse
(confirming with nothing pending, editing a missing entity) is a logged
no-op that returns False.
"""

import dataclasses
from datetime import datetime, timezone
from typing import Any, List, Optional

from prdgate.errors import OperationCancelled, PrdGateError
from prdgate.extraction.extractor import EntityExtractionService
from prdgate.llm.gateway import CancellationToken
from prdgate.logging import get_logger
from prdgate.models.analysis import PrdSummary
from prdgate.models.entity import (
    Entity,
    EntitySuggestion,
    ExtractionSnapshot,
    Field,
    Relationship,
    generate_id,
)
from prdgate.services.project import ProjectSession

logger = get_logger(__name__)


class ExtractionMode:
    """Extraction workflow states."""
    IDLE = "idle"
    EXTRACTING = "extracting"
    REVIEWING = "reviewing"
    CONFIRMED = "confirmed"


class EntityExtractionWorkflow:
    """
    Committed entity model of one project plus at most one pending extraction.

    Only the transitions below write the committed and pending triples.
    """

    def __init__(self, session: ProjectSession) -> None:
        self.session = session

        self.entities: List[Entity] = []
        self.relationships: List[Relationship] = []
        self.suggestions: List[EntitySuggestion] = []

        self.pending_entities: List[Entity] = []
        self.pending_relationships: List[Relationship] = []
        self.pending_suggestions: List[EntitySuggestion] = []

        self.mode: str = ExtractionMode.IDLE
        self.is_extracting = False
        self.progress = 0
        self.error: Optional[str] = None

        self.selected_entity_id: Optional[str] = None
        self.selected_field_id: Optional[str] = None

    def _reject(self, action: str, **extra: Any) -> bool:
        logger.debug(
            "extraction_workflow_noop",
            extra={"action": action, "mode": self.mode, "project_id": self.session.project_id, **extra},
        )
        return False

    @property
    def has_pending(self) -> bool:
        return bool(self.pending_entities or self.pending_relationships or self.pending_suggestions)

    def _clear_pending(self) -> None:
        self.pending_entities = []
        self.pending_relationships = []
        self.pending_suggestions = []

    # Review transitions

    def begin_extraction(self) -> bool:
        if self.mode not in (ExtractionMode.IDLE, ExtractionMode.CONFIRMED):
            return self._reject("begin_extraction")
        self.mode = ExtractionMode.EXTRACTING
        self.is_extracting = True
        self.progress = 0
        self.error = None
        return True

    def report_progress(self, pct: float) -> bool:
        if self.mode != ExtractionMode.EXTRACTING:
            return self._reject("report_progress", progress=pct)
        value = int(max(0, min(100, pct)))
        if value > self.progress:
            self.progress = value
        return True

    def set_pending_extraction(self, snapshot: ExtractionSnapshot) -> bool:
        if self.mode != ExtractionMode.EXTRACTING:
            return self._reject("set_pending_extraction")
        self.pending_entities = list(snapshot.entities)
        self.pending_relationships = list(snapshot.relationships)
        self.pending_suggestions = list(snapshot.suggestions)
        self.mode = ExtractionMode.REVIEWING
        self.is_extracting = False
        self.progress = 100
        return True

    def confirm_extraction(self) -> bool:
        """Replace the committed model with the pending snapshot."""
        if self.mode != ExtractionMode.REVIEWING:
            return self._reject("confirm_extraction")
        self.entities = self.pending_entities
        self.relationships = self.pending_relationships
        self.suggestions = self.pending_suggestions
        self._clear_pending()
        self.mode = ExtractionMode.CONFIRMED
        self.selected_entity_id = self.entities[0].id if self.entities else None
        self.selected_field_id = None
        self.session.mark_dirty()
        logger.info(
            "extraction_confirmed",
            extra={
                "project_id": self.session.project_id,
                "entity_count": len(self.entities),
                "relationship_count": len(self.relationships),
            },
        )
        return True

    def discard_extraction(self) -> bool:
        if self.mode != ExtractionMode.REVIEWING:
            return self._reject("discard_extraction")
        self._clear_pending()
        self.mode = ExtractionMode.IDLE
        self.is_extracting = False
        self.progress = 0
        return True

    def fail_extraction(self, message: str) -> None:
        self._clear_pending()
        self.error = message
        self.mode = ExtractionMode.IDLE
        self.is_extracting = False
        self.progress = 0
        logger.warning(
            "extraction_failed",
            extra={"project_id": self.session.project_id, "error": message},
        )

    async def run_extraction(
        self,
        extractor: EntityExtractionService,
        raw_content: str,
        prd_summary: Optional[PrdSummary] = None,
        cancellation: Optional[CancellationToken] = None,
    ) -> bool:
        """
        Run one extraction end to end and leave the result pending for review.

        Returns False without calling the extractor when an extraction is
        already in flight or awaiting review.
        """
        if not self.begin_extraction():
            return False
        try:
            snapshot = await extractor.extract(
                raw_content,
                prd_summary,
                on_progress=self.report_progress,
                cancellation=cancellation,
                project_id=self.session.project_id,
            )
        except OperationCancelled:
            self._clear_pending()
            self.mode = ExtractionMode.IDLE
            self.is_extracting = False
            self.progress = 0
            raise
        except PrdGateError as exc:
            self.fail_extraction(str(exc))
            raise
        return self.set_pending_extraction(snapshot)

    # Entities

    def add_entity(self, entity: Entity) -> Entity:
        now = datetime.now(timezone.utc)
        added = dataclasses.replace(entity, id=generate_id(), created_at=now, updated_at=now)
        self.entities.append(added)
        self.session.mark_dirty()
        return added

    def get_entity(self, entity_id: str) -> Optional[Entity]:
        for entity in self.entities:
            if entity.id == entity_id:
                return entity
        return None

    def _replace_entity(self, updated: Entity) -> None:
        self.entities = [updated if e.id == updated.id else e for e in self.entities]
        self.session.mark_dirty()

    def update_entity(self, entity_id: str, **updates: Any) -> bool:
        entity = self.get_entity(entity_id)
        if entity is None:
            return self._reject("update_entity", entity_id=entity_id)
        updates.pop("id", None)
        updates.pop("updated_at", None)
        self._replace_entity(dataclasses.replace(entity, **updates, updated_at=datetime.now(timezone.utc)))
        return True

    def remove_entity(self, entity_id: str) -> bool:
        """Remove an entity and every relationship that references it by name."""
        entity = self.get_entity(entity_id)
        if entity is None:
            return self._reject("remove_entity", entity_id=entity_id)
        self.entities = [e for e in self.entities if e.id != entity_id]
        self.relationships = [r for r in self.relationships if not r.references(entity.name)]
        if self.selected_entity_id == entity_id:
            self.selected_entity_id = None
            self.selected_field_id = None
        self.session.mark_dirty()
        return True

    # Fields

    def add_field(self, entity_id: str, field: Field) -> Optional[Field]:
        entity = self.get_entity(entity_id)
        if entity is None:
            self._reject("add_field", entity_id=entity_id)
            return None
        added = dataclasses.replace(field, id=generate_id())
        self._replace_entity(dataclasses.replace(
            entity,
            fields=entity.fields + [added],
            updated_at=datetime.now(timezone.utc),
        ))
        return added

    def update_field(self, entity_id: str, field_id: str, **updates: Any) -> bool:
        entity = self.get_entity(entity_id)
        if entity is None or entity.field_by_id(field_id) is None:
            return self._reject("update_field", entity_id=entity_id, field_id=field_id)
        updates.pop("id", None)
        fields = [dataclasses.replace(f, **updates) if f.id == field_id else f for f in entity.fields]
        self._replace_entity(dataclasses.replace(entity, fields=fields, updated_at=datetime.now(timezone.utc)))
        return True

    def remove_field(self, entity_id: str, field_id: str) -> bool:
        entity = self.get_entity(entity_id)
        if entity is None or entity.field_by_id(field_id) is None:
            return self._reject("remove_field", entity_id=entity_id, field_id=field_id)
        fields = [f for f in entity.fields if f.id != field_id]
        self._replace_entity(dataclasses.replace(entity, fields=fields, updated_at=datetime.now(timezone.utc)))
        if self.selected_field_id == field_id:
            self.selected_field_id = None
        return True

    def reorder_fields(self, entity_id: str, field_ids: List[str]) -> bool:
        """Reorder fields by id; ids not on the entity are ignored and fields not listed are dropped."""
        entity = self.get_entity(entity_id)
        if entity is None:
            return self._reject("reorder_fields", entity_id=entity_id)
        by_id = {f.id: f for f in entity.fields}
        fields = [by_id[fid] for fid in field_ids if fid in by_id]
        self._replace_entity(dataclasses.replace(entity, fields=fields, updated_at=datetime.now(timezone.utc)))
        return True

    # Relationships

    def add_relationship(self, relationship: Relationship) -> Relationship:
        added = dataclasses.replace(relationship, id=generate_id())
        self.relationships.append(added)
        self.session.mark_dirty()
        return added

    def update_relationship(self, relationship_id: str, **updates: Any) -> bool:
        if not any(r.id == relationship_id for r in self.relationships):
            return self._reject("update_relationship", relationship_id=relationship_id)
        updates.pop("id", None)
        self.relationships = [
            dataclasses.replace(r, **updates) if r.id == relationship_id else r
            for r in self.relationships
        ]
        self.session.mark_dirty()
        return True

    def remove_relationship(self, relationship_id: str) -> bool:
        remaining = [r for r in self.relationships if r.id != relationship_id]
        if len(remaining) == len(self.relationships):
            return self._reject("remove_relationship", relationship_id=relationship_id)
        self.relationships = remaining
        self.session.mark_dirty()
        return True

    # Suggestions

    def apply_suggestion(self, index: int) -> Optional[EntitySuggestion]:
        """Take a suggestion off the list and return it for the caller to act on."""
        if not 0 <= index < len(self.suggestions):
            self._reject("apply_suggestion", index=index)
            return None
        suggestion = self.suggestions.pop(index)
        self.session.mark_dirty()
        return suggestion

    def dismiss_suggestion(self, index: int) -> bool:
        if not 0 <= index < len(self.suggestions):
            return self._reject("dismiss_suggestion", index=index)
        del self.suggestions[index]
        self.session.mark_dirty()
        return True

    # Selection and lookups

    def select_entity(self, entity_id: Optional[str]) -> None:
        self.selected_entity_id = entity_id
        self.selected_field_id = None

    def select_field(self, field_id: Optional[str]) -> None:
        self.selected_field_id = field_id

    @property
    def selected_entity(self) -> Optional[Entity]:
        if self.selected_entity_id is None:
            return None
        return self.get_entity(self.selected_entity_id)

    def entity_by_name(self, name: str) -> Optional[Entity]:
        lowered = name.lower()
        for entity in self.entities:
            if entity.name.lower() == lowered:
                return entity
        return None

    def relationships_for_entity(self, entity_id: str) -> List[Relationship]:
        entity = self.get_entity(entity_id)
        if entity is None:
            return []
        return [r for r in self.relationships if r.references(entity.name)]

    def clear(self) -> None:
        self.entities = []
        self.relationships = []
        self.suggestions = []
        self._clear_pending()
        self.mode = ExtractionMode.IDLE
        self.is_extracting = False
        self.progress = 0
        self.error = None
        self.selected_entity_id = None
        self.selected_field_id = None
