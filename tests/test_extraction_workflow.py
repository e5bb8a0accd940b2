"""
Tests for the entity extraction review workflow.
"""

import asyncio
import json

import pytest

from prdgate.errors import OperationCancelled, ProviderError
from prdgate.extraction.extractor import EntityExtractionService
from prdgate.extraction.workflow import EntityExtractionWorkflow, ExtractionMode
from prdgate.llm.gateway import CancellationToken
from prdgate.models.entity import (
    Entity,
    EntitySuggestion,
    ExtractionSnapshot,
    Field,
    Relationship,
    RelationshipEnd,
)
from prdgate.services.base import ServiceContext
from prdgate.services.project import ProjectSession


def _entity(name: str) -> Entity:
    return Entity(
        name=name,
        display_name=name,
        table_name=name.lower(),
        fields=[Field(name="id", column_name="id", display_name="ID", data_type="uuid")],
    )


def _relationship(source: str, target: str) -> Relationship:
    return Relationship(
        name=f"{source.lower()}_{target.lower()}",
        type="many-to-one",
        from_end=RelationshipEnd(entity=source, field=f"{target.lower()}Id", cardinality="*"),
        to_end=RelationshipEnd(entity=target),
    )


def _snapshot() -> ExtractionSnapshot:
    return ExtractionSnapshot(
        entities=[_entity("Order"), _entity("Supplier")],
        relationships=[_relationship("Order", "Supplier")],
        suggestions=[EntitySuggestion(type="add-field", target="Supplier", suggestion="Add email")],
    )


@pytest.fixture
def session() -> ProjectSession:
    return ProjectSession(project_id="proj-1", name="Demo")


@pytest.fixture
def workflow(session: ProjectSession) -> EntityExtractionWorkflow:
    return EntityExtractionWorkflow(session)


def _reviewing(workflow: EntityExtractionWorkflow) -> ExtractionSnapshot:
    snapshot = _snapshot()
    assert workflow.begin_extraction()
    assert workflow.set_pending_extraction(snapshot)
    return snapshot


# =============================================================================
# Review transitions
# =============================================================================

def test_initial_state(workflow):
    assert workflow.mode == ExtractionMode.IDLE
    assert workflow.progress == 0
    assert workflow.entities == []
    assert not workflow.has_pending


def test_extract_then_confirm(workflow, session):
    snapshot = _reviewing(workflow)
    assert workflow.mode == ExtractionMode.REVIEWING
    assert workflow.progress == 100
    assert session.is_dirty is False

    assert workflow.confirm_extraction()

    assert workflow.mode == ExtractionMode.CONFIRMED
    assert workflow.pending_entities == []
    assert workflow.pending_relationships == []
    assert workflow.pending_suggestions == []
    assert workflow.entities == snapshot.entities
    assert workflow.relationships == snapshot.relationships
    assert workflow.suggestions == snapshot.suggestions
    assert workflow.selected_entity_id == snapshot.entities[0].id
    assert session.is_dirty is True


def test_confirm_empty_snapshot_selects_nothing(workflow):
    workflow.begin_extraction()
    workflow.set_pending_extraction(ExtractionSnapshot())
    assert workflow.confirm_extraction()
    assert workflow.selected_entity_id is None


def test_discard_keeps_committed_model(workflow):
    _reviewing(workflow)
    workflow.confirm_extraction()
    committed = list(workflow.entities)

    workflow.begin_extraction()
    workflow.set_pending_extraction(ExtractionSnapshot(entities=[_entity("Invoice")]))
    assert workflow.discard_extraction()

    assert workflow.mode == ExtractionMode.IDLE
    assert workflow.entities == committed
    assert workflow.pending_entities == []
    assert workflow.progress == 0


def test_progress_is_clamped_and_monotonic(workflow):
    workflow.begin_extraction()

    workflow.report_progress(40)
    workflow.report_progress(20)
    assert workflow.progress == 40

    workflow.report_progress(250)
    assert workflow.progress == 100


def test_progress_ignored_outside_extraction(workflow):
    assert workflow.report_progress(50) is False
    assert workflow.progress == 0


def test_fail_resets_to_idle(workflow):
    workflow.begin_extraction()
    workflow.report_progress(30)

    workflow.fail_extraction("provider down")

    assert workflow.mode == ExtractionMode.IDLE
    assert workflow.error == "provider down"
    assert workflow.progress == 0
    assert workflow.is_extracting is False


def test_fail_during_review_clears_pending(workflow):
    _reviewing(workflow)
    workflow.fail_extraction("oops")
    assert not workflow.has_pending
    assert workflow.mode == ExtractionMode.IDLE


# =============================================================================
# Misuse is a no-op
# =============================================================================

def test_confirm_without_pending_is_noop(workflow, session):
    assert workflow.confirm_extraction() is False
    assert workflow.mode == ExtractionMode.IDLE
    assert session.is_dirty is False


def test_discard_without_pending_is_noop(workflow):
    assert workflow.discard_extraction() is False


def test_set_pending_while_idle_is_noop(workflow):
    assert workflow.set_pending_extraction(_snapshot()) is False
    assert not workflow.has_pending


def test_second_begin_while_extracting_is_rejected(workflow):
    assert workflow.begin_extraction()
    workflow.report_progress(50)
    assert workflow.begin_extraction() is False
    assert workflow.progress == 50


def test_begin_while_reviewing_is_rejected(workflow):
    _reviewing(workflow)
    assert workflow.begin_extraction() is False
    assert workflow.mode == ExtractionMode.REVIEWING


def test_begin_after_confirm_is_allowed(workflow):
    _reviewing(workflow)
    workflow.confirm_extraction()
    assert workflow.begin_extraction()
    assert workflow.error is None


# =============================================================================
# Async extraction run
# =============================================================================

EXTRACTION_RESPONSE = json.dumps({
    "entities": [{"name": "Order", "fields": [{"name": "total", "dataType": "money"}]}],
    "relationships": [],
    "suggestions": [],
})


def test_run_extraction_leaves_result_pending(workflow, context, make_gateway):
    gateway = make_gateway(EXTRACTION_RESPONSE)
    extractor = EntityExtractionService(context, gateway)

    assert asyncio.run(workflow.run_extraction(extractor, "# PRD"))

    assert workflow.mode == ExtractionMode.REVIEWING
    assert [e.name for e in workflow.pending_entities] == ["Order"]
    assert workflow.entities == []
    request = gateway.transport.requests[0]
    assert request.tier == "entityExtraction"
    assert request.max_tokens == 8192


def test_run_extraction_records_progress(context, make_gateway, workflow):
    seen = []
    extractor = EntityExtractionService(context, make_gateway(EXTRACTION_RESPONSE))

    asyncio.run(extractor.extract("# PRD", on_progress=seen.append))

    assert seen == [10, 80, 100]


def test_extraction_attempts_follow_configured_retries(config, make_gateway):
    context = ServiceContext(config=config.model_copy(update={"llm_max_retries": 2}))
    gateway = make_gateway(ProviderError("Provider API error: 503", status_code=503))

    with pytest.raises(ProviderError):
        asyncio.run(EntityExtractionService(context, gateway).extract("# PRD"))

    assert gateway.transport.calls == 2


def test_run_extraction_failure_is_recorded_and_raised(workflow, context, make_gateway):
    extractor = EntityExtractionService(context, make_gateway(ProviderError("Provider API error: 401", status_code=401)))

    with pytest.raises(ProviderError):
        asyncio.run(workflow.run_extraction(extractor, "# PRD"))

    assert workflow.mode == ExtractionMode.IDLE
    assert workflow.error == "Provider API error: 401"


def test_run_extraction_cancelled_resets_to_idle(workflow, context, make_gateway):
    extractor = EntityExtractionService(context, make_gateway(EXTRACTION_RESPONSE))

    async def run():
        token = CancellationToken()
        token.cancel()
        await workflow.run_extraction(extractor, "# PRD", cancellation=token)

    with pytest.raises(OperationCancelled):
        asyncio.run(run())

    assert workflow.mode == ExtractionMode.IDLE
    assert workflow.progress == 0
    assert workflow.error is None


def test_run_extraction_rejected_while_reviewing(workflow, context, make_gateway):
    _reviewing(workflow)
    gateway = make_gateway(EXTRACTION_RESPONSE)

    assert asyncio.run(workflow.run_extraction(EntityExtractionService(context, gateway), "# PRD")) is False
    assert gateway.transport.calls == 0


# =============================================================================
# Manual edits
# =============================================================================

@pytest.fixture
def confirmed(workflow) -> EntityExtractionWorkflow:
    _reviewing(workflow)
    workflow.confirm_extraction()
    workflow.session.mark_saved()
    return workflow


def test_remove_entity_drops_its_relationships(confirmed):
    order, supplier = confirmed.entities
    confirmed.select_entity(supplier.id)

    assert confirmed.remove_entity(supplier.id)

    assert [e.name for e in confirmed.entities] == ["Order"]
    assert confirmed.relationships == []
    assert confirmed.selected_entity_id is None
    assert confirmed.session.is_dirty is True


def test_add_and_update_entity(confirmed):
    added = confirmed.add_entity(_entity("Invoice"))
    assert confirmed.entity_by_name("invoice") is added

    assert confirmed.update_entity(added.id, description="Billing document")
    assert confirmed.get_entity(added.id).description == "Billing document"
    assert confirmed.get_entity(added.id).id == added.id


def test_editing_missing_entity_is_noop(confirmed):
    confirmed.session.mark_saved()
    assert confirmed.update_entity("missing", description="x") is False
    assert confirmed.remove_entity("missing") is False
    assert confirmed.add_field("missing", Field(name="a", column_name="a", display_name="A")) is None
    assert confirmed.session.is_dirty is False


def test_field_operations(confirmed):
    order = confirmed.entity_by_name("Order")
    total = confirmed.add_field(order.id, Field(name="total", column_name="total", display_name="Total"))
    assert [f.name for f in confirmed.get_entity(order.id).fields] == ["id", "total"]

    assert confirmed.update_field(order.id, total.id, data_type="decimal")
    assert confirmed.get_entity(order.id).field_by_id(total.id).data_type == "decimal"

    id_field = confirmed.get_entity(order.id).fields[0]
    assert confirmed.reorder_fields(order.id, [total.id, id_field.id])
    assert [f.name for f in confirmed.get_entity(order.id).fields] == ["total", "id"]

    assert confirmed.remove_field(order.id, total.id)
    assert [f.name for f in confirmed.get_entity(order.id).fields] == ["id"]
    assert confirmed.remove_field(order.id, total.id) is False


def test_relationship_operations(confirmed):
    order = confirmed.entity_by_name("Order")
    added = confirmed.add_relationship(_relationship("Supplier", "Order"))

    assert len(confirmed.relationships_for_entity(order.id)) == 2
    assert confirmed.update_relationship(added.id, type="one-to-many")
    assert [r.type for r in confirmed.relationships if r.id == added.id] == ["one-to-many"]
    assert confirmed.remove_relationship(added.id)
    assert confirmed.remove_relationship(added.id) is False


def test_suggestions(confirmed):
    applied = confirmed.apply_suggestion(0)
    assert applied.target == "Supplier"
    assert confirmed.suggestions == []
    assert confirmed.apply_suggestion(0) is None
    assert confirmed.dismiss_suggestion(0) is False


def test_clear_resets_everything(confirmed):
    confirmed.clear()
    assert confirmed.entities == []
    assert confirmed.relationships == []
    assert confirmed.mode == ExtractionMode.IDLE
    assert confirmed.selected_entity_id is None
