"""
prdgate Entity Models

The committed data model (entities, fields, relationships) and the
suggestions an extraction run proposes alongside it.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional


ENTITY_TYPES = ("master", "transaction", "reference", "lookup", "junction")
DATA_TYPES = (
    "string", "text", "integer", "bigint", "decimal", "boolean", "date",
    "datetime", "timestamp", "uuid", "json", "enum", "binary",
)
RELATIONSHIP_TYPES = ("one-to-one", "one-to-many", "many-to-one", "many-to-many")
CARDINALITIES = ("1", "0..1", "*", "1..*", "0..*")
SUGGESTION_TYPES = ("add-entity", "add-field", "add-relationship", "modify-type", "add-index")


class SourceType:
    """Provenance of an entity, field or relationship."""
    PRD_EXPLICIT = "prd-explicit"
    PRD_INFERRED = "prd-inferred"
    SCREEN_FIELD = "screen-field"
    BUSINESS_RULE = "business-rule"
    STANDARD = "standard"
    INFERRED = "inferred"
    MANUAL = "manual"
    AI_EXTRACTED = "ai-extracted"


def generate_id() -> str:
    return uuid.uuid4().hex


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Source:
    type: str = SourceType.MANUAL
    reference: Optional[str] = None


@dataclass
class FieldConstraints:
    primary_key: bool = False
    unique: bool = False
    nullable: bool = True
    indexed: bool = False
    min_length: Optional[int] = None
    max_length: Optional[int] = None
    min: Optional[float] = None
    max: Optional[float] = None


@dataclass
class Field:
    name: str
    column_name: str
    display_name: str
    data_type: str = "string"
    constraints: FieldConstraints = field(default_factory=FieldConstraints)
    description: Optional[str] = None
    default_value: Optional[str] = None
    enum_values: Optional[List[str]] = None
    source: Source = field(default_factory=Source)
    confidence: float = 1.0
    id: str = field(default_factory=generate_id)


@dataclass
class Entity:
    name: str
    display_name: str
    table_name: str
    description: str = ""
    type: str = "master"
    fields: List[Field] = field(default_factory=list)
    is_auditable: bool = True
    is_soft_delete: bool = True
    source: Source = field(default_factory=Source)
    confidence: float = 1.0
    id: str = field(default_factory=generate_id)
    created_at: datetime = field(default_factory=utcnow)
    updated_at: datetime = field(default_factory=utcnow)

    def field_by_id(self, field_id: str) -> Optional[Field]:
        for item in self.fields:
            if item.id == field_id:
                return item
        return None


@dataclass
class RelationshipEnd:
    """One side of a relationship; entity and field are logical names, not ids."""
    entity: str
    field: str = "id"
    cardinality: str = "1"


@dataclass
class Relationship:
    name: str
    type: str
    from_end: RelationshipEnd
    to_end: RelationshipEnd
    description: Optional[str] = None
    junction_table: Optional[str] = None
    source: Source = field(default_factory=Source)
    id: str = field(default_factory=generate_id)

    def references(self, entity_name: str) -> bool:
        lowered = entity_name.lower()
        return self.from_end.entity.lower() == lowered or self.to_end.entity.lower() == lowered


@dataclass
class EntitySuggestion:
    type: str
    target: str
    suggestion: str
    reason: str = ""
    confidence: float = 0.5


@dataclass
class ExtractionSnapshot:
    """An extraction result awaiting review, distinct from the committed model."""
    entities: List[Entity] = field(default_factory=list)
    relationships: List[Relationship] = field(default_factory=list)
    suggestions: List[EntitySuggestion] = field(default_factory=list)
    raw_response: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return not (self.entities or self.relationships or self.suggestions)
