"""
prdgate Extraction Response Normalizer

Turns raw entity-extraction output into a pending ExtractionSnapshot.
Names are canonicalized, unknown enum values fall back to safe defaults and
every entity gets a primary key plus the standard audit and soft-delete
columns unless it opts out.
"""

import math
import re
from typing import Any, Dict, List, Optional

from prdgate.analysis.normalizer import load_json_object
from prdgate.logging import get_logger
from prdgate.models.entity import (
    CARDINALITIES,
    ENTITY_TYPES,
    RELATIONSHIP_TYPES,
    SUGGESTION_TYPES,
    Entity,
    EntitySuggestion,
    ExtractionSnapshot,
    Field,
    FieldConstraints,
    Relationship,
    RelationshipEnd,
    Source,
    SourceType,
)

logger = get_logger(__name__)

AI_CONFIDENCE = 0.85
PARSE_FAILURE_SUGGESTION = (
    "AI extraction failed to parse response. Please try again or add entities manually."
)

DATA_TYPE_ALIASES: Dict[str, str] = {
    "string": "string",
    "varchar": "string",
    "char": "string",
    "text": "text",
    "longtext": "text",
    "int": "integer",
    "integer": "integer",
    "smallint": "integer",
    "bigint": "bigint",
    "long": "bigint",
    "decimal": "decimal",
    "numeric": "decimal",
    "float": "decimal",
    "double": "decimal",
    "money": "decimal",
    "bool": "boolean",
    "boolean": "boolean",
    "date": "date",
    "datetime": "datetime",
    "timestamp": "timestamp",
    "uuid": "uuid",
    "guid": "uuid",
    "json": "json",
    "jsonb": "json",
    "enum": "enum",
    "binary": "binary",
    "blob": "binary",
}


# Naming

def to_snake_case(value: str) -> str:
    text = re.sub(r"([A-Z])", r"_\1", value).lower()
    text = re.sub(r"^_", "", text)
    text = re.sub(r"[\s-]+", "_", text)
    return re.sub(r"_+", "_", text)


def to_camel_case(value: str) -> str:
    text = re.sub(r"[\s_-]+([A-Za-z0-9])", lambda m: m.group(1).upper(), value.strip())
    text = re.sub(r"[\s_-]+", "", text)
    return text[:1].lower() + text[1:]


def to_pascal_case(value: str) -> str:
    camel = to_camel_case(value)
    return camel[:1].upper() + camel[1:]


def to_display_name(value: str) -> str:
    text = re.sub(r"([A-Z])", r" \1", value)
    text = re.sub(r"[_-]", " ", text)
    words = text.split()
    return " ".join(word[:1].upper() + word[1:].lower() for word in words)


# Field templates

def _ai_source() -> Source:
    return Source(type=SourceType.AI_EXTRACTED)


def _primary_key_field() -> Field:
    return Field(
        name="id",
        column_name="id",
        display_name="ID",
        data_type="uuid",
        constraints=FieldConstraints(primary_key=True, unique=True, nullable=False, indexed=True),
        source=_ai_source(),
        confidence=1.0,
    )


def _standard_field(name: str, data_type: str, *, nullable: bool, indexed: bool) -> Field:
    return Field(
        name=name,
        column_name=to_snake_case(name),
        display_name=to_display_name(name),
        data_type=data_type,
        constraints=FieldConstraints(nullable=nullable, indexed=indexed),
        source=_ai_source(),
        confidence=1.0,
    )


def audit_fields() -> List[Field]:
    return [
        _standard_field("createdAt", "timestamp", nullable=False, indexed=True),
        _standard_field("createdBy", "uuid", nullable=True, indexed=False),
        _standard_field("updatedAt", "timestamp", nullable=False, indexed=False),
        _standard_field("updatedBy", "uuid", nullable=True, indexed=False),
    ]


def soft_delete_fields() -> List[Field]:
    return [
        _standard_field("deletedAt", "timestamp", nullable=True, indexed=True),
        _standard_field("deletedBy", "uuid", nullable=True, indexed=False),
    ]


# Typed accessors

def _text(raw: Dict[str, Any], key: str) -> Optional[str]:
    value = raw.get(key)
    return value if isinstance(value, str) and value.strip() else None


def _flag(raw: Dict[str, Any], key: str, default: bool) -> bool:
    value = raw.get(key)
    return value if isinstance(value, bool) else default


def _number(raw: Dict[str, Any], key: str) -> Optional[float]:
    value = raw.get(key)
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    try:
        number = float(value)
    except OverflowError:
        return None
    return number if math.isfinite(number) else None


def _int(raw: Dict[str, Any], key: str) -> Optional[int]:
    number = _number(raw, key)
    return int(number) if number is not None else None


def _dicts(value: Any) -> List[Dict[str, Any]]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, dict)]


def normalize_data_type(value: Any) -> str:
    if not isinstance(value, str):
        return "string"
    return DATA_TYPE_ALIASES.get(value.strip().lower(), "string")


def _choice(value: Any, allowed: tuple, default: str) -> str:
    return value if isinstance(value, str) and value in allowed else default


# Records

def normalize_field(raw: Dict[str, Any]) -> Field:
    name = to_camel_case(_text(raw, "name") or "unnamedField")
    constraints = raw.get("constraints") if isinstance(raw.get("constraints"), dict) else {}
    enum_values = raw.get("enumValues")
    default_value = raw.get("defaultValue")
    return Field(
        name=name,
        column_name=_text(raw, "columnName") or to_snake_case(name),
        display_name=_text(raw, "displayName") or to_display_name(name),
        description=_text(raw, "description"),
        data_type=normalize_data_type(raw.get("dataType")),
        constraints=FieldConstraints(
            primary_key=_flag(constraints, "primaryKey", False),
            unique=_flag(constraints, "unique", False),
            nullable=_flag(constraints, "nullable", True),
            indexed=_flag(constraints, "indexed", False),
            min_length=_int(constraints, "minLength"),
            max_length=_int(constraints, "maxLength"),
            min=_number(constraints, "min"),
            max=_number(constraints, "max"),
        ),
        enum_values=[v for v in enum_values if isinstance(v, str)] if isinstance(enum_values, list) else None,
        default_value=str(default_value) if isinstance(default_value, (str, int, float)) else None,
        source=_ai_source(),
        confidence=AI_CONFIDENCE,
    )


def normalize_entity(raw: Dict[str, Any]) -> Entity:
    name = to_pascal_case(_text(raw, "name") or "UnnamedEntity")
    fields = [normalize_field(f) for f in _dicts(raw.get("fields"))]

    if not any(f.constraints.primary_key for f in fields):
        fields.insert(0, _primary_key_field())

    is_auditable = raw.get("isAuditable") is not False
    is_soft_delete = raw.get("isSoftDelete") is not False
    extras: List[Field] = []
    if is_auditable:
        extras.extend(audit_fields())
    if is_soft_delete:
        extras.extend(soft_delete_fields())
    existing = {f.name for f in fields}
    fields.extend(f for f in extras if f.name not in existing)

    return Entity(
        name=name,
        display_name=_text(raw, "displayName") or to_display_name(name),
        table_name=_text(raw, "tableName") or to_snake_case(name),
        description=_text(raw, "description") or "",
        type=_choice(raw.get("type"), ENTITY_TYPES, "master"),
        fields=fields,
        is_auditable=is_auditable,
        is_soft_delete=is_soft_delete,
        source=_ai_source(),
        confidence=AI_CONFIDENCE,
    )


def _relationship_end(raw: Any) -> RelationshipEnd:
    end = raw if isinstance(raw, dict) else {}
    return RelationshipEnd(
        entity=_text(end, "entity") or "",
        field=_text(end, "field") or "id",
        cardinality=_choice(end.get("cardinality"), CARDINALITIES, "1"),
    )


def normalize_relationship(raw: Dict[str, Any]) -> Relationship:
    return Relationship(
        name=_text(raw, "name") or "unnamed_relationship",
        type=_choice(raw.get("type"), RELATIONSHIP_TYPES, "many-to-one"),
        from_end=_relationship_end(raw.get("from")),
        to_end=_relationship_end(raw.get("to")),
        description=_text(raw, "description"),
        junction_table=_text(raw, "junctionTable"),
        source=_ai_source(),
    )


def normalize_suggestion(raw: Dict[str, Any]) -> EntitySuggestion:
    confidence = _number(raw, "confidence")
    if not confidence:
        confidence = 0.5
    return EntitySuggestion(
        type=_choice(raw.get("type"), SUGGESTION_TYPES, "add-entity"),
        target=_text(raw, "target") or "",
        suggestion=_text(raw, "suggestion") or "",
        reason=_text(raw, "reason") or "",
        confidence=max(0.0, min(1.0, confidence)),
    )


def parse_failure_snapshot(content: str) -> ExtractionSnapshot:
    return ExtractionSnapshot(
        suggestions=[
            EntitySuggestion(
                type="add-entity",
                target="general",
                suggestion=PARSE_FAILURE_SUGGESTION,
                reason="Parse error",
                confidence=0.0,
            )
        ],
        raw_response=content,
    )


def parse_extraction_response(content: str) -> ExtractionSnapshot:
    """Normalize raw extraction text into a pending snapshot; never raises."""
    text = content if isinstance(content, str) else ""
    payload = load_json_object(text)
    if payload is None:
        logger.warning("entity_extraction_parse_failed", extra={"content_length": len(text)})
        return parse_failure_snapshot(text)
    return ExtractionSnapshot(
        entities=[normalize_entity(e) for e in _dicts(payload.get("entities"))],
        relationships=[normalize_relationship(r) for r in _dicts(payload.get("relationships"))],
        suggestions=[normalize_suggestion(s) for s in _dicts(payload.get("suggestions"))],
    )
