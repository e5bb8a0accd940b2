"""
Prompt builders for the PRD analysis and entity extraction tiers.
"""

from typing import Optional

from prdgate.models.analysis import PrdSummary


SEMANTIC_ANALYSIS_SYSTEM_PROMPT = """You are a Senior Business Analyst performing quality assurance on a parsed PRD.
Analyze ONLY what the PRD states explicitly. Do not infer missing details, assume implied
functionality or invent business logic. If something is unclear or missing, flag it as a gap.

Assess completeness, gaps (missing screens, undefined entities, incomplete workflows,
missing validations), conflicts between requirements or business rules, readiness for
entity extraction, and give an overall proceed/fix verdict.

Be specific ("FR-003 lacks a screen definition"), actionable and honest. Flag ambiguous
language (MAY, SHOULD, TYPICALLY, ETC., APPROPRIATE) as something needing clarification.

You must return a valid JSON object following the exact schema provided."""


SEMANTIC_ANALYSIS_OUTPUT_FORMAT = """{
  "completeness": {
    "score": <number 0-100>,
    "missingElements": ["<specific missing element>"],
    "recommendations": ["<actionable recommendation>"]
  },
  "gaps": {
    "missingScreens": ["<FR-XXX: description of missing screen>"],
    "undefinedEntities": ["<entity mentioned but not defined>"],
    "incompleteWorkflows": ["<FR-XXX: what is missing in the workflow>"],
    "missingValidations": ["<field or rule lacking a validation spec>"]
  },
  "conflicts": {
    "requirementConflicts": [{"fr1": "FR-XXX", "fr2": "FR-YYY", "description": "how they conflict"}],
    "ruleConflicts": [{"rule1": "BR-XXX", "rule2": "BR-YYY", "description": "how they conflict"}]
  },
  "entityReadiness": {
    "ready": <boolean>,
    "identifiedEntities": ["<clear entity>"],
    "uncertainEntities": ["<unclear entity>"],
    "recommendations": ["<how to improve entity definitions>"]
  },
  "overallAssessment": {
    "canProceed": <boolean, false if blocking issues exist>,
    "confidenceScore": <number 0-100>,
    "blockingIssues": ["<issue that MUST be fixed>"],
    "warnings": ["<issue that SHOULD be addressed>"],
    "summary": "<2-3 sentence summary of PRD readiness>"
  }
}"""


ENTITY_EXTRACTION_SYSTEM_PROMPT = """You are a senior data architect. Extract the data model described by a PRD:
entities with their fields, relationships between entities, and suggestions for anything
the PRD leaves unclear. Only model what the PRD supports; put guesses into suggestions.

Use PascalCase entity names and camelCase field names. Entity types are one of master,
transaction, reference, lookup, junction. Relationship types are one of one-to-one,
one-to-many, many-to-one, many-to-many with cardinalities 1, 0..1, *, 1..*, 0..*.

Return ONLY a valid JSON object with "entities", "relationships" and "suggestions" arrays."""


def build_semantic_analysis_prompt(raw_content: str, summary: PrdSummary) -> str:
    roles = ", ".join(summary.user_roles) or "None defined"
    return f"""Analyze the following PRD for semantic quality and development readiness.

## PRD Content
---
{raw_content}
---

## Parsed Structure Summary
- Functional Requirements: {summary.fr_count}
- Business Rules: {summary.br_count}
- Screens: {summary.screen_count}
- Entities: {summary.entity_count}
- Workflows: {summary.workflow_count}
- User Roles: {roles}

## Output Format

Return ONLY a valid JSON object matching this structure:
{SEMANTIC_ANALYSIS_OUTPUT_FORMAT}

Do not include any explanation or markdown formatting outside the JSON."""


def build_entity_extraction_prompt(raw_content: str, functional_requirements: Optional[str] = None) -> str:
    requirements = functional_requirements or "Not available; rely on the PRD content."
    return f"""Extract the entities, fields and relationships from this PRD.

## PRD Content
---
{raw_content}
---

## Functional Requirements
{requirements}

## Output Format

{{
  "entities": [
    {{
      "name": "PurchaseOrder",
      "displayName": "Purchase Order",
      "tableName": "purchase_order",
      "description": "...",
      "type": "transaction",
      "isAuditable": true,
      "isSoftDelete": true,
      "fields": [
        {{"name": "orderNumber", "dataType": "string", "constraints": {{"unique": true, "nullable": false}}}}
      ]
    }}
  ],
  "relationships": [
    {{
      "name": "order_supplier",
      "type": "many-to-one",
      "from": {{"entity": "PurchaseOrder", "field": "supplierId", "cardinality": "*"}},
      "to": {{"entity": "Supplier", "field": "id", "cardinality": "1"}}
    }}
  ],
  "suggestions": [
    {{"type": "add-field", "target": "Supplier", "suggestion": "...", "reason": "...", "confidence": 0.7}}
  ]
}}

Do not include any explanation or markdown formatting outside the JSON."""
