"""Turns post-processed model output into result fields.

Structured output is parsed strictly after stripping Markdown code fences;
unparseable output is kept as ``{"raw": content}`` instead of failing the job.
"""

import json
from dataclasses import dataclass, field
from typing import Any

from docproc.database.enums import IssueSeverity
from docproc.database.models import (
    DetectedEntity,
    Relationship,
    SchemaField,
    ValidationIssue,
)
from docproc.prompting.rules import strip_code_fences

SUMMARY_CHARS = 500

_FINISH_CONFIDENCE = {"stop": 0.9, "length": 0.6}
_DEFAULT_CONFIDENCE = 0.75
_PARSE_FAILURE_CONFIDENCE = 0.3
_SCHEMA_ERROR_PENALTY = 0.1

_TYPE_CHECKS: dict[str, tuple[type, ...]] = {
    "string": (str,),
    "number": (int, float),
    "integer": (int,),
    "boolean": (bool,),
    "array": (list,),
    "object": (dict,),
}


@dataclass
class ParsedOutput:
    content: Any
    raw_content: str
    extracted_data: Any = None
    parse_failed: bool = False
    validation_errors: list[ValidationIssue] = field(default_factory=list)
    entities: list[DetectedEntity] = field(default_factory=list)
    relationships: list[Relationship] = field(default_factory=list)
    summary: str | None = None
    confidence: float = 0.0


def parse_output(
    content: str,
    *,
    wants_json: bool,
    schema_fields: list[SchemaField] | None = None,
    finish_reason: str | None = None,
) -> ParsedOutput:
    if not wants_json:
        output = ParsedOutput(content=content, raw_content=content, summary=content[:SUMMARY_CHARS])
        output.confidence = score_confidence(finish_reason, errors=0, parse_failed=False)
        return output

    data = parse_json(content)
    if data is None:
        output = ParsedOutput(
            content={"raw": content},
            raw_content=content,
            parse_failed=True,
            summary=content[:SUMMARY_CHARS],
        )
        output.confidence = score_confidence(finish_reason, errors=0, parse_failed=True)
        return output

    issues = validate_extracted(data, schema_fields) if schema_fields else []
    output = ParsedOutput(
        content=data,
        raw_content=content,
        extracted_data=data,
        validation_errors=issues,
        entities=_build_entities(data),
        relationships=_build_relationships(data),
        summary=_build_summary(data, content),
    )
    errors = sum(1 for issue in issues if issue.severity is IssueSeverity.ERROR)
    output.confidence = score_confidence(finish_reason, errors=errors, parse_failed=False)
    return output


def parse_json(content: str) -> Any:
    """Strict parse of fenced or bare JSON; ``None`` when it is not valid JSON."""
    try:
        return json.loads(strip_code_fences(content))
    except json.JSONDecodeError:
        return None


def score_confidence(finish_reason: str | None, *, errors: int, parse_failed: bool) -> float:
    if parse_failed:
        return _PARSE_FAILURE_CONFIDENCE
    score = _FINISH_CONFIDENCE.get(finish_reason or "", _DEFAULT_CONFIDENCE)
    score -= _SCHEMA_ERROR_PENALTY * errors
    return round(max(0.0, min(1.0, score)), 4)


def validate_extracted(
    data: Any,
    schema_fields: list[SchemaField],
    path: str = "",
) -> list[ValidationIssue]:
    """Check ``data`` against the schema. Unknown fields are allowed."""
    if not isinstance(data, dict):
        return [ValidationIssue(field=path or "$", message="Expected a JSON object")]
    issues: list[ValidationIssue] = []
    for schema_field in schema_fields:
        name = f"{path}.{schema_field.name}" if path else schema_field.name
        value = data.get(schema_field.name)
        if value is None:
            if schema_field.required:
                issues.append(ValidationIssue(field=name, message="Required field is missing"))
            continue
        issues.extend(_check_type(value, schema_field, name))
    return issues


def _check_type(value: Any, schema_field: SchemaField, name: str) -> list[ValidationIssue]:
    expected = _TYPE_CHECKS.get(schema_field.type.lower())
    if expected is None:
        return [
            ValidationIssue(
                field=name,
                message=f"Unknown schema type '{schema_field.type}'",
                severity=IssueSeverity.WARNING,
            )
        ]
    # bool is an int subclass
    if isinstance(value, bool) and bool not in expected:
        return [ValidationIssue(field=name, message=f"Expected {schema_field.type}")]
    if not isinstance(value, expected):
        return [ValidationIssue(field=name, message=f"Expected {schema_field.type}")]
    if isinstance(value, dict) and schema_field.children:
        return validate_extracted(value, schema_field.children, name)
    return []


def _build_entities(data: Any) -> list[DetectedEntity]:
    raw = data.get("entities") if isinstance(data, dict) else None
    if not isinstance(raw, list):
        return []
    entities: list[DetectedEntity] = []
    for item in raw:
        if not isinstance(item, dict) or "type" not in item or "value" not in item:
            continue
        entities.append(
            DetectedEntity(
                type=str(item["type"]),
                value=str(item["value"]),
                confidence=_bounded(item.get("confidence")),
            )
        )
    return entities


def _build_relationships(data: Any) -> list[Relationship]:
    raw = data.get("relationships") if isinstance(data, dict) else None
    if not isinstance(raw, list):
        return []
    relationships: list[Relationship] = []
    for item in raw:
        if not isinstance(item, dict) or not {"type", "source", "target"} <= item.keys():
            continue
        relationships.append(
            Relationship(
                type=str(item["type"]),
                source=str(item["source"]),
                target=str(item["target"]),
                confidence=_bounded(item.get("confidence")),
            )
        )
    return relationships


def _build_summary(data: Any, content: str) -> str:
    if isinstance(data, dict) and isinstance(data.get("summary"), str):
        return data["summary"]
    return content[:SUMMARY_CHARS]


def _bounded(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0.0
    return max(0.0, min(1.0, float(value)))
