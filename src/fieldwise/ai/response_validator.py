"""ResponseValidator: parse model output into safe, shape-checked mappings.

Validation problems are reported as ``ValidationIssue`` values, never raised.
A result is valid when no blocking issue was found and at least one
mapping survived.
"""

from __future__ import annotations

import json
import logging
import re
from enum import StrEnum
from typing import Any, Optional, Sequence

from pydantic import BaseModel, Field

from fieldwise.core.logging import get_logger, log_with_context
from fieldwise.matching.denylist import denylist_reason, is_credential
from fieldwise.models.form import (
    FieldMapping,
    FieldSignature,
    FormSignature,
    InputType,
    Provenance,
    SemanticClass,
)

logger = get_logger(__name__)

BASE_CONFIDENCE = 0.9

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
PHONE_PATTERN = re.compile(r"^[\d\s\-+().]{7,20}$")
URL_PATTERN = re.compile(r"^https?://.+", re.IGNORECASE)
DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")
ZIP_PATTERN = re.compile(r"^[\d\-\s]{3,10}$")

_FENCE = re.compile(r"```(?:json)?\s*\n?(.*?)```", re.DOTALL)


class ValidationIssueType(StrEnum):
    INVALID_JSON = "INVALID_JSON"
    INVALID_FIELD_ID = "INVALID_FIELD_ID"
    SECURITY_VIOLATION = "SECURITY_VIOLATION"
    EMPTY_VALUE = "EMPTY_VALUE"
    TYPE_MISMATCH = "TYPE_MISMATCH"


BLOCKING_ISSUES = frozenset({
    ValidationIssueType.INVALID_JSON,
    ValidationIssueType.SECURITY_VIOLATION,
})


class ValidationIssue(BaseModel):
    type: ValidationIssueType
    message: str
    field_id: Optional[str] = None

    @property
    def blocking(self) -> bool:
        return self.type in BLOCKING_ISSUES


class ValidationResult(BaseModel):
    valid: bool
    mappings: list[FieldMapping] = Field(default_factory=list)
    errors: list[ValidationIssue] = Field(default_factory=list)
    warnings: list[ValidationIssue] = Field(default_factory=list)

    @property
    def has_security_violation(self) -> bool:
        return any(e.type == ValidationIssueType.SECURITY_VIOLATION for e in self.errors)

    def failure_reason(self) -> str:
        blocking = [e for e in self.errors if e.blocking]
        if blocking:
            return blocking[0].message
        if self.errors:
            return self.errors[0].message
        return "Model response produced no usable mappings"


def strip_fences(raw: str) -> str:
    """Strip markdown code fences (```json ... ```) from model output."""
    cleaned = raw.strip()
    match = _FENCE.search(cleaned)
    if match:
        return match.group(1).strip()
    return cleaned


def extract_json_object(raw: str) -> Any:
    """Parse ``raw`` as JSON, else decode the first balanced object embedded in it.

    Raises ValueError when no JSON object can be recovered.
    """
    text = strip_fences(raw)
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass

    decoder = json.JSONDecoder()
    start = text.find("{")
    while start != -1:
        try:
            obj, _ = decoder.raw_decode(text, start)
            return obj
        except json.JSONDecodeError:
            start = text.find("{", start + 1)
    raise ValueError("No JSON object found in model response")


def shape_confidence(field: FieldSignature, value: str) -> float:
    """Starting confidence, downgraded when ``value`` does not fit the field's shape."""
    confidence = BASE_CONFIDENCE

    if field.input_type == InputType.EMAIL and not EMAIL_PATTERN.match(value):
        confidence = min(confidence, 0.5)
    elif field.input_type == InputType.TEL and not PHONE_PATTERN.match(value):
        confidence = min(confidence, 0.6)
    elif field.input_type == InputType.URL and not URL_PATTERN.match(value):
        confidence = min(confidence, 0.5)
    elif field.input_type == InputType.DATE and not DATE_PATTERN.match(value):
        confidence = min(confidence, 0.6)
    elif field.input_type == InputType.NUMBER:
        try:
            float(value)
        except ValueError:
            confidence = min(confidence, 0.4)

    if field.semantic_class == SemanticClass.ZIP and not ZIP_PATTERN.match(value):
        confidence = min(confidence, 0.6)
    elif field.semantic_class == SemanticClass.EMAIL and not EMAIL_PATTERN.match(value):
        confidence = min(confidence, 0.5)

    return confidence


def _coerce_value(value: Any) -> str | None:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (str, int, float)):
        return str(value).strip()
    return None


class ResponseValidator:
    """Checks a model's field-id -> value object against the originating form."""

    def validate(self, raw: str, form: FormSignature) -> ValidationResult:
        errors: list[ValidationIssue] = []
        warnings: list[ValidationIssue] = []
        mappings: list[FieldMapping] = []

        try:
            parsed = extract_json_object(raw)
        except ValueError as exc:
            errors.append(ValidationIssue(type=ValidationIssueType.INVALID_JSON, message=str(exc)))
            return ValidationResult(valid=False, errors=errors)

        if not isinstance(parsed, dict):
            errors.append(ValidationIssue(
                type=ValidationIssueType.INVALID_JSON,
                message=f"Expected a JSON object, got {type(parsed).__name__}",
            ))
            return ValidationResult(valid=False, errors=errors)

        for field_id, raw_value in parsed.items():
            field = form.field_by_id(str(field_id))
            if field is None:
                errors.append(ValidationIssue(
                    type=ValidationIssueType.INVALID_FIELD_ID,
                    message=f"Unknown field id: {field_id}",
                    field_id=str(field_id),
                ))
                continue

            if is_credential(field):
                reason = denylist_reason(field) or "Field is classified as a credential"
                errors.append(ValidationIssue(
                    type=ValidationIssueType.SECURITY_VIOLATION,
                    message=f"Model attempted to fill a protected field: {reason}",
                    field_id=field.id,
                ))
                log_with_context(
                    logger, logging.WARNING, "Security violation in model response",
                    field_id=field.id, reason=reason,
                )
                continue

            value = _coerce_value(raw_value)
            if value is None:
                warnings.append(ValidationIssue(
                    type=ValidationIssueType.TYPE_MISMATCH,
                    message=f"Non-scalar value for field {field.id}",
                    field_id=field.id,
                ))
                continue
            if not value:
                warnings.append(ValidationIssue(
                    type=ValidationIssueType.EMPTY_VALUE,
                    message=f"Empty value for field {field.id}",
                    field_id=field.id,
                ))
                continue

            confidence = shape_confidence(field, value)
            if confidence < BASE_CONFIDENCE:
                warnings.append(ValidationIssue(
                    type=ValidationIssueType.TYPE_MISMATCH,
                    message=f"Value for {field.id} does not match {field.input_type}/{field.semantic_class}",
                    field_id=field.id,
                ))
            mappings.append(FieldMapping(
                field=field, value=value, confidence=confidence, provenance=Provenance.LLM,
            ))

        result = ValidationResult(valid=False, mappings=mappings, errors=errors, warnings=warnings)
        if result.has_security_violation:
            # The whole response is untrusted once it targets a protected field.
            result.mappings = []
        result.valid = bool(result.mappings) and not any(e.blocking for e in errors)
        return result


def merge_mappings(
    earlier: Sequence[FieldMapping], later: Sequence[FieldMapping]
) -> list[FieldMapping]:
    """Per field id keep the higher-confidence mapping; ``earlier`` wins ties."""
    merged: dict[str, FieldMapping] = {}
    for mapping in [*earlier, *later]:
        current = merged.get(mapping.field_id)
        if current is None or mapping.confidence > current.confidence:
            merged[mapping.field_id] = mapping
    return list(merged.values())
