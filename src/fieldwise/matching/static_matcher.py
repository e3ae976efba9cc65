"""StaticMatcher: tiered mapping of classified fields onto profile keys.

Tiers, first hit wins per field:
    semantic class -> candidate keys        confidence 1.0
    label == profile key (normalized)       confidence 0.95
    label phrasing pattern -> keys          confidence 0.8
    label/key substring containment         confidence 0.7

A post-pass reconciles full-name vs first/last-name forms at 0.9.
"""

from __future__ import annotations

import logging
import re
from typing import Sequence

from fieldwise.core.logging import get_logger, log_with_context
from fieldwise.matching.classifier import normalize_text
from fieldwise.matching.denylist import is_credential
from fieldwise.models.form import FieldMapping, FieldSignature, Provenance, SemanticClass
from fieldwise.models.profile import Profile

logger = get_logger(__name__)

SEMANTIC_CONFIDENCE = 1.0
EXACT_KEY_CONFIDENCE = 0.95
PATTERN_CONFIDENCE = 0.8
PARTIAL_CONFIDENCE = 0.7
NAME_RECONCILE_CONFIDENCE = 0.9
HIGH_CONFIDENCE_THRESHOLD = 0.7

SEMANTIC_TO_PROFILE_KEYS: dict[SemanticClass, tuple[str, ...]] = {
    SemanticClass.FIRST_NAME: ("firstName", "first_name", "givenName"),
    SemanticClass.LAST_NAME: ("lastName", "last_name", "familyName", "surname"),
    SemanticClass.FULL_NAME: ("fullName", "full_name", "name"),
    SemanticClass.EMAIL: ("email", "emailAddress", "email_address"),
    SemanticClass.PHONE: ("phone", "phoneNumber", "phone_number", "mobile", "telephone"),
    SemanticClass.ADDRESS_LINE1: ("address", "addressLine1", "address_line1", "street", "streetAddress"),
    SemanticClass.ADDRESS_LINE2: ("addressLine2", "address_line2", "apt", "suite", "unit"),
    SemanticClass.CITY: ("city", "town", "locality"),
    SemanticClass.STATE: ("state", "province", "region"),
    SemanticClass.ZIP: ("zip", "zipCode", "zip_code", "postalCode", "postal_code"),
    SemanticClass.COUNTRY: ("country", "countryName"),
    SemanticClass.COMPANY: ("company", "organization", "employer", "companyName"),
    SemanticClass.JOB_TITLE: ("jobTitle", "job_title", "title", "position", "role"),
    SemanticClass.WEBSITE: ("website", "url", "homepage", "personalWebsite"),
    SemanticClass.USERNAME: ("username", "user", "login"),
    SemanticClass.DATE_OF_BIRTH: ("dateOfBirth", "dob", "birthDate"),
    SemanticClass.MESSAGE: ("message", "comment", "note", "description"),
}

# Label phrasing -> candidate profile keys, checked in order.
FUZZY_PATTERNS: list[tuple[re.Pattern[str], tuple[str, ...]]] = [
    (re.compile(r"first\s*name|\bfname\b|\bgiven\b"), ("firstName", "first_name")),
    (re.compile(r"last\s*name|\blname\b|surname|\bfamily\b"), ("lastName", "last_name")),
    (re.compile(r"full\s*name|your\s*name"), ("fullName", "full_name", "name")),
    (re.compile(r"\be-?mail\b"), ("email",)),
    (re.compile(r"\b(phone|mobile|cell|tel)\b"), ("phone", "phoneNumber")),
    (re.compile(r"\b(company|organization|employer)\b"), ("company", "companyName")),
    (re.compile(r"\b(title|position|role)\b"), ("jobTitle", "job_title")),
    (re.compile(r"\b(city|town)\b"), ("city",)),
    (re.compile(r"\b(state|province)\b"), ("state",)),
    (re.compile(r"\b(zip|postal)\b"), ("zip", "zipCode", "postalCode")),
    (re.compile(r"\b(address|street)\b"), ("address", "addressLine1", "address_line1")),
]

_FIRST_NAME_KEYS = SEMANTIC_TO_PROFILE_KEYS[SemanticClass.FIRST_NAME]
_LAST_NAME_KEYS = SEMANTIC_TO_PROFILE_KEYS[SemanticClass.LAST_NAME]
_FULL_NAME_KEYS = SEMANTIC_TO_PROFILE_KEYS[SemanticClass.FULL_NAME]
_WHITESPACE = re.compile(r"\s+")
_NAME_CLASSES = frozenset({SemanticClass.FIRST_NAME, SemanticClass.LAST_NAME, SemanticClass.FULL_NAME})


def _first_value(profile: Profile, keys: Sequence[str]) -> str | None:
    for key in keys:
        value = profile.get_value(key)
        if value:
            return value
    return None


class StaticMatcher:
    """Maps fields to profile values without any network call."""

    def match(self, fields: Sequence[FieldSignature], profile: Profile) -> list[FieldMapping]:
        mappings: list[FieldMapping] = []
        for field in fields:
            if is_credential(field):
                continue
            mapping = (
                self._match_semantic(field, profile)
                or self._match_fuzzy(field, profile)
                or self._match_partial(field, profile)
            )
            if mapping is not None:
                mappings.append(mapping)

        mappings.extend(self._reconcile_names(fields, profile, mappings))

        log_with_context(
            logger, logging.DEBUG, "Static match complete",
            profile_id=profile.id, fields=len(fields), mapped=len(mappings),
        )
        return mappings

    # -- tiers ---------------------------------------------------------------

    def _match_semantic(self, field: FieldSignature, profile: Profile) -> FieldMapping | None:
        keys = SEMANTIC_TO_PROFILE_KEYS.get(field.semantic_class)
        if not keys:
            return None
        value = _first_value(profile, keys)
        if value is None:
            return None
        return _mapping(field, value, SEMANTIC_CONFIDENCE)

    def _match_fuzzy(self, field: FieldSignature, profile: Profile) -> FieldMapping | None:
        label = normalize_text(field.normalized_label)

        for context_field in profile.static_context.fields:
            if context_field.value and normalize_text(context_field.key) == label:
                return _mapping(field, context_field.value, EXACT_KEY_CONFIDENCE)

        for pattern, keys in FUZZY_PATTERNS:
            if pattern.search(label):
                value = _first_value(profile, keys)
                if value is not None:
                    return _mapping(field, value, PATTERN_CONFIDENCE)
        return None

    def _match_partial(self, field: FieldSignature, profile: Profile) -> FieldMapping | None:
        # Name parts are left to reconciliation; "name" is a substring of every name key.
        if field.semantic_class in _NAME_CLASSES:
            return None
        label = normalize_text(field.normalized_label)
        if not label:
            return None
        for context_field in profile.static_context.fields:
            if not context_field.value:
                continue
            key = normalize_text(context_field.key)
            if key and (key in label or label in key):
                return _mapping(field, context_field.value, PARTIAL_CONFIDENCE)
        return None

    # -- name reconciliation -------------------------------------------------

    def _reconcile_names(
        self,
        fields: Sequence[FieldSignature],
        profile: Profile,
        existing: list[FieldMapping],
    ) -> list[FieldMapping]:
        mapped_ids = {m.field_id for m in existing}
        unmapped = [
            f for f in fields
            if f.id not in mapped_ids and not is_credential(f)
        ]

        def first_unmapped(semantic_class: SemanticClass) -> FieldSignature | None:
            return next((f for f in unmapped if f.semantic_class == semantic_class), None)

        added: list[FieldMapping] = []
        full_name = _first_value(profile, _FULL_NAME_KEYS)
        first_name = _first_value(profile, _FIRST_NAME_KEYS)
        last_name = _first_value(profile, _LAST_NAME_KEYS)

        if full_name and not (first_name and last_name):
            parts = _WHITESPACE.split(full_name.strip(), maxsplit=1)
            first_part = parts[0]
            last_part = parts[1] if len(parts) > 1 else ""
            first_field = first_unmapped(SemanticClass.FIRST_NAME)
            if first_field is not None and first_part and not first_name:
                added.append(_mapping(first_field, first_part, NAME_RECONCILE_CONFIDENCE))
            last_field = first_unmapped(SemanticClass.LAST_NAME)
            if last_field is not None and last_part and not last_name:
                added.append(_mapping(last_field, last_part, NAME_RECONCILE_CONFIDENCE))

        if first_name and last_name and not full_name:
            full_field = first_unmapped(SemanticClass.FULL_NAME)
            if full_field is not None:
                added.append(
                    _mapping(full_field, f"{first_name} {last_name}", NAME_RECONCILE_CONFIDENCE)
                )

        return added


def _mapping(field: FieldSignature, value: str, confidence: float) -> FieldMapping:
    return FieldMapping(
        field=field, value=value, confidence=confidence, provenance=Provenance.STATIC,
    )


def filter_high_confidence(
    mappings: Sequence[FieldMapping],
    threshold: float = HIGH_CONFIDENCE_THRESHOLD,
) -> list[FieldMapping]:
    return [m for m in mappings if m.confidence >= threshold]


def fill_summary(mappings: Sequence[FieldMapping], limit: int = 5) -> str:
    """Short human-readable list of the labels about to be filled."""
    if not mappings:
        return "No fields to fill"
    labels = [m.field.normalized_label for m in mappings[:limit]]
    summary = ", ".join(labels)
    remaining = len(mappings) - limit
    if remaining > 0:
        summary += f" and {remaining} more"
    return summary
