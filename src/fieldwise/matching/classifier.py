"""Field classification: raw descriptor -> normalized label + semantic class.

Classification precedence:
    1. exact autocomplete-token lookup
    2. HTML input kind (email/tel/url/password map directly)
    3. ordered regex table over the normalized label, first match wins

Unmatched fields are ``unknown``; classification itself never fails.
"""

from __future__ import annotations

import hashlib
import re
import time
import uuid
from typing import Any, Iterable, Mapping
from urllib.parse import urlparse

from pydantic import ValidationError

from fieldwise.core.exceptions import InvalidFieldDescriptorError
from fieldwise.models.form import (
    FieldAttributes,
    FieldContext,
    FieldSignature,
    FormSignature,
    InputType,
    RawFieldDescriptor,
    SemanticClass,
)

_PUNCTUATION = re.compile(r"[^\w\s-]")
_WHITESPACE = re.compile(r"\s+")

UNKNOWN_LABEL = "unknown field"
PARENT_TEXT_LIMIT = 50

AUTOCOMPLETE_CLASSES: dict[str, SemanticClass] = {
    "given-name": SemanticClass.FIRST_NAME,
    "family-name": SemanticClass.LAST_NAME,
    "name": SemanticClass.FULL_NAME,
    "email": SemanticClass.EMAIL,
    "tel": SemanticClass.PHONE,
    "tel-national": SemanticClass.PHONE,
    "address-line1": SemanticClass.ADDRESS_LINE1,
    "street-address": SemanticClass.ADDRESS_LINE1,
    "address-line2": SemanticClass.ADDRESS_LINE2,
    "address-level2": SemanticClass.CITY,
    "address-level1": SemanticClass.STATE,
    "postal-code": SemanticClass.ZIP,
    "country": SemanticClass.COUNTRY,
    "country-name": SemanticClass.COUNTRY,
    "organization": SemanticClass.COMPANY,
    "organization-title": SemanticClass.JOB_TITLE,
    "url": SemanticClass.WEBSITE,
    "username": SemanticClass.USERNAME,
    "new-password": SemanticClass.PASSWORD,
    "current-password": SemanticClass.PASSWORD,
    "bday": SemanticClass.DATE_OF_BIRTH,
}

INPUT_TYPE_CLASSES: dict[InputType, SemanticClass] = {
    InputType.EMAIL: SemanticClass.EMAIL,
    InputType.TEL: SemanticClass.PHONE,
    InputType.URL: SemanticClass.WEBSITE,
    InputType.PASSWORD: SemanticClass.PASSWORD,
}

# Order matters: specific phrasings before generic ones ("user name" before
# "name", "address line 2" before "address").
LABEL_PATTERNS: list[tuple[re.Pattern[str], SemanticClass]] = [
    (re.compile(r"\b(first\s*name|given\s*name|fname|forename)\b"), SemanticClass.FIRST_NAME),
    (re.compile(r"\b(last\s*name|family\s*name|surname|lname)\b"), SemanticClass.LAST_NAME),
    (re.compile(r"\b(user\s*name|username|user\s*id|login)\b"), SemanticClass.USERNAME),
    (re.compile(r"\b(company|organi[sz]ation|employer)\b"), SemanticClass.COMPANY),
    (re.compile(r"\b(full\s*name|your\s*name|name)\b"), SemanticClass.FULL_NAME),
    (re.compile(r"\b(e-?mail|email\s*address)\b"), SemanticClass.EMAIL),
    (re.compile(r"\b(phone|mobile|cell|telephone|tel)\b"), SemanticClass.PHONE),
    (re.compile(r"\b(address|street)\b.*\b(2|two|line\s*2)\b|\b(apt|apartment|suite|unit)\b"), SemanticClass.ADDRESS_LINE2),
    (re.compile(r"\b(address|street)\b.*\b(1|one|line\s*1)\b"), SemanticClass.ADDRESS_LINE1),
    (re.compile(r"\b(street\s*address|address|street)\b"), SemanticClass.ADDRESS_LINE1),
    (re.compile(r"\b(city|town)\b"), SemanticClass.CITY),
    (re.compile(r"\b(state|province|region)\b"), SemanticClass.STATE),
    (re.compile(r"\b(zip|postal|postcode|zip\s*code)\b"), SemanticClass.ZIP),
    (re.compile(r"\b(country)\b"), SemanticClass.COUNTRY),
    (re.compile(r"\b(job\s*title|position|role)\b"), SemanticClass.JOB_TITLE),
    (re.compile(r"\b(website|url|homepage)\b"), SemanticClass.WEBSITE),
    (re.compile(r"\b(date\s*of\s*birth|dob|birthday|birth\s*date)\b"), SemanticClass.DATE_OF_BIRTH),
    (re.compile(r"\b(message|comment|comments|note|notes|description)\b"), SemanticClass.MESSAGE),
]


def normalize_text(text: str) -> str:
    """Lower-case, strip punctuation, collapse whitespace."""
    text = _PUNCTUATION.sub("", text.lower())
    return _WHITESPACE.sub(" ", text).strip()


def parse_input_type(raw: str | None) -> InputType:
    try:
        return InputType((raw or "").lower().strip())
    except ValueError:
        return InputType.UNKNOWN


def build_normalized_label(descriptor: RawFieldDescriptor) -> str:
    """Pick the best available label source, in priority order."""
    sources = (
        descriptor.label_text,
        descriptor.aria_label,
        descriptor.placeholder,
        descriptor.name,
        descriptor.id,
        descriptor.sibling_text,
        descriptor.parent_text[:PARENT_TEXT_LIMIT] if descriptor.parent_text else None,
    )
    for source in sources:
        if source and source.strip():
            normalized = normalize_text(source)
            if normalized:
                return normalized
    return UNKNOWN_LABEL


def infer_semantic_class(
    normalized_label: str,
    autocomplete: str | None,
    input_type: InputType,
) -> SemanticClass:
    token = (autocomplete or "").lower().strip()
    if token in AUTOCOMPLETE_CLASSES:
        return AUTOCOMPLETE_CLASSES[token]

    if input_type in INPUT_TYPE_CLASSES:
        return INPUT_TYPE_CLASSES[input_type]

    label = normalized_label.lower()
    for pattern, semantic_class in LABEL_PATTERNS:
        if pattern.search(label):
            return semantic_class

    return SemanticClass.UNKNOWN


def _coerce_descriptor(descriptor: RawFieldDescriptor | Mapping[str, Any]) -> RawFieldDescriptor:
    if isinstance(descriptor, RawFieldDescriptor):
        return descriptor
    if not isinstance(descriptor, Mapping):
        raise InvalidFieldDescriptorError(
            f"Field descriptor must be a mapping, got {type(descriptor).__name__}"
        )
    try:
        return RawFieldDescriptor.model_validate(descriptor)
    except ValidationError as exc:
        raise InvalidFieldDescriptorError(f"Malformed field descriptor: {exc}") from exc


def classify_field(
    descriptor: RawFieldDescriptor | Mapping[str, Any],
    field_id: str | None = None,
) -> FieldSignature:
    """Build a FieldSignature from one form-detection descriptor."""
    raw = _coerce_descriptor(descriptor)
    input_type = parse_input_type(raw.input_type)
    label = build_normalized_label(raw)

    return FieldSignature(
        id=field_id or str(uuid.uuid4()),
        dom_path=raw.dom_path,
        input_type=input_type,
        normalized_label=label,
        semantic_class=infer_semantic_class(label, raw.autocomplete, input_type),
        attributes=FieldAttributes(
            name=raw.name,
            id=raw.id,
            placeholder=raw.placeholder,
            autocomplete=raw.autocomplete,
            aria_label=raw.aria_label,
        ),
        context=FieldContext(
            label_text=raw.label_text,
            sibling_text=raw.sibling_text,
            parent_text=raw.parent_text,
            position=raw.position,
        ),
    )


def extract_domain(url: str) -> str:
    return urlparse(url).hostname or ""


def classify_form(
    url: str,
    descriptors: Iterable[RawFieldDescriptor | Mapping[str, Any]],
    form_index: int = 0,
) -> FormSignature:
    """Classify every descriptor of one detected form."""
    return FormSignature(
        url=url,
        domain=extract_domain(url),
        form_index=form_index,
        fields=[classify_field(d) for d in descriptors],
        detected_at=time.time(),
    )


def structure_descriptor(fields: Iterable[FieldSignature]) -> list[str]:
    """Sorted ``semanticClass:inputKind`` multiset of ``fields``."""
    return sorted(f"{f.semantic_class}:{f.input_type}" for f in fields)


def form_structure_hash(fields: Iterable[FieldSignature]) -> str:
    """Stable digest of a form's field structure, independent of order and DOM paths."""
    joined = "|".join(structure_descriptor(fields))
    return hashlib.sha256(joined.encode("utf-8")).hexdigest()[:16]
