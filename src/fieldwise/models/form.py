"""Form, field signature and field mapping models."""

from __future__ import annotations

import time
import uuid
from enum import StrEnum
from typing import Optional

from pydantic import BaseModel, Field


class InputType(StrEnum):
    TEXT = "text"
    EMAIL = "email"
    TEL = "tel"
    URL = "url"
    PASSWORD = "password"
    NUMBER = "number"
    DATE = "date"
    DATETIME_LOCAL = "datetime-local"
    TIME = "time"
    SELECT = "select"
    RADIO = "radio"
    CHECKBOX = "checkbox"
    TEXTAREA = "textarea"
    HIDDEN = "hidden"
    FILE = "file"
    UNKNOWN = "unknown"


class SemanticClass(StrEnum):
    # Name parts
    FIRST_NAME = "first_name"
    LAST_NAME = "last_name"
    FULL_NAME = "full_name"
    # Contact
    EMAIL = "email"
    PHONE = "phone"
    # Address
    ADDRESS_LINE1 = "address_line1"
    ADDRESS_LINE2 = "address_line2"
    CITY = "city"
    STATE = "state"
    ZIP = "zip"
    COUNTRY = "country"
    # Professional
    COMPANY = "company"
    JOB_TITLE = "job_title"
    WEBSITE = "website"
    # Credentials
    USERNAME = "username"
    PASSWORD = "password"
    # Other
    DATE_OF_BIRTH = "date_of_birth"
    MESSAGE = "message"
    UNKNOWN = "unknown"


class Provenance(StrEnum):
    """Which resolution tier produced a mapping."""

    STATIC = "static"
    LLM = "llm"
    CACHE = "cache"
    LEARNED = "learned"


class FillSource(StrEnum):
    """Overall origin of a fill response."""

    STATIC = "static"
    LLM = "llm"
    CACHED = "cached"
    HYBRID = "hybrid"


class Position(BaseModel):
    x: float = 0.0
    y: float = 0.0


class RawFieldDescriptor(BaseModel):
    """One input as reported by form detection (DOM scraping happens upstream)."""

    dom_path: str
    input_type: str = "text"
    name: Optional[str] = None
    id: Optional[str] = None
    placeholder: Optional[str] = None
    autocomplete: Optional[str] = None
    aria_label: Optional[str] = None
    label_text: Optional[str] = None
    sibling_text: Optional[str] = None
    parent_text: Optional[str] = None
    position: Position = Field(default_factory=Position)


class FieldAttributes(BaseModel):
    model_config = {"frozen": True}

    name: Optional[str] = None
    id: Optional[str] = None
    placeholder: Optional[str] = None
    autocomplete: Optional[str] = None
    aria_label: Optional[str] = None


class FieldContext(BaseModel):
    model_config = {"frozen": True}

    label_text: Optional[str] = None
    sibling_text: Optional[str] = None
    parent_text: Optional[str] = None
    position: Position = Field(default_factory=Position)


class FieldSignature(BaseModel):
    """Normalized, immutable description of one detected input."""

    model_config = {"frozen": True}

    id: str
    dom_path: str = ""
    input_type: InputType = InputType.TEXT
    normalized_label: str
    semantic_class: SemanticClass = SemanticClass.UNKNOWN
    attributes: FieldAttributes = Field(default_factory=FieldAttributes)
    context: FieldContext = Field(default_factory=FieldContext)


class FormSignature(BaseModel):
    """All fields detected in one form on a page."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    url: str = ""
    domain: str = ""
    form_index: int = 0
    fields: list[FieldSignature] = Field(default_factory=list)
    detected_at: float = Field(default_factory=time.time)

    def field_by_id(self, field_id: str) -> FieldSignature | None:
        for field in self.fields:
            if field.id == field_id:
                return field
        return None

    def with_fields(self, fields: list[FieldSignature]) -> "FormSignature":
        """Copy of this form restricted to ``fields``."""
        return self.model_copy(update={"fields": list(fields)})


class FieldMapping(BaseModel):
    """A resolved value for one field."""

    field: FieldSignature
    value: str
    confidence: float = Field(ge=0.0, le=1.0)
    provenance: Provenance

    @property
    def field_id(self) -> str:
        return self.field.id


class FillResponse(BaseModel):
    """Result of one fill resolution."""

    mappings: list[FieldMapping] = Field(default_factory=list)
    source: FillSource = FillSource.STATIC
    llm_used: bool = False
    tokens_used: int = 0
    fallback_reason: Optional[str] = None
