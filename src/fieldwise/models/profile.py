"""Profile models: the unit of data isolation."""

from __future__ import annotations

import time
import uuid
from enum import StrEnum
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from fieldwise.models.form import FieldMapping, FormSignature


class FieldCategory(StrEnum):
    PERSONAL = "personal"
    CONTACT = "contact"
    PROFESSIONAL = "professional"
    EDUCATION = "education"
    CUSTOM = "custom"


class DocumentType(StrEnum):
    RESUME = "resume"
    COVER_LETTER = "cover_letter"
    OTHER = "other"


class LearnedExampleSource(StrEnum):
    USER_EDIT = "user_edit"
    EXPLICIT_SAVE = "explicit_save"


class BindingType(StrEnum):
    EXACT = "exact"
    DOMAIN = "domain"
    REGEX = "regex"


class ContextField(BaseModel):
    """One key/value entry of the user's flat profile data."""

    key: str
    value: str = ""
    category: FieldCategory = FieldCategory.CUSTOM
    is_encrypted: bool = False


class ContextDocument(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    name: str = ""
    content: str = ""
    type: DocumentType = DocumentType.OTHER


class StaticContext(BaseModel):
    fields: list[ContextField] = Field(default_factory=list)
    documents: list[ContextDocument] = Field(default_factory=list)
    knowledge_base: str = ""
    knowledge_base_chunks: int = 0

    @field_validator("fields")
    @classmethod
    def _unique_keys(cls, fields: list[ContextField]) -> list[ContextField]:
        seen: set[str] = set()
        for f in fields:
            if f.key in seen:
                raise ValueError(f"Duplicate profile field key: {f.key!r}")
            seen.add(f.key)
        return fields


class LearnedExample(BaseModel):
    """A stored user correction, used as future retrieval context."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    timestamp: float = Field(default_factory=time.time)
    form_signature: FormSignature
    field_mappings: list[FieldMapping] = Field(default_factory=list)
    source: LearnedExampleSource = LearnedExampleSource.USER_EDIT


class URLBinding(BaseModel):
    pattern: str
    type: BindingType = BindingType.DOMAIN
    priority: int = 0


class ProfileSettings(BaseModel):
    auto_fill: bool = False
    confirm_before_fill: bool = True
    humanize_typing: bool = True
    typing_delay_ms: int = 50


class Profile(BaseModel):
    """A user's personal data plus learned history."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    name: str = ""
    static_context: StaticContext = Field(default_factory=StaticContext)
    learned_examples: list[LearnedExample] = Field(default_factory=list)
    url_bindings: list[URLBinding] = Field(default_factory=list)
    settings: ProfileSettings = Field(default_factory=ProfileSettings)
    created_at: float = Field(default_factory=time.time)
    updated_at: float = Field(default_factory=time.time)
    version: int = 1

    def get_value(self, key: str) -> Optional[str]:
        """Value for an exact profile key, or None when absent or empty."""
        for f in self.static_context.fields:
            if f.key == key:
                return f.value or None
        return None

    def has_key(self, key: str) -> bool:
        return any(f.key == key for f in self.static_context.fields)
