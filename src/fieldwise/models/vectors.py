"""Vector index entries and retrieval results."""

from __future__ import annotations

import time
from enum import StrEnum

from pydantic import BaseModel, Field


class SourceKind(StrEnum):
    LEARNED_EXAMPLE = "learned_example"
    DOCUMENT = "document"
    KNOWLEDGE_BASE = "knowledge_base"


class VectorEntry(BaseModel):
    """One embedded text owned by a profile. Replaced, never mutated."""

    model_config = {"frozen": True}

    id: str
    profile_id: str
    embedding: list[float]
    source_kind: SourceKind
    source_id: str
    text: str
    created_at: float = Field(default_factory=time.time)


class SearchResult(BaseModel):
    entry: VectorEntry
    similarity: float


class RetrievalSource(BaseModel):
    """Provenance of one packed context string."""

    id: str
    kind: SourceKind
    similarity: float
    text: str


class RetrievalResult(BaseModel):
    context: list[str] = Field(default_factory=list)
    sources: list[RetrievalSource] = Field(default_factory=list)
    token_estimate: int = 0
