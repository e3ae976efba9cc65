"""Retrieval-augmented context: query building, packing, and ingestion."""

from __future__ import annotations

import logging
import math
import re
from typing import Sequence

from fieldwise.ai.embeddings import EmbeddingGateway
from fieldwise.ai.vector_index import VectorIndex
from fieldwise.core.config import RetrievalConfig
from fieldwise.core.logging import get_logger, log_with_context
from fieldwise.matching.denylist import is_credential
from fieldwise.models.form import FieldMapping, FieldSignature, FormSignature
from fieldwise.models.profile import LearnedExample
from fieldwise.models.vectors import RetrievalResult, RetrievalSource, SourceKind, VectorEntry

logger = get_logger(__name__)

CHARS_PER_TOKEN = 4
ELLIPSIS = "..."
KNOWLEDGE_BASE_SOURCE_ID = "knowledge_base"

_SENTENCE_END = re.compile(r"(?<=[.!?])\s+")


def estimate_tokens(text: str) -> int:
    return math.ceil(len(text) / CHARS_PER_TOKEN)


def chunk_text(text: str, chunk_size: int = 500) -> list[str]:
    """Greedy sentence-boundary chunks of at most ``chunk_size`` characters.

    A single sentence longer than ``chunk_size`` is hard-split.
    """
    chunk_size = max(1, chunk_size)
    chunks: list[str] = []
    current = ""

    for sentence in _SENTENCE_END.split(text.strip()):
        sentence = sentence.strip()
        if not sentence:
            continue
        candidate = f"{current} {sentence}" if current else sentence
        if len(candidate) <= chunk_size:
            current = candidate
            continue
        if current:
            chunks.append(current)
        while len(sentence) > chunk_size:
            chunks.append(sentence[:chunk_size])
            sentence = sentence[chunk_size:].lstrip()
        current = sentence

    if current:
        chunks.append(current)
    return chunks


def learned_example_text(domain: str, mappings: Sequence[FieldMapping]) -> str | None:
    """``Form filled on <domain>: <label> → <value>, ...``; None if nothing safe to say."""
    pairs = [
        f"{m.field.normalized_label} → {m.value}"
        for m in mappings
        if not is_credential(m.field)
    ]
    if not pairs:
        return None
    return f"Form filled on {domain}: " + ", ".join(pairs)


class RetrievalAssembler:
    """Builds token-bounded retrieval context for the unmapped fields of a form."""

    def __init__(
        self,
        gateway: EmbeddingGateway,
        index: VectorIndex,
        config: RetrievalConfig | None = None,
    ) -> None:
        self._gateway = gateway
        self._index = index
        self._config = config or RetrievalConfig()

    def query_fields(self, form: FormSignature) -> list[FieldSignature]:
        return [f for f in form.fields if not is_credential(f)][: self._config.max_query_fields]

    def build_query(self, form: FormSignature) -> str:
        parts = [f"{f.normalized_label} ({f.semantic_class})" for f in self.query_fields(form)]
        return f"Form on {form.domain}: " + ", ".join(parts)

    async def retrieve(
        self,
        profile_id: str,
        form: FormSignature,
        *,
        top_k: int | None = None,
        threshold: float | None = None,
        max_tokens: int | None = None,
    ) -> RetrievalResult:
        top_k = top_k if top_k is not None else self._config.top_k
        threshold = threshold if threshold is not None else self._config.similarity_threshold
        max_tokens = max_tokens if max_tokens is not None else self._config.max_context_tokens

        if not self.query_fields(form) or not self._index.get_vectors(profile_id):
            return RetrievalResult()

        query = await self._gateway.embed(self.build_query(form))
        candidates = self._index.search(profile_id, query.vector, top_k * 2, threshold)

        result = RetrievalResult()
        used = 0
        for candidate in candidates:
            text = candidate.entry.text
            tokens = estimate_tokens(text)
            if used + tokens > max_tokens:
                remaining = max_tokens - used
                if remaining >= self._config.min_truncation_tokens:
                    text = text[: remaining * CHARS_PER_TOKEN] + ELLIPSIS
                    self._append(result, candidate.entry, candidate.similarity, text)
                    used += remaining
                break
            self._append(result, candidate.entry, candidate.similarity, text)
            used += tokens

        result.token_estimate = used
        log_with_context(
            logger, logging.DEBUG, "Retrieved context",
            profile_id=profile_id, candidates=len(candidates),
            packed=len(result.context), tokens=used,
        )
        return result

    @staticmethod
    def _append(result: RetrievalResult, entry: VectorEntry, similarity: float, text: str) -> None:
        result.context.append(text)
        result.sources.append(
            RetrievalSource(id=entry.id, kind=entry.source_kind, similarity=similarity, text=text)
        )

    # -- ingestion -----------------------------------------------------------

    async def ingest_document(
        self,
        profile_id: str,
        document_id: str,
        text: str,
        chunk_size: int | None = None,
    ) -> int:
        """Embed a document's chunks, replacing any earlier chunks of it."""
        chunks = chunk_text(text, chunk_size or self._config.chunk_size)
        embedded = await self._gateway.embed_batch(chunks) if chunks else None

        for entry in self._index.get_vectors(profile_id):
            if entry.source_kind == SourceKind.DOCUMENT and entry.source_id == document_id:
                self._index.delete(entry.id, profile_id)
        if embedded is None:
            return 0
        self._index.upsert_batch([
            VectorEntry(
                id=f"{profile_id}_doc_{document_id}_{i}",
                profile_id=profile_id,
                embedding=vector,
                source_kind=SourceKind.DOCUMENT,
                source_id=document_id,
                text=chunk,
            )
            for i, (chunk, vector) in enumerate(zip(chunks, embedded.vectors))
        ])
        log_with_context(
            logger, logging.INFO, "Ingested document",
            profile_id=profile_id, document_id=document_id, chunks=len(chunks),
        )
        return len(chunks)

    async def ingest_knowledge_base(
        self, profile_id: str, text: str, chunk_size: int | None = None
    ) -> int:
        """Replace the profile's knowledge-base vectors; returns the chunk count.

        New chunks are embedded before the old vectors are removed, so a failed
        embedding leaves the previous knowledge base in place.
        """
        chunks = chunk_text(text or "", chunk_size or self._config.chunk_size)
        embedded = await self._gateway.embed_batch(chunks) if chunks else None

        self._index.delete_by_source_kind(profile_id, SourceKind.KNOWLEDGE_BASE)
        if embedded is None:
            return 0
        self._index.upsert_batch([
            VectorEntry(
                id=f"{profile_id}_kb_{i}",
                profile_id=profile_id,
                embedding=vector,
                source_kind=SourceKind.KNOWLEDGE_BASE,
                source_id=KNOWLEDGE_BASE_SOURCE_ID,
                text=chunk,
            )
            for i, (chunk, vector) in enumerate(zip(chunks, embedded.vectors))
        ])
        log_with_context(
            logger, logging.INFO, "Ingested knowledge base",
            profile_id=profile_id, chunks=len(chunks),
        )
        return len(chunks)

    async def ingest_learned_example(self, profile_id: str, example: LearnedExample) -> bool:
        text = learned_example_text(example.form_signature.domain, example.field_mappings)
        if text is None:
            return False
        embedded = await self._gateway.embed(text)
        self._index.upsert(VectorEntry(
            id=f"{profile_id}_learned_{example.id}",
            profile_id=profile_id,
            embedding=embedded.vector,
            source_kind=SourceKind.LEARNED_EXAMPLE,
            source_id=example.id,
            text=text,
        ))
        return True

    def remove_learned_example(self, profile_id: str, example_id: str) -> None:
        self._index.delete(f"{profile_id}_learned_{example_id}", profile_id)

    def clear_profile(self, profile_id: str) -> None:
        self._index.delete_by_profile(profile_id)
