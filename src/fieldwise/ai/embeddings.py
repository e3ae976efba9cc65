"""EmbeddingGateway: batched embedding calls behind a bounded LRU cache."""

from __future__ import annotations

import hashlib
import logging
from collections import OrderedDict
from typing import Sequence

from pydantic import BaseModel

from fieldwise.core.config import EmbeddingConfig
from fieldwise.core.logging import get_logger, log_with_context
from fieldwise.core.protocols import IModelProvider

logger = get_logger(__name__)


class EmbeddingResult(BaseModel):
    vector: list[float]
    cached: bool = False
    tokens_used: int = 0


class BatchEmbeddingResult(BaseModel):
    vectors: list[list[float]]
    cached_count: int = 0
    tokens_used: int = 0


def text_key(text: str) -> str:
    return hashlib.blake2b(text.encode("utf-8"), digest_size=16).hexdigest()


class EmbeddingGateway:
    """Wraps the provider's embedding endpoint.

    Vectors are cached by a digest of the text. Uncached texts are sent in
    batches of ``batch_size``; results come back in input order. A failed
    remote call propagates and caches nothing from that batch.
    """

    def __init__(self, provider: IModelProvider, config: EmbeddingConfig | None = None) -> None:
        config = config or EmbeddingConfig()
        self._provider = provider
        self._batch_size = max(1, config.batch_size)
        self._capacity = max(1, config.cache_size)
        self._cache: OrderedDict[str, list[float]] = OrderedDict()

    async def embed(self, text: str, use_cache: bool = True) -> EmbeddingResult:
        key = text_key(text)
        if use_cache:
            cached = self._lookup(key)
            if cached is not None:
                return EmbeddingResult(vector=cached, cached=True)

        response = await self._provider.create_embedding([text])
        vector = response.vectors[0]
        if use_cache:
            self._store(key, vector)
        return EmbeddingResult(vector=vector, tokens_used=response.usage.total_tokens)

    async def embed_batch(
        self, texts: Sequence[str], use_cache: bool = True
    ) -> BatchEmbeddingResult:
        results: list[list[float] | None] = [None] * len(texts)
        # Text key -> every position it occupies; duplicates are embedded once.
        pending: OrderedDict[str, list[int]] = OrderedDict()
        pending_text: dict[str, str] = {}
        cached_count = 0

        for i, text in enumerate(texts):
            key = text_key(text)
            cached = self._lookup(key) if use_cache else None
            if cached is not None:
                results[i] = cached
                cached_count += 1
                continue
            pending.setdefault(key, []).append(i)
            pending_text[key] = text

        tokens_used = 0
        keys = list(pending)
        for start in range(0, len(keys), self._batch_size):
            batch_keys = keys[start:start + self._batch_size]
            response = await self._provider.create_embedding(
                [pending_text[k] for k in batch_keys]
            )
            tokens_used += response.usage.total_tokens
            for key, vector in zip(batch_keys, response.vectors):
                if use_cache:
                    self._store(key, vector)
                for position in pending[key]:
                    results[position] = vector

        if keys:
            log_with_context(
                logger, logging.DEBUG, "Embedded batch",
                requested=len(texts), cached=cached_count, embedded=len(keys),
            )
        return BatchEmbeddingResult(
            vectors=[v for v in results if v is not None],
            cached_count=cached_count,
            tokens_used=tokens_used,
        )

    def clear_cache(self) -> None:
        self._cache.clear()

    def cache_stats(self) -> dict[str, int]:
        return {"size": len(self._cache), "max_size": self._capacity}

    def _lookup(self, key: str) -> list[float] | None:
        vector = self._cache.get(key)
        if vector is not None:
            self._cache.move_to_end(key)
        return vector

    def _store(self, key: str, vector: list[float]) -> None:
        self._cache[key] = vector
        self._cache.move_to_end(key)
        while len(self._cache) > self._capacity:
            self._cache.popitem(last=False)
