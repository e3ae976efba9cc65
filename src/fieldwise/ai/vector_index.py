"""VectorIndex: per-profile brute-force cosine search over a durable store.

Reads go through an in-memory per-profile cache. Every write bumps the
profile's generation after the durable write completes; a cached list is
served only while its recorded generation is still current.
"""

from __future__ import annotations

import logging
from collections import Counter
from typing import Iterable, Sequence

import numpy as np

from fieldwise.core.logging import get_logger, log_with_context
from fieldwise.core.protocols import IVectorStore
from fieldwise.models.vectors import SearchResult, SourceKind, VectorEntry

logger = get_logger(__name__)


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity; 0.0 for mismatched dimensions or zero-norm vectors."""
    if len(a) != len(b) or len(a) == 0:
        return 0.0
    va = np.asarray(a, dtype=np.float64)
    vb = np.asarray(b, dtype=np.float64)
    denom = float(np.linalg.norm(va) * np.linalg.norm(vb))
    if denom == 0.0:
        return 0.0
    return float(np.dot(va, vb) / denom)


class VectorIndex:
    """Per-profile vector collection with a generation-checked read cache."""

    def __init__(self, store: IVectorStore) -> None:
        self._store = store
        self._generations: dict[str, int] = {}
        self._cache: dict[str, tuple[int, list[VectorEntry]]] = {}

    def generation(self, profile_id: str) -> int:
        return self._generations.get(profile_id, 0)

    def get_vectors(self, profile_id: str) -> list[VectorEntry]:
        observed = self.generation(profile_id)
        cached = self._cache.get(profile_id)
        if cached is not None and cached[0] == observed:
            return list(cached[1])

        entries = self._store.list_by_profile(profile_id)
        # A write that landed while loading leaves this entry stale by generation.
        self._cache[profile_id] = (observed, entries)
        return list(entries)

    # -- writes --------------------------------------------------------------

    def upsert(self, entry: VectorEntry) -> None:
        self._store.put_many([entry])
        self._bump([entry.profile_id])

    def upsert_batch(self, entries: Sequence[VectorEntry]) -> None:
        if not entries:
            return
        self._store.put_many(list(entries))
        self._bump({e.profile_id for e in entries})

    def delete(self, entry_id: str, profile_id: str) -> None:
        self._store.delete(profile_id, entry_id)
        self._bump([profile_id])

    def delete_by_profile(self, profile_id: str) -> None:
        self._store.delete_by_profile(profile_id)
        self._bump([profile_id])

    def delete_by_source_kind(self, profile_id: str, source_kind: SourceKind) -> int:
        """Remove every entry of ``source_kind``; returns how many were removed."""
        entries = self._store.list_by_profile(profile_id)
        survivors = [e for e in entries if e.source_kind != source_kind]
        removed = len(entries) - len(survivors)
        if removed == 0:
            return 0

        self._store.delete_by_profile(profile_id)
        if survivors:
            self._store.put_many(survivors)
        self._bump([profile_id])

        log_with_context(
            logger, logging.INFO, "Deleted vectors by source kind",
            profile_id=profile_id, source_kind=source_kind, removed=removed,
        )
        return removed

    # -- reads ---------------------------------------------------------------

    def search(
        self,
        profile_id: str,
        query: Sequence[float],
        top_k: int = 5,
        threshold: float = 0.5,
    ) -> list[SearchResult]:
        entries = self.get_vectors(profile_id)
        if not entries or top_k <= 0:
            return []

        mismatched = 0
        results: list[SearchResult] = []
        for entry in entries:
            if len(entry.embedding) != len(query):
                mismatched += 1
                similarity = 0.0
            else:
                similarity = cosine_similarity(query, entry.embedding)
            if similarity >= threshold:
                results.append(SearchResult(entry=entry, similarity=similarity))

        if mismatched:
            log_with_context(
                logger, logging.WARNING, "Vector dimension mismatch",
                profile_id=profile_id, query_dim=len(query), mismatched=mismatched,
            )

        # Stable sort: equal scores keep store order.
        results.sort(key=lambda r: r.similarity, reverse=True)
        return results[:top_k]

    def stats(self, profile_id: str) -> dict[str, int]:
        counts = Counter(e.source_kind for e in self.get_vectors(profile_id))
        stats = {kind.value: counts.get(kind, 0) for kind in SourceKind}
        stats["total"] = sum(counts.values())
        return stats

    def clear_cache(self) -> None:
        self._cache.clear()

    def _bump(self, profile_ids: Iterable[str]) -> None:
        for profile_id in profile_ids:
            self._generations[profile_id] = self.generation(profile_id) + 1
