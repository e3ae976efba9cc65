"""FillCache: TTL cache of generated mappings keyed by form structure.

Key = prefix + profile id + salted SHA-256 of the form's domain and its
sorted ``semanticClass:inputKind`` multiset, so the same form structure hits
across page loads regardless of field order or DOM paths.
"""

from __future__ import annotations

import hashlib
import logging
import time
from typing import Callable, Sequence

from pydantic import BaseModel, Field, ValidationError

from fieldwise.core.config import FillCacheConfig
from fieldwise.core.logging import get_logger, log_with_context
from fieldwise.core.protocols import ICacheBackend
from fieldwise.matching.classifier import structure_descriptor
from fieldwise.models.form import FieldMapping, FieldSignature, FormSignature, Provenance

logger = get_logger(__name__)


class CachedFill(BaseModel):
    profile_id: str
    domain: str
    mappings: list[FieldMapping] = Field(default_factory=list)
    tokens_used: int = 0
    created_at: float
    expires_at: float
    hit_count: int = 0


def rebind_mappings(mappings: Sequence[FieldMapping], form: FormSignature) -> list[FieldMapping]:
    """Retarget cached mappings onto this detection pass's fields.

    Field ids are regenerated per detection, so cached mappings are matched
    by (semantic class, input kind), preferring an identical label.
    """
    available: list[FieldSignature] = list(form.fields)
    rebound: list[FieldMapping] = []

    for mapping in mappings:
        old = mapping.field
        candidates = [
            f for f in available
            if f.semantic_class == old.semantic_class and f.input_type == old.input_type
        ]
        if not candidates:
            continue
        target = next(
            (f for f in candidates if f.normalized_label == old.normalized_label), candidates[0]
        )
        available.remove(target)
        rebound.append(mapping.model_copy(update={"field": target, "provenance": Provenance.CACHE}))
    return rebound


class FillCache:
    """Response cache over an ICacheBackend."""

    def __init__(
        self,
        backend: ICacheBackend,
        config: FillCacheConfig | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._backend = backend
        self._config = config or FillCacheConfig()
        self._clock = clock
        self._hits = 0
        self._misses = 0
        self.purge_expired()

    def build_key(self, profile_id: str, form: FormSignature) -> str:
        material = "|".join([self._config.key_salt, form.domain, *structure_descriptor(form.fields)])
        digest = hashlib.sha256(material.encode("utf-8")).hexdigest()[:32]
        return f"{self._profile_prefix(profile_id)}{digest}"

    def get(self, profile_id: str, form: FormSignature) -> CachedFill | None:
        """Cached entry with mappings rebound to ``form``, or None."""
        key = self.build_key(profile_id, form)
        entry = self._load(key)
        if entry is None:
            self._misses += 1
            return None

        entry.hit_count += 1
        self._save(key, entry)
        self._hits += 1
        log_with_context(
            logger, logging.DEBUG, "Fill cache hit",
            profile_id=profile_id, hit_count=entry.hit_count,
        )
        return entry.model_copy(update={"mappings": rebind_mappings(entry.mappings, form)})

    def set(
        self,
        profile_id: str,
        form: FormSignature,
        mappings: Sequence[FieldMapping],
        tokens_used: int = 0,
    ) -> None:
        now = self._clock()
        entry = CachedFill(
            profile_id=profile_id,
            domain=form.domain,
            mappings=list(mappings),
            tokens_used=tokens_used,
            created_at=now,
            expires_at=now + self._config.ttl_seconds,
        )
        self._save(self.build_key(profile_id, form), entry)

    def invalidate(self, profile_id: str, form: FormSignature) -> None:
        self._backend.delete(self.build_key(profile_id, form))

    def invalidate_profile(self, profile_id: str) -> int:
        keys = self._backend.keys(self._profile_prefix(profile_id))
        for key in keys:
            self._backend.delete(key)
        return len(keys)

    def purge_expired(self) -> int:
        purged = 0
        for key in self._backend.keys(self._config.key_prefix):
            raw = self._backend.get(key)
            if raw is not None and self._parse(key, raw) is not None:
                continue
            self._backend.delete(key)
            purged += 1
        if purged:
            log_with_context(logger, logging.INFO, "Purged expired fill cache entries", purged=purged)
        return purged

    def stats(self) -> dict[str, float]:
        total = self._hits + self._misses
        return {
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate": self._hits / total if total else 0.0,
        }

    def _profile_prefix(self, profile_id: str) -> str:
        return f"{self._config.key_prefix}{profile_id}:"

    def _load(self, key: str) -> CachedFill | None:
        raw = self._backend.get(key)
        if raw is None:
            return None
        entry = self._parse(key, raw)
        if entry is None:
            self._backend.delete(key)
        return entry

    def _parse(self, key: str, raw: str) -> CachedFill | None:
        """Decoded live entry, or None when expired or unreadable."""
        try:
            entry = CachedFill.model_validate_json(raw)
        except ValidationError:
            log_with_context(logger, logging.WARNING, "Discarding unreadable cache entry", key=key)
            return None
        if entry.expires_at <= self._clock():
            return None
        return entry

    def _save(self, key: str, entry: CachedFill) -> None:
        ttl = int(entry.expires_at - self._clock())
        if ttl <= 0:
            self._backend.delete(key)
            return
        self._backend.setex(key, ttl, entry.model_dump_json())
