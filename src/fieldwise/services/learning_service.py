"""LearningService: turns user corrections into retrieval context.

Edits are buffered per profile while a fill session is open. Only edits to
mappings whose original confidence was below ``min_confidence_to_learn``
are kept; a commit bundles them into one LearnedExample.
"""

from __future__ import annotations

import logging
import time
from typing import Sequence

from pydantic import BaseModel, Field

from fieldwise.ai.rag import RetrievalAssembler
from fieldwise.core.config import LearningConfig
from fieldwise.core.logging import get_logger, log_with_context
from fieldwise.matching.denylist import is_credential
from fieldwise.models.form import FieldMapping, FormSignature, Provenance
from fieldwise.models.profile import LearnedExample, LearnedExampleSource, Profile
from fieldwise.services.profile_service import ProfileService

logger = get_logger(__name__)

LEARNED_CONFIDENCE = 1.0


class EditEvent(BaseModel):
    form: FormSignature
    original: FieldMapping
    corrected_value: str
    timestamp: float = Field(default_factory=time.time)


class LearningService:
    def __init__(
        self,
        profiles: ProfileService,
        retrieval: RetrievalAssembler,
        config: LearningConfig | None = None,
    ) -> None:
        self._profiles = profiles
        self._retrieval = retrieval
        self._config = config or LearningConfig()
        self._pending: dict[str, list[EditEvent]] = {}

    def record_edit(
        self,
        profile_id: str,
        form: FormSignature,
        original: FieldMapping,
        corrected_value: str,
    ) -> bool:
        """Buffer one correction; returns whether it was kept."""
        if not self._config.enabled:
            return False
        if is_credential(original.field):
            return False
        if original.confidence >= self._config.min_confidence_to_learn:
            log_with_context(
                logger, logging.DEBUG, "Edit ignored, original confidence above threshold",
                profile_id=profile_id, confidence=original.confidence,
            )
            return False

        self._pending.setdefault(profile_id, []).append(
            EditEvent(form=form, original=original, corrected_value=corrected_value)
        )
        log_with_context(
            logger, logging.DEBUG, "Edit recorded",
            profile_id=profile_id, field_id=original.field_id,
        )
        return True

    def pending_edit_count(self, profile_id: str) -> int:
        return len(self._pending.get(profile_id, []))

    def cancel_edits(self, profile_id: str) -> int:
        """Discard buffered edits without persisting or ingesting anything."""
        return len(self._pending.pop(profile_id, []))

    async def commit_edits(self, profile_id: str) -> LearnedExample | None:
        edits = self._pending.pop(profile_id, [])
        if not edits:
            return None

        # Last correction per field wins.
        latest: dict[str, EditEvent] = {}
        for edit in edits:
            latest[edit.original.field_id] = edit
        mappings = [
            FieldMapping(
                field=e.original.field,
                value=e.corrected_value,
                confidence=LEARNED_CONFIDENCE,
                provenance=Provenance.LEARNED,
            )
            for e in latest.values()
        ]
        example = LearnedExample(
            form_signature=edits[0].form,
            field_mappings=mappings,
            source=LearnedExampleSource.USER_EDIT,
        )
        await self._store_example(profile_id, example)
        return example

    async def add_learned_example(
        self,
        profile_id: str,
        form: FormSignature,
        mappings: Sequence[FieldMapping],
    ) -> LearnedExample:
        """Save a fill the user explicitly marked as correct."""
        example = LearnedExample(
            form_signature=form,
            field_mappings=[
                m.model_copy(update={"provenance": Provenance.LEARNED})
                for m in mappings
                if not is_credential(m.field)
            ],
            source=LearnedExampleSource.EXPLICIT_SAVE,
        )
        await self._store_example(profile_id, example)
        return example

    def remove_learned_example(self, profile_id: str, example_id: str) -> None:
        profile = self._profiles.require(profile_id)
        profile.learned_examples = [e for e in profile.learned_examples if e.id != example_id]
        self._profiles.save(profile)
        self._retrieval.remove_learned_example(profile_id, example_id)

    async def reindex_profile(self, profile_id: str) -> int:
        """Rebuild every vector of the profile from its stored data."""
        profile = self._profiles.require(profile_id)
        self._retrieval.clear_profile(profile_id)

        count = 0
        for example in profile.learned_examples:
            if await self._retrieval.ingest_learned_example(profile_id, example):
                count += 1
        for document in profile.static_context.documents:
            count += await self._retrieval.ingest_document(profile_id, document.id, document.content)
        count += await self._retrieval.ingest_knowledge_base(
            profile_id, profile.static_context.knowledge_base
        )

        log_with_context(logger, logging.INFO, "Profile reindexed", profile_id=profile_id, vectors=count)
        return count

    async def _store_example(self, profile_id: str, example: LearnedExample) -> None:
        profile: Profile = self._profiles.require(profile_id)

        # Most recent first; drop the oldest past the cap.
        examples = [example, *profile.learned_examples]
        evicted = examples[self._config.max_examples_per_profile:]
        profile.learned_examples = examples[: self._config.max_examples_per_profile]
        self._profiles.save(profile)

        for old in evicted:
            self._retrieval.remove_learned_example(profile_id, old.id)
        await self._retrieval.ingest_learned_example(profile_id, example)

        log_with_context(
            logger, logging.INFO, "Learned example stored",
            profile_id=profile_id, example_id=example.id, source=example.source,
            mappings=len(example.field_mappings), total=len(profile.learned_examples),
        )
