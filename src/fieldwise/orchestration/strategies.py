"""Resolution strategies: the ordered fallback chain after static matching.

Each strategy returns ``Resolved`` or ``Skipped(reason)``; the orchestrator
stops at the first ``Resolved``. Strategies never raise for cache or model
failures.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Optional, Protocol, runtime_checkable

from fieldwise.ai.generation import GenerationClient
from fieldwise.ai.prompt_builder import PromptBuilder
from fieldwise.ai.rag import RetrievalAssembler
from fieldwise.ai.response_validator import ResponseValidator, merge_mappings
from fieldwise.core.exceptions import CacheError, FieldwiseError, ProviderError
from fieldwise.core.logging import get_logger, log_with_context
from fieldwise.models.form import FieldMapping, FillSource, FormSignature
from fieldwise.models.profile import Profile
from fieldwise.orchestration.state_machine import FillErrorCode, FillState
from fieldwise.services.cache_service import FillCache

logger = get_logger(__name__)


@dataclass
class ResolutionContext:
    """Inputs shared by every strategy for one fill."""

    profile: Profile
    form: FormSignature
    unmapped: FormSignature
    static: list[FieldMapping]
    use_cache: bool = True
    on_stage: Optional[Callable[[FillState], None]] = None

    def stage(self, state: FillState) -> None:
        if self.on_stage is not None:
            self.on_stage(state)


@dataclass(frozen=True)
class CacheWrite:
    """Cache entry to persist once the fill is committed."""

    profile_id: str
    form: FormSignature
    mappings: list[FieldMapping]
    tokens_used: int


@dataclass(frozen=True)
class Resolved:
    mappings: list[FieldMapping]
    source: FillSource
    llm_used: bool = False
    tokens_used: int = 0
    cache_write: Optional[CacheWrite] = None


@dataclass(frozen=True)
class Skipped:
    reason: str
    code: Optional[FillErrorCode] = None
    details: list[str] = field(default_factory=list)


@runtime_checkable
class ResolutionStrategy(Protocol):
    name: str

    async def resolve(self, context: ResolutionContext) -> Resolved | Skipped: ...


class CachedResolution:
    """Reuse mappings generated earlier for a form of the same structure."""

    name = "cache"

    def __init__(self, cache: FillCache) -> None:
        self._cache = cache

    async def resolve(self, context: ResolutionContext) -> Resolved | Skipped:
        if not context.use_cache:
            return Skipped("Cache disabled for this request")
        try:
            cached = self._cache.get(context.profile.id, context.unmapped)
        except CacheError as exc:
            log_with_context(
                logger, logging.WARNING, "Fill cache unavailable",
                profile_id=context.profile.id, error=str(exc),
            )
            return Skipped(f"Cache unavailable: {exc}")
        if cached is None or not cached.mappings:
            return Skipped("Cache miss")

        return Resolved(
            mappings=merge_mappings(context.static, cached.mappings),
            source=FillSource.CACHED,
            tokens_used=0,
        )


class GenerativeResolution:
    """Retrieve context, prompt the model, validate, and merge by confidence."""

    name = "llm"

    def __init__(
        self,
        retrieval: RetrievalAssembler,
        prompts: PromptBuilder,
        generation: GenerationClient,
        validator: ResponseValidator,
    ) -> None:
        self._retrieval = retrieval
        self._prompts = prompts
        self._generation = generation
        self._validator = validator

    async def resolve(self, context: ResolutionContext) -> Resolved | Skipped:
        if not self._generation.is_available():
            return Skipped("LLM not configured")

        profile_id = context.profile.id
        try:
            context.stage(FillState.RETRIEVING)
            retrieved = await self._retrieval.retrieve(profile_id, context.unmapped)

            context.stage(FillState.INFERRING)
            prompt = self._prompts.build(context.profile, context.unmapped, retrieved.context)
            generated = await self._generation.generate(prompt)
        except ProviderError as exc:
            log_with_context(
                logger, logging.WARNING, "Generation failed, falling back to static",
                profile_id=profile_id, code=exc.code, retryable=exc.retryable,
            )
            return Skipped(f"LLM error ({exc.code}): {exc}", code=FillErrorCode.LLM_ERROR)
        except FieldwiseError as exc:
            log_with_context(
                logger, logging.WARNING, "Retrieval failed, falling back to static",
                profile_id=profile_id, error=str(exc),
            )
            return Skipped(f"Retrieval error: {exc}", code=FillErrorCode.STORAGE_UNAVAILABLE)
        except Exception as exc:
            log_with_context(
                logger, logging.ERROR, "Generation raised unexpectedly, falling back to static",
                profile_id=profile_id, error=repr(exc),
            )
            return Skipped(f"Unexpected error: {exc}", code=FillErrorCode.UNKNOWN)

        # Validate against the whole form so protected field ids are recognised.
        result = self._validator.validate(generated.text, context.form)
        if not result.valid:
            code = (
                FillErrorCode.SECURITY_BLOCK if result.has_security_violation
                else FillErrorCode.VALIDATION_ERROR
            )
            log_with_context(
                logger, logging.WARNING, "Model response rejected",
                profile_id=profile_id, code=code, errors=len(result.errors),
            )
            return Skipped(
                f"Invalid model response: {result.failure_reason()}",
                code=code,
                details=[e.message for e in result.errors],
            )

        unmapped_ids = {f.id for f in context.unmapped.fields}
        return Resolved(
            mappings=merge_mappings(context.static, result.mappings),
            source=FillSource.HYBRID,
            llm_used=True,
            tokens_used=generated.tokens_used,
            cache_write=CacheWrite(
                profile_id=profile_id,
                form=context.unmapped,
                mappings=[m for m in result.mappings if m.field_id in unmapped_ids],
                tokens_used=generated.tokens_used,
            ),
        )
