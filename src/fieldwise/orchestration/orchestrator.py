"""ResolutionOrchestrator: static match, then the fallback chain, then merge.

``resolve`` never raises for cache or model failures; the worst outcome is
the static-only result with a ``fallback_reason``.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional, Sequence

from fieldwise.core.exceptions import CacheError
from fieldwise.core.logging import get_logger, log_with_context
from fieldwise.matching.denylist import is_credential
from fieldwise.matching.static_matcher import StaticMatcher
from fieldwise.models.form import FillResponse, FillSource, FormSignature
from fieldwise.models.profile import Profile
from fieldwise.orchestration.state_machine import FillState
from fieldwise.orchestration.strategies import (
    CacheWrite,
    ResolutionContext,
    ResolutionStrategy,
    Resolved,
    Skipped,
)
from fieldwise.services.cache_service import FillCache

logger = get_logger(__name__)

LLM_UNAVAILABLE_REASON = "LLM not configured"


class PendingResolution:
    """A resolved fill whose cache write has not been committed yet."""

    def __init__(self, response: FillResponse, cache_write: Optional[CacheWrite] = None,
                 skipped: Sequence[Skipped] = ()) -> None:
        self.response = response
        self.cache_write = cache_write
        self.skipped = list(skipped)


class ResolutionOrchestrator:
    def __init__(
        self,
        matcher: StaticMatcher,
        strategies: Sequence[ResolutionStrategy],
        cache: FillCache,
        llm_available: Callable[[], bool],
    ) -> None:
        self._matcher = matcher
        self._strategies = list(strategies)
        self._cache = cache
        self._llm_available = llm_available

    @property
    def strategies(self) -> list[ResolutionStrategy]:
        return list(self._strategies)

    async def resolve(
        self,
        form: FormSignature,
        profile: Profile,
        use_cache: bool = True,
    ) -> FillResponse:
        """Resolve and immediately commit any cache write."""
        pending = await self.resolve_pending(form, profile, use_cache)
        self.commit(pending)
        return pending.response

    async def resolve_pending(
        self,
        form: FormSignature,
        profile: Profile,
        use_cache: bool = True,
        on_stage: Optional[Callable[[FillState], None]] = None,
    ) -> PendingResolution:
        static = self._matcher.match(form.fields, profile)
        mapped = {m.field_id for m in static}
        unmapped = [f for f in form.fields if f.id not in mapped and not is_credential(f)]

        if not unmapped:
            return PendingResolution(FillResponse(mappings=static, source=FillSource.STATIC))

        if not self._llm_available():
            return PendingResolution(FillResponse(
                mappings=static, source=FillSource.STATIC, fallback_reason=LLM_UNAVAILABLE_REASON,
            ))

        context = ResolutionContext(
            profile=profile,
            form=form,
            unmapped=form.with_fields(unmapped),
            static=static,
            use_cache=use_cache,
            on_stage=on_stage,
        )

        skipped: list[Skipped] = []
        for strategy in self._strategies:
            outcome = await strategy.resolve(context)
            if isinstance(outcome, Resolved):
                log_with_context(
                    logger, logging.INFO, "Fill resolved",
                    profile_id=profile.id, strategy=strategy.name, source=outcome.source,
                    mapped=len(outcome.mappings), fields=len(form.fields),
                )
                return PendingResolution(
                    FillResponse(
                        mappings=outcome.mappings,
                        source=outcome.source,
                        llm_used=outcome.llm_used,
                        tokens_used=outcome.tokens_used,
                    ),
                    cache_write=outcome.cache_write,
                    skipped=skipped,
                )
            skipped.append(outcome)

        reason = skipped[-1].reason if skipped else "No resolution strategy available"
        log_with_context(
            logger, logging.INFO, "Falling back to static result",
            profile_id=profile.id, reason=reason,
        )
        return PendingResolution(
            FillResponse(mappings=static, source=FillSource.STATIC, fallback_reason=reason),
            skipped=skipped,
        )

    def commit(self, pending: PendingResolution) -> None:
        """Persist the pending cache write; cache failures are logged, not raised."""
        write = pending.cache_write
        if write is None:
            return
        try:
            self._cache.set(write.profile_id, write.form, write.mappings, write.tokens_used)
        except CacheError as exc:
            log_with_context(
                logger, logging.WARNING, "Fill cache write failed",
                profile_id=write.profile_id, error=str(exc),
            )
        pending.cache_write = None
