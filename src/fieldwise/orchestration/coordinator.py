"""FillCoordinator: owns fill sessions per browsing context.

One fill runs per context at a time; a newer trigger takes over (cancels)
the in-flight one. Cache writes are committed only after a fill completes,
so a cancelled session leaves no cache or learned state behind.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Callable, Optional

from pydantic import BaseModel, Field

from fieldwise.ai.rag import RetrievalAssembler
from fieldwise.core.exceptions import DocumentNotFoundError, StorageError
from fieldwise.core.logging import get_logger, log_with_context
from fieldwise.core.protocols import IExecutionEngine, IModelProvider
from fieldwise.models.form import FieldMapping, FillResponse, FormSignature
from fieldwise.models.profile import LearnedExample
from fieldwise.orchestration.orchestrator import PendingResolution, ResolutionOrchestrator
from fieldwise.orchestration.state_machine import FillErrorCode, FillState, FillStateMachine
from fieldwise.services.cache_service import FillCache
from fieldwise.services.learning_service import LearningService
from fieldwise.services.profile_service import ProfileService

logger = get_logger(__name__)


class FillOutcome(BaseModel):
    context_id: str
    success: bool
    state: FillState
    response: Optional[FillResponse] = None
    error_code: Optional[FillErrorCode] = None
    error_message: Optional[str] = None
    progress: list[dict[str, Any]] = Field(default_factory=list)


class _Session:
    def __init__(self) -> None:
        self.machine = FillStateMachine()
        self.task: asyncio.Task[FillOutcome] | None = None
        self.profile_id: str | None = None
        self.pending: PendingResolution | None = None
        self.progress: list[dict[str, Any]] = []
        # Held while a trigger or confirmation swaps the session task.
        self.lock = asyncio.Lock()

    def is_idle(self) -> bool:
        return (
            self.machine.state == FillState.IDLE
            and self.pending is None
            and (self.task is None or self.task.done())
            and not self.lock.locked()
        )


class FillCoordinator:
    def __init__(
        self,
        *,
        profiles: ProfileService,
        orchestrator: ResolutionOrchestrator,
        retrieval: RetrievalAssembler,
        learning: LearningService,
        cache: FillCache,
        provider: IModelProvider,
        engine: IExecutionEngine | None = None,
        on_progress: Callable[[str, dict[str, Any]], None] | None = None,
    ) -> None:
        self._profiles = profiles
        self._orchestrator = orchestrator
        self._retrieval = retrieval
        self._learning = learning
        self._cache = cache
        self._provider = provider
        self._engine = engine
        self._on_progress = on_progress
        self._sessions: dict[str, _Session] = {}

    def session_state(self, context_id: str) -> FillState:
        session = self._sessions.get(context_id)
        return session.machine.state if session else FillState.IDLE

    # -- fill sessions -------------------------------------------------------

    async def trigger_fill(
        self,
        context_id: str,
        profile_id: str,
        form: FormSignature | None,
        use_cache: bool = True,
        options: dict[str, Any] | None = None,
    ) -> FillOutcome:
        self._prune_idle(keep=context_id)
        session = self._sessions.setdefault(context_id, _Session())
        async with session.lock:
            previous = session.task
            if previous is not None and not previous.done():
                log_with_context(logger, logging.INFO, "Fill taken over", context_id=context_id)
                previous.cancel()
                await asyncio.gather(previous, return_exceptions=True)

            session.machine.reset()
            session.pending = None
            session.progress = []
            session.profile_id = profile_id

            task = asyncio.create_task(
                self._run(context_id, session, profile_id, form, use_cache, options or {})
            )
            session.task = task
        return await self._await_outcome(context_id, task)

    async def confirm_fill(self, context_id: str, options: dict[str, Any] | None = None) -> FillOutcome:
        """Execute a fill that is waiting for user review."""
        session = self._sessions.get(context_id)
        if session is None:
            return self._nothing_to_confirm(context_id)
        async with session.lock:
            if session.machine.state != FillState.AWAITING_REVIEW or session.pending is None:
                return self._nothing_to_confirm(context_id)
            task = asyncio.create_task(self._execute(context_id, session, options or {}))
            session.task = task
        return await self._await_outcome(context_id, task)

    async def _await_outcome(self, context_id: str, task: asyncio.Task[FillOutcome]) -> FillOutcome:
        """Await a session task, turning its cancellation into a CANCELLED outcome.

        Cancellation of the caller itself still propagates.
        """
        try:
            return await task
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if current is not None and current.cancelling():
                raise
            return FillOutcome(
                context_id=context_id,
                success=False,
                state=self.session_state(context_id),
                error_code=FillErrorCode.CANCELLED,
                error_message="Fill was cancelled",
            )

    def _nothing_to_confirm(self, context_id: str) -> FillOutcome:
        return FillOutcome(
            context_id=context_id, success=False, state=self.session_state(context_id),
            error_code=FillErrorCode.FORM_NOT_FOUND, error_message="No fill awaiting review",
        )

    def _prune_idle(self, keep: str) -> None:
        """Forget sessions of other contexts that hold no work or state worth reporting."""
        for context_id in [c for c, s in self._sessions.items() if c != keep and s.is_idle()]:
            del self._sessions[context_id]

    def cancel(self, context_id: str) -> bool:
        """Abort pending work for ``context_id`` and return it to IDLE."""
        session = self._sessions.get(context_id)
        if session is None:
            return False
        was_active = session.task is not None and not session.task.done()
        if was_active:
            session.task.cancel()
        session.pending = None
        if session.profile_id is not None:
            self._learning.cancel_edits(session.profile_id)
        session.machine.reset()
        log_with_context(logger, logging.INFO, "Fill cancelled", context_id=context_id, active=was_active)
        return was_active

    async def _run(
        self,
        context_id: str,
        session: _Session,
        profile_id: str,
        form: FormSignature | None,
        use_cache: bool,
        options: dict[str, Any],
    ) -> FillOutcome:
        machine = session.machine
        machine.transition(FillState.DETECTING)
        if form is None or not form.fields:
            return self._fail(context_id, session, FillErrorCode.FORM_NOT_FOUND, "No form detected")

        try:
            profile = self._profiles.get(profile_id)
        except StorageError as exc:
            return self._fail(context_id, session, FillErrorCode.STORAGE_UNAVAILABLE, str(exc))
        if profile is None:
            return self._fail(
                context_id, session, FillErrorCode.PROFILE_NOT_FOUND, f"Profile not found: {profile_id}"
            )

        machine.transition(FillState.ANALYZING)
        session.pending = await self._orchestrator.resolve_pending(
            form, profile, use_cache, on_stage=machine.transition,
        )

        if profile.settings.confirm_before_fill and session.pending.response.mappings:
            machine.transition(FillState.AWAITING_REVIEW)
            return FillOutcome(
                context_id=context_id, success=True, state=machine.state,
                response=session.pending.response,
            )
        return await self._execute(context_id, session, options)

    async def _execute(self, context_id: str, session: _Session, options: dict[str, Any]) -> FillOutcome:
        pending = session.pending
        if pending is None:
            raise RuntimeError(f"No resolved fill to execute for context {context_id}")
        machine = session.machine
        machine.transition(FillState.FILLING)

        def progress(event: dict[str, Any]) -> None:
            session.progress.append(event)
            if self._on_progress is not None:
                self._on_progress(context_id, event)

        mappings: list[FieldMapping] = pending.response.mappings
        success = True
        if self._engine is not None and mappings:
            try:
                success = await self._engine.execute(context_id, mappings, options, progress)
            except Exception as exc:
                session.pending = None
                return self._fail(context_id, session, FillErrorCode.UNKNOWN, f"Fill execution failed: {exc}")

        self._orchestrator.commit(pending)
        session.pending = None
        machine.transition(FillState.IDLE)
        return FillOutcome(
            context_id=context_id, success=success, state=machine.state,
            response=pending.response, progress=list(session.progress),
        )

    def _fail(
        self, context_id: str, session: _Session, code: FillErrorCode, message: str
    ) -> FillOutcome:
        error = session.machine.fail(code, message)
        log_with_context(
            logger, logging.WARNING, "Fill failed",
            context_id=context_id, code=code, previous_state=error.previous_state,
        )
        return FillOutcome(
            context_id=context_id, success=False, state=session.machine.state,
            error_code=code, error_message=message,
        )

    # -- ingestion and learning ---------------------------------------------

    async def ingest_knowledge_base(
        self, profile_id: str, text: str, chunk_size: int | None = None
    ) -> int:
        profile = self._profiles.require(profile_id)
        count = await self._retrieval.ingest_knowledge_base(profile_id, text, chunk_size)
        profile.static_context.knowledge_base = text
        profile.static_context.knowledge_base_chunks = count
        self._profiles.save(profile)
        return count

    async def ingest_document(
        self, profile_id: str, document_id: str, chunk_size: int | None = None
    ) -> int:
        profile = self._profiles.require(profile_id)
        document = next((d for d in profile.static_context.documents if d.id == document_id), None)
        if document is None:
            raise DocumentNotFoundError(f"Document {document_id} not found in profile {profile_id}")
        return await self._retrieval.ingest_document(profile_id, document_id, document.content, chunk_size)

    def report_edit(
        self,
        profile_id: str,
        form: FormSignature,
        original: FieldMapping,
        corrected_value: str,
    ) -> bool:
        return self._learning.record_edit(profile_id, form, original, corrected_value)

    async def commit_edits(self, profile_id: str, context_id: str | None = None) -> LearnedExample | None:
        session = self._sessions.get(context_id) if context_id else None
        learning_state = session is not None and session.machine.state == FillState.IDLE
        if learning_state:
            session.machine.transition(FillState.LEARNING)
        try:
            example = await self._learning.commit_edits(profile_id)
            if example is not None:
                # Corrections mean earlier generated fills for this profile are suspect.
                self._cache.invalidate_profile(profile_id)
            return example
        finally:
            if learning_state:
                session.machine.transition(FillState.IDLE)

    def cancel_edits(self, profile_id: str) -> int:
        return self._learning.cancel_edits(profile_id)

    def status(self) -> dict[str, Any]:
        return {
            "llm_available": self._provider.is_configured(),
            "chat_model": getattr(self._provider, "chat_model", ""),
            "embedding_model": getattr(self._provider, "embedding_model", ""),
            "cache": self._cache.stats(),
            "sessions": {ctx: str(s.machine.state) for ctx, s in self._sessions.items()},
        }
