"""Tests for FillCoordinator sessions: take-over, cancellation, review and learning."""

from __future__ import annotations

import asyncio
import json

import pytest

from fieldwise.core.exceptions import DocumentNotFoundError, StorageError
from fieldwise.models.form import FillSource, InputType, SemanticClass
from fieldwise.models.profile import ContextDocument
from fieldwise.orchestration.state_machine import FillErrorCode, FillState
from tests.fakes import MockModelProvider
from tests.fakes.builders import make_field, make_form, make_mapping, make_profile, make_services

GENERATED = json.dumps({"color": "teal"})


class GatedProvider(MockModelProvider):
    """Chat calls block until ``gate`` is set."""

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.gate = asyncio.Event()
        self.waiting = 0

    async def chat_completion(self, messages, **kwargs):
        if not self.gate.is_set():
            self.waiting += 1
            await self.gate.wait()
        return await super().chat_completion(messages, **kwargs)


class RecordingEngine:
    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.calls: list[tuple[str, list[str], dict]] = []

    async def execute(self, context_id, mappings, options, on_progress):
        if self.fail:
            raise RuntimeError("tab closed")
        for mapping in mappings:
            on_progress({"field_id": mapping.field_id, "status": "filled"})
        self.calls.append((context_id, [m.field_id for m in mappings], options))
        return True


class BlockingEngine:
    """Execution parks until ``release`` is set."""

    def __init__(self) -> None:
        self.started = False
        self.release = asyncio.Event()

    async def execute(self, context_id, mappings, options, on_progress):
        self.started = True
        await self.release.wait()
        return True


async def _until(predicate) -> None:
    for _ in range(100):
        if predicate():
            return
        await asyncio.sleep(0)
    raise AssertionError("condition never met")


def _form():
    return make_form(
        make_field("your email", SemanticClass.EMAIL, InputType.EMAIL, field_id="email"),
        make_field("favorite color", field_id="color"),
    )


def _setup(provider=None, engine=None, confirm: bool = False):
    services = make_services(provider or MockModelProvider(GENERATED), engine=engine)
    services.profile_store.put(make_profile("p1", confirm=confirm, email="j@x.com"))
    return services


def _cached_keys(services):
    return services.cache_backend.keys("llm_fill_")


class TestFill:
    async def test_fill_runs_to_idle(self):
        engine = RecordingEngine()
        services = _setup(engine=engine)
        outcome = await services.coordinator.trigger_fill("ctx", "p1", _form(), options={"humanize": False})

        assert outcome.success
        assert outcome.state == FillState.IDLE
        assert outcome.response.source == FillSource.HYBRID
        assert engine.calls == [("ctx", ["email", "color"], {"humanize": False})]
        assert [p["field_id"] for p in outcome.progress] == ["email", "color"]
        assert len(_cached_keys(services)) == 1

    async def test_missing_form(self):
        services = _setup()
        outcome = await services.coordinator.trigger_fill("ctx", "p1", None)
        assert not outcome.success
        assert outcome.error_code == FillErrorCode.FORM_NOT_FOUND
        assert services.coordinator.session_state("ctx") == FillState.ERROR

    async def test_form_without_fields(self):
        services = _setup()
        outcome = await services.coordinator.trigger_fill("ctx", "p1", make_form())
        assert outcome.error_code == FillErrorCode.FORM_NOT_FOUND

    async def test_missing_profile(self):
        services = _setup()
        outcome = await services.coordinator.trigger_fill("ctx", "nobody", _form())
        assert outcome.error_code == FillErrorCode.PROFILE_NOT_FOUND
        assert outcome.state == FillState.ERROR

    async def test_profile_store_outage(self, monkeypatch):
        services = _setup()

        def broken(profile_id):
            raise StorageError("dynamodb unavailable")

        monkeypatch.setattr(services.profile_store, "get", broken)
        outcome = await services.coordinator.trigger_fill("ctx", "p1", _form())
        assert outcome.error_code == FillErrorCode.STORAGE_UNAVAILABLE

    async def test_engine_failure_commits_nothing(self):
        services = _setup(engine=RecordingEngine(fail=True))
        outcome = await services.coordinator.trigger_fill("ctx", "p1", _form())
        assert outcome.error_code == FillErrorCode.UNKNOWN
        assert outcome.state == FillState.ERROR
        assert _cached_keys(services) == []

    async def test_error_session_recovers_on_next_trigger(self):
        services = _setup()
        await services.coordinator.trigger_fill("ctx", "p1", None)
        outcome = await services.coordinator.trigger_fill("ctx", "p1", _form())
        assert outcome.success
        assert outcome.state == FillState.IDLE


class TestReview:
    async def test_waits_for_confirmation(self):
        engine = RecordingEngine()
        services = _setup(engine=engine, confirm=True)
        outcome = await services.coordinator.trigger_fill("ctx", "p1", _form())

        assert outcome.success
        assert outcome.state == FillState.AWAITING_REVIEW
        assert engine.calls == []
        assert _cached_keys(services) == []

        confirmed = await services.coordinator.confirm_fill("ctx", {"humanize": True})
        assert confirmed.state == FillState.IDLE
        assert engine.calls[0][2] == {"humanize": True}
        assert len(_cached_keys(services)) == 1

    async def test_confirm_without_pending_fill(self):
        services = _setup()
        outcome = await services.coordinator.confirm_fill("ctx")
        assert not outcome.success
        assert outcome.error_code == FillErrorCode.FORM_NOT_FOUND

    async def test_cancel_during_review_discards(self):
        services = _setup(confirm=True)
        await services.coordinator.trigger_fill("ctx", "p1", _form())

        assert not services.coordinator.cancel("ctx")
        assert services.coordinator.session_state("ctx") == FillState.IDLE
        assert (await services.coordinator.confirm_fill("ctx")).error_code == FillErrorCode.FORM_NOT_FOUND
        assert _cached_keys(services) == []

    async def test_cancel_while_executing_confirmed_fill(self):
        engine = BlockingEngine()
        services = _setup(engine=engine, confirm=True)
        coordinator = services.coordinator
        await coordinator.trigger_fill("ctx", "p1", _form())

        confirming = asyncio.create_task(coordinator.confirm_fill("ctx"))
        await _until(lambda: engine.started)
        assert coordinator.cancel("ctx")
        outcome = await confirming

        assert outcome.error_code == FillErrorCode.CANCELLED
        assert coordinator.session_state("ctx") == FillState.IDLE
        assert _cached_keys(services) == []


class TestConcurrency:
    async def test_new_trigger_takes_over(self):
        provider = GatedProvider(GENERATED)
        services = _setup(provider)
        coordinator = services.coordinator

        first = asyncio.create_task(coordinator.trigger_fill("ctx", "p1", _form()))
        await _until(lambda: provider.waiting == 1)
        second = asyncio.create_task(coordinator.trigger_fill("ctx", "p1", _form()))
        await _until(lambda: provider.waiting == 2)
        provider.gate.set()

        first_outcome, second_outcome = await asyncio.gather(first, second)
        assert first_outcome.error_code == FillErrorCode.CANCELLED
        assert second_outcome.success
        assert {m.field_id for m in second_outcome.response.mappings} == {"email", "color"}
        assert len(provider.chat_calls) == 1
        assert len(_cached_keys(services)) == 1

    async def test_overlapping_triggers_leave_only_the_last(self):
        provider = GatedProvider(GENERATED)
        services = _setup(provider)
        coordinator = services.coordinator
        form = _form()

        first = asyncio.create_task(coordinator.trigger_fill("ctx", "p1", form))
        await _until(lambda: provider.waiting == 1)
        second = asyncio.create_task(coordinator.trigger_fill("ctx", "p1", form))
        third = asyncio.create_task(coordinator.trigger_fill("ctx", "p1", form))
        await _until(lambda: first.done() and second.done())
        provider.gate.set()

        outcome = await third
        assert [first.result().error_code, second.result().error_code] == [
            FillErrorCode.CANCELLED, FillErrorCode.CANCELLED,
        ]
        assert outcome.success
        assert outcome.state == FillState.IDLE
        assert len(provider.chat_calls) == 1
        assert len(_cached_keys(services)) == 1

    async def test_cancel_leaves_no_cache_or_edits(self):
        provider = GatedProvider(GENERATED)
        services = _setup(provider)
        coordinator = services.coordinator
        form = _form()

        task = asyncio.create_task(coordinator.trigger_fill("ctx", "p1", form))
        await _until(lambda: provider.waiting == 1)
        assert coordinator.report_edit("p1", form, make_mapping(form.fields[1], "red", 0.5), "teal")

        assert coordinator.cancel("ctx")
        outcome = await task
        provider.gate.set()

        assert outcome.error_code == FillErrorCode.CANCELLED
        assert coordinator.session_state("ctx") == FillState.IDLE
        assert _cached_keys(services) == []
        assert services.learning.pending_edit_count("p1") == 0

    async def test_contexts_are_independent(self):
        services = _setup()
        await services.coordinator.trigger_fill("a", "p1", None)
        outcome = await services.coordinator.trigger_fill("b", "p1", _form())
        assert outcome.success
        assert services.coordinator.session_state("a") == FillState.ERROR

    def test_cancel_unknown_context(self):
        assert not _setup().coordinator.cancel("nobody")


class TestLearning:
    async def test_commit_invalidates_profile_cache(self):
        services = _setup()
        form = _form()
        outcome = await services.coordinator.trigger_fill("ctx", "p1", form)
        generated = next(m for m in outcome.response.mappings if m.field_id == "color")
        assert len(_cached_keys(services)) == 1

        assert services.coordinator.report_edit("p1", form, generated, "navy")
        example = await services.coordinator.commit_edits("p1", "ctx")

        assert example.field_mappings[0].value == "navy"
        assert _cached_keys(services) == []
        assert services.coordinator.session_state("ctx") == FillState.IDLE
        assert len(services.profiles.require("p1").learned_examples) == 1

    async def test_commit_without_edits_keeps_cache(self):
        services = _setup()
        await services.coordinator.trigger_fill("ctx", "p1", _form())
        assert await services.coordinator.commit_edits("p1") is None
        assert len(_cached_keys(services)) == 1

    def test_cancel_edits(self):
        services = _setup()
        form = _form()
        services.coordinator.report_edit("p1", form, make_mapping(form.fields[1], "red", 0.5), "teal")
        assert services.coordinator.cancel_edits("p1") == 1


class TestIngestion:
    async def test_knowledge_base_updates_profile(self):
        services = _setup()
        count = await services.coordinator.ingest_knowledge_base("p1", "Likes teal. Lives in Oslo.", chunk_size=20)
        assert count == 2
        profile = services.profiles.require("p1")
        assert profile.static_context.knowledge_base_chunks == 2
        assert profile.static_context.knowledge_base == "Likes teal. Lives in Oslo."

    async def test_document(self):
        services = _setup()
        profile = services.profiles.require("p1")
        profile.static_context.documents.append(ContextDocument(id="cv", name="CV", content="Worked at Acme."))
        services.profiles.save(profile)
        assert await services.coordinator.ingest_document("p1", "cv") == 1

    async def test_unknown_document(self):
        services = _setup()
        with pytest.raises(DocumentNotFoundError):
            await services.coordinator.ingest_document("p1", "missing")


class TestStatus:
    async def test_reports_models_and_sessions(self):
        services = _setup()
        await services.coordinator.trigger_fill("ctx", "p1", _form())
        status = services.coordinator.status()
        assert status["llm_available"]
        assert status["chat_model"] == "mock-chat"
        assert status["sessions"] == {"ctx": "IDLE"}
        assert status["cache"]["misses"] == 1

    async def test_idle_sessions_of_other_contexts_are_dropped(self):
        services = _setup()
        await services.coordinator.trigger_fill("a", "p1", _form())
        await services.coordinator.trigger_fill("b", "p1", _form())
        assert services.coordinator.status()["sessions"] == {"b": "IDLE"}
