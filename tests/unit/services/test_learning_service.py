"""Tests for LearningService correction capture and retention."""

from __future__ import annotations

import pytest

from fieldwise.ai.embeddings import EmbeddingGateway
from fieldwise.ai.rag import RetrievalAssembler
from fieldwise.ai.vector_index import VectorIndex
from fieldwise.core.config import LearningConfig
from fieldwise.models.form import InputType, Provenance, SemanticClass
from fieldwise.models.profile import ContextDocument, LearnedExampleSource
from fieldwise.models.vectors import SourceKind
from fieldwise.services.learning_service import LearningService
from fieldwise.services.profile_service import ProfileService
from tests.fakes import MemoryProfileStore, MemoryVectorStore, MockModelProvider
from tests.fakes.builders import make_field, make_form, make_mapping, make_profile


@pytest.fixture
def index():
    return VectorIndex(MemoryVectorStore())


@pytest.fixture
def profiles(index):
    service = ProfileService(MemoryProfileStore(), index)
    service.save(make_profile("p1"))
    return service


@pytest.fixture
def retrieval(index):
    return RetrievalAssembler(EmbeddingGateway(MockModelProvider()), index)


def _learning(profiles, retrieval, **config):
    return LearningService(profiles, retrieval, LearningConfig(**config))


@pytest.fixture
def learning(profiles, retrieval):
    return _learning(profiles, retrieval)


@pytest.fixture
def city():
    return make_field("city", SemanticClass.CITY)


class TestRecordEdit:
    def test_low_confidence_edit_is_kept(self, learning, city):
        assert learning.record_edit("p1", make_form(city), make_mapping(city, "Olso", 0.7), "Oslo")
        assert learning.pending_edit_count("p1") == 1

    def test_high_confidence_edit_is_ignored(self, learning, city):
        assert not learning.record_edit("p1", make_form(city), make_mapping(city, "Oslo", 0.95), "Bergen")
        assert learning.pending_edit_count("p1") == 0

    def test_credential_edit_is_ignored(self, learning):
        secret = make_field("password", SemanticClass.PASSWORD, InputType.PASSWORD)
        assert not learning.record_edit("p1", make_form(secret), make_mapping(secret, "a", 0.1), "b")

    def test_disabled(self, profiles, retrieval, city):
        learning = _learning(profiles, retrieval, enabled=False)
        assert not learning.record_edit("p1", make_form(city), make_mapping(city, "Olso", 0.5), "Oslo")


class TestCommit:
    async def test_commit_stores_example_and_vector(self, learning, profiles, index, city):
        form = make_form(city)
        learning.record_edit("p1", form, make_mapping(city, "Olso", 0.7), "Osl")
        learning.record_edit("p1", form, make_mapping(city, "Osl", 0.7), "Oslo")

        example = await learning.commit_edits("p1")
        assert example.source == LearnedExampleSource.USER_EDIT
        [mapping] = example.field_mappings
        assert mapping.value == "Oslo"
        assert mapping.confidence == 1.0
        assert mapping.provenance == Provenance.LEARNED

        assert [e.id for e in profiles.require("p1").learned_examples] == [example.id]
        assert index.stats("p1")[SourceKind.LEARNED_EXAMPLE.value] == 1
        assert learning.pending_edit_count("p1") == 0

    async def test_commit_without_edits(self, learning):
        assert await learning.commit_edits("p1") is None

    async def test_cancel_discards(self, learning, profiles, index, city):
        learning.record_edit("p1", make_form(city), make_mapping(city, "Olso", 0.7), "Oslo")
        assert learning.cancel_edits("p1") == 1
        assert await learning.commit_edits("p1") is None
        assert profiles.require("p1").learned_examples == []
        assert index.get_vectors("p1") == []


class TestRetention:
    async def test_oldest_example_is_evicted(self, profiles, retrieval, index, city):
        learning = _learning(profiles, retrieval, max_examples_per_profile=2)
        saved = []
        for value in ("Oslo", "Bergen", "Tromso"):
            saved.append(await learning.add_learned_example("p1", make_form(city), [make_mapping(city, value)]))

        kept = [e.id for e in profiles.require("p1").learned_examples]
        assert kept == [saved[2].id, saved[1].id]
        vector_ids = {e.id for e in index.get_vectors("p1")}
        assert vector_ids == {f"p1_learned_{saved[1].id}", f"p1_learned_{saved[2].id}"}

    async def test_explicit_save_drops_credentials(self, learning, city):
        secret = make_field("password", SemanticClass.PASSWORD, InputType.PASSWORD)
        example = await learning.add_learned_example(
            "p1", make_form(city, secret), [make_mapping(city, "Oslo"), make_mapping(secret, "x")],
        )
        assert [m.field_id for m in example.field_mappings] == ["city"]
        assert example.source == LearnedExampleSource.EXPLICIT_SAVE

    async def test_remove_learned_example(self, learning, profiles, index, city):
        example = await learning.add_learned_example("p1", make_form(city), [make_mapping(city, "Oslo")])
        learning.remove_learned_example("p1", example.id)
        assert profiles.require("p1").learned_examples == []
        assert index.get_vectors("p1") == []


class TestReindex:
    async def test_rebuilds_all_sources(self, learning, profiles, index, city):
        await learning.add_learned_example("p1", make_form(city), [make_mapping(city, "Oslo")])
        profile = profiles.require("p1")
        profile.static_context.documents.append(ContextDocument(id="cv", name="CV", content="Worked at Acme."))
        profile.static_context.knowledge_base = "Prefers email. Lives in Oslo."
        profiles.save(profile)

        index.delete_by_profile("p1")
        assert await learning.reindex_profile("p1") == 3
        assert index.stats("p1") == {
            "learned_example": 1, "document": 1, "knowledge_base": 1, "total": 3,
        }
