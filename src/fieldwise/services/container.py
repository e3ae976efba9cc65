"""Explicit wiring of every Fieldwise collaborator from AppSettings."""

from __future__ import annotations

from dataclasses import dataclass

from fieldwise.ai.embeddings import EmbeddingGateway
from fieldwise.ai.generation import GenerationClient
from fieldwise.ai.prompt_builder import PromptBuilder
from fieldwise.ai.rag import RetrievalAssembler
from fieldwise.ai.response_validator import ResponseValidator
from fieldwise.ai.vector_index import VectorIndex
from fieldwise.core.config import AppSettings
from fieldwise.core.protocols import (
    ICacheBackend,
    IExecutionEngine,
    IModelProvider,
    IProfileStore,
    IVectorStore,
)
from fieldwise.matching.static_matcher import StaticMatcher
from fieldwise.model_providers.factory import create_provider
from fieldwise.orchestration.coordinator import FillCoordinator
from fieldwise.orchestration.orchestrator import ResolutionOrchestrator
from fieldwise.orchestration.strategies import CachedResolution, GenerativeResolution
from fieldwise.persistence import create_persistence
from fieldwise.services.cache_service import FillCache
from fieldwise.services.learning_service import LearningService
from fieldwise.services.profile_service import ProfileService


@dataclass
class Services:
    settings: AppSettings
    provider: IModelProvider
    profile_store: IProfileStore
    vector_store: IVectorStore
    cache_backend: ICacheBackend
    index: VectorIndex
    embeddings: EmbeddingGateway
    retrieval: RetrievalAssembler
    profiles: ProfileService
    cache: FillCache
    learning: LearningService
    orchestrator: ResolutionOrchestrator
    coordinator: FillCoordinator


def build_services(
    settings: AppSettings | None = None,
    *,
    provider: IModelProvider | None = None,
    stores: tuple[IProfileStore, IVectorStore, ICacheBackend] | None = None,
    engine: IExecutionEngine | None = None,
) -> Services:
    """Construct an isolated set of services; nothing is shared across calls."""
    settings = settings or AppSettings()
    provider = provider or create_provider(settings.llm)
    profile_store, vector_store, cache_backend = stores or create_persistence(settings)

    index = VectorIndex(vector_store)
    embeddings = EmbeddingGateway(provider, settings.embedding)
    retrieval = RetrievalAssembler(embeddings, index, settings.retrieval)
    profiles = ProfileService(profile_store, index)
    cache = FillCache(cache_backend, settings.cache)
    learning = LearningService(profiles, retrieval, settings.learning)
    generation = GenerationClient(provider, settings.llm)

    orchestrator = ResolutionOrchestrator(
        matcher=StaticMatcher(),
        strategies=[
            CachedResolution(cache),
            GenerativeResolution(retrieval, PromptBuilder(settings.prompt), generation, ResponseValidator()),
        ],
        cache=cache,
        llm_available=generation.is_available,
    )
    coordinator = FillCoordinator(
        profiles=profiles,
        orchestrator=orchestrator,
        retrieval=retrieval,
        learning=learning,
        cache=cache,
        provider=provider,
        engine=engine,
    )
    return Services(
        settings=settings,
        provider=provider,
        profile_store=profile_store,
        vector_store=vector_store,
        cache_backend=cache_backend,
        index=index,
        embeddings=embeddings,
        retrieval=retrieval,
        profiles=profiles,
        cache=cache,
        learning=learning,
        orchestrator=orchestrator,
        coordinator=coordinator,
    )
