"""Shared test doubles: re-export memory backends and the mock provider."""

from __future__ import annotations

from fieldwise.model_providers.mock_provider import MockModelProvider
from fieldwise.persistence.memory_backend import (
    MemoryCacheBackend,
    MemoryProfileStore,
    MemoryVectorStore,
)

__all__ = ["MemoryCacheBackend", "MemoryProfileStore", "MemoryVectorStore", "MockModelProvider"]
