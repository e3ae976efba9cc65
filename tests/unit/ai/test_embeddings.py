"""Tests for EmbeddingGateway batching and caching."""

from __future__ import annotations

import pytest

from fieldwise.ai.embeddings import EmbeddingGateway
from fieldwise.core.config import EmbeddingConfig
from fieldwise.core.exceptions import NetworkError
from tests.fakes import MockModelProvider


@pytest.fixture
def provider():
    return MockModelProvider()


class TestEmbed:
    async def test_second_call_is_cached(self, provider):
        gateway = EmbeddingGateway(provider)
        first = await gateway.embed("hello world")
        second = await gateway.embed("hello world")
        assert not first.cached
        assert second.cached
        assert second.vector == first.vector
        assert len(provider.embedding_calls) == 1

    async def test_use_cache_false_always_calls(self, provider):
        gateway = EmbeddingGateway(provider)
        await gateway.embed("hello", use_cache=False)
        await gateway.embed("hello", use_cache=False)
        assert len(provider.embedding_calls) == 2
        assert gateway.cache_stats()["size"] == 0

    async def test_failure_is_not_cached(self, provider):
        gateway = EmbeddingGateway(provider)
        provider.fail_with(NetworkError("down"))
        with pytest.raises(NetworkError):
            await gateway.embed("hello")
        assert gateway.cache_stats()["size"] == 0

        provider.fail_with(None)
        result = await gateway.embed("hello")
        assert not result.cached


class TestEmbedBatch:
    async def test_batches_and_preserves_order(self, provider):
        gateway = EmbeddingGateway(provider, EmbeddingConfig(batch_size=2))
        texts = ["alpha", "beta", "gamma", "alpha"]
        result = await gateway.embed_batch(texts)

        assert provider.embedding_calls == [["alpha", "beta"], ["gamma"]]
        assert result.vectors == [provider.embed_text(t) for t in texts]
        assert result.vectors[0] == result.vectors[3]

    async def test_counts_cached_texts(self, provider):
        gateway = EmbeddingGateway(provider)
        await gateway.embed("beta")
        result = await gateway.embed_batch(["alpha", "beta"])
        assert result.cached_count == 1
        assert provider.embedding_calls[-1] == ["alpha"]

    async def test_empty_batch_makes_no_call(self, provider):
        result = await EmbeddingGateway(provider).embed_batch([])
        assert result.vectors == []
        assert provider.embedding_calls == []


class TestLRU:
    async def test_least_recently_used_is_evicted(self, provider):
        gateway = EmbeddingGateway(provider, EmbeddingConfig(cache_size=2))
        await gateway.embed("a")
        await gateway.embed("b")
        await gateway.embed("a")  # touch
        await gateway.embed("c")

        assert (await gateway.embed("a")).cached
        assert not (await gateway.embed("b")).cached

    async def test_clear_cache(self, provider):
        gateway = EmbeddingGateway(provider)
        await gateway.embed("a")
        gateway.clear_cache()
        assert gateway.cache_stats() == {"size": 0, "max_size": 500}
