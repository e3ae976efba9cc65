"""Pluggable persistence backends behind Protocol interfaces."""

from __future__ import annotations

from fieldwise.core.config import AppSettings
from fieldwise.persistence.protocols import ICacheBackend, IProfileStore, IVectorStore
from fieldwise.persistence.dynamodb_backend import DynamoDBProfileStore, DynamoDBVectorStore
from fieldwise.persistence.memory_backend import (
    MemoryCacheBackend,
    MemoryProfileStore,
    MemoryVectorStore,
)
from fieldwise.persistence.redis_backend import RedisCacheBackend


def create_persistence(
    settings: AppSettings | None = None,
) -> tuple[IProfileStore, IVectorStore, ICacheBackend]:
    """Create wired-up persistence backends from application settings.

    Returns:
        Tuple of (profile_store, vector_store, cache).
    """
    if settings is None:
        settings = AppSettings()

    if settings.storage_backend == "memory":
        return MemoryProfileStore(), MemoryVectorStore(), MemoryCacheBackend()

    cache = RedisCacheBackend(
        host=settings.redis.host,
        port=settings.redis.port,
        db=settings.redis.db,
        decode_responses=settings.redis.decode_responses,
    )
    dynamo_kwargs = {
        "table_suffix": settings.dynamodb.table_suffix,
        "region": settings.dynamodb.region,
        "endpoint_url": settings.dynamodb.endpoint_url,
    }
    return (
        DynamoDBProfileStore(**dynamo_kwargs),
        DynamoDBVectorStore(**dynamo_kwargs),
        cache,
    )
