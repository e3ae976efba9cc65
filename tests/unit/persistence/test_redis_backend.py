"""Unit tests for RedisCacheBackend using fakeredis."""

from __future__ import annotations

import json
from unittest.mock import MagicMock, patch

import fakeredis
import pytest
import redis

from fieldwise.core.exceptions import CacheError
from fieldwise.persistence.redis_backend import RedisCacheBackend


@pytest.fixture
def fake_server():
    return fakeredis.FakeServer()


@pytest.fixture
def backend(fake_server):
    with patch("redis.Redis", return_value=fakeredis.FakeRedis(server=fake_server, decode_responses=True)):
        return RedisCacheBackend(host="localhost", port=6379, db=0)


@pytest.fixture
def broken():
    b = RedisCacheBackend.__new__(RedisCacheBackend)
    b._client = MagicMock()
    for method in ("get", "setex", "delete", "scan_iter", "ping"):
        getattr(b._client, method).side_effect = redis.ConnectionError("connection refused")
    return b


class TestGet:
    def test_returns_none_on_miss(self, backend):
        assert backend.get("nonexistent") is None

    def test_returns_stored_value(self, backend):
        data = {"profile_id": "p1", "mappings": []}
        backend.setex("key1", 300, json.dumps(data))
        assert backend.get("key1") == json.dumps(data)


class TestSetex:
    def test_overwrites_existing_value(self, backend):
        backend.setex("k", 60, "old")
        backend.setex("k", 60, "new")
        assert backend.get("k") == "new"

    def test_sets_ttl(self, backend, fake_server):
        backend.setex("k", 60, "v")
        client = fakeredis.FakeRedis(server=fake_server)
        assert 0 < client.ttl("k") <= 60


class TestDelete:
    def test_removes_existing_key(self, backend):
        backend.setex("del_me", 60, "val")
        backend.delete("del_me")
        assert backend.get("del_me") is None

    def test_noop_on_missing_key(self, backend):
        backend.delete("never_existed")  # should not raise


class TestKeys:
    def test_filters_by_prefix(self, backend):
        backend.setex("llm_fill_p1:a", 60, "1")
        backend.setex("llm_fill_p1:b", 60, "2")
        backend.setex("llm_fill_p2:a", 60, "3")
        assert sorted(backend.keys("llm_fill_p1:")) == ["llm_fill_p1:a", "llm_fill_p1:b"]

    def test_ping(self, backend):
        assert backend.ping()


class TestErrorWrapping:
    def test_get_wraps_redis_error(self, broken):
        with pytest.raises(CacheError):
            broken.get("k")

    def test_setex_wraps_redis_error(self, broken):
        with pytest.raises(CacheError):
            broken.setex("k", 60, "v")

    def test_delete_wraps_redis_error(self, broken):
        with pytest.raises(CacheError):
            broken.delete("k")

    def test_keys_wraps_redis_error(self, broken):
        with pytest.raises(CacheError):
            broken.keys("llm_fill_")

    def test_ping_reports_false(self, broken):
        assert not broken.ping()
