"""Unit tests for RedisCacheBackend using fakeredis."""

from __future__ import annotations

import json
from unittest.mock import MagicMock

import fakeredis
import pytest
import redis

from claimassist.core.exceptions import CacheError
from claimassist.persistence.redis_backend import RedisCacheBackend


@pytest.fixture
def fake_client():
    return fakeredis.FakeRedis(server=fakeredis.FakeServer(), decode_responses=True)


@pytest.fixture
def backend(fake_client):
    return RedisCacheBackend(client=fake_client)


class TestGet:
    def test_returns_none_on_miss(self, backend):
        assert backend.get("conversation:nobody") is None

    def test_returns_stored_context(self, backend):
        data = {"escalation": {"claim_id": "CLM-1", "confirmation_level": 2}}
        backend.set("conversation:u1", json.dumps(data), 300)
        assert json.loads(backend.get("conversation:u1")) == data


class TestSet:
    def test_applies_expiry(self, backend, fake_client):
        backend.set("conversation:u1", "{}", 60)
        assert 0 < fake_client.ttl("conversation:u1") <= 60

    def test_rewrite_refreshes_expiry(self, backend, fake_client):
        backend.set("conversation:u1", "{}", 60)
        backend.set("conversation:u1", '{"step": 3}', 14400)
        assert backend.get("conversation:u1") == '{"step": 3}'
        assert fake_client.ttl("conversation:u1") > 60


class TestDelete:
    def test_removes_key(self, backend):
        backend.set("conversation:u1", "{}", 60)
        backend.delete("conversation:u1")
        assert backend.get("conversation:u1") is None

    def test_missing_key_is_noop(self, backend):
        backend.delete("conversation:never")


class TestPing:
    def test_ping(self, backend):
        assert backend.ping() is True


class TestErrorWrapping:
    @pytest.mark.parametrize("call", [
        lambda b: b.get("k"),
        lambda b: b.set("k", "v", 10),
        lambda b: b.delete("k"),
        lambda b: b.ping(),
    ])
    def test_redis_errors_become_cache_errors(self, call):
        client = MagicMock()
        for method in (client.get, client.set, client.delete, client.ping):
            method.side_effect = redis.ConnectionError("connection refused")
        with pytest.raises(CacheError, match="connection refused"):
            call(RedisCacheBackend(client=client))
