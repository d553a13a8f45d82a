"""Tests for the settings-driven persistence factories."""

from __future__ import annotations

from claimassist.core.config import AppSettings, DynamoDBConfig, RedisConfig
from claimassist.persistence import create_persistence
from claimassist.persistence.dynamodb_backend import DynamoDBEscalationStore
from claimassist.persistence.redis_backend import RedisCacheBackend


class TestCreatePersistence:
    def test_builds_store_and_cache_from_settings(self):
        settings = AppSettings(
            dynamodb=DynamoDBConfig(table_suffix="-dev", region="eu-west-1"),
            redis=RedisConfig(host="cache.internal", port=6380),
        )

        store, cache = create_persistence(settings)

        assert isinstance(store, DynamoDBEscalationStore)
        assert store._table_name == "claimassist-claims-dev"
        assert isinstance(cache, RedisCacheBackend)
        assert (cache._host, cache._port) == ("cache.internal", 6380)
