"""Pluggable persistence backends behind Protocol interfaces."""

from __future__ import annotations

from claimassist.core.config import AppSettings
from claimassist.persistence.dynamodb_backend import DynamoDBEscalationStore
from claimassist.persistence.redis_backend import RedisCacheBackend


def create_escalation_store(settings: AppSettings | None = None) -> DynamoDBEscalationStore:
    if settings is None:
        settings = AppSettings()
    return DynamoDBEscalationStore(
        table_name=settings.dynamodb.table_name,
        table_suffix=settings.dynamodb.table_suffix,
        region=settings.dynamodb.region,
        endpoint_url=settings.dynamodb.endpoint_url,
    )


def create_cache(settings: AppSettings | None = None) -> RedisCacheBackend:
    if settings is None:
        settings = AppSettings()
    return RedisCacheBackend(
        host=settings.redis.host,
        port=settings.redis.port,
        db=settings.redis.db,
        password=settings.redis.password,
    )


def create_persistence(settings: AppSettings | None = None):
    """Create wired-up persistence backends from application settings.

    Returns:
        Tuple of (escalation_store, cache).
    """
    if settings is None:
        settings = AppSettings()
    return create_escalation_store(settings), create_cache(settings)
