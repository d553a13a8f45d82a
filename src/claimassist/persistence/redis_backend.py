"""Synchronous Redis cache for conversation context.

Values are JSON strings written with an expiry; every write replaces the
expiry. Client errors surface as CacheError.
"""

from __future__ import annotations

import redis

from claimassist.core.exceptions import CacheError


class RedisCacheBackend:
    """ICacheBackend over a blocking redis-py client."""

    def __init__(
        self,
        host: str = "localhost",
        port: int = 6379,
        db: int = 0,
        password: str | None = None,
        *,
        client: redis.Redis | None = None,
    ) -> None:
        self._host = host
        self._port = port
        self._db = db
        self._client = client or redis.Redis(
            host=host, port=port, db=db, password=password, decode_responses=True,
        )

    def get(self, key: str) -> str | None:
        try:
            return self._client.get(key)
        except redis.RedisError as exc:
            raise CacheError(f"Cache read failed for {key!r}: {exc}") from exc

    def set(self, key: str, value: str, ttl: int) -> None:
        """Store ``value`` under ``key`` for ``ttl`` seconds."""
        try:
            self._client.set(key, value, ex=ttl)
        except redis.RedisError as exc:
            raise CacheError(f"Cache write failed for {key!r}: {exc}") from exc

    def delete(self, key: str) -> None:
        try:
            self._client.delete(key)
        except redis.RedisError as exc:
            raise CacheError(f"Cache delete failed for {key!r}: {exc}") from exc

    def ping(self) -> bool:
        try:
            return bool(self._client.ping())
        except redis.RedisError as exc:
            raise CacheError(f"Cache ping failed on {self._host}:{self._port}: {exc}") from exc
