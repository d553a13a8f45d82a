"""ConversationContextStore: per-user chatbot context with TTL eviction.

Context lives in the cache backend (Redis in production) under
``conversation:{user_id}`` and expires after ``ttl_seconds`` of inactivity;
every write refreshes the TTL.
"""

from __future__ import annotations

import json
from typing import Any

from claimassist.core.protocols import ICacheBackend


class ConversationContextStore:
    """Keyed, expiring store for chatbot conversation state."""

    KEY_PREFIX = "conversation"

    def __init__(self, cache: ICacheBackend, ttl_seconds: int = 4 * 60 * 60) -> None:
        self._cache = cache
        self._ttl = ttl_seconds

    def _key(self, user_id: str) -> str:
        return f"{self.KEY_PREFIX}:{user_id}"

    def get(self, user_id: str) -> dict[str, Any]:
        raw = self._cache.get(self._key(user_id))
        return json.loads(raw) if raw else {}

    def set(self, user_id: str, context: dict[str, Any]) -> None:
        self._cache.set(self._key(user_id), json.dumps(context, default=str), self._ttl)

    def update(self, user_id: str, **changes: Any) -> dict[str, Any]:
        context = self.get(user_id)
        context.update(changes)
        self.set(user_id, context)
        return context

    def clear(self, user_id: str) -> None:
        self._cache.delete(self._key(user_id))
