"""Shared test doubles: re-export memory backends, plus a settable clock."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from claimassist.notifications.providers import MockMessagingProvider
from claimassist.persistence.memory_backend import MemoryCacheBackend, MemoryEscalationStore


class FakeClock:
    """Manually advanced clock usable as both a datetime and an epoch clock."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2025, 1, 15, 10, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def epoch(self) -> float:
        return self.now.timestamp()

    def advance(self, **delta: float) -> None:
        self.now += timedelta(**delta)


__all__ = ["FakeClock", "MemoryCacheBackend", "MemoryEscalationStore", "MockMessagingProvider"]
