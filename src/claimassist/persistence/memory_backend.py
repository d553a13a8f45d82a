"""In-memory backends for unit tests: dict-backed fakes."""

from __future__ import annotations

from claimassist.models.claim import ClaimSnapshot
from claimassist.models.escalation import EscalationStatus


class MemoryEscalationStore:
    """Dict-backed IEscalationStore for unit tests.

    Records are deep-copied on the way in and out so callers cannot mutate
    stored state by accident.
    """

    def __init__(self) -> None:
        self._escalations: dict[str, EscalationStatus] = {}
        self._claims: dict[str, ClaimSnapshot] = {}

    def get_escalation(self, claim_id: str) -> EscalationStatus | None:
        status = self._escalations.get(claim_id)
        return status.model_copy(deep=True) if status else None

    def save_escalation(self, status: EscalationStatus) -> None:
        self._escalations[status.claim_id] = status.model_copy(deep=True)

    def list_open_escalations(self) -> list[EscalationStatus]:
        return [s.model_copy(deep=True) for s in self._escalations.values() if s.is_open]

    def get_claim(self, claim_id: str) -> ClaimSnapshot | None:
        claim = self._claims.get(claim_id)
        return claim.model_copy(deep=True) if claim else None

    def save_claim(self, claim: ClaimSnapshot) -> None:
        self._claims[claim.claim_id] = claim.model_copy(deep=True)


class MemoryCacheBackend:
    """Dict-backed ICacheBackend for unit tests."""

    def __init__(self) -> None:
        self._store: dict[str, str] = {}
        self.ttls: dict[str, int] = {}

    def get(self, key: str) -> str | None:
        return self._store.get(key)

    def set(self, key: str, value: str, ttl: int) -> None:
        self._store[key] = value
        self.ttls[key] = ttl

    def delete(self, key: str) -> None:
        self._store.pop(key, None)
        self.ttls.pop(key, None)
