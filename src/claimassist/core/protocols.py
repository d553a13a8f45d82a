"""Protocol interfaces for all ClaimAssist abstractions.

All inter-layer communication uses these Protocols: structural typing,
no inheritance required, easy to test with isinstance().
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from claimassist.models.claim import ClaimSnapshot
from claimassist.models.escalation import EscalationStatus
from claimassist.models.notifications import NotificationChannel, NotificationResult


# ---------------------------------------------------------------------------
# Persistence: Escalation / Claim Store
# ---------------------------------------------------------------------------

@runtime_checkable
class IEscalationStore(Protocol):
    """Document store holding claims and their escalation records."""

    def get_escalation(self, claim_id: str) -> EscalationStatus | None: ...

    def save_escalation(self, status: EscalationStatus) -> None: ...

    def list_open_escalations(self) -> list[EscalationStatus]: ...

    def get_claim(self, claim_id: str) -> ClaimSnapshot | None: ...

    def save_claim(self, claim: ClaimSnapshot) -> None: ...


# ---------------------------------------------------------------------------
# Persistence: Cache Backend
# ---------------------------------------------------------------------------

@runtime_checkable
class ICacheBackend(Protocol):
    """Redis-compatible cache interface."""

    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str, ttl: int) -> None: ...

    def delete(self, key: str) -> None: ...


# ---------------------------------------------------------------------------
# Messaging Provider
# ---------------------------------------------------------------------------

@runtime_checkable
class IMessagingProvider(Protocol):
    """WhatsApp/SMS delivery boundary (Twilio in production)."""

    async def send(
        self, recipient: str, body: str, channel: NotificationChannel
    ) -> NotificationResult: ...


# ---------------------------------------------------------------------------
# Agent routing
# ---------------------------------------------------------------------------

@runtime_checkable
class IAgentAssigner(Protocol):
    """Chooses an agent from a level's pool."""

    def assign(self, level: int, pool: list[str]) -> str: ...


@runtime_checkable
class IAgentDirectory(Protocol):
    """Resolves agent ids to contact addresses."""

    def contact_for(self, agent_id: str) -> str: ...


# ---------------------------------------------------------------------------
# Job Queue
# ---------------------------------------------------------------------------

@runtime_checkable
class IJobQueue(Protocol):
    """Durable priority queue with delayed jobs and retries."""

    async def add(
        self,
        name: str,
        data: dict[str, Any],
        *,
        delay: float | None = None,
        priority: int | None = None,
        job_id: str | None = None,
        attempts: int | None = None,
    ) -> Any: ...

    async def remove(self, job_id: str) -> bool: ...

    async def get_stats(self) -> Any: ...
