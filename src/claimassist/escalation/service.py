"""EscalationStateService: creates and advances persisted escalation records.

State machine::

    pending   -> confirmed | escalated | resolved
    escalated -> confirmed | escalated | resolved   (pending at the new level)
    confirmed -> resolved
    resolved  -> (terminal)

``create_escalation`` may always open a new cycle for a claim; the history of
earlier cycles is kept. History entries are only ever appended.

A confirmation deadline is present while a record is open at a level that
requires confirmation. Confirming or resolving clears it, since no timeout
monitoring is needed once an agent has answered.
"""

from __future__ import annotations

from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Any

import structlog

from claimassist.core.exceptions import (
    EscalationNotFoundError,
    InvalidActionError,
    InvalidLevelError,
    InvalidTransitionError,
)
from claimassist.core.protocols import IAgentAssigner, IEscalationStore
from claimassist.core.types import Clock
from claimassist.escalation.assignment import RandomAssigner
from claimassist.escalation.levels import EscalationLevelTable, load_escalation_table
from claimassist.models.claim import ClaimSnapshot
from claimassist.models.escalation import (
    ConfirmationAction,
    EscalationLevel,
    EscalationRequest,
    EscalationState,
    EscalationStatus,
    HistoryEntry,
    Urgency,
)

logger = structlog.get_logger(__name__)

DEFAULT_LEVEL = 2
URGENCY_LEVELS: dict[str, int] = {
    Urgency.CRITICAL: 4,
    Urgency.HIGH: 3,
    Urgency.MEDIUM: 2,
    Urgency.LOW: 2,
}
URGENCY_SCORES: dict[str, int] = {
    Urgency.CRITICAL: 100,
    Urgency.HIGH: 75,
    Urgency.MEDIUM: 50,
    Urgency.LOW: 25,
}
CONFIRMED_RESPONSE_HOURS = 2
MIN_AGENT_ESCALATION_LEVEL = 3
TIMEOUT_REASON = "Escalation timeout - no confirmation received"
APPLIED_JOBS_KEPT = 20

ALLOWED_ACTIONS: dict[EscalationState, frozenset[ConfirmationAction]] = {
    EscalationState.PENDING: frozenset(ConfirmationAction),
    EscalationState.ESCALATED: frozenset(ConfirmationAction),
    EscalationState.CONFIRMED: frozenset({ConfirmationAction.RESOLVE}),
    EscalationState.RESOLVED: frozenset(),
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _applied(jobs: list[str], job_id: str | None) -> list[str]:
    if job_id is None:
        return list(jobs)
    return [*jobs, job_id][-APPLIED_JOBS_KEPT:]


class EscalationStateService:
    """Owns every mutation of EscalationStatus records."""

    def __init__(
        self,
        *,
        store: IEscalationStore,
        table: EscalationLevelTable | None = None,
        assigner: IAgentAssigner | None = None,
        clock: Clock = _utcnow,
        agent_escalation_deadline_hours: float = 1.0,
    ) -> None:
        self._store = store
        self._table = table or load_escalation_table()
        self._assigner = assigner or RandomAssigner()
        self._clock = clock
        self._agent_escalation_hours = agent_escalation_deadline_hours

    @property
    def table(self) -> EscalationLevelTable:
        return self._table

    def now(self) -> datetime:
        return self._clock()

    # ---- creation ----

    def create_escalation(self, request: EscalationRequest, *, job_id: str | None = None) -> EscalationStatus:
        """Open an escalation at the level implied by the request's urgency."""
        target = URGENCY_LEVELS.get(request.urgency, DEFAULT_LEVEL) if request.urgency else DEFAULT_LEVEL
        logger.info("escalation_create_requested", claim_id=request.claim_id, urgency=request.urgency)
        return self._open(request.claim_id, target, request.reason, job_id)

    def trigger_agent_escalation(
        self, claim_id: str, reason: str, urgency: Urgency | str = Urgency.HIGH
    ) -> EscalationStatus:
        """System-initiated escalation straight to senior (high) or specialist (critical)."""
        target = 4 if urgency == Urgency.CRITICAL else 3
        logger.info("agent_escalation_triggered", claim_id=claim_id, urgency=str(urgency))
        return self._open(claim_id, target, reason)

    def _open(self, claim_id: str, target: int, reason: str, job_id: str | None = None) -> EscalationStatus:
        level = self._require_level(target)
        now = self._clock()
        existing = self._store.get_escalation(claim_id)
        history = list(existing.escalation_history) if existing else []

        agent = self._assign(target) if target >= 2 else None
        self._append(history, HistoryEntry(level=target, timestamp=now, reason=reason))

        status = EscalationStatus(
            claim_id=claim_id,
            current_level=target,
            status=EscalationState.PENDING,
            assigned_agent=agent,
            estimated_response_time=level.max_response_time,
            confirmation_deadline=self._deadline(level, now),
            escalation_history=history,
            applied_jobs=_applied(existing.applied_jobs if existing else [], job_id),
            updated_at=now,
        )
        self._store.save_escalation(status)
        logger.info(
            "escalation_created",
            claim_id=claim_id,
            level=target,
            agent=agent,
            deadline=status.confirmation_deadline.isoformat() if status.confirmation_deadline else None,
        )
        return status

    # ---- agent actions ----

    def process_confirmation(
        self,
        claim_id: str,
        agent_id: str,
        action: ConfirmationAction | str,
        notes: str | None = None,
        *,
        job_id: str | None = None,
    ) -> EscalationStatus:
        """Apply an agent's confirm/escalate/resolve action."""
        try:
            action = ConfirmationAction(action)
        except ValueError:
            raise InvalidActionError(str(action)) from None

        status = self._store.get_escalation(claim_id)
        if status is None:
            raise EscalationNotFoundError(claim_id)
        if action not in ALLOWED_ACTIONS[status.status]:
            raise InvalidTransitionError(claim_id, status.status.value, action.value)

        logger.info("confirmation_processing", claim_id=claim_id, agent_id=agent_id, action=action.value)
        now = self._clock()
        history = list(status.escalation_history)

        if action == ConfirmationAction.CONFIRM:
            self._append(history, HistoryEntry(
                level=status.current_level,
                timestamp=now,
                reason=notes or "Agent confirmed claim for processing",
                agent=agent_id,
            ))
            updated = status.model_copy(update={
                "status": EscalationState.CONFIRMED,
                "assigned_agent": agent_id,
                "estimated_response_time": CONFIRMED_RESPONSE_HOURS,
                "confirmation_deadline": None,
            })

        elif action == ConfirmationAction.ESCALATE:
            target = max(MIN_AGENT_ESCALATION_LEVEL, status.current_level + 1)
            if self._table.get(target) is None:
                raise InvalidLevelError(
                    target, f"Claim {claim_id} is already at the highest escalation level"
                )
            self._append(history, HistoryEntry(
                level=status.current_level,
                timestamp=now,
                reason=f"Escalation requested by agent {agent_id}",
                agent=agent_id,
            ))
            self._append(history, HistoryEntry(
                level=target,
                timestamp=now,
                reason=notes or "Escalated for further investigation",
                agent=agent_id,
            ))
            updated = status.model_copy(update={
                "current_level": target,
                "status": EscalationState.ESCALATED,
                "assigned_agent": self._assign(target),
                "estimated_response_time": self._agent_escalation_hours,
                "confirmation_deadline": now + timedelta(hours=self._agent_escalation_hours),
                "timeout_job_id": None,
            })

        else:
            self._append(history, HistoryEntry(
                level=status.current_level,
                timestamp=now,
                reason=notes or "Claim resolved by agent",
                agent=agent_id,
            ))
            updated = status.model_copy(update={
                "status": EscalationState.RESOLVED,
                "assigned_agent": agent_id,
                "estimated_response_time": 0,
                "confirmation_deadline": None,
            })

        updated.escalation_history = history
        updated.applied_jobs = _applied(status.applied_jobs, job_id)
        updated.updated_at = now
        self._store.save_escalation(updated)
        logger.info(
            "confirmation_processed",
            claim_id=claim_id,
            action=action.value,
            level=updated.current_level,
            status=updated.status.value,
        )
        return updated

    # ---- timeout-driven transition ----

    def auto_escalate(
        self,
        claim_id: str,
        from_level: int,
        to_level: int,
        reason: str = TIMEOUT_REASON,
        *,
        job_id: str | None = None,
    ) -> EscalationStatus | None:
        """Move an unanswered escalation up to ``to_level``.

        Returns None when there is nothing to do: the record is gone, an agent
        already answered, or the record is at or above ``to_level`` (a
        redelivered job).
        """
        status = self._store.get_escalation(claim_id)
        if status is None or not status.is_open or status.current_level >= to_level:
            logger.info(
                "auto_escalation_skipped",
                claim_id=claim_id,
                from_level=from_level,
                to_level=to_level,
                current_status=status.status.value if status else None,
            )
            return None

        level = self._require_level(to_level)
        now = self._clock()
        history = list(status.escalation_history)
        self._append(history, HistoryEntry(level=to_level, timestamp=now, reason=reason))

        updated = status.model_copy(update={
            "current_level": to_level,
            "status": EscalationState.ESCALATED,
            "assigned_agent": self._assign(to_level),
            "estimated_response_time": level.max_response_time,
            "confirmation_deadline": self._deadline(level, now),
            "escalation_history": history,
            "timeout_job_id": None,
            "applied_jobs": _applied(status.applied_jobs, job_id),
            "updated_at": now,
        })
        self._store.save_escalation(updated)
        logger.warning(
            "escalation_auto_escalated",
            claim_id=claim_id,
            from_level=from_level,
            to_level=to_level,
            agent=updated.assigned_agent,
        )
        return updated

    def record_timeout_job(self, claim_id: str, job_id: str | None) -> None:
        """Remember which check_timeout job watches the record's deadline."""
        status = self._store.get_escalation(claim_id)
        if status is None:
            raise EscalationNotFoundError(claim_id)
        status.timeout_job_id = job_id
        self._store.save_escalation(status)

    # ---- queries ----

    def get_escalation(self, claim_id: str) -> EscalationStatus:
        status = self._store.get_escalation(claim_id)
        if status is None:
            raise EscalationNotFoundError(claim_id)
        return status

    def applied_status(self, claim_id: str, job_id: str) -> EscalationStatus | None:
        """The stored record if ``job_id`` already changed it, else None."""
        status = self._store.get_escalation(claim_id)
        if status is not None and job_id in status.applied_jobs:
            return status
        return None

    def get_claim(self, claim_id: str) -> ClaimSnapshot | None:
        return self._store.get_claim(claim_id)

    def is_confirmation_expired(self, status: EscalationStatus) -> bool:
        if status.confirmation_deadline is None:
            return False
        return self._clock() > status.confirmation_deadline

    def get_next_escalation_level(self, current_level: int) -> EscalationLevel | None:
        return self._table.next_level(current_level)

    def get_escalation_requirements(self, level: int) -> EscalationLevel | None:
        return self._table.get(level)

    def find_expired_escalations(self) -> list[EscalationStatus]:
        """Open records whose deadline has already passed."""
        return [s for s in self._store.list_open_escalations() if self.is_confirmation_expired(s)]

    def agent_load(self) -> Counter[str]:
        """Open escalations per assigned agent, for load-aware assignment."""
        return Counter(
            s.assigned_agent for s in self._store.list_open_escalations() if s.assigned_agent
        )

    @staticmethod
    def calculate_priority_score(
        urgency: Urgency | str,
        claim_amount: float | None = None,
        wait_time: float | None = None,
    ) -> int:
        """Queue priority hint: urgency base + amount tier + capped wait bonus."""
        score = URGENCY_SCORES.get(urgency, 0)

        if claim_amount:
            if claim_amount > 50000:
                score += 30
            elif claim_amount > 25000:
                score += 20
            elif claim_amount > 10000:
                score += 10

        if wait_time:
            score += min(25, wait_time * 5)

        return int(score)

    def format_escalation_response(self, status: EscalationStatus) -> dict[str, Any]:
        """Agent-facing view of a record with level names resolved."""
        level = self._table.get(status.current_level)

        def level_name(number: int) -> str:
            found = self._table.get(number)
            return found.name if found else "Unknown"

        return {
            "claim_id": status.claim_id,
            "level": status.current_level,
            "level_name": level.name if level else "Unknown",
            "status": status.status.value,
            "estimated_response_time": status.estimated_response_time,
            "assigned_agent": status.assigned_agent,
            "confirmation_deadline": (
                status.confirmation_deadline.isoformat() if status.confirmation_deadline else None
            ),
            "requires_confirmation": bool(level and level.confirmation_required),
            "history": [
                {
                    "level": entry.level,
                    "level_name": level_name(entry.level),
                    "timestamp": entry.timestamp.isoformat(),
                    "reason": entry.reason,
                    "agent": entry.agent,
                }
                for entry in status.escalation_history
            ],
        }

    # ---- helpers ----

    def _require_level(self, level: int) -> EscalationLevel:
        found = self._table.get(level)
        if found is None:
            raise InvalidLevelError(level)
        return found

    def _assign(self, level: int) -> str:
        return self._assigner.assign(level, self._table.pool_for(level))

    @staticmethod
    def _deadline(level: EscalationLevel, now: datetime) -> datetime | None:
        if not level.confirmation_required:
            return None
        return now + timedelta(hours=level.max_response_time)

    @staticmethod
    def _append(history: list[HistoryEntry], entry: HistoryEntry) -> None:
        # Keep timestamps non-decreasing even if the clock steps backwards.
        if history and entry.timestamp < history[-1].timestamp:
            entry = entry.model_copy(update={"timestamp": history[-1].timestamp})
        history.append(entry)
