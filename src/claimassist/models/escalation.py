"""Escalation ladder, escalation record and decision models."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Optional

from pydantic import BaseModel, Field


class Urgency(StrEnum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class EscalationState(StrEnum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    ESCALATED = "escalated"
    RESOLVED = "resolved"


class ConfirmationAction(StrEnum):
    CONFIRM = "confirm"
    ESCALATE = "escalate"
    RESOLVE = "resolve"


# States in which an agent still owes a response.
OPEN_STATES = frozenset({EscalationState.PENDING, EscalationState.ESCALATED})


class EscalationLevel(BaseModel):
    """One rung of the escalation ladder."""

    level: int
    name: str
    description: str = ""
    max_response_time: float  # hours
    confirmation_required: bool


class HistoryEntry(BaseModel):
    """Append-only audit record of a level change."""

    level: int
    timestamp: datetime
    reason: str
    agent: Optional[str] = None


class EscalationStatus(BaseModel):
    """Persisted escalation record for a claim."""

    claim_id: str
    current_level: int
    status: EscalationState = EscalationState.PENDING
    assigned_agent: Optional[str] = None
    estimated_response_time: float = 0
    confirmation_deadline: Optional[datetime] = None
    escalation_history: list[HistoryEntry] = Field(default_factory=list)
    timeout_job_id: Optional[str] = None
    # Ids of the most recent queue jobs whose state change is already saved.
    applied_jobs: list[str] = Field(default_factory=list)
    updated_at: Optional[datetime] = None

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_STATES


class EscalationRequest(BaseModel):
    """Request to open an escalation for a claim."""

    claim_id: str
    user_id: str = "system"
    reason: str
    urgency: Optional[Urgency] = None
    additional_info: Optional[str] = None


class EscalationDecision(BaseModel):
    """Outcome of the automated escalation rule cascade."""

    should_escalate: bool
    reason: str
    level: int
