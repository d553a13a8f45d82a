"""Payloads carried by the notification and escalation queues."""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Any, Optional

from pydantic import BaseModel, Field

from claimassist.models.notifications import NotificationPriority, NotificationResult


class NotificationJobType(StrEnum):
    CLAIM_CONFIRMATION = "claim_confirmation"
    ESCALATION_ALERT = "escalation_alert"
    FRAUD_ALERT = "fraud_alert"
    STATUS_UPDATE = "status_update"
    PAYOUT_NOTIFICATION = "payout_notification"


class EscalationJobType(StrEnum):
    CREATE_ESCALATION = "create_escalation"
    CHECK_TIMEOUT = "check_timeout"
    PROCESS_CONFIRMATION = "process_confirmation"
    AUTO_ESCALATE = "auto_escalate"


class NotificationJobData(BaseModel):
    """Work item for the notifications queue."""

    type: NotificationJobType
    recipient: str
    claim_id: str
    data: dict[str, Any] = Field(default_factory=dict)
    priority: NotificationPriority = NotificationPriority.MEDIUM
    retries: Optional[int] = None  # total attempts override
    result: Optional[NotificationResult] = None


class EscalationJobData(BaseModel):
    """Work item for the escalations queue."""

    type: EscalationJobType
    claim_id: str
    data: dict[str, Any] = Field(default_factory=dict)
    priority: Optional[NotificationPriority] = None
    schedule_time: Optional[datetime] = None


class QueueStats(BaseModel):
    """Job counts per queue state."""

    waiting: int = 0
    active: int = 0
    completed: int = 0
    failed: int = 0
    delayed: int = 0
