"""ClaimAssist exception hierarchy."""

from __future__ import annotations


class ClaimAssistError(Exception):
    """Base exception for all ClaimAssist errors."""


class ConfigurationError(ClaimAssistError):
    """Settings or lookup tables are invalid."""


class EscalationError(ClaimAssistError):
    """Error in the escalation state machine."""


class InvalidLevelError(EscalationError):
    """Escalation level does not exist in the level table."""

    def __init__(self, level: int, message: str | None = None) -> None:
        self.level = level
        super().__init__(message or f"Invalid escalation level: {level}")


class InvalidActionError(EscalationError):
    """Agent action is not one of confirm/escalate/resolve."""

    def __init__(self, action: str) -> None:
        self.action = action
        super().__init__(f"Invalid action: {action!r}")


class InvalidTransitionError(EscalationError):
    """Action is not allowed from the record's current status."""

    def __init__(self, claim_id: str, status: str, action: str) -> None:
        self.claim_id = claim_id
        self.status = status
        self.action = action
        super().__init__(f"Cannot {action} escalation for claim {claim_id} in status {status!r}")


class EscalationNotFoundError(EscalationError):
    """No escalation record stored for the claim."""

    def __init__(self, claim_id: str) -> None:
        self.claim_id = claim_id
        super().__init__(f"No escalation found for claim {claim_id}")


class QueueError(ClaimAssistError):
    """Job queue operation failed (broker unreachable, bad job)."""


class JobNotFoundError(QueueError):
    """Job id is not known to the queue."""


class NotificationError(ClaimAssistError):
    """Outbound notification could not be delivered."""


class StoreError(ClaimAssistError):
    """Document store read or write failed."""


class CacheError(ClaimAssistError):
    """Redis cache operation failed."""
