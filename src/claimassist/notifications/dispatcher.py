"""NotificationDispatcher: formats notifications and routes them by channel."""

from __future__ import annotations

import re
from typing import Iterable

import structlog

from claimassist.core.protocols import IMessagingProvider
from claimassist.models.notifications import (
    NotificationChannel,
    NotificationPayload,
    NotificationPriority,
    NotificationResult,
)
from claimassist.notifications import templates

logger = structlog.get_logger(__name__)

E164_PATTERN = re.compile(r"^\+[1-9]\d{1,14}$")

URGENCY_PRIORITY = {
    "critical": NotificationPriority.URGENT,
    "high": NotificationPriority.HIGH,
    "medium": NotificationPriority.MEDIUM,
    "low": NotificationPriority.LOW,
}


def validate_phone_number(phone: str) -> bool:
    return bool(E164_PATTERN.match(phone))


def format_phone_number(phone: str, country_code: str = "+1") -> str:
    """Normalise a loosely written number to E.164."""
    digits = re.sub(r"\D", "", phone)
    country_digits = country_code.lstrip("+")
    if digits.startswith(country_digits):
        return f"+{digits}"
    return f"{country_code}{digits}"


class NotificationDispatcher:
    """Sends customer and agent messages through a messaging provider."""

    def __init__(self, provider: IMessagingProvider) -> None:
        self._provider = provider

    async def send_notification(self, payload: NotificationPayload) -> NotificationResult:
        if payload.channel == NotificationChannel.EMAIL:
            logger.warning("email_not_supported", recipient=payload.recipient)
            return NotificationResult(success=False, error="Email notifications not implemented")

        result = await self._provider.send(payload.recipient, payload.message, payload.channel)
        logger.info(
            "notification_dispatched",
            channel=payload.channel.value,
            priority=payload.priority.value,
            success=result.success,
            message_id=result.message_id,
            error=result.error,
        )
        return result

    async def send_claim_confirmation(
        self, phone: str, claim_id: str, claim_type: str, estimated_amount: float | None = None
    ) -> NotificationResult:
        return await self.send_notification(NotificationPayload(
            recipient=phone,
            message=templates.claim_confirmation(claim_id, claim_type, estimated_amount),
            template_data={"claim_id": claim_id, "claim_type": claim_type},
            priority=NotificationPriority.MEDIUM,
        ))

    async def send_escalation_notification(
        self, agent_contact: str, claim_id: str, escalation_level: int, urgency: str, reason: str
    ) -> NotificationResult:
        return await self.send_notification(NotificationPayload(
            recipient=agent_contact,
            message=templates.escalation_alert(claim_id, escalation_level, urgency, reason),
            template_data={"claim_id": claim_id, "escalation_level": escalation_level},
            priority=URGENCY_PRIORITY.get(urgency, NotificationPriority.HIGH),
        ))

    async def send_fraud_alert(
        self, agent_contact: str, claim_id: str, fraud_score: float, risk_factors: Iterable[str]
    ) -> NotificationResult:
        return await self.send_notification(NotificationPayload(
            recipient=agent_contact,
            message=templates.fraud_alert(claim_id, fraud_score, risk_factors),
            template_data={"claim_id": claim_id, "fraud_score": fraud_score},
            priority=NotificationPriority.URGENT,
        ))

    async def send_status_update(
        self, phone: str, claim_id: str, status: str, additional_info: str | None = None
    ) -> NotificationResult:
        return await self.send_notification(NotificationPayload(
            recipient=phone,
            message=templates.status_update(claim_id, status, additional_info),
            template_data={"claim_id": claim_id, "status": status},
        ))

    async def send_payout_notification(
        self, phone: str, claim_id: str, payout_amount: float, payment_method: str
    ) -> NotificationResult:
        return await self.send_notification(NotificationPayload(
            recipient=phone,
            message=templates.payout_notification(claim_id, payout_amount, payment_method),
            template_data={"claim_id": claim_id, "payout_amount": payout_amount},
            priority=NotificationPriority.HIGH,
        ))
