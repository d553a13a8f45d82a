"""Message templates for customer and agent notifications."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Iterable

URGENCY_EMOJI = {
    "critical": "🚨",
    "high": "⚠️",
    "medium": "📋",
    "low": "ℹ️",
}

STATUS_MESSAGES = {
    "submitted": "Your claim has been submitted and is being reviewed.",
    "processing": "Your claim is currently being processed by our team.",
    "approved": "Great news! Your claim has been approved.",
    "rejected": "Unfortunately, your claim has been declined.",
    "pending_documents": "We need additional documents to process your claim.",
    "escalated": "Your claim has been escalated to a senior agent for review.",
    "paid": "Your claim payment has been processed.",
}


def _stamp(now: datetime | None) -> str:
    return (now or datetime.now(timezone.utc)).strftime("%Y-%m-%d %H:%M:%S UTC")


def _amount(value: float) -> str:
    return f"${value:,.2f}"


def claim_confirmation(
    claim_id: str, claim_type: str, estimated_amount: float | None = None
) -> str:
    amount_line = f"\n💰 Estimated Amount: {_amount(estimated_amount)}" if estimated_amount else ""
    return (
        "✅ Claim Submitted Successfully!\n\n"
        f"📋 Claim ID: {claim_id}\n"
        f"🏥 Type: {claim_type.capitalize()}"
        f"{amount_line}\n\n"
        "We'll review your claim and update you within 24-48 hours. "
        "You can check the status anytime by messaging us your claim ID."
    )


def escalation_alert(
    claim_id: str,
    escalation_level: int,
    urgency: str,
    reason: str,
    now: datetime | None = None,
) -> str:
    emoji = URGENCY_EMOJI.get(urgency, "📋")
    return (
        f"{emoji} ESCALATION ALERT - Level {escalation_level}\n\n"
        f"📋 Claim ID: {claim_id}\n"
        f"⚡ Urgency: {urgency.upper()}\n"
        f"📝 Reason: {reason}\n\n"
        "Please review this claim and confirm receipt.\n"
        f"Time: {_stamp(now)}"
    )


def fraud_alert(
    claim_id: str, fraud_score: float, risk_factors: Iterable[str], now: datetime | None = None
) -> str:
    factors = "\n".join(f"• {factor}" for factor in risk_factors) or "• None reported"
    return (
        "🚨 FRAUD ALERT 🚨\n\n"
        f"📋 Claim ID: {claim_id}\n"
        f"⚠️ Fraud Score: {fraud_score}/100\n\n"
        f"Risk Factors:\n{factors}\n\n"
        "Immediate review required.\n"
        f"Time: {_stamp(now)}"
    )


def status_update(claim_id: str, status: str, additional_info: str | None = None) -> str:
    message = STATUS_MESSAGES.get(status, f"Your claim status has been updated to: {status}")
    extra = f"\n\n{additional_info}" if additional_info else ""
    return f"📋 Claim Update - {claim_id}\n\n{message}{extra}"


def payout_notification(claim_id: str, payout_amount: float, payment_method: str) -> str:
    return (
        "💰 Payment Processed!\n\n"
        f"📋 Claim ID: {claim_id}\n"
        f"💵 Amount: {_amount(payout_amount)}\n"
        f"🏦 Method: {payment_method}\n\n"
        "The payment should reflect in your account within 2-3 business days. "
        "Thank you for choosing our services!"
    )
