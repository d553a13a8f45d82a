"""EscalationDecisionEngine: the automated first-match-wins rule cascade.

Rules are evaluated in a fixed order and the first match decides the
outcome. The order is part of the contract: a 30000 claim with a fraud score
of 60 escalates to level 2 (high value), not level 3 (fraud), because the
amount rule is checked first.

Any exception while evaluating fails safe toward a level-2 human review.
"""

from __future__ import annotations

from typing import Any

import structlog

from claimassist.models.claim import ClaimType
from claimassist.models.escalation import EscalationDecision

logger = structlog.get_logger(__name__)

HIGH_VALUE_AMOUNT = 25000
HIGH_FRAUD_SCORE = 50
MEDIUM_FRAUD_SCORE = 25
MIN_SUPPORTING_DOCUMENTS = 2
COMPLEX_ACCIDENT_AMOUNT = 10000
REPEATED_ESCALATIONS = 1
LOW_VOICE_CONFIDENCE = 0.6
# Inclusive: a low-confidence call on a claim of exactly 5000 escalates.
SIGNIFICANT_AMOUNT = 5000


class EscalationDecisionEngine:
    """Decides whether a claim leaves automated processing, and at what level."""

    def should_escalate(self, claim: Any, fraud_score: float | None = None) -> EscalationDecision:
        """Evaluate the rule cascade for ``claim``.

        Args:
            claim: A ClaimSnapshot or any object with the same attributes.
            fraud_score: Overrides the score stored on the claim when given.
        """
        try:
            return self._evaluate(claim, fraud_score)
        except Exception:
            logger.exception("escalation_decision_failed", claim_id=getattr(claim, "claim_id", None))
            return EscalationDecision(
                should_escalate=True,
                reason="Error in automated processing",
                level=2,
            )

    def _evaluate(self, claim: Any, fraud_score: float | None) -> EscalationDecision:
        amount = claim.estimated_amount or 0
        score = fraud_score if fraud_score is not None else claim.fraud_score
        score = score or 0
        doc_count = len(claim.documents or [])
        history_count = len(claim.escalation_history or [])
        # 0 or missing confidence means no voice data was captured
        voice_confidence = claim.voice_confidence or 0

        if amount > HIGH_VALUE_AMOUNT:
            return EscalationDecision(
                should_escalate=True,
                reason="High-value claim requires agent review",
                level=2,
            )

        if score >= HIGH_FRAUD_SCORE:
            return EscalationDecision(
                should_escalate=True,
                reason="High fraud risk detected",
                level=3,
            )

        if score >= MEDIUM_FRAUD_SCORE and doc_count < MIN_SUPPORTING_DOCUMENTS:
            return EscalationDecision(
                should_escalate=True,
                reason="Medium fraud risk with insufficient documentation",
                level=2,
            )

        if claim.type == ClaimType.ACCIDENT and amount > COMPLEX_ACCIDENT_AMOUNT:
            return EscalationDecision(
                should_escalate=True,
                reason="Complex accident claim requires investigation",
                level=2,
            )

        if history_count > REPEATED_ESCALATIONS:
            return EscalationDecision(
                should_escalate=True,
                reason="Repeated escalations indicate complex case",
                level=3,
            )

        if voice_confidence and voice_confidence < LOW_VOICE_CONFIDENCE and amount >= SIGNIFICANT_AMOUNT:
            return EscalationDecision(
                should_escalate=True,
                reason="Low voice confidence on significant claim",
                level=2,
            )

        return EscalationDecision(
            should_escalate=False,
            reason="Claim meets automated processing criteria",
            level=1,
        )
