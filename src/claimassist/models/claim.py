"""Claim attributes consumed by the escalation engine."""

from __future__ import annotations

from enum import StrEnum
from typing import Any, Optional

from pydantic import BaseModel, Field


class ClaimType(StrEnum):
    MEDICAL = "medical"
    ACCIDENT = "accident"
    PHARMACY = "pharmacy"


class ClaimDocument(BaseModel):
    """An OCR-processed document attached to a claim."""

    document_id: str = ""
    type: str = "other"  # bill, prescription, accident_photo, other
    confidence: float = 0.0


class ClaimSnapshot(BaseModel):
    """Read-only view of a claim as stored in the document store."""

    claim_id: str
    type: ClaimType = ClaimType.MEDICAL
    estimated_amount: Optional[float] = None
    documents: list[ClaimDocument] = Field(default_factory=list)
    fraud_score: Optional[float] = None
    voice_confidence: Optional[float] = None
    escalation_history: list[dict[str, Any]] = Field(default_factory=list)
    customer_contact: str = ""
