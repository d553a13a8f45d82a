"""Customer-facing escalation endpoints: the three-step agent request flow."""

from __future__ import annotations

from datetime import datetime, time, timedelta, timezone
from typing import Any, Optional
from zoneinfo import ZoneInfo

import structlog
from fastapi import APIRouter, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel

from claimassist.models.escalation import Urgency
from claimassist.models.jobs import EscalationJobData, EscalationJobType
from claimassist.models.notifications import NotificationPriority

logger = structlog.get_logger(__name__)

router = APIRouter(tags=["escalation"])

DEFAULT_TRANSFER_REASON = "User requested assistance"
CONFIRMATION_STEPS: dict[int, tuple[str, str]] = {
    1: (
        "I understand you need help. Let me try to assist you first with AI support.",
        "ai_assistance",
    ),
    2: (
        "If AI assistance wasn't helpful, I can connect you to a human agent. "
        "This may take 5-7 minutes. Would you like to proceed?",
        "agent_confirmation",
    ),
    3: (
        "Connecting you to a human agent now. Please note that you'll lose the current AI context.",
        "agent_transfer",
    ),
}


class RequestAgentBody(BaseModel):
    claim_id: str
    user_id: str = "anonymous"
    reason: Optional[str] = None
    confirmation_level: int = 1


@router.post("/request-agent")
async def request_agent(request: Request, body: RequestAgentBody) -> dict[str, Any]:
    """Walk the user through AI help, confirmation, then transfer to an agent."""
    if body.confirmation_level not in CONFIRMATION_STEPS:
        raise HTTPException(status_code=400, detail="Confirmation level must be 1, 2, or 3")

    manager = request.app.state.manager
    if await run_in_threadpool(manager.escalations.service.get_claim, body.claim_id) is None:
        raise HTTPException(status_code=404, detail=f"Claim {body.claim_id} not found")

    contexts = request.app.state.context_store
    context = await run_in_threadpool(contexts.get, body.user_id)
    escalation = context.get("escalation") or {}
    if escalation.get("claim_id") != body.claim_id:
        escalation = {
            "claim_id": body.claim_id,
            "requested_at": datetime.now(timezone.utc).isoformat(),
            "transfer_reason": body.reason or DEFAULT_TRANSFER_REASON,
        }
    escalation["confirmation_level"] = body.confirmation_level

    message, next_action = CONFIRMATION_STEPS[body.confirmation_level]
    job_id = None
    if body.confirmation_level == 3:
        job = await manager.add_escalation_job(EscalationJobData(
            type=EscalationJobType.CREATE_ESCALATION,
            claim_id=body.claim_id,
            data={
                "reason": escalation["transfer_reason"],
                "urgency": Urgency.CRITICAL.value,
                "user_id": body.user_id,
            },
            priority=NotificationPriority.URGENT,
        ))
        job_id = job.id
        escalation["confirmed_at"] = datetime.now(timezone.utc).isoformat()

    await run_in_threadpool(contexts.update, body.user_id, escalation=escalation)
    logger.info(
        "agent_request_step",
        claim_id=body.claim_id,
        user_id=body.user_id,
        confirmation_level=body.confirmation_level,
    )
    return {
        "claim_id": body.claim_id,
        "confirmation_level": body.confirmation_level,
        "message": message,
        "next_action": next_action,
        "escalation_status": escalation,
        "estimated_wait_time": "5-7 minutes" if body.confirmation_level == 3 else None,
        "job_id": job_id,
    }


def agent_availability_at(now: datetime, start: int, end: int, tz: str) -> dict[str, Any]:
    """Availability during business hours ``start``..``end`` (inclusive) in ``tz``."""
    zone = ZoneInfo(tz)
    local = now.astimezone(zone)
    available = start <= local.hour <= end
    if available:
        next_slot = "Now"
    else:
        day = local.date() if local.hour < start else local.date() + timedelta(days=1)
        next_slot = datetime.combine(day, time(start), tzinfo=zone).isoformat()
    return {
        "available": available,
        "estimated_wait_time": "5-7 minutes" if available else "2-4 hours",
        "next_available_slot": next_slot,
        "business_hours": f"{start:02d}:00 - {end:02d}:00 {tz}",
    }


@router.get("/agent-availability")
async def agent_availability(request: Request) -> dict[str, Any]:
    config = request.app.state.manager.settings.escalation
    return agent_availability_at(
        datetime.now(timezone.utc),
        config.business_hours_start,
        config.business_hours_end,
        config.business_timezone,
    )
