"""Admin endpoints for queues, workers and escalation records."""

from __future__ import annotations

from typing import Any, Literal, Optional

from fastapi import APIRouter, HTTPException, Request
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel

from claimassist.core.exceptions import InvalidActionError
from claimassist.escalation.decision import EscalationDecisionEngine
from claimassist.models.escalation import ConfirmationAction, Urgency
from claimassist.models.jobs import EscalationJobData, EscalationJobType
from claimassist.models.notifications import NotificationPriority
from claimassist.queue.job import JobState
from claimassist.workers.manager import WorkerManager

router = APIRouter(tags=["admin"])

QueueName = Literal["notifications", "escalations"]
LEVEL_URGENCY = {2: Urgency.MEDIUM, 3: Urgency.HIGH, 4: Urgency.CRITICAL}

_engine = EscalationDecisionEngine()


class TriggerEscalationBody(BaseModel):
    claim_id: str
    reason: str
    urgency: Urgency = Urgency.HIGH
    user_id: str = "admin"


class AgentActionBody(BaseModel):
    agent_id: str
    action: str
    notes: Optional[str] = None
    customer_contact: Optional[str] = None


class EvaluateClaimBody(BaseModel):
    fraud_score: Optional[float] = None
    auto_escalate: bool = True


def _manager(request: Request) -> WorkerManager:
    return request.app.state.manager


def _worker(manager: WorkerManager, queue: str):
    return manager.notifications if queue == "notifications" else manager.escalations


# ---- queues and workers ----

@router.get("/queues")
async def queue_stats(request: Request) -> dict[str, Any]:
    stats = await _manager(request).queue_stats()
    return {name: s.model_dump() for name, s in stats.items()}


@router.post("/queues/clean")
async def clean_queues(request: Request) -> dict[str, Any]:
    return await _manager(request).clean_queues()


@router.get("/workers/status")
async def worker_status(request: Request) -> dict[str, Any]:
    return await _manager(request).get_status()


@router.get("/workers/health")
async def worker_health(request: Request) -> dict[str, Any]:
    return await _manager(request).perform_health_check()


@router.post("/workers/pause")
async def pause_workers(request: Request) -> dict[str, str]:
    await _manager(request).pause_workers()
    return {"status": "paused"}


@router.post("/workers/resume")
async def resume_workers(request: Request) -> dict[str, str]:
    await _manager(request).resume_workers()
    return {"status": "resumed"}


@router.get("/jobs/{queue}")
async def list_jobs(
    request: Request, queue: QueueName, state: JobState = JobState.FAILED, limit: int = 50
) -> list[dict[str, Any]]:
    jobs = await _worker(_manager(request), queue).queue.get_jobs(state, limit)
    return [job.model_dump(mode="json") for job in jobs]


@router.get("/jobs/{queue}/{job_id}")
async def get_job(request: Request, queue: QueueName, job_id: str) -> dict[str, Any]:
    job = await _worker(_manager(request), queue).get_job(job_id)
    return job.model_dump(mode="json")


@router.delete("/jobs/{queue}/{job_id}")
async def cancel_job(request: Request, queue: QueueName, job_id: str) -> dict[str, Any]:
    worker = _worker(_manager(request), queue)
    if queue == "notifications":
        removed = await worker.cancel_notification(job_id)
    else:
        removed = await worker.cancel_escalation_job(job_id)
    return {"job_id": job_id, "removed": removed}


# ---- escalations ----

@router.post("/escalations", status_code=202)
async def trigger_escalation(request: Request, body: TriggerEscalationBody) -> dict[str, Any]:
    job = await _manager(request).add_escalation_job(EscalationJobData(
        type=EscalationJobType.CREATE_ESCALATION,
        claim_id=body.claim_id,
        data={"reason": body.reason, "urgency": body.urgency.value, "user_id": body.user_id},
        priority=NotificationPriority.URGENT if body.urgency == Urgency.CRITICAL else NotificationPriority.HIGH,
    ))
    return {"job_id": job.id, "claim_id": body.claim_id}


@router.post("/escalations/sweep")
async def sweep_expired(request: Request) -> dict[str, int]:
    return {"requeued": await _manager(request).escalations.sweep_expired()}


@router.get("/escalations/{claim_id}")
async def get_escalation(request: Request, claim_id: str) -> dict[str, Any]:
    service = _manager(request).escalations.service
    status = await run_in_threadpool(service.get_escalation, claim_id)
    return service.format_escalation_response(status)


@router.post("/escalations/{claim_id}/actions", status_code=202)
async def agent_action(request: Request, claim_id: str, body: AgentActionBody) -> dict[str, Any]:
    try:
        action = ConfirmationAction(body.action)
    except ValueError:
        raise InvalidActionError(body.action) from None
    manager = _manager(request)
    await run_in_threadpool(manager.escalations.service.get_escalation, claim_id)

    job = await manager.add_escalation_job(EscalationJobData(
        type=EscalationJobType.PROCESS_CONFIRMATION,
        claim_id=claim_id,
        data={
            "agent_id": body.agent_id,
            "action": action.value,
            "notes": body.notes,
            "customer_contact": body.customer_contact,
        },
        priority=NotificationPriority.HIGH,
    ))
    return {"job_id": job.id, "claim_id": claim_id, "action": action.value}


@router.post("/claims/{claim_id}/evaluate")
async def evaluate_claim(request: Request, claim_id: str, body: EvaluateClaimBody) -> dict[str, Any]:
    manager = _manager(request)
    claim = await run_in_threadpool(manager.escalations.service.get_claim, claim_id)
    if claim is None:
        raise HTTPException(status_code=404, detail=f"Claim {claim_id} not found")

    decision = _engine.should_escalate(claim, body.fraud_score)
    response: dict[str, Any] = {"claim_id": claim_id, **decision.model_dump(), "job_id": None}
    if decision.should_escalate and body.auto_escalate:
        job = await manager.add_escalation_job(EscalationJobData(
            type=EscalationJobType.CREATE_ESCALATION,
            claim_id=claim_id,
            data={
                "reason": decision.reason,
                "urgency": LEVEL_URGENCY.get(decision.level, Urgency.MEDIUM).value,
            },
        ))
        response["job_id"] = job.id
    return response
