"""FastAPI application with lifespan and router mounting."""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from claimassist.api.routes import admin, escalation, health
from claimassist.conversation.context_store import ConversationContextStore
from claimassist.core.config import AppSettings
from claimassist.core.exceptions import (
    EscalationError,
    EscalationNotFoundError,
    JobNotFoundError,
    QueueError,
)
from claimassist.core.logging import configure_logging
from claimassist.persistence import create_cache
from claimassist.workers.manager import WorkerManager, create_worker_manager


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Initialize and tear down application resources."""
    settings: AppSettings = getattr(app.state, "settings", None) or AppSettings()
    app.state.settings = settings
    configure_logging(settings.log_level, settings.json_logs)

    owns_manager = getattr(app.state, "manager", None) is None
    if owns_manager:
        app.state.manager = create_worker_manager(settings)
    if getattr(app.state, "context_store", None) is None:
        app.state.context_store = ConversationContextStore(
            create_cache(settings), settings.escalation.context_ttl_seconds
        )
    yield
    if owns_manager:
        await app.state.manager.close()


def _error(status_code: int, code: str, exc: Exception) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": {"code": code, "message": str(exc)}})


def create_app(
    *,
    settings: AppSettings | None = None,
    manager: WorkerManager | None = None,
    context_store: ConversationContextStore | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Collaborators passed in are used as-is instead of being built from settings.
    """
    app = FastAPI(
        title="ClaimAssist Escalation Back Office",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.manager = manager
    app.state.context_store = context_store

    @app.exception_handler(EscalationNotFoundError)
    async def _not_found(request: Request, exc: EscalationNotFoundError) -> JSONResponse:
        return _error(404, "ESCALATION_NOT_FOUND", exc)

    @app.exception_handler(EscalationError)
    async def _bad_request(request: Request, exc: EscalationError) -> JSONResponse:
        return _error(400, type(exc).__name__, exc)

    @app.exception_handler(JobNotFoundError)
    async def _job_not_found(request: Request, exc: JobNotFoundError) -> JSONResponse:
        return _error(404, "JOB_NOT_FOUND", exc)

    @app.exception_handler(QueueError)
    async def _queue_unavailable(request: Request, exc: QueueError) -> JSONResponse:
        return _error(503, "QUEUE_UNAVAILABLE", exc)

    app.include_router(health.router)
    app.include_router(admin.router, prefix="/admin")
    app.include_router(escalation.router, prefix="/escalation")
    return app
