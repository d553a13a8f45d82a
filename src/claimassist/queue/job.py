"""Queue-managed job record and retry backoff policy."""

from __future__ import annotations

from enum import StrEnum
from typing import Any, Literal, Optional

from pydantic import BaseModel, Field


class JobState(StrEnum):
    WAITING = "waiting"
    DELAYED = "delayed"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"


class BackoffPolicy(BaseModel):
    """Delay before a retry, in seconds."""

    type: Literal["exponential", "fixed"] = "exponential"
    delay: float = 1.0

    def delay_for(self, attempts_made: int) -> float:
        """Delay after the ``attempts_made``-th failed attempt (1-indexed)."""
        if self.type == "fixed":
            return self.delay
        return self.delay * (2 ** max(0, attempts_made - 1))


class Job(BaseModel):
    """A unit of work as stored in the broker.

    ``attempts`` is the total number of tries allowed, so ``attempts=3``
    means the first run plus up to two retries. Timestamps are epoch seconds.
    """

    id: str
    name: str
    data: dict[str, Any] = Field(default_factory=dict)
    priority: int = 0
    attempts: int = 1
    attempts_made: int = 0
    backoff: BackoffPolicy = Field(default_factory=BackoffPolicy)
    delay: float = 0
    timestamp: float
    state: JobState = JobState.WAITING
    processed_on: Optional[float] = None
    finished_on: Optional[float] = None
    failed_reason: Optional[str] = None
    return_value: Any = None
