"""Type aliases used across the ClaimAssist platform."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Callable

JsonDict = dict[str, Any]
ClaimId = str
AgentId = str
JobId = str
Clock = Callable[[], datetime]
EpochClock = Callable[[], float]
