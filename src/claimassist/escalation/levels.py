"""EscalationLevelTable: the configured four-level ladder, agent pools and contacts.

The table is data, not code. ``load_escalation_table`` reads it from a JSON
file when one is configured and falls back to the built-in defaults.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, ValidationError

from claimassist.core.exceptions import ConfigurationError
from claimassist.models.escalation import EscalationLevel

DEFAULT_TABLE: dict[str, Any] = {
    "levels": [
        {
            "level": 1,
            "name": "Automated Processing",
            "description": "Standard automated claim processing",
            "max_response_time": 24,
            "confirmation_required": False,
        },
        {
            "level": 2,
            "name": "Tier 1 Agent Review",
            "description": "Basic agent review and verification",
            "max_response_time": 4,
            "confirmation_required": True,
        },
        {
            "level": 3,
            "name": "Senior Agent Investigation",
            "description": "Detailed investigation by senior agent",
            "max_response_time": 2,
            "confirmation_required": True,
        },
        {
            "level": 4,
            "name": "Specialist Review",
            "description": "Expert specialist review for complex cases",
            "max_response_time": 1,
            "confirmation_required": True,
        },
    ],
    "agent_pools": {
        "2": ["agent_t1_001", "agent_t1_002", "agent_t1_003"],
        "3": ["agent_senior_001", "agent_senior_002"],
        "4": ["specialist_001", "specialist_002"],
    },
    "agent_contacts": {
        "agent_t1_001": "+1234567001",
        "agent_t1_002": "+1234567002",
        "agent_t1_003": "+1234567003",
        "agent_senior_001": "+1234568001",
        "agent_senior_002": "+1234568002",
        "specialist_001": "+1234569001",
        "specialist_002": "+1234569002",
    },
}

FALLBACK_AGENT = "agent_default"


class EscalationLevelTable(BaseModel):
    """Levels keyed by number plus the agent pool for each level."""

    levels: list[EscalationLevel]
    agent_pools: dict[int, list[str]] = Field(default_factory=dict)
    agent_contacts: dict[str, str] = Field(default_factory=dict)

    def model_post_init(self, __context: Any) -> None:
        numbers = [lvl.level for lvl in self.levels]
        if not numbers:
            raise ConfigurationError("Escalation table has no levels")
        if len(numbers) != len(set(numbers)):
            raise ConfigurationError(f"Duplicate escalation levels: {numbers}")
        self.levels.sort(key=lambda lvl: lvl.level)

    def get(self, level: int) -> EscalationLevel | None:
        for lvl in self.levels:
            if lvl.level == level:
                return lvl
        return None

    def next_level(self, level: int) -> EscalationLevel | None:
        return self.get(level + 1)

    @property
    def max_level(self) -> int:
        return self.levels[-1].level

    def pool_for(self, level: int) -> list[str]:
        return self.agent_pools.get(level) or [FALLBACK_AGENT]


def load_escalation_table(path: str | Path | None = None) -> EscalationLevelTable:
    """Load the ladder from ``path`` or return the built-in table."""
    if path is None:
        return EscalationLevelTable.model_validate(DEFAULT_TABLE)
    try:
        data = json.loads(Path(path).read_text())
        return EscalationLevelTable.model_validate(data)
    except (OSError, json.JSONDecodeError, ValidationError) as exc:
        raise ConfigurationError(f"Cannot load escalation table from {path}: {exc}") from exc
