"""Pluggable agent assignment strategies implementing IAgentAssigner."""

from __future__ import annotations

import random
from collections import Counter
from typing import Callable

from claimassist.core.exceptions import ConfigurationError


class RandomAssigner:
    """Uniform random pick from the level's pool."""

    def __init__(self, rng: random.Random | None = None) -> None:
        self._rng = rng or random.Random()

    def assign(self, level: int, pool: list[str]) -> str:
        return self._rng.choice(pool)


class RoundRobinAssigner:
    """Cycles through each level's pool independently."""

    def __init__(self) -> None:
        self._cursors: dict[int, int] = {}

    def assign(self, level: int, pool: list[str]) -> str:
        index = self._cursors.get(level, 0)
        self._cursors[level] = index + 1
        return pool[index % len(pool)]


class LeastLoadedAssigner:
    """Picks the agent with the fewest open assignments.

    ``load_fn`` returns current load per agent id (for example, counted from
    open escalation records). Ties go to pool order.
    """

    def __init__(self, load_fn: Callable[[], Counter[str]]) -> None:
        self._load_fn = load_fn

    def assign(self, level: int, pool: list[str]) -> str:
        load = self._load_fn()
        return min(pool, key=lambda agent: (load.get(agent, 0), pool.index(agent)))


def create_assigner(strategy: str, load_fn: Callable[[], Counter[str]] | None = None):
    """Build the assigner named by ``EscalationConfig.assignment_strategy``."""
    if strategy == "random":
        return RandomAssigner()
    if strategy == "round_robin":
        return RoundRobinAssigner()
    if strategy == "least_loaded":
        if load_fn is None:
            raise ConfigurationError("least_loaded assignment needs a load function")
        return LeastLoadedAssigner(load_fn)
    raise ConfigurationError(f"Unknown assignment strategy: {strategy!r}")
