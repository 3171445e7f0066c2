"""
Stage deadlines.

A Deadline is started when a pipeline stage begins and is checked at the
points where the stage can degrade instead of blocking: between embedding
batches, before the query embedding, before the generation call.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Callable


@dataclass
class Deadline:
    """A monotonic-clock deadline. budget_s=None never expires."""

    budget_s: float | None = None
    clock: Callable[[], float] = time.monotonic
    started_at: float = field(init=False)

    def __post_init__(self) -> None:
        self.started_at = self.clock()

    @classmethod
    def unlimited(cls) -> "Deadline":
        return cls(None)

    @property
    def elapsed_s(self) -> float:
        return self.clock() - self.started_at

    def remaining(self) -> float | None:
        """Seconds left, clamped at 0. None when unlimited."""
        if self.budget_s is None:
            return None
        return max(0.0, self.budget_s - self.elapsed_s)

    def expired(self) -> bool:
        remaining = self.remaining()
        return remaining is not None and remaining <= 0.0
