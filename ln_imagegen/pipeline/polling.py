"""
Poll Policy
===========
Exponential backoff with jitter for provider status polls.

The attempt cap bounds how many polls a job may make. It is independent of
the job deadline, which is enforced by the orchestrator.
"""

import random
from dataclasses import dataclass, field
from typing import Callable, Optional

from ln_imagegen.config import Settings, settings


@dataclass
class PollPolicy:
    base_seconds: float = 3.0
    multiplier: float = 2.0
    max_seconds: float = 30.0
    jitter_seconds: float = 1.0
    max_attempts: int = 40
    rand: Callable[[], float] = field(default=random.random, repr=False)

    @classmethod
    def from_settings(cls, config: Optional[Settings] = None) -> "PollPolicy":
        config = config or settings
        return cls(
            base_seconds=config.POLL_BASE_INTERVAL_SECONDS,
            multiplier=config.POLL_MULTIPLIER,
            max_seconds=config.POLL_MAX_INTERVAL_SECONDS,
            jitter_seconds=config.POLL_JITTER_SECONDS,
            max_attempts=config.POLL_MAX_ATTEMPTS,
        )

    def delay(self, attempt: int) -> float:
        """Sleep before poll number ``attempt`` (1-based)"""
        exp = min(self.max_seconds, self.base_seconds * (self.multiplier ** max(0, attempt - 1)))
        jitter = self.rand() * self.jitter_seconds if self.jitter_seconds > 0 else 0.0
        return max(0.0, exp + jitter)

    def delays(self):
        for attempt in range(1, self.max_attempts + 1):
            yield self.delay(attempt)
