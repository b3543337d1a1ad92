"""Exponential backoff with additive jitter.

Used by the resilient client between rate-limited attempts when no other
credential is available, and by the Celery task when it redelivers a
retryable job failure.

Example:
    >>> backoff = ExponentialBackoff(base_delay=2.0, max_delay=60.0, jitter=0.5)
    >>> for attempt in range(3):
    ...     print(f"Attempt {attempt}: wait {backoff.next_delay(attempt):.2f}s")
"""

import random
from collections.abc import Callable
from dataclasses import dataclass, field


@dataclass
class ExponentialBackoff:
    """Delay = min(base_delay * multiplier ** attempt, max_delay) + U(0, jitter)

    Attributes:
        base_delay: Delay before the first retry, in seconds
        max_delay: Cap applied before jitter
        multiplier: Exponential growth factor
        jitter: Upper bound of the random amount added to every delay
        random_fn: Source of uniform [0, 1) values (injectable for tests)
    """

    base_delay: float = 2.0
    max_delay: float = 60.0
    multiplier: float = 2.0
    jitter: float = 0.5
    random_fn: Callable[[], float] = field(default=random.random, repr=False)

    def next_delay(self, attempt: int) -> float:
        """Delay before retry number ``attempt`` (zero-based)."""
        delay = min(self.base_delay * (self.multiplier ** max(attempt, 0)), self.max_delay)
        if self.jitter > 0:
            delay += self.random_fn() * self.jitter
        return max(0.0, delay)
