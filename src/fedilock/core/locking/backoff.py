"""Polling cadence for contended locks.

Example:
    >>> backoff = ExponentialBackoff(base_delay=0.05, max_delay=1.0, jitter=False)
    >>> [backoff.next_delay(n) for n in range(4)]
    [0.05, 0.1, 0.2, 0.4]
"""

import math
import random
from dataclasses import dataclass


@dataclass
class ExponentialBackoff:
    """Exponential backoff with optional jitter.

    Delay = min(base_delay * (multiplier ** attempt), max_delay) +/- jitter

    The exponent stops growing once the delay reaches ``max_delay``, so an
    acquire polling for hours keeps a finite delay.

    Attributes:
        base_delay: Delay after the first failed attempt, in seconds
        max_delay: Upper bound before jitter
        multiplier: Exponential multiplier (default: 2)
        jitter: Add randomness so contenders do not poll in lockstep
        jitter_range: Range of jitter as fraction of delay (0.0-1.0)
    """

    base_delay: float = 0.05
    max_delay: float = 1.0
    multiplier: float = 2.0
    jitter: bool = True
    jitter_range: float = 0.25

    @property
    def saturation_attempt(self) -> int:
        """First attempt whose undithered delay is ``max_delay``."""
        if self.base_delay <= 0 or self.multiplier <= 1 or self.max_delay <= self.base_delay:
            return 0
        return math.ceil(math.log(self.max_delay / self.base_delay, self.multiplier))

    def next_delay(self, attempt: int) -> float:
        """Calculate the delay after zero-based failed ``attempt``."""
        exponent = min(attempt, self.saturation_attempt)
        delay = min(
            self.base_delay * (self.multiplier ** exponent),
            self.max_delay,
        )

        if self.jitter:
            jitter_amount = delay * self.jitter_range
            delay += random.uniform(-jitter_amount, jitter_amount)
            delay = max(0, delay)

        return delay

    def bounded_delay(self, attempt: int, remaining: float) -> float:
        """``next_delay`` clipped so a sleep never runs past the deadline."""
        if remaining <= 0:
            return 0.0
        return min(self.next_delay(attempt), remaining)
