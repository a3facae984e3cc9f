"""Exponential backoff with a cap, shared by everything that reconnects."""
from dataclasses import dataclass
from typing import Iterator


@dataclass(frozen=True)
class ExponentialBackoff:
    """Delay schedule: base_delay * 2**attempt, never above max_delay.

    Args:
        base_delay: Delay in seconds before the first retry
        max_delay: Upper bound for any single delay
        max_attempts: Total number of attempts (first try included)
    """
    base_delay: float = 0.1
    max_delay: float = 30.0
    max_attempts: int = 3

    def __post_init__(self):
        if self.base_delay < 0 or self.max_delay < 0:
            raise ValueError("Backoff delays must be non-negative")
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

    def delay(self, attempt: int) -> float:
        """Delay to wait after the given (zero-based) failed attempt."""
        return min(self.base_delay * (2 ** attempt), self.max_delay)

    def delays(self) -> Iterator[float]:
        """Delays between attempts; one fewer than max_attempts."""
        for attempt in range(self.max_attempts - 1):
            yield self.delay(attempt)
