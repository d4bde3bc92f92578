"""Resilience data models and protocols.

Defines the core types used across the resilience sub-package:
- RetryConfig for backoff tuning
- SleepFunc protocol for injectable async sleep
"""

from dataclasses import dataclass
from typing import Protocol


@dataclass
class RetryConfig:
    """Retry behavior for one remote call.

    Delays are in seconds. ``max_attempts`` counts every call, the first
    one included.
    """

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 10.0
    backoff_factor: float = 2.0

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")
        if self.base_delay < 0 or self.max_delay < 0:
            raise ValueError("base_delay and max_delay must be >= 0")
        if self.backoff_factor < 1:
            raise ValueError(f"backoff_factor must be >= 1, got {self.backoff_factor}")


class SleepFunc(Protocol):
    """Protocol for injectable sleep function."""

    async def __call__(self, seconds: float) -> None: ...
