"""
Reconnect backoff and cancellable timers.

This module provides:
- backoff_delay(): pure exponential backoff computation
- ReconnectPolicy: attempt cap + delay parameters, built from config
- Scheduler: the seam through which the stream schedules its reconnect and
  heartbeat timers, so both can be driven by tests without real time passing

Usage:
    policy = ReconnectPolicy(max_attempts=5, base_delay=1.0)
    delay = policy.delay(attempt=2)  # ~4s plus jitter

    scheduler = AsyncioScheduler()
    handle = scheduler.call_later(delay, reconnect)
    handle.cancel()
"""

import asyncio
import random
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Callable, Optional, Protocol

if TYPE_CHECKING:
    from depthwatch.core.config import ConfigManager

DEFAULT_MAX_ATTEMPTS = 5
DEFAULT_BASE_DELAY_SECONDS = 1.0
DEFAULT_MAX_DELAY_SECONDS = 30.0
DEFAULT_MAX_JITTER_SECONDS = 0.5


def backoff_delay(
    attempt: int,
    base: float = DEFAULT_BASE_DELAY_SECONDS,
    cap: float = DEFAULT_MAX_DELAY_SECONDS,
    jitter: float = 0.0,
) -> float:
    """Compute the wait before reconnect attempt number `attempt`.

    delay = min(base * 2**attempt, cap) + jitter

    Args:
        attempt: Zero-based count of reconnects already made.
        base: Delay for the first reconnect, in seconds.
        cap: Upper bound on the exponential part.
        jitter: Extra seconds added after capping.

    Returns:
        Delay in seconds.
    """
    if attempt < 0:
        raise ValueError(f"attempt must be non-negative, got {attempt}")
    # Cap the exponent so huge attempt counts don't overflow the float
    exponential = base * (2 ** min(attempt, 62))
    return min(exponential, cap) + jitter


@dataclass
class ReconnectPolicy:
    """Reconnection limits for a streaming connection.

    Attributes:
        max_attempts: Reconnects allowed before giving up with an error.
        base_delay: Delay before the first reconnect.
        max_delay: Cap applied to the exponential delay.
        max_jitter: Upper bound of the uniform random jitter.
        rng: Random source for jitter (inject a seeded one in tests).
    """

    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    base_delay: float = DEFAULT_BASE_DELAY_SECONDS
    max_delay: float = DEFAULT_MAX_DELAY_SECONDS
    max_jitter: float = DEFAULT_MAX_JITTER_SECONDS
    rng: random.Random = field(default_factory=random.Random, repr=False)

    def __post_init__(self) -> None:
        if self.max_attempts < 0:
            raise ValueError(f"max_attempts must be non-negative, got {self.max_attempts}")
        if self.base_delay < 0 or self.max_delay < 0 or self.max_jitter < 0:
            raise ValueError("delays must be non-negative")

    def delay(self, attempt: int) -> float:
        """Delay before reconnect attempt `attempt`, jitter included."""
        jitter = self.rng.uniform(0, self.max_jitter) if self.max_jitter > 0 else 0.0
        return backoff_delay(attempt, self.base_delay, self.max_delay, jitter)

    def exhausted(self, attempts: int) -> bool:
        """Whether `attempts` reconnects have used up the budget."""
        return attempts >= self.max_attempts

    @classmethod
    def from_config(cls, config: "ConfigManager") -> "ReconnectPolicy":
        return cls(
            max_attempts=config.get_int("stream.max_reconnect_attempts", DEFAULT_MAX_ATTEMPTS),
            base_delay=config.get_float("stream.base_delay_seconds", DEFAULT_BASE_DELAY_SECONDS),
            max_delay=config.get_float("stream.max_delay_seconds", DEFAULT_MAX_DELAY_SECONDS),
            max_jitter=config.get_float("stream.max_jitter_seconds", DEFAULT_MAX_JITTER_SECONDS),
        )


class TimerHandle(Protocol):
    """A scheduled callback that can be cancelled before it fires."""

    def cancel(self) -> None:
        ...


class Scheduler(Protocol):
    """Schedules plain callbacks after a delay."""

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        ...


class AsyncioScheduler:
    """Scheduler backed by the running asyncio event loop."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        self._loop = loop

    def call_later(self, delay: float, callback: Callable[[], None]) -> asyncio.TimerHandle:
        loop = self._loop or asyncio.get_running_loop()
        return loop.call_later(delay, callback)
