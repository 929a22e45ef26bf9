"""
Bounded Polling

Re-reads eventually-consistent state until a predicate holds or the delay
schedule runs out. Nothing is left running in the background: cancelling
the awaiting task cancels the current sleep or fetch.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, Optional, TypeVar

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

T = TypeVar("T")


class PollSchedule(BaseModel):
    """Delays (seconds) to wait before each re-read after the first one."""

    delays: list[float] = Field(
        default_factory=lambda: [1.0, 2.0, 3.0],
        description="One entry per re-read; total attempts is len(delays) + 1.",
    )

    @property
    def attempts(self) -> int:
        return len(self.delays) + 1


@dataclass
class PollResult(Generic[T]):
    """Last value read and whether it satisfied the predicate."""
    value: Optional[T]
    satisfied: bool
    attempts: int


async def poll_until(
    fetch: Callable[[], Awaitable[T]],
    accept: Callable[[T], bool],
    schedule: PollSchedule,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> PollResult[T]:
    """
    Read immediately, then re-read after each scheduled delay.

    Args:
        fetch: Zero-argument coroutine function returning the current state
        accept: Predicate that ends polling when it returns True
        schedule: Delay schedule
        sleep: Sleep function (injectable for tests)

    Returns:
        PollResult with the best-known value on exhaustion
    """
    value = await fetch()
    attempts = 1
    if accept(value):
        return PollResult(value=value, satisfied=True, attempts=attempts)

    for delay in schedule.delays:
        await sleep(delay)
        value = await fetch()
        attempts += 1
        if accept(value):
            return PollResult(value=value, satisfied=True, attempts=attempts)
        logger.debug("Poll attempt %d/%d not satisfied", attempts, schedule.attempts)

    return PollResult(value=value, satisfied=False, attempts=attempts)
