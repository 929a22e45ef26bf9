"""
Unit tests for bounded polling.
"""

import asyncio

import pytest

from tafawoq.infrastructure.polling import PollSchedule, poll_until


class FakeSleep:
    """Records requested delays without waiting."""

    def __init__(self):
        self.delays = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


def _reader(values):
    remaining = list(values)

    async def fetch():
        return remaining.pop(0) if len(remaining) > 1 else remaining[0]

    return fetch


class TestPollUntil:

    async def test_satisfied_on_first_read_does_not_sleep(self):
        sleep = FakeSleep()
        result = await poll_until(_reader([True]), bool, PollSchedule(), sleep=sleep)

        assert result.satisfied is True
        assert result.attempts == 1
        assert sleep.delays == []

    async def test_follows_schedule_until_satisfied(self):
        sleep = FakeSleep()
        result = await poll_until(
            _reader(["free", "free", "premium"]),
            lambda tier: tier == "premium",
            PollSchedule(delays=[1.0, 2.0, 3.0]),
            sleep=sleep,
        )

        assert result.satisfied is True
        assert result.value == "premium"
        assert result.attempts == 3
        assert sleep.delays == [1.0, 2.0]

    async def test_exhaustion_returns_last_value(self):
        sleep = FakeSleep()
        result = await poll_until(
            _reader(["free"]),
            lambda tier: tier == "premium",
            PollSchedule(delays=[0.5, 0.5]),
            sleep=sleep,
        )

        assert result.satisfied is False
        assert result.value == "free"
        assert result.attempts == 3
        assert sleep.delays == [0.5, 0.5]

    async def test_default_schedule_has_four_attempts(self):
        assert PollSchedule().attempts == 4

    async def test_cancellation_leaves_nothing_running(self):
        reads = []

        async def fetch():
            reads.append(1)
            return False

        task = asyncio.create_task(
            poll_until(fetch, bool, PollSchedule(delays=[10.0, 10.0]))
        )
        await asyncio.sleep(0)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        count = len(reads)
        await asyncio.sleep(0.01)
        assert len(reads) == count
