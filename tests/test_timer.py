"""
Tests for the exam countdown timer.

The clock is always faked so tests never wait on real time.
"""

import asyncio
import itertools
from functools import partial

import pytest

from cbt_practice.errors import PersistenceTransientFailure
from cbt_practice.timer import CountdownTimer, TimerState, format_remaining, is_warning


class FakeClock:
    def __init__(self, now=0.0):
        self.now = now

    def __call__(self):
        return self.now


def run(coro):
    return asyncio.run(coro)


class TestDisplayHelpers:
    @pytest.mark.parametrize(
        "seconds,text",
        [(3600, "60:00"), (125, "02:05"), (59, "00:59"), (0, "00:00"), (-5, "00:00")],
    )
    def test_format_remaining(self, seconds, text):
        assert format_remaining(seconds) == text

    def test_warning_threshold(self):
        assert is_warning(301) is False
        assert is_warning(300) is True
        assert is_warning(0) is True


class TestCountdown:
    def test_expires_exactly_once(self):
        calls = []

        async def scenario():
            # Every clock read advances one second.
            timer = CountdownTimer(
                3,
                on_expire=lambda: calls.append("expired"),
                clock=partial(next, itertools.count()),
                tick_interval=0,
            )
            timer.start()
            await timer.wait()

            assert timer.state is TimerState.EXPIRED
            assert timer.remaining == 0
            assert timer.tick() is False
            await timer.stop()
            assert timer.state is TimerState.EXPIRED

        run(scenario())
        assert calls == ["expired"]

    def test_async_expiry_callback_is_awaited(self):
        calls = []

        async def on_expire():
            await asyncio.sleep(0)
            calls.append("submitted")

        async def scenario():
            timer = CountdownTimer(0, on_expire=on_expire, clock=FakeClock(), tick_interval=0)
            timer.start()
            await timer.wait()

        run(scenario())
        assert calls == ["submitted"]

    def test_remaining_is_monotonic_and_never_negative(self):
        clock = FakeClock()
        seen = []

        async def scenario():
            timer = CountdownTimer(100, on_expire=lambda: None, clock=clock, tick_interval=1000)
            timer.start()
            for now in (10, 5, 40, 39, 250):
                clock.now = now
                timer.tick()
                seen.append(timer.remaining)
            await timer.stop()

        run(scenario())
        assert seen == [90, 90, 60, 60, 0]

    def test_remaining_follows_elapsed_time_not_tick_count(self):
        clock = FakeClock(1000.0)

        async def scenario():
            timer = CountdownTimer(600, on_expire=lambda: None, clock=clock, tick_interval=1000)
            timer.start()
            clock.now = 1000.0 + 125.7
            timer.tick()
            assert timer.remaining == 475
            await timer.stop()

        run(scenario())

    def test_cannot_start_twice(self):
        async def scenario():
            timer = CountdownTimer(10, on_expire=lambda: None, clock=FakeClock(), tick_interval=1000)
            timer.start()
            with pytest.raises(RuntimeError):
                timer.start()
            await timer.stop()

        run(scenario())

    def test_stop_prevents_expiry(self):
        calls = []
        clock = FakeClock()

        async def scenario():
            timer = CountdownTimer(5, on_expire=lambda: calls.append(1), clock=clock, tick_interval=0)
            timer.start()
            await asyncio.sleep(0)
            await timer.stop()
            clock.now = 100
            assert timer.tick() is False
            assert timer.state is TimerState.STOPPED

        run(scenario())
        assert calls == []


class TestPersistence:
    def test_flush_respects_threshold(self):
        clock = FakeClock()
        writes = []

        async def persist(seconds):
            writes.append(seconds)

        async def scenario():
            timer = CountdownTimer(
                100,
                on_expire=lambda: None,
                persist=persist,
                clock=clock,
                tick_interval=1000,
                flush_interval=1000,
                flush_threshold=5,
            )
            timer.start()

            clock.now = 3
            timer.tick()
            assert await timer.flush() is False

            clock.now = 5
            timer.tick()
            assert await timer.flush() is True
            assert timer.last_persisted == 95

            clock.now = 7
            timer.tick()
            assert await timer.flush() is False
            await timer.stop()

        run(scenario())
        assert writes == [95]

    def test_flush_failure_reports_and_keeps_running(self):
        clock = FakeClock()
        failures = []

        async def persist(seconds):
            raise ConnectionError("database unavailable")

        async def scenario():
            timer = CountdownTimer(
                100,
                on_expire=lambda: None,
                persist=persist,
                clock=clock,
                tick_interval=1000,
                flush_interval=1000,
                on_persist_failure=failures.append,
            )
            timer.start()
            clock.now = 10
            timer.tick()

            assert await timer.flush() is False
            assert timer.state is TimerState.RUNNING
            assert timer.last_persisted == 100
            await timer.stop()

        run(scenario())
        assert len(failures) == 1
        assert isinstance(failures[0], PersistenceTransientFailure)
        assert isinstance(failures[0].cause, ConnectionError)

    def test_no_writes_after_stop(self):
        clock = FakeClock()
        writes = []

        async def persist(seconds):
            writes.append(seconds)

        async def scenario():
            timer = CountdownTimer(
                100,
                on_expire=lambda: None,
                persist=persist,
                clock=clock,
                tick_interval=1000,
                flush_interval=1000,
            )
            timer.start()
            await timer.stop()

            clock.now = 50
            timer.tick()
            assert await timer.flush() is False

        run(scenario())
        assert writes == []

    def test_flush_loop_writes_periodically(self):
        clock = FakeClock()
        writes = []

        async def persist(seconds):
            writes.append(seconds)

        async def scenario():
            timer = CountdownTimer(
                100,
                on_expire=lambda: None,
                persist=persist,
                clock=clock,
                tick_interval=0.001,
                flush_interval=0.001,
                flush_threshold=5,
            )
            timer.start()
            clock.now = 30
            for _ in range(50):
                if writes:
                    break
                await asyncio.sleep(0.01)
            await timer.stop()

        run(scenario())
        assert writes == [70]
