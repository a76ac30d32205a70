"""Countdown timer for a running exam, with periodic persistence.

The countdown is derived from clock deltas rather than from counting ticks,
so a delayed tick never makes the timer drift. A second loop flushes the
remaining time through a caller-supplied coroutine so a reload can resume
close to where the student left off.
"""

import asyncio
import inspect
import logging
import time
from enum import Enum
from typing import Awaitable, Callable, List, Optional

from cbt_practice.errors import PersistenceTransientFailure

logger = logging.getLogger(__name__)

WARNING_THRESHOLD_SECONDS = 300


class TimerState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    EXPIRED = "expired"
    STOPPED = "stopped"


def format_remaining(seconds: int) -> str:
    """Render seconds as MM:SS, e.g. 125 -> "02:05"."""
    seconds = max(0, int(seconds))
    minutes, secs = divmod(seconds, 60)
    return f"{minutes:02d}:{secs:02d}"


def is_warning(seconds: int) -> bool:
    """True once five minutes or less remain."""
    return seconds <= WARNING_THRESHOLD_SECONDS


class CountdownTimer:
    """Counts an attempt's remaining time down to zero.

    Args:
        initial_seconds: Remaining time stored on the attempt at load time.
        on_expire: Called exactly once when the countdown reaches zero. May
            be a plain function or a coroutine function.
        persist: Coroutine function receiving the current remaining seconds.
        clock: Monotonic clock returning seconds.
        tick_interval: How often the countdown is recomputed.
        flush_interval: How often a flush is considered.
        flush_threshold: Minimum change since the last persisted value for a
            flush to be written.
        on_persist_failure: Receives a PersistenceTransientFailure whenever a
            flush fails. The countdown keeps running regardless.
    """

    def __init__(
        self,
        initial_seconds: int,
        on_expire: Callable[[], Optional[Awaitable[None]]],
        persist: Optional[Callable[[int], Awaitable[None]]] = None,
        *,
        clock: Callable[[], float] = time.monotonic,
        tick_interval: float = 1.0,
        flush_interval: float = 5.0,
        flush_threshold: int = 5,
        on_persist_failure: Optional[Callable[[PersistenceTransientFailure], None]] = None,
    ):
        self.initial_seconds = max(0, int(initial_seconds))
        self._on_expire = on_expire
        self._persist = persist
        self._clock = clock
        self._tick_interval = tick_interval
        self._flush_interval = flush_interval
        self._flush_threshold = flush_threshold
        self._on_persist_failure = on_persist_failure

        self._state = TimerState.IDLE
        self._remaining = self.initial_seconds
        self._last_persisted = self.initial_seconds
        self._started_at: Optional[float] = None
        self._expiry_fired = False
        self._tasks: List[asyncio.Task] = []

    @property
    def state(self) -> TimerState:
        return self._state

    @property
    def remaining(self) -> int:
        return self._remaining

    @property
    def last_persisted(self) -> int:
        return self._last_persisted

    def start(self) -> None:
        """Start the countdown and persistence loops on the running event loop."""
        if self._state is not TimerState.IDLE:
            raise RuntimeError(f"Timer cannot be started from state {self._state.value}")
        loop = asyncio.get_running_loop()
        self._started_at = self._clock()
        self._state = TimerState.RUNNING
        self._tasks.append(loop.create_task(self._run_countdown()))
        if self._persist is not None:
            self._tasks.append(loop.create_task(self._run_flushes()))

    def tick(self) -> bool:
        """Recompute the remaining time. Returns True on the transition to expired."""
        if self._state is not TimerState.RUNNING:
            return False
        elapsed = int(self._clock() - self._started_at)
        self._remaining = min(self._remaining, max(0, self.initial_seconds - elapsed))
        if self._remaining == 0:
            self._state = TimerState.EXPIRED
            return True
        return False

    async def flush(self) -> bool:
        """Persist the remaining time if it moved enough. Returns True if written."""
        if self._state is not TimerState.RUNNING or self._persist is None:
            return False
        value = self._remaining
        if abs(self._last_persisted - value) < self._flush_threshold:
            return False
        try:
            await self._persist(value)
        except Exception as exc:
            failure = PersistenceTransientFailure("remaining time flush", exc)
            logger.warning("Failed to persist remaining time %ss: %s", value, exc)
            if self._on_persist_failure is not None:
                self._on_persist_failure(failure)
            return False
        self._last_persisted = value
        return True

    async def stop(self) -> None:
        """Halt both loops. Nothing is persisted after this returns."""
        if self._state in (TimerState.IDLE, TimerState.RUNNING):
            self._state = TimerState.STOPPED
        current = asyncio.current_task()
        pending = [t for t in self._tasks if t is not current and not t.done()]
        if self._state is TimerState.EXPIRED and self._tasks:
            # The countdown task is still running the expiry callback.
            pending = [t for t in pending if t is not self._tasks[0]]
        for task in pending:
            task.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    async def wait(self) -> None:
        """Wait until the countdown loop finishes (expiry or stop)."""
        if self._tasks:
            await asyncio.gather(self._tasks[0], return_exceptions=True)

    async def _fire_expiry(self) -> None:
        if self._expiry_fired:
            return
        self._expiry_fired = True
        logger.info("Exam timer expired")
        result = self._on_expire()
        if inspect.isawaitable(result):
            await result

    async def _run_countdown(self) -> None:
        while True:
            self.tick()
            if self._state is TimerState.EXPIRED:
                await self._fire_expiry()
                return
            if self._state is not TimerState.RUNNING:
                return
            await asyncio.sleep(self._tick_interval)

    async def _run_flushes(self) -> None:
        while self._state is TimerState.RUNNING:
            await asyncio.sleep(self._flush_interval)
            await self.flush()
