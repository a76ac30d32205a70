"""Client-side flow for taking one attempt: resume, answer, time, submit."""

import asyncio
import logging
import time
from typing import Any, Callable, Dict, Optional

import httpx

from cbt_practice.client import CBTClient
from cbt_practice.config import get_settings
from cbt_practice.errors import AttemptAlreadySubmitted, CBTError, PersistenceTransientFailure
from cbt_practice.models import normalize_option
from cbt_practice.timer import CountdownTimer

logger = logging.getLogger(__name__)


class ExamSession:
    """Drives one attempt from the student's side.

    ``open()`` loads the attempt and starts the timer unless the attempt is
    already final. Answer saves for the same question are sent one at a
    time, in the order they were made; a failed save keeps the local choice
    so the student can simply pick again. When the timer runs out the
    attempt is submitted automatically; a manual submit racing the expiry
    results in a single submission. If that automatic submit fails the error
    is kept on ``submit_error``.
    """

    def __init__(
        self,
        client: CBTClient,
        attempt_id: int,
        *,
        clock: Callable[[], float] = time.monotonic,
        tick_interval: float = 1.0,
        flush_interval: Optional[float] = None,
        flush_threshold: Optional[int] = None,
        on_persist_failure: Optional[Callable[[PersistenceTransientFailure], None]] = None,
    ):
        self.client = client
        self.attempt_id = attempt_id
        self.view: Optional[Dict[str, Any]] = None
        self.selections: Dict[int, str] = {}
        self.submitted = False
        self.submit_error: Optional[Exception] = None
        self.timer: Optional[CountdownTimer] = None
        self._clock = clock
        self._tick_interval = tick_interval
        settings = get_settings()
        self._flush_interval = (
            settings.timer_flush_interval if flush_interval is None else flush_interval
        )
        self._flush_threshold = (
            settings.timer_flush_threshold if flush_threshold is None else flush_threshold
        )
        self._on_persist_failure = on_persist_failure
        self._locks: Dict[int, asyncio.Lock] = {}
        self._submit_task: Optional[asyncio.Task] = None

    async def open(self) -> bool:
        """Load the attempt. Returns False when it is already submitted."""
        try:
            self.view = await self.client.get_attempt(self.attempt_id)
        except AttemptAlreadySubmitted:
            self.submitted = True
            return False

        self.selections = {
            q["id"]: q["selected_option"]
            for q in self.view["questions"]
            if q.get("selected_option")
        }
        self.timer = CountdownTimer(
            self.view["attempt"]["time_remaining_seconds"],
            on_expire=self._on_time_up,
            persist=self._persist_time,
            clock=self._clock,
            tick_interval=self._tick_interval,
            flush_interval=self._flush_interval,
            flush_threshold=self._flush_threshold,
            on_persist_failure=self._on_persist_failure,
        )
        self.timer.start()
        return True

    @property
    def answered_count(self) -> int:
        return len(self.selections)

    async def select_option(self, question_id: int, option: str) -> bool:
        """Choose an option. Returns False if the save failed transiently."""
        option = normalize_option(option)
        if self.submitted:
            raise AttemptAlreadySubmitted(f"Attempt {self.attempt_id} has already been submitted")

        self.selections[question_id] = option
        lock = self._locks.setdefault(question_id, asyncio.Lock())
        async with lock:
            try:
                await self.client.save_answer(self.attempt_id, question_id, option)
            except httpx.HTTPError as exc:
                failure = PersistenceTransientFailure("answer save", exc)
                logger.warning(
                    "Failed to save answer for question %s of attempt %s: %s",
                    question_id,
                    self.attempt_id,
                    exc,
                )
                if self._on_persist_failure is not None:
                    self._on_persist_failure(failure)
                return False
        return True

    async def submit(self) -> Dict[str, Any]:
        """Submit the attempt once; concurrent callers share the same submission."""
        if self._submit_task is None:
            self._submit_task = asyncio.ensure_future(self._submit())
        task = self._submit_task
        try:
            return await asyncio.shield(task)
        except Exception:
            # Allow a retry after a failed submission.
            if self._submit_task is task:
                self._submit_task = None
            raise

    async def close(self) -> None:
        if self.timer is not None:
            await self.timer.stop()

    async def result(self, review: bool = False) -> Dict[str, Any]:
        return await self.client.get_result(self.attempt_id, review=review)

    async def _submit(self) -> Dict[str, Any]:
        if self.timer is not None:
            await self.timer.stop()
        attempt = await self.client.submit_attempt(self.attempt_id)
        self.submitted = True
        self.submit_error = None
        logger.info("Attempt %s submitted", self.attempt_id)
        return attempt

    async def _on_time_up(self) -> None:
        try:
            await self.submit()
        except (httpx.HTTPError, CBTError) as exc:
            # submit() can still be retried by the student
            self.submit_error = exc
            logger.exception("Automatic submit of attempt %s failed", self.attempt_id)

    async def _persist_time(self, seconds: int) -> None:
        await self.client.update_remaining_time(self.attempt_id, seconds)
