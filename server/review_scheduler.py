"""asyncio-based scheduler for vocabulary review reminders."""

import asyncio
import logging
from typing import Callable

from core.config import REVIEW_JOB_PREFIX
from core.interfaces import ReviewScheduler

logger = logging.getLogger(__name__)


class AsyncioReviewScheduler(ReviewScheduler):
    """Runs one timer per word on an event loop.

    Enqueueing a word that already has a pending timer replaces it.
    enqueue_unique_review() is safe to call from executor threads.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop, on_due: Callable[[dict], None]):
        self.loop = loop
        self.on_due = on_due
        self._handles: dict[str, asyncio.TimerHandle] = {}

    def enqueue_unique_review(self, word: str, delay_seconds: int, payload: dict) -> None:
        self.loop.call_soon_threadsafe(self._schedule, f"{REVIEW_JOB_PREFIX}{word}",
                                       max(0, delay_seconds), dict(payload))

    def _schedule(self, job_name: str, delay_seconds: int, payload: dict) -> None:
        existing = self._handles.pop(job_name, None)
        if existing:
            existing.cancel()
        self._handles[job_name] = self.loop.call_later(delay_seconds, self._fire, job_name, payload)
        logger.debug(f"Scheduled {job_name} in {delay_seconds}s")

    def _fire(self, job_name: str, payload: dict) -> None:
        self._handles.pop(job_name, None)
        logger.info(f"Review due: {job_name}")
        try:
            self.on_due(payload)
        except Exception as e:
            logger.error(f"Review callback failed for {job_name}: {e}")

    def pending(self) -> list[str]:
        """Names of jobs waiting to fire. Call from the loop's thread."""
        return sorted(self._handles)

    def cancel_all(self) -> None:
        for handle in self._handles.values():
            handle.cancel()
        self._handles.clear()
