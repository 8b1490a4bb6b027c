"""
Interview question scheduler.

Delivers a fixed question sequence to one session at a fixed interval. The
pending timer is a single asyncio task owned by the scheduler and exposed on
the session as ``scheduled_timer``; cancelling it stops all further
deliveries.

Each delivery runs under the session lock, so it never overlaps a lifecycle
transition for the same meeting. Waiting between questions happens outside
the lock.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Sequence

from .errors import AutomationFailure
from .session import BotSession


__all__ = ["InterviewScheduler"]


logger = logging.getLogger(__name__)


class InterviewScheduler:
    """
    Cancellable, strictly ordered question delivery for one session.

    Args:
        session: Session whose ``question_index`` this scheduler advances.
        questions: Immutable question sequence shared by all sessions.
        interval_seconds: Pause after each question before the next step.
        deliver: Sends one question; raises ``AutomationFailure`` on error.
        on_complete: Called once when the sequence is exhausted.
        on_failure: Called when a delivery fails.

    Example:
        >>> scheduler = InterviewScheduler(session, ("Q1", "Q2"), 30.0, deliver, done, failed)
        >>> scheduler.start()
        >>> scheduler.cancel()
    """

    def __init__(
        self,
        session: BotSession,
        questions: Sequence[str],
        interval_seconds: float,
        deliver: Callable[[str], Awaitable[None]],
        on_complete: Callable[[], Awaitable[None]],
        on_failure: Callable[[AutomationFailure], Awaitable[None]],
    ) -> None:
        if interval_seconds < 0:
            raise ValueError("interval_seconds must be >= 0")
        self._session = session
        self._questions = tuple(questions)
        self._interval = interval_seconds
        self._deliver = deliver
        self._on_complete = on_complete
        self._on_failure = on_failure
        self._task: asyncio.Task[None] | None = None
        self._cancelled = False
        self._completed = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def completed(self) -> bool:
        return self._completed

    def start(self) -> asyncio.Task[None]:
        """Begin delivery from the session's current ``question_index``."""
        if self._task is not None:
            raise RuntimeError("Scheduler already started")
        self._task = asyncio.create_task(
            self._run(),
            name=f"interview-scheduler-{self._session.meeting_id}",
        )
        self._session.scheduled_timer = self._task
        logger.info(
            "Meeting %s: scheduling %d questions every %.1fs",
            self._session.meeting_id,
            len(self._questions),
            self._interval,
        )
        return self._task

    def cancel(self) -> None:
        """
        Cancel the pending timer. Idempotent.

        Safe to call from the scheduler's own task (completion and failure
        paths); in that case the task simply runs to its end.
        """
        if self._cancelled:
            return
        self._cancelled = True
        task = self._task
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
        self._session.scheduled_timer = None
        logger.info(
            "Meeting %s: scheduler cancelled at question %d/%d",
            self._session.meeting_id,
            self._session.question_index,
            len(self._questions),
        )

    async def _run(self) -> None:
        session = self._session
        try:
            while True:
                async with session.lock:
                    if self._cancelled:
                        return
                    index = session.question_index
                    if index >= len(self._questions):
                        break
                    question = self._questions[index]
                    logger.info(
                        "Meeting %s: asking question %d/%d",
                        session.meeting_id,
                        index + 1,
                        len(self._questions),
                    )
                    await self._deliver(question)
                    session.question_index = index + 1
                await asyncio.sleep(self._interval)
        except AutomationFailure as exc:
            logger.warning("Meeting %s: question delivery failed: %s", session.meeting_id, exc)
            await self._on_failure(exc)
            return
        except Exception as exc:  # noqa: BLE001 - any delivery error ends the session
            logger.error(
                "Meeting %s: unexpected scheduler error: %s",
                session.meeting_id,
                exc,
                exc_info=True,
            )
            await self._on_failure(AutomationFailure("deliver question", str(exc)))
            return

        await self._signal_complete()

    async def _signal_complete(self) -> None:
        if self._completed or self._cancelled:
            logger.debug(
                "Meeting %s: duplicate completion suppressed",
                self._session.meeting_id,
            )
            return
        self._completed = True
        self._session.scheduled_timer = None
        logger.info("Meeting %s: question sequence exhausted", self._session.meeting_id)
        await self._on_complete()
