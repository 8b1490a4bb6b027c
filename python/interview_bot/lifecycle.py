"""
Bot lifecycle state machine.

Drives one session through::

    idle -> joining -> in_meeting -> interviewing -> ending -> left
                 \\___________\\______________\\__-> failed

All transitions for a session run under ``session.lock``; scheduler
deliveries take the same lock, so nothing for one meeting overlaps. The
viewport is released exactly once per session, before the session reaches a
terminal state, and the session is removed from the registry on entering
``left`` or ``failed``.

Last Grunted: 10/19/2026
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional, Sequence, TypeVar

from .collaborators import (
    MediaStreamClient,
    SpeechSynthesizer,
    StrategyChain,
    ViewportController,
    ViewportFactory,
)
from .errors import AutomationFailure, InvalidTransitionError, ReleaseFailure
from .models import SessionState, SessionSummary, TransitionRecord
from .registry import SessionRegistry
from .scheduler import InterviewScheduler
from .session import BotSession


__all__ = ["LifecycleSettings", "BotLifecycle", "TransitionListener"]


logger = logging.getLogger(__name__)

T = TypeVar("T")

TransitionListener = Callable[[SessionSummary, TransitionRecord], Awaitable[None]]


@dataclass(frozen=True)
class LifecycleSettings:
    """Timing and identity knobs shared by every session."""

    display_name: str
    join_strategies: StrategyChain
    question_interval_seconds: float = 30.0
    join_timeout_seconds: float = 60.0
    join_poll_interval_seconds: float = 1.0
    action_timeout_seconds: float = 15.0
    leave_timeout_seconds: float = 15.0
    auto_start_interview: bool = True


class BotLifecycle:
    """
    State machine for one session.

    Args:
        session: The session this machine drives (already registered).
        registry: Registry to remove the session from on terminal states.
        viewport_factory: Acquires a viewport for the meeting on join.
        questions: Question sequence for the interview.
        settings: Shared timing and identity settings.
        speech: Optional speech output for questions.
        media: Optional media stream client, connected once joined.
        listener: Optional coroutine notified after each transition.
    """

    def __init__(
        self,
        session: BotSession,
        registry: SessionRegistry,
        viewport_factory: ViewportFactory,
        questions: Sequence[str],
        settings: LifecycleSettings,
        speech: Optional[SpeechSynthesizer] = None,
        media: Optional[MediaStreamClient] = None,
        listener: Optional[TransitionListener] = None,
    ) -> None:
        self.session = session
        self._registry = registry
        self._viewport_factory = viewport_factory
        self._questions = tuple(questions)
        self._settings = settings
        self._speech = speech
        self._media = media
        self._listener = listener
        self._scheduler: InterviewScheduler | None = None
        self._media_connected = False
        self._released = False
        self._completion_handled = False
        self._pending: list[TransitionRecord] = []
        self._cleanup_tasks: set[asyncio.Future[None]] = set()
        self._stop_reason = "stop requested"

    @property
    def meeting_id(self) -> str:
        return self.session.meeting_id

    @property
    def scheduler(self) -> InterviewScheduler | None:
        return self._scheduler

    # =========================================================================
    # Public transitions
    # =========================================================================

    async def start(self) -> SessionSummary:
        """
        Join the meeting: ``idle -> joining -> in_meeting``.

        Automation errors end in ``failed`` and are not raised; check the
        returned summary or a later status query.

        Raises:
            InvalidTransitionError: If the session is not idle.
        """
        session = self.session
        async with session.lock:
            if session.state != SessionState.IDLE:
                raise InvalidTransitionError(self.meeting_id, "start", session.state.value)

            if session.stop_requested:
                await self._finish_locked(SessionState.LEFT, "stopped before join")
            else:
                self._transition(SessionState.JOINING)
                try:
                    await self._join_locked()
                except AutomationFailure as exc:
                    await self._fail_locked(str(exc))
                except Exception as exc:  # noqa: BLE001 - any join error ends the session
                    logger.error(
                        "Meeting %s: unexpected join error: %s",
                        self.meeting_id,
                        exc,
                        exc_info=True,
                    )
                    await self._fail_locked(f"join: {exc}")
        await self._flush_notifications()

        if session.state == SessionState.IN_MEETING and self._settings.auto_start_interview:
            try:
                await self.start_interview()
            except InvalidTransitionError as exc:
                logger.info("Meeting %s: interview not started: %s", self.meeting_id, exc.message)

        return session.summary()

    async def start_interview(self) -> SessionSummary:
        """
        Begin asking questions: ``in_meeting -> interviewing``.

        Raises:
            InvalidTransitionError: If the session is not in the meeting.
        """
        session = self.session
        async with session.lock:
            if session.state != SessionState.IN_MEETING or session.stop_requested:
                raise InvalidTransitionError(
                    self.meeting_id, "start interview", session.state.value
                )
            self._transition(SessionState.INTERVIEWING)
            self._scheduler = InterviewScheduler(
                session=session,
                questions=self._questions,
                interval_seconds=self._settings.question_interval_seconds,
                deliver=self._deliver_question,
                on_complete=self._on_interview_complete,
                on_failure=self._on_scheduler_failure,
            )
            self._scheduler.start()
        await self._flush_notifications()
        return session.summary()

    async def stop(self, reason: str = "stop requested") -> SessionSummary:
        """
        End the session from any state. Idempotent.

        Waits for an in-flight transition or question delivery to settle,
        then leaves the meeting. A stop that lands mid-join makes the join
        fail once its current step returns.
        """
        session = self.session
        if not session.stop_requested:
            self._stop_reason = reason
        session.stop_requested = True
        async with session.lock:
            state = session.state
            if state.is_terminal:
                logger.debug("Meeting %s: stop ignored in terminal state %s", self.meeting_id, state.value)
            elif state == SessionState.IDLE:
                await self._finish_locked(SessionState.LEFT, reason)
            elif state in (SessionState.IN_MEETING, SessionState.INTERVIEWING):
                if self._scheduler is not None:
                    self._scheduler.cancel()
                self._transition(SessionState.ENDING, reason)
                await self._leave_locked()
            else:
                await self._fail_locked(f"{reason} while {state.value}")
        await self._flush_notifications()
        return session.summary(include_history=True)

    # =========================================================================
    # Join / leave
    # =========================================================================

    async def _join_locked(self) -> None:
        session = self.session
        settings = self._settings

        viewport = await self._acquire_viewport()
        session.viewport = viewport
        self._check_stop("acquire viewport")

        await self._bounded(
            viewport.enter_display_name(settings.display_name), "enter display name"
        )
        self._check_stop("enter display name")

        try:
            matched = await settings.join_strategies.first_match(
                viewport.confirm_joined,
                timeout=settings.join_timeout_seconds,
                poll_interval=settings.join_poll_interval_seconds,
                attempt_timeout=settings.action_timeout_seconds,
                step="confirm joined",
                abort=lambda: session.stop_requested,
            )
        except AutomationFailure:
            self._check_stop("confirm joined")
            raise
        self._check_stop("confirm joined")

        if self._media is not None:
            try:
                await self._bounded(self._media.connect(self.meeting_id), "connect media stream")
                self._media_connected = True
            except AutomationFailure as exc:
                logger.warning("Meeting %s: media stream unavailable: %s", self.meeting_id, exc)

        self._transition(SessionState.IN_MEETING, f"joined via {matched}")

    async def _acquire_viewport(self) -> ViewportController:
        """
        Acquire the viewport under the action timeout.

        The factory call is shielded: if the wait gives up first, acquisition
        keeps running and a viewport that arrives late is released at once.
        """
        acquire = asyncio.ensure_future(self._viewport_factory(self.meeting_id))
        try:
            return await self._bounded(asyncio.shield(acquire), "acquire viewport")
        except (AutomationFailure, asyncio.CancelledError):
            if not acquire.done():
                acquire.add_done_callback(self._on_late_viewport)
            raise

    def _on_late_viewport(self, acquire: asyncio.Future[ViewportController]) -> None:
        if acquire.cancelled():
            return
        exc = acquire.exception()
        if exc is not None:
            logger.warning("Meeting %s: late viewport acquisition failed: %s", self.meeting_id, exc)
            return
        task = asyncio.ensure_future(self._release_late_viewport(acquire.result()))
        self._cleanup_tasks.add(task)
        task.add_done_callback(self._cleanup_tasks.discard)

    async def _release_late_viewport(self, viewport: ViewportController) -> None:
        logger.warning("Meeting %s: releasing viewport acquired after timeout", self.meeting_id)
        try:
            await self._bounded(viewport.release(), "release viewport")
        except AutomationFailure as exc:
            logger.error("%s", ReleaseFailure(self.meeting_id, exc))

    async def _leave_locked(self) -> None:
        viewport = self.session.viewport
        departure_error: str | None = None
        if viewport is not None:
            try:
                await self._bounded(
                    viewport.confirm_left(),
                    "confirm left",
                    timeout=self._settings.leave_timeout_seconds,
                )
            except AutomationFailure as exc:
                departure_error = str(exc)
                logger.warning("Meeting %s: departure not confirmed: %s", self.meeting_id, exc)

        await self._release_locked()
        reason = f"departure error: {departure_error}" if departure_error else None
        await self._finish_locked(SessionState.LEFT, reason)

    async def _release_locked(self) -> None:
        if self._released:
            return
        self._released = True

        if self._media is not None and self._media_connected:
            self._media_connected = False
            try:
                await self._bounded(self._media.disconnect(), "disconnect media stream")
            except AutomationFailure as exc:
                logger.warning("Meeting %s: media disconnect failed: %s", self.meeting_id, exc)

        viewport = self.session.viewport
        # The slot is freed whether or not release succeeds.
        self.session.viewport = None
        if viewport is None:
            return
        try:
            await self._bounded(viewport.release(), "release viewport")
        except AutomationFailure as exc:
            failure = ReleaseFailure(self.meeting_id, exc)
            self.session.release_error = str(failure)
            logger.error("%s", failure)

    async def _fail_locked(self, reason: str) -> None:
        if self._scheduler is not None:
            self._scheduler.cancel()
        self.session.failure_reason = reason
        logger.error("Meeting %s: automation failure: %s", self.meeting_id, reason)
        await self._release_locked()
        await self._finish_locked(SessionState.FAILED, reason)

    async def _finish_locked(self, state: SessionState, reason: str | None) -> None:
        self._transition(state, reason)
        await self._registry.remove(self.meeting_id)

    # =========================================================================
    # Scheduler callbacks
    # =========================================================================

    async def _deliver_question(self, text: str) -> None:
        viewport = self.session.viewport
        if viewport is None:
            raise AutomationFailure("send chat message", "no viewport attached")
        await self._bounded(viewport.send_chat_message(text), "send chat message")

        if self._speech is not None:
            try:
                await self._bounded(self._speech.speak(text), "speak question")
            except AutomationFailure as exc:
                logger.warning("Meeting %s: speech failed: %s", self.meeting_id, exc)

    async def _on_interview_complete(self) -> None:
        session = self.session
        async with session.lock:
            if self._completion_handled or session.state != SessionState.INTERVIEWING:
                logger.debug(
                    "Meeting %s: completion ignored in state %s",
                    self.meeting_id,
                    session.state.value,
                )
                return
            self._completion_handled = True
            if self._scheduler is not None:
                self._scheduler.cancel()
            self._transition(SessionState.ENDING, "question sequence exhausted")
            await self._leave_locked()
        await self._flush_notifications()

    async def _on_scheduler_failure(self, exc: AutomationFailure) -> None:
        session = self.session
        async with session.lock:
            if session.state.is_terminal:
                return
            await self._fail_locked(str(exc))
        await self._flush_notifications()

    # =========================================================================
    # Helpers
    # =========================================================================

    def _check_stop(self, step: str) -> None:
        if self.session.stop_requested:
            raise AutomationFailure(step, f"{self._stop_reason} during join")

    async def _bounded(
        self,
        awaitable: Awaitable[T],
        step: str,
        timeout: float | None = None,
    ) -> T:
        limit = self._settings.action_timeout_seconds if timeout is None else timeout
        try:
            return await asyncio.wait_for(awaitable, timeout=limit)
        except asyncio.TimeoutError as exc:
            raise AutomationFailure(step, f"timed out after {limit:.1f}s") from exc
        except AutomationFailure:
            raise
        except Exception as exc:  # noqa: BLE001 - collaborator errors become automation failures
            raise AutomationFailure(step, str(exc) or type(exc).__name__) from exc

    def _transition(self, state: SessionState, reason: str | None = None) -> None:
        self._pending.append(self.session.transition(state, reason))

    async def _flush_notifications(self) -> None:
        if not self._pending:
            return
        pending, self._pending = self._pending, []
        if self._listener is None:
            return
        summary = self.session.summary()
        for record in pending:
            try:
                await self._listener(summary, record)
            except Exception as exc:  # noqa: BLE001 - listeners must not break the lifecycle
                logger.warning(
                    "Meeting %s: transition listener failed: %s",
                    self.meeting_id,
                    exc,
                )
