"""
Session manager.

Entry point shared by the webhook handler and the management API: creates
sessions in the registry, runs their lifecycles in background tasks, and
applies router actions. Owns every background task it starts so shutdown can
stop sessions and cancel what is left.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Coroutine, Optional, Sequence

from .collaborators import MediaStreamClient, SpeechSynthesizer, ViewportFactory
from .errors import DuplicateSessionError, InvalidTransitionError, SessionNotFoundError
from .events import ActionKind, RouterAction
from .lifecycle import BotLifecycle, LifecycleSettings, TransitionListener
from .models import Participant, SessionSummary, TransitionRecord
from .registry import SessionRegistry


__all__ = ["SessionManager"]


logger = logging.getLogger(__name__)


class SessionManager:
    """
    Coordinates the registry, per-session lifecycles and background tasks.

    Args:
        registry: Shared session registry.
        viewport_factory: Acquires a viewport for a meeting.
        questions: Question sequence used by every session.
        settings: Lifecycle settings shared by every session.
        speech: Optional speech synthesizer shared by every session.
        media_factory: Optional factory creating one media client per session.
        listener: Optional coroutine notified after each transition.

    Example:
        >>> manager = SessionManager(registry, factory, ("Q1", "Q2"), settings)
        >>> summary = await manager.open_session("85746065", "Backend interview")
        >>> await manager.stop_session("85746065")
    """

    def __init__(
        self,
        registry: SessionRegistry,
        viewport_factory: ViewportFactory,
        questions: Sequence[str],
        settings: LifecycleSettings,
        speech: Optional[SpeechSynthesizer] = None,
        media_factory: Optional[Callable[[], MediaStreamClient]] = None,
        listener: Optional[TransitionListener] = None,
    ) -> None:
        self.registry = registry
        self._viewport_factory = viewport_factory
        self._questions = tuple(questions)
        self._settings = settings
        self._speech = speech
        self._media_factory = media_factory
        self._listener = listener
        self._lifecycles: dict[str, BotLifecycle] = {}
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def questions(self) -> tuple[str, ...]:
        return self._questions

    @property
    def pending_tasks(self) -> int:
        return len(self._tasks)

    # =========================================================================
    # Session operations
    # =========================================================================

    async def open_session(self, meeting_id: str, topic: str | None = None) -> SessionSummary:
        """
        Register a session and start joining in the background.

        Raises:
            DuplicateSessionError: If a session already exists for the meeting.
        """
        session = await self.registry.create(meeting_id, topic)
        lifecycle = BotLifecycle(
            session=session,
            registry=self.registry,
            viewport_factory=self._viewport_factory,
            questions=self._questions,
            settings=self._settings,
            speech=self._speech,
            media=self._media_factory() if self._media_factory else None,
            listener=self._make_listener(meeting_id),
        )
        self._lifecycles[meeting_id] = lifecycle
        self._spawn(self._run_start(lifecycle), f"join-{meeting_id}")
        return session.summary()

    async def start_interview(self, meeting_id: str) -> SessionSummary:
        """
        Start the question sequence for a joined session.

        Raises:
            SessionNotFoundError: If the meeting has no active session.
            InvalidTransitionError: If the session is not in the meeting.
        """
        lifecycle = await self._lifecycle_for(meeting_id)
        return await lifecycle.start_interview()

    async def stop_session(self, meeting_id: str, reason: str = "stop requested") -> SessionSummary:
        """
        Stop a session and wait for it to settle. Idempotent.

        A meeting that already finished returns its archived summary.

        Raises:
            SessionNotFoundError: If the meeting was never seen.
        """
        try:
            lifecycle = await self._lifecycle_for(meeting_id)
        except SessionNotFoundError:
            summary = await self.registry.find(meeting_id)
            if summary is None:
                raise
            return summary
        return await lifecycle.stop(reason)

    async def request_stop(self, meeting_id: str, reason: str) -> bool:
        """Stop a session in the background. Returns False if none is active."""
        try:
            lifecycle = await self._lifecycle_for(meeting_id)
        except SessionNotFoundError:
            return False
        self._spawn(lifecycle.stop(reason), f"stop-{meeting_id}")
        return True

    async def add_participant(self, meeting_id: str, participant: Participant) -> bool:
        """Append a participant to an active session. Returns False if none."""
        try:
            session = await self.registry.get(meeting_id)
        except SessionNotFoundError:
            logger.debug("Participant for unknown meeting %s ignored", meeting_id)
            return False
        session.add_participant(participant)
        return True

    async def describe(self, meeting_id: str) -> SessionSummary:
        """
        Return the active or most recently finished summary for a meeting.

        Raises:
            SessionNotFoundError: If the meeting was never seen.
        """
        summary = await self.registry.find(meeting_id)
        if summary is None:
            raise SessionNotFoundError(meeting_id)
        return summary

    # =========================================================================
    # Router actions
    # =========================================================================

    async def apply(self, action: RouterAction) -> None:
        """
        Apply a classified webhook action.

        Re-delivered ``meeting.started`` events hit the duplicate check and
        are ignored. ``CHALLENGE`` is answered by the webhook handler itself.
        """
        if action.kind == ActionKind.START_SESSION and action.meeting_id:
            try:
                await self.open_session(action.meeting_id, action.topic)
            except DuplicateSessionError:
                logger.info(
                    "Meeting %s already has a session; ignoring repeated '%s'",
                    action.meeting_id,
                    action.event,
                )
        elif action.kind == ActionKind.END_SESSION and action.meeting_id:
            if not await self.request_stop(action.meeting_id, "meeting ended"):
                logger.info("Meeting %s ended with no active session", action.meeting_id)
        elif action.kind == ActionKind.ADD_PARTICIPANT and action.meeting_id and action.participant:
            await self.add_participant(action.meeting_id, action.participant)
        elif action.kind == ActionKind.IGNORE:
            logger.debug("Ignored '%s': %s", action.event, action.reason)

    # =========================================================================
    # Shutdown
    # =========================================================================

    async def shutdown(self) -> None:
        """Stop every active session, then cancel leftover background tasks."""
        sessions = await self.registry.active_sessions()
        if sessions:
            logger.info("Stopping %d active sessions", len(sessions))
        results = await asyncio.gather(
            *(self.stop_session(s.meeting_id, "service shutdown") for s in sessions),
            return_exceptions=True,
        )
        for result in results:
            if isinstance(result, Exception) and not isinstance(result, SessionNotFoundError):
                logger.warning("Session stop during shutdown failed: %s", result)

        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    # =========================================================================
    # Internals
    # =========================================================================

    async def _lifecycle_for(self, meeting_id: str) -> BotLifecycle:
        session = await self.registry.get(meeting_id)
        lifecycle = self._lifecycles.get(meeting_id)
        if lifecycle is None or lifecycle.session is not session:
            raise SessionNotFoundError(meeting_id)
        return lifecycle

    async def _run_start(self, lifecycle: BotLifecycle) -> None:
        try:
            summary = await lifecycle.start()
        except InvalidTransitionError as exc:
            # A stop can settle the session before the join task runs.
            logger.info("Meeting %s: join skipped: %s", lifecycle.meeting_id, exc.message)
            return
        logger.info("Meeting %s: join finished in state %s", summary.meetingId, summary.state.value)

    def _make_listener(self, meeting_id: str) -> TransitionListener:
        async def _on_transition(summary: SessionSummary, record: TransitionRecord) -> None:
            if record.to_state.is_terminal:
                lifecycle = self._lifecycles.get(meeting_id)
                if lifecycle is not None and lifecycle.session.state.is_terminal:
                    self._lifecycles.pop(meeting_id, None)
            if self._listener is not None:
                await self._listener(summary, record)

        return _on_transition

    def _spawn(self, coro: Coroutine[object, object, object], name: str) -> None:
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)

    def _on_task_done(self, task: asyncio.Task[None]) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                "Background task %s failed: %s",
                task.get_name(),
                exc,
                exc_info=exc,
            )
