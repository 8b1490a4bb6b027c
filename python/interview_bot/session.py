"""
Bot session record.

One ``BotSession`` per meeting: lifecycle state, question progress,
participants seen through webhooks, and the exclusively owned viewport
handle. The per-session lock serializes lifecycle transitions and scheduler
deliveries for that meeting.

Thread Safety:
    Mutated only from the event loop. Callers that change ``state``,
    ``question_index`` or ``viewport`` must hold ``lock``.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Optional

from .collaborators import ViewportController
from .models import (
    Participant,
    SessionState,
    SessionSummary,
    TransitionRecord,
    utc_timestamp,
)


__all__ = ["BotSession"]


logger = logging.getLogger(__name__)


@dataclass
class BotSession:
    """
    Orchestration record for one meeting's bot engagement.

    Example:
        >>> session = BotSession(meeting_id="85746065", topic="Backend interview")
        >>> session.state
        <SessionState.IDLE: 'idle'>
    """

    meeting_id: str
    topic: str
    state: SessionState = SessionState.IDLE
    question_index: int = 0
    participants: list[Participant] = field(default_factory=list)
    created_at: str = field(default_factory=utc_timestamp)
    ended_at: Optional[str] = None
    viewport: Optional[ViewportController] = field(default=None, repr=False)
    scheduled_timer: Optional[asyncio.Task[None]] = field(default=None, repr=False)
    history: list[TransitionRecord] = field(default_factory=list, repr=False)
    failure_reason: Optional[str] = None
    release_error: Optional[str] = None
    stop_requested: bool = False
    lock: asyncio.Lock = field(default_factory=asyncio.Lock, repr=False)

    def transition(self, to_state: SessionState, reason: str | None = None) -> TransitionRecord:
        """
        Move to ``to_state`` and append a transition record.

        Raises:
            RuntimeError: If a viewport is still attached and ``to_state`` is
                not a state that may hold one.
        """
        if self.viewport is not None and not to_state.holds_viewport:
            raise RuntimeError(
                f"Meeting {self.meeting_id}: viewport still attached on transition to {to_state.value}"
            )
        record = TransitionRecord(from_state=self.state, to_state=to_state, reason=reason)
        self.history.append(record)
        self.state = to_state
        if to_state.is_terminal:
            self.ended_at = record.at
        logger.info(
            "Meeting %s: %s -> %s%s",
            self.meeting_id,
            record.from_state.value,
            to_state.value,
            f" ({reason})" if reason else "",
        )
        return record

    def add_participant(self, participant: Participant) -> None:
        """Append a participant record. Repeats are kept as delivered."""
        self.participants.append(participant)
        logger.info(
            "Meeting %s: participant joined: %s",
            self.meeting_id,
            participant.user_name or participant.user_id or participant.id or "unknown",
        )

    def summary(self, include_history: bool = False) -> SessionSummary:
        """Build the management API view of this session."""
        return SessionSummary(
            meetingId=self.meeting_id,
            topic=self.topic,
            state=self.state,
            questionIndex=self.question_index,
            participantCount=len(self.participants),
            createdAt=self.created_at,
            endedAt=self.ended_at,
            failureReason=self.failure_reason,
            releaseError=self.release_error,
            history=list(self.history) if include_history else [],
        )
