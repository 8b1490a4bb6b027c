"""
Process-wide table of active sessions keyed by meeting id.

Every operation takes the registry lock, so two concurrent ``create`` calls
for the same meeting id see exactly one success. Removed sessions leave a
summary behind in a bounded history so terminal states stay visible on
status queries.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from typing import Optional

from .errors import DuplicateSessionError, SessionNotFoundError
from .session import BotSession
from .models import SessionSummary


__all__ = ["SessionRegistry"]


logger = logging.getLogger(__name__)


class SessionRegistry:
    """
    Holds session metadata and the opaque viewport handle of each session.

    The registry never touches a session's viewport itself.

    Example:
        >>> registry = SessionRegistry()
        >>> session = await registry.create("85746065", "Backend interview")
        >>> await registry.remove("85746065")
    """

    def __init__(self, recent_capacity: int = 50) -> None:
        self._lock = asyncio.Lock()
        self._sessions: dict[str, BotSession] = {}
        self._recent: deque[SessionSummary] = deque(maxlen=max(1, recent_capacity))

    @property
    def count(self) -> int:
        """Number of active sessions."""
        return len(self._sessions)

    async def create(self, meeting_id: str, topic: str | None = None) -> BotSession:
        """
        Insert a new idle session.

        Raises:
            DuplicateSessionError: If a session already exists for the id.
        """
        async with self._lock:
            if meeting_id in self._sessions:
                raise DuplicateSessionError(meeting_id)
            session = BotSession(meeting_id=meeting_id, topic=topic or "Manual Meeting")
            self._sessions[meeting_id] = session
        logger.info("Registered session for meeting %s (%s)", meeting_id, session.topic)
        return session

    async def get(self, meeting_id: str) -> BotSession:
        """
        Return the active session for a meeting.

        Raises:
            SessionNotFoundError: If no active session exists.
        """
        async with self._lock:
            session = self._sessions.get(meeting_id)
        if session is None:
            raise SessionNotFoundError(meeting_id)
        return session

    async def find(self, meeting_id: str) -> Optional[SessionSummary]:
        """Return the active session's summary, else the last finished one."""
        async with self._lock:
            session = self._sessions.get(meeting_id)
            if session is not None:
                return session.summary(include_history=True)
            for summary in reversed(self._recent):
                if summary.meetingId == meeting_id:
                    return summary
        return None

    async def remove(self, meeting_id: str) -> None:
        """Remove a session. No error if it is already gone."""
        async with self._lock:
            session = self._sessions.pop(meeting_id, None)
            if session is None:
                logger.debug("remove(%s): no active session", meeting_id)
                return
            self._recent.append(session.summary(include_history=True))
        logger.info(
            "Removed session for meeting %s in state %s",
            meeting_id,
            session.state.value,
        )

    async def list(self) -> list[SessionSummary]:
        """Snapshot summaries of all active sessions, oldest first."""
        async with self._lock:
            sessions = list(self._sessions.values())
        return [session.summary() for session in sessions]

    async def recent(self) -> list[SessionSummary]:
        """Summaries of recently removed sessions, most recent last."""
        async with self._lock:
            return list(self._recent)

    async def active_sessions(self) -> list[BotSession]:
        """Active session objects, for shutdown."""
        async with self._lock:
            return list(self._sessions.values())
