"""
In-process backends that simulate a meeting client.

Used for local runs and demos when no browser automation service is
available. Every action is logged and recorded so the flow can be
inspected through the service log.
"""

from __future__ import annotations

import asyncio
import logging


logger = logging.getLogger(__name__)


class SimulatedViewport:
    """Pretends to be a meeting client tab for one meeting."""

    def __init__(self, meeting_id: str, join_url: str, action_delay_seconds: float = 0.0) -> None:
        self.meeting_id = meeting_id
        self.join_url = join_url
        self.action_delay_seconds = action_delay_seconds
        self.display_name: str | None = None
        self.chat_log: list[str] = []
        self.joined = False
        self.released = False

    async def _pause(self) -> None:
        if self.action_delay_seconds > 0:
            await asyncio.sleep(self.action_delay_seconds)

    async def enter_display_name(self, display_name: str) -> None:
        await self._pause()
        self.display_name = display_name
        logger.info("[sim %s] entered display name '%s'", self.meeting_id, display_name)

    async def confirm_joined(self, strategy: str) -> bool:
        await self._pause()
        self.joined = self.display_name is not None
        logger.debug("[sim %s] strategy '%s' -> %s", self.meeting_id, strategy, self.joined)
        return self.joined

    async def send_chat_message(self, text: str) -> None:
        await self._pause()
        self.chat_log.append(text)
        logger.info("[sim %s] chat: %s", self.meeting_id, text)

    async def confirm_left(self) -> None:
        await self._pause()
        self.joined = False
        logger.info("[sim %s] left meeting", self.meeting_id)

    async def release(self) -> None:
        self.released = True
        logger.info("[sim %s] viewport released", self.meeting_id)


class SimulatedSpeechSynthesizer:
    """Logs spoken text instead of producing audio."""

    def __init__(self) -> None:
        self.spoken: list[str] = []

    async def speak(self, text: str) -> None:
        self.spoken.append(text)
        logger.info("[sim speech] %s", text)


class SimulatedMediaStream:
    """Media stream stand-in that only tracks connection state."""

    def __init__(self) -> None:
        self.meeting_id: str | None = None

    @property
    def connected(self) -> bool:
        return self.meeting_id is not None

    async def connect(self, meeting_id: str) -> None:
        self.meeting_id = meeting_id
        logger.info("[sim media] connected to meeting %s", meeting_id)

    async def disconnect(self) -> None:
        logger.info("[sim media] disconnected from meeting %s", self.meeting_id)
        self.meeting_id = None
