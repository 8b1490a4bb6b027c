"""Collaborator backends selected by the bot profile."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Optional

from bot_platform.backends.remote import (
    AutomationServiceClient,
    RemoteSpeechSynthesizer,
    RemoteViewport,
)
from bot_platform.backends.simulated import (
    SimulatedMediaStream,
    SimulatedSpeechSynthesizer,
    SimulatedViewport,
)
from bot_platform.profile_models import BackendType, BotProfile
from interview_bot.collaborators import (
    MediaStreamClient,
    SpeechSynthesizer,
    ViewportController,
    ViewportFactory,
)


logger = logging.getLogger(__name__)


async def _noop_close() -> None:
    return None


@dataclass
class BackendBundle:
    """Everything the session manager needs from a backend."""

    viewport_factory: ViewportFactory
    speech: Optional[SpeechSynthesizer] = None
    media_factory: Optional[Callable[[], MediaStreamClient]] = None
    aclose: Callable[[], Awaitable[None]] = _noop_close


def build_backends(profile: BotProfile) -> BackendBundle:
    """Create collaborator backends from a validated bot profile."""
    spec = profile.backend

    def join_url(meeting_id: str) -> str:
        return spec.join_url_template.format(meeting_id=meeting_id)

    if spec.type == BackendType.SIMULATED:
        async def simulated_viewport(meeting_id: str) -> ViewportController:
            return SimulatedViewport(meeting_id, join_url(meeting_id))

        logger.info("Using simulated backends")
        return BackendBundle(
            viewport_factory=simulated_viewport,
            speech=SimulatedSpeechSynthesizer() if spec.speech else None,
            media_factory=SimulatedMediaStream if spec.media_stream else None,
        )

    if spec.type == BackendType.REMOTE:
        if not spec.base_url:
            raise RuntimeError("Remote backend requires backend.base_url.")
        client = AutomationServiceClient(
            base_url=spec.base_url,
            headers=spec.headers,
            timeout_seconds=spec.timeout_seconds,
        )

        async def remote_viewport(meeting_id: str) -> ViewportController:
            return await RemoteViewport.open(client, meeting_id, join_url(meeting_id))

        if spec.media_stream:
            logger.warning("Remote backend has no media stream support; media_stream ignored")
        logger.info("Using remote automation service at %s", spec.base_url)
        return BackendBundle(
            viewport_factory=remote_viewport,
            speech=RemoteSpeechSynthesizer(client) if spec.speech else None,
            aclose=client.aclose,
        )

    raise RuntimeError(f"Unsupported backend type '{spec.type.value}'.")


__all__ = [
    "AutomationServiceClient",
    "BackendBundle",
    "RemoteSpeechSynthesizer",
    "RemoteViewport",
    "SimulatedMediaStream",
    "SimulatedSpeechSynthesizer",
    "SimulatedViewport",
    "build_backends",
]
