"""
Pydantic models for the interview bot.

Defines lifecycle states, participant records, webhook payload shapes,
session summaries and transition records.

Last Grunted: 10/19/2026
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, field_validator


def utc_timestamp() -> str:
    """Return the current UTC time as ISO 8601 with a 'Z' suffix."""
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


class SessionState(str, Enum):
    """
    Bot lifecycle states.

    ``LEFT`` and ``FAILED`` are terminal.
    """

    IDLE = "idle"
    JOINING = "joining"
    IN_MEETING = "in_meeting"
    INTERVIEWING = "interviewing"
    ENDING = "ending"
    LEFT = "left"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionState.LEFT, SessionState.FAILED)

    @property
    def holds_viewport(self) -> bool:
        return self in (
            SessionState.JOINING,
            SessionState.IN_MEETING,
            SessionState.INTERVIEWING,
            SessionState.ENDING,
        )


class Participant(BaseModel):
    """
    Participant record as delivered by ``meeting.participant_joined``.

    Only the commonly present fields are modelled; anything else the
    platform adds is dropped.
    """

    user_id: Optional[str] = None
    user_name: Optional[str] = None
    id: Optional[str] = None
    email: Optional[str] = None
    join_time: Optional[str] = None

    model_config = {"extra": "ignore"}

    @field_validator("user_id", "id", mode="before")
    @classmethod
    def _coerce_identifier(cls, value: Any) -> Any:
        if isinstance(value, (int, float)):
            return str(value)
        return value


class MeetingObject(BaseModel):
    """The ``payload.object`` block shared by meeting events."""

    id: Optional[str] = None
    uuid: Optional[str] = None
    topic: Optional[str] = None
    host_id: Optional[str] = None
    participant: Optional[Participant] = None

    model_config = {"extra": "ignore"}

    @field_validator("id", mode="before")
    @classmethod
    def _coerce_meeting_id(cls, value: Any) -> Any:
        # Platform meeting ids arrive as JSON numbers.
        if isinstance(value, (int, float)):
            return str(value)
        return value


class MeetingPayload(BaseModel):
    """Payload of ``meeting.*`` events."""

    account_id: Optional[str] = None
    object: Optional[MeetingObject] = None

    model_config = {"extra": "ignore"}


class ChallengePayload(BaseModel):
    """Payload of ``endpoint.url_validation``."""

    plainToken: str = Field(..., min_length=1)

    model_config = {"extra": "ignore"}


class WebhookEnvelope(BaseModel):
    """Top-level webhook body: ``{"event": ..., "payload": {...}}``."""

    event: str = Field(default="", description="Platform event type")
    event_ts: Optional[int] = Field(default=None, description="Platform event time (ms)")
    payload: dict[str, Any] = Field(default_factory=dict)

    model_config = {"extra": "ignore"}


class ChallengeResponse(BaseModel):
    """Answer to the platform's endpoint ownership handshake."""

    plainToken: str
    encryptedToken: str


class TransitionRecord(BaseModel):
    """One lifecycle transition, kept on the session for status queries."""

    from_state: SessionState
    to_state: SessionState
    at: str = Field(default_factory=utc_timestamp)
    reason: Optional[str] = None


class SessionSummary(BaseModel):
    """
    Snapshot of a session as reported by the management API.

    Field names use the camelCase keys the management API exposes.
    """

    meetingId: str
    topic: str
    state: SessionState
    questionIndex: int = Field(..., ge=0)
    participantCount: int = Field(..., ge=0)
    createdAt: str
    endedAt: Optional[str] = None
    failureReason: Optional[str] = None
    releaseError: Optional[str] = None
    history: list[TransitionRecord] = Field(default_factory=list)
