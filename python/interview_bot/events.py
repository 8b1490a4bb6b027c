"""
Webhook event parsing and routing.

Turns a verified webhook body into a typed ``WebhookEvent`` and classifies it
into a ``RouterAction``. Classification is pure: applying the action is the
session manager's job.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional

from pydantic import ValidationError

from .models import ChallengePayload, MeetingPayload, Participant, WebhookEnvelope


__all__ = [
    "EventType",
    "WebhookEvent",
    "WebhookParseError",
    "ActionKind",
    "RouterAction",
    "EventRouter",
    "parse_webhook_event",
]


logger = logging.getLogger(__name__)


class EventType(str, Enum):
    """Webhook event types the router understands."""

    URL_VALIDATION = "endpoint.url_validation"
    MEETING_STARTED = "meeting.started"
    MEETING_ENDED = "meeting.ended"
    PARTICIPANT_JOINED = "meeting.participant_joined"
    UNKNOWN = "unknown"

    @classmethod
    def from_raw(cls, raw: str) -> "EventType":
        try:
            return cls(raw)
        except ValueError:
            return cls.UNKNOWN


class WebhookParseError(ValueError):
    """Raised when a verified webhook body is not a JSON object."""


@dataclass(frozen=True)
class WebhookEvent:
    """One inbound webhook delivery. Never persisted."""

    event_type: EventType
    raw_event: str
    payload: dict[str, Any]
    raw_bytes: bytes
    timestamp_header: Optional[str] = None
    signature_header: Optional[str] = None


def parse_webhook_event(
    raw_bytes: bytes,
    timestamp_header: str | None = None,
    signature_header: str | None = None,
) -> WebhookEvent:
    """
    Parse raw webhook bytes into a ``WebhookEvent``.

    Call only after the signature has been checked against ``raw_bytes``.

    Raises:
        WebhookParseError: If the body is not a JSON object.
    """
    try:
        body = json.loads(raw_bytes)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise WebhookParseError(f"Webhook body is not valid JSON: {exc}") from exc

    if not isinstance(body, dict):
        raise WebhookParseError("Webhook body must be a JSON object.")

    try:
        envelope = WebhookEnvelope.model_validate(body)
    except ValidationError as exc:
        raise WebhookParseError(f"Webhook envelope is malformed: {exc}") from exc

    return WebhookEvent(
        event_type=EventType.from_raw(envelope.event),
        raw_event=envelope.event,
        payload=envelope.payload,
        raw_bytes=raw_bytes,
        timestamp_header=timestamp_header,
        signature_header=signature_header,
    )


class ActionKind(str, Enum):
    """What the session manager should do with a routed event."""

    CHALLENGE = "challenge"
    START_SESSION = "start_session"
    END_SESSION = "end_session"
    ADD_PARTICIPANT = "add_participant"
    IGNORE = "ignore"


@dataclass(frozen=True)
class RouterAction:
    """Result of classifying one webhook event."""

    kind: ActionKind
    event: str
    meeting_id: Optional[str] = None
    topic: Optional[str] = None
    participant: Optional[Participant] = None
    plain_token: Optional[str] = None
    reason: Optional[str] = None


class EventRouter:
    """
    Classifies webhook events into router actions.

    Args:
        auto_join: When False, ``meeting.started`` is ignored and sessions
            are only created through the management API.
    """

    def __init__(self, auto_join: bool = True) -> None:
        self.auto_join = auto_join

    def route(self, event: WebhookEvent) -> RouterAction:
        if event.event_type == EventType.URL_VALIDATION:
            return self._route_challenge(event)

        if event.event_type == EventType.UNKNOWN:
            logger.info("Ignoring unhandled webhook event '%s'", event.raw_event)
            return self._ignore(event, "unhandled event type")

        try:
            meeting = MeetingPayload.model_validate(event.payload).object
        except ValidationError as exc:
            logger.warning("Ignoring '%s' with malformed payload: %s", event.raw_event, exc)
            return self._ignore(event, "malformed payload")

        if meeting is None or not meeting.id:
            logger.warning("Ignoring '%s' without a meeting id", event.raw_event)
            return self._ignore(event, "missing meeting id")

        if event.event_type == EventType.MEETING_STARTED:
            if not self.auto_join:
                logger.info(
                    "Meeting %s started; manual join mode, not starting a session",
                    meeting.id,
                )
                return self._ignore(event, "manual join mode", meeting.id)
            return RouterAction(
                kind=ActionKind.START_SESSION,
                event=event.raw_event,
                meeting_id=meeting.id,
                topic=meeting.topic,
            )

        if event.event_type == EventType.MEETING_ENDED:
            return RouterAction(
                kind=ActionKind.END_SESSION,
                event=event.raw_event,
                meeting_id=meeting.id,
            )

        # PARTICIPANT_JOINED
        if meeting.participant is None:
            logger.warning("Ignoring participant event for %s without participant", meeting.id)
            return self._ignore(event, "missing participant", meeting.id)
        return RouterAction(
            kind=ActionKind.ADD_PARTICIPANT,
            event=event.raw_event,
            meeting_id=meeting.id,
            participant=meeting.participant,
        )

    def _route_challenge(self, event: WebhookEvent) -> RouterAction:
        try:
            challenge = ChallengePayload.model_validate(event.payload)
        except ValidationError:
            logger.warning("URL validation event without plainToken")
            return self._ignore(event, "missing plainToken")
        return RouterAction(
            kind=ActionKind.CHALLENGE,
            event=event.raw_event,
            plain_token=challenge.plainToken,
        )

    @staticmethod
    def _ignore(
        event: WebhookEvent,
        reason: str,
        meeting_id: str | None = None,
    ) -> RouterAction:
        return RouterAction(
            kind=ActionKind.IGNORE,
            event=event.raw_event,
            meeting_id=meeting_id,
            reason=reason,
        )
