"""
Interview Bot Orchestration Package.

Drives a meeting bot through join -> interview -> leave for many meetings at
once, fed by signed platform webhooks and a management API.

Components:
    - verify_signature / respond_to_challenge: Webhook authenticity checks
    - EventRouter: Classifies webhook events into router actions
    - SessionRegistry: Process-wide table of active sessions
    - BotLifecycle: Per-session join/interview/leave state machine
    - InterviewScheduler: Cancellable timed question delivery
    - SessionManager: Wires the above together and owns background tasks

Example:
    >>> from interview_bot import SessionManager, SessionRegistry
    >>>
    >>> manager = SessionManager(SessionRegistry(), viewport_factory, questions, settings)
    >>> await manager.open_session("85746065", "Backend interview")

Last Grunted: 10/19/2026
"""

from .models import (
    ChallengeResponse,
    MeetingObject,
    MeetingPayload,
    Participant,
    SessionState,
    SessionSummary,
    TransitionRecord,
    WebhookEnvelope,
)

from .errors import (
    AutomationFailure,
    BotServiceError,
    DuplicateSessionError,
    InvalidTransitionError,
    ReleaseFailure,
    SessionNotFoundError,
    VerificationFailed,
)

from .signature import compute_signature, respond_to_challenge, verify_signature

from .events import (
    ActionKind,
    EventRouter,
    EventType,
    RouterAction,
    WebhookEvent,
    WebhookParseError,
    parse_webhook_event,
)

from .collaborators import (
    MediaStreamClient,
    SpeechSynthesizer,
    StrategyChain,
    ViewportController,
    ViewportFactory,
)

from .session import BotSession
from .registry import SessionRegistry
from .scheduler import InterviewScheduler
from .lifecycle import BotLifecycle, LifecycleSettings
from .manager import SessionManager


__all__ = [
    # Models
    "ChallengeResponse",
    "MeetingObject",
    "MeetingPayload",
    "Participant",
    "SessionState",
    "SessionSummary",
    "TransitionRecord",
    "WebhookEnvelope",
    # Errors
    "AutomationFailure",
    "BotServiceError",
    "DuplicateSessionError",
    "InvalidTransitionError",
    "ReleaseFailure",
    "SessionNotFoundError",
    "VerificationFailed",
    # Signature
    "compute_signature",
    "respond_to_challenge",
    "verify_signature",
    # Events
    "ActionKind",
    "EventRouter",
    "EventType",
    "RouterAction",
    "WebhookEvent",
    "WebhookParseError",
    "parse_webhook_event",
    # Collaborators
    "MediaStreamClient",
    "SpeechSynthesizer",
    "StrategyChain",
    "ViewportController",
    "ViewportFactory",
    # Orchestration
    "BotSession",
    "SessionRegistry",
    "InterviewScheduler",
    "BotLifecycle",
    "LifecycleSettings",
    "SessionManager",
]

__version__ = "0.1.0"
