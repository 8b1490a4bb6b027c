"""
Meeting Interview Bot Service

Receives signed meeting-platform webhooks, drives one bot per meeting through
join -> interview -> leave, and exposes a management API for operators.

Endpoints:
    POST /webhook                        - Platform webhooks (alias: /zoom/webhook)
    POST /sessions                       - Open a session and join (alias: /bot/join)
    POST /sessions/{id}/interview/start  - Start the question sequence
    POST /sessions/{id}/stop             - Stop a session (idempotent)
    GET  /sessions                       - Active and recently finished sessions
    GET  /sessions/{id}                  - One session with transition history
    GET  /health                         - Health check
    GET  /                               - Service index / OAuth redirect landing

Internal binding: configured by BOT_HOST/BOT_PORT (default 0.0.0.0:8080)
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Annotated, Any, AsyncIterator, Optional, TypedDict

import uvicorn
from dotenv import load_dotenv
from fastapi import APIRouter, Depends, FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse
from pydantic import BaseModel, Field, field_validator

from bot_platform import PLATFORM_NAME, BotProfile, JoinPolicy, load_bot_profile
from bot_platform.backends import BackendBundle, build_backends
from bot_platform.routes import (
    NotificationOrchestrator,
    build_notification_orchestrator,
    build_transition_payload,
)
from interview_bot import (
    ActionKind,
    BotServiceError,
    EventRouter,
    LifecycleSettings,
    SessionManager,
    SessionRegistry,
    SessionSummary,
    StrategyChain,
    TransitionRecord,
    VerificationFailed,
    WebhookParseError,
    parse_webhook_event,
    respond_to_challenge,
    verify_signature,
)
from interview_bot import __version__ as ENGINE_VERSION
from interview_bot.models import utc_timestamp
from question_sets import QuestionSet, load_question_set

# =============================================================================
# Logging Configuration
# =============================================================================

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

# Load environment variables from .env file
_env_path = Path(__file__).parent / ".env"
load_dotenv(_env_path)

logger = logging.getLogger(__name__)

SERVICE_NAME = "Meeting Interview Bot"


# =============================================================================
# Configuration
# =============================================================================

@dataclass(frozen=True)
class RuntimeConfig:
    """Runtime config for one bot service instance."""

    webhook_secret: str | None
    host: str
    port: int
    profile_path: str | None
    instance_id: str


def load_runtime_config() -> RuntimeConfig:
    """Load runtime config from environment with strict validation."""
    webhook_secret = (
        os.environ.get("WEBHOOK_SECRET_TOKEN")
        or os.environ.get("ZOOM_WEBHOOK_SECRET_TOKEN")
        or ""
    ).strip() or None

    host = (os.environ.get("BOT_HOST", "0.0.0.0") or "").strip()
    if not host:
        raise RuntimeError("BOT_HOST resolved to empty value.")

    port_raw = (os.environ.get("BOT_PORT") or os.environ.get("PORT") or "8080").strip()
    try:
        port = int(port_raw)
    except ValueError as exc:
        raise RuntimeError(f"BOT_PORT must be an integer. Got: {port_raw}") from exc

    if port < 1 or port > 65535:
        raise RuntimeError(f"BOT_PORT must be in range 1-65535. Got: {port}.")

    profile_path = (os.environ.get("BOT_PROFILE_PATH") or "").strip() or None

    instance_id = (os.environ.get("INSTANCE_ID", "default") or "").strip()
    if not instance_id:
        raise RuntimeError("INSTANCE_ID resolved to empty value.")

    return RuntimeConfig(
        webhook_secret=webhook_secret,
        host=host,
        port=port,
        profile_path=profile_path,
        instance_id=instance_id,
    )


def build_lifecycle_settings(profile: BotProfile) -> LifecycleSettings:
    """Translate a validated profile into lifecycle settings."""
    return LifecycleSettings(
        display_name=profile.display_name,
        join_strategies=StrategyChain(profile.join_detection_strategies),
        question_interval_seconds=profile.timing.question_interval_seconds,
        join_timeout_seconds=profile.timing.join_timeout_seconds,
        join_poll_interval_seconds=profile.timing.join_poll_interval_seconds,
        action_timeout_seconds=profile.timing.action_timeout_seconds,
        leave_timeout_seconds=profile.timing.leave_timeout_seconds,
        auto_start_interview=profile.auto_start_interview,
    )


# CORS configuration for operator dashboards - modify for production
CORS_ORIGINS: list[str] = [
    "http://localhost:3000",
    "http://localhost:8501",
]

SECURITY_HEADERS: dict[str, str] = {
    "Strict-Transport-Security": "max-age=31536000; includeSubDomains",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "X-XSS-Protection": "1; mode=block",
}

OAUTH_ACK_HTML = """
<html>
  <body style="font-family: Arial, sans-serif; text-align: center; padding: 50px;">
    <h2>Interview Bot Connected!</h2>
    <p>Authorization successful. You can close this window.</p>
    <script>setTimeout(() => window.close(), 2000);</script>
  </body>
</html>
"""

ENDPOINTS: dict[str, str] = {
    "webhook": "POST /webhook",
    "join": "POST /sessions",
    "start_interview": "POST /sessions/{meetingId}/interview/start",
    "stop": "POST /sessions/{meetingId}/stop",
    "sessions": "GET /sessions",
    "session": "GET /sessions/{meetingId}",
    "health": "GET /health",
}


# =============================================================================
# Request Models
# =============================================================================


class SessionOpenRequest(BaseModel):
    """Request to open a session and send the bot into a meeting."""

    meetingId: str = Field(..., min_length=1, description="Platform meeting identifier")
    topic: str | None = Field(default=None, description="Optional display label")

    model_config = {"extra": "ignore"}

    @field_validator("meetingId", mode="before")
    @classmethod
    def _coerce_meeting_id(cls, value: Any) -> Any:
        if isinstance(value, int) and not isinstance(value, bool):
            return str(value)
        if isinstance(value, str):
            return value.strip()
        return value


class SessionStopRequest(BaseModel):
    """Optional body for a stop request."""

    reason: str = Field(default="stop requested", min_length=1)

    model_config = {"extra": "ignore"}


# =============================================================================
# Response Models
# =============================================================================


class BaseResponse(BaseModel):
    """Base response model with common fields."""

    ok: bool = Field(..., description="Whether the operation succeeded")
    message: str | None = Field(default=None, description="Optional status message")


class ErrorResponse(BaseModel):
    """Standard error response."""

    ok: bool = Field(default=False)
    error: str = Field(..., description="Error description")
    error_code: str | None = Field(default=None, description="Machine-readable error code")


class SessionResponse(BaseResponse):
    """One session summary."""

    session: SessionSummary
    joinLink: str | None = Field(default=None, description="Meeting join URL")


class SessionListResponse(BaseModel):
    """Snapshot of active and recently finished sessions."""

    active_sessions: int = Field(..., description="Number of active sessions")
    sessions: list[SessionSummary] = Field(default_factory=list)
    recent: list[SessionSummary] = Field(default_factory=list)


class WebhookAckResponse(BaseResponse):
    """Acknowledgement for a processed webhook."""

    event: str = Field(..., description="Platform event type as received")


class HealthResponse(BaseModel):
    """Health check response."""

    ok: bool = Field(default=True)
    status: str = Field(..., description="Service health status")
    service: str = Field(..., description="Service name")
    version: str = Field(..., description="Service version")
    timestamp: str = Field(..., description="Current server timestamp")
    started_at: str = Field(..., description="Timestamp the service finished starting")
    active_sessions: int = Field(..., description="Number of active sessions")
    webhook_secret_configured: bool = Field(..., description="Whether webhooks can verify")
    profile_id: str = Field(..., description="Active bot profile id")
    instance_id: str = Field(..., description="Active instance ID")


# =============================================================================
# Application State (Type-safe Lifespan State)
# =============================================================================


class AppState(TypedDict):
    """Type-safe application state managed by lifespan."""

    runtime_config: RuntimeConfig
    profile: BotProfile
    question_set: QuestionSet
    registry: SessionRegistry
    session_manager: SessionManager
    event_router: EventRouter
    notifications: NotificationOrchestrator
    started_at: str


def get_app_state(request: Request) -> AppState:
    """
    Dependency to retrieve application state from request.

    Raises:
        RuntimeError: If state is not properly initialized.
    """
    state = getattr(request, "state", None)
    if state is None or not hasattr(state, "session_manager"):
        raise RuntimeError("Application state not initialized")
    return AppState(
        runtime_config=state.runtime_config,
        profile=state.profile,
        question_set=state.question_set,
        registry=state.registry,
        session_manager=state.session_manager,
        event_router=state.event_router,
        notifications=state.notifications,
        started_at=state.started_at,
    )


# Type alias for dependency injection
AppStateDep = Annotated[AppState, Depends(get_app_state)]


# =============================================================================
# Exception Handlers
# =============================================================================


async def bot_service_error_handler(request: Request, exc: BotServiceError) -> JSONResponse:
    """
    Handle BotServiceError exceptions.

    Args:
        request: The incoming request.
        exc: The exception that was raised.

    Returns:
        JSONResponse with error details.
    """
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            ok=False,
            error=exc.message,
            error_code=exc.error_code,
        ).model_dump(),
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unexpected exceptions."""
    logger.error("Unhandled exception: %s", exc, exc_info=True)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=ErrorResponse(
            ok=False,
            error="Internal server error",
            error_code="INTERNAL_ERROR",
        ).model_dump(),
    )


# =============================================================================
# Endpoints
# =============================================================================

router = APIRouter()


def _join_link(profile: BotProfile, meeting_id: str) -> str:
    return profile.backend.join_url_template.format(meeting_id=meeting_id)


@router.post("/webhook", response_model=None)
@router.post("/zoom/webhook", response_model=None, include_in_schema=False)
async def receive_webhook(request: Request, state: AppStateDep) -> dict[str, Any]:
    """
    Receive a platform webhook.

    The signature is checked against the exact received bytes before the body
    is parsed. URL validation challenges are answered only after the
    signature checks out.

    Returns:
        ``{plainToken, encryptedToken}`` for challenges, else ``{ok, event}``.

    Raises:
        VerificationFailed: If the signature is missing or wrong (401).
        BotServiceError: If a verified body is not a JSON object (400).
    """
    raw_body = await request.body()
    timestamp = request.headers.get("x-signature-timestamp") or request.headers.get(
        "x-zm-request-timestamp"
    )
    signature = request.headers.get("x-signature") or request.headers.get("x-zm-signature")

    if not verify_signature(raw_body, timestamp, signature, state["runtime_config"].webhook_secret):
        raise VerificationFailed()

    try:
        event = parse_webhook_event(raw_body, timestamp, signature)
    except WebhookParseError as exc:
        raise BotServiceError(
            message=str(exc),
            status_code=status.HTTP_400_BAD_REQUEST,
            error_code="MALFORMED_WEBHOOK",
        ) from exc

    logger.info("Webhook event: %s", event.raw_event or "<empty>")
    action = state["event_router"].route(event)

    if action.kind == ActionKind.CHALLENGE and action.plain_token:
        challenge = respond_to_challenge(action.plain_token, state["runtime_config"].webhook_secret)
        return challenge.model_dump()

    await state["session_manager"].apply(action)
    return WebhookAckResponse(ok=True, event=event.raw_event).model_dump()


@router.post(
    "/sessions",
    response_model=SessionResponse,
    status_code=status.HTTP_202_ACCEPTED,
)
@router.post(
    "/bot/join",
    response_model=SessionResponse,
    status_code=status.HTTP_202_ACCEPTED,
    include_in_schema=False,
)
async def open_session(request: SessionOpenRequest, state: AppStateDep) -> SessionResponse:
    """
    Open a session for a meeting and start joining in the background.

    Raises:
        DuplicateSessionError: If the meeting already has a session (409).
    """
    summary = await state["session_manager"].open_session(request.meetingId, request.topic)
    return SessionResponse(
        ok=True,
        message="Bot join initiated",
        session=summary,
        joinLink=_join_link(state["profile"], summary.meetingId),
    )


@router.post("/sessions/{meeting_id}/interview/start", response_model=SessionResponse)
async def start_interview(meeting_id: str, state: AppStateDep) -> SessionResponse:
    """
    Start the question sequence for a joined session.

    Raises:
        SessionNotFoundError: If the meeting has no active session (404).
        InvalidTransitionError: If the bot is not in the meeting (409).
    """
    summary = await state["session_manager"].start_interview(meeting_id)
    return SessionResponse(ok=True, message="Interview started", session=summary)


@router.post("/sessions/{meeting_id}/stop", response_model=SessionResponse)
async def stop_session(
    meeting_id: str,
    state: AppStateDep,
    request: Optional[SessionStopRequest] = None,
) -> SessionResponse:
    """
    Stop a session and return its final summary. Idempotent.

    Raises:
        SessionNotFoundError: If the meeting was never seen (404).
    """
    reason = request.reason if request is not None else "stop requested"
    summary = await state["session_manager"].stop_session(meeting_id, reason)
    return SessionResponse(ok=True, message="Session stopped", session=summary)


@router.get("/sessions", response_model=SessionListResponse)
@router.get("/meetings", response_model=SessionListResponse, include_in_schema=False)
async def list_sessions(state: AppStateDep) -> SessionListResponse:
    """Snapshot of active sessions plus the bounded recent history."""
    registry = state["registry"]
    sessions = await registry.list()
    return SessionListResponse(
        active_sessions=len(sessions),
        sessions=sessions,
        recent=await registry.recent(),
    )


@router.get("/sessions/{meeting_id}", response_model=SessionResponse)
async def get_session(meeting_id: str, state: AppStateDep) -> SessionResponse:
    """
    Active or most recently finished summary with transition history.

    Raises:
        SessionNotFoundError: If the meeting was never seen (404).
    """
    summary = await state["session_manager"].describe(meeting_id)
    return SessionResponse(ok=True, session=summary)


@router.get("/health", response_model=HealthResponse)
async def health(state: AppStateDep) -> HealthResponse:
    """Health check endpoint."""
    return HealthResponse(
        ok=True,
        status="healthy",
        service=SERVICE_NAME,
        version=ENGINE_VERSION,
        timestamp=utc_timestamp(),
        started_at=state["started_at"],
        active_sessions=state["registry"].count,
        webhook_secret_configured=state["runtime_config"].webhook_secret is not None,
        profile_id=state["profile"].profile_id,
        instance_id=state["runtime_config"].instance_id,
    )


@router.get("/", response_model=None)
async def index(state: AppStateDep, code: str | None = None) -> HTMLResponse | dict[str, Any]:
    """
    Service index.

    The platform's OAuth install flow redirects here with ``?code=``; that
    gets a small confirmation page instead of JSON.
    """
    if code:
        logger.info("OAuth authorization code received")
        return HTMLResponse(content=OAUTH_ACK_HTML)
    return {
        "message": f"{SERVICE_NAME} API",
        "status": "running",
        "platform": PLATFORM_NAME,
        "active_sessions": state["registry"].count,
        "endpoints": ENDPOINTS,
    }


# =============================================================================
# FastAPI Application Factory
# =============================================================================


def create_app(
    runtime_config: RuntimeConfig,
    profile: BotProfile,
    profile_path: Path | None = None,
    backends: BackendBundle | None = None,
) -> FastAPI:
    """
    Build the FastAPI application for one validated profile.

    Args:
        runtime_config: Environment-derived settings.
        profile: Validated bot profile.
        profile_path: Where the profile was loaded from, for logging.
        backends: Collaborator backends. Built from the profile when omitted.
    """
    question_set = load_question_set(profile.question_set)
    notifications = build_notification_orchestrator(profile)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[dict[str, Any]]:
        """
        Manage application lifespan with type-safe state.

        Builds the registry, session manager and backends on startup; stops
        every active session and closes backends on shutdown.
        """
        logger.info("Starting %s", SERVICE_NAME)
        logger.info(
            "Runtime: platform=%s profile=%s instance=%s host=%s port=%d",
            PLATFORM_NAME,
            profile.profile_id,
            runtime_config.instance_id,
            runtime_config.host,
            runtime_config.port,
        )
        if profile_path is not None:
            logger.info("Bot profile path: %s", profile_path)
        logger.info(
            "Webhook secret: %s",
            "Present" if runtime_config.webhook_secret else "Missing (webhooks will be rejected)",
        )
        logger.info(
            "Question set: %s (%d questions), join policy: %s",
            question_set.question_set_id,
            len(question_set),
            profile.join_policy.value,
        )
        logger.info("Enabled notification routes: %d", notifications.route_count)

        bundle = backends if backends is not None else build_backends(profile)
        registry = SessionRegistry(recent_capacity=profile.recent_session_capacity)

        async def _notify(summary: SessionSummary, record: TransitionRecord) -> None:
            await notifications.dispatch_all(
                build_transition_payload(
                    summary,
                    record,
                    profile_id=profile.profile_id,
                    instance_id=runtime_config.instance_id,
                )
            )

        session_manager = SessionManager(
            registry=registry,
            viewport_factory=bundle.viewport_factory,
            questions=question_set.questions,
            settings=build_lifecycle_settings(profile),
            speech=bundle.speech,
            media_factory=bundle.media_factory,
            listener=_notify,
        )

        state = {
            "runtime_config": runtime_config,
            "profile": profile,
            "question_set": question_set,
            "registry": registry,
            "session_manager": session_manager,
            "event_router": EventRouter(auto_join=profile.join_policy == JoinPolicy.AUTO),
            "notifications": notifications,
            "started_at": utc_timestamp(),
        }

        try:
            yield state
        finally:
            logger.info("Shutting down...")
            await session_manager.shutdown()
            await bundle.aclose()
            await notifications.aclose()

    app = FastAPI(
        title=f"{SERVICE_NAME} ({profile.profile_id})",
        version=ENGINE_VERSION,
        description="Joins meetings on platform webhooks and runs timed interview question sequences",
        lifespan=lifespan,
    )

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type"],
        max_age=3600,
    )

    @app.middleware("http")
    async def add_security_headers(request: Request, call_next):  # type: ignore[no-untyped-def]
        response = await call_next(request)
        for header, value in SECURITY_HEADERS.items():
            response.headers[header] = value
        return response

    # Register exception handlers
    app.add_exception_handler(BotServiceError, bot_service_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, generic_exception_handler)

    app.include_router(router)
    return app


RUNTIME_CONFIG = load_runtime_config()
BOT_PROFILE, BOT_PROFILE_PATH = load_bot_profile(RUNTIME_CONFIG.profile_path)

app = create_app(RUNTIME_CONFIG, BOT_PROFILE, BOT_PROFILE_PATH)


# =============================================================================
# Main Entry Point
# =============================================================================

if __name__ == "__main__":
    logger.info("=" * 60)
    logger.info(SERVICE_NAME)
    logger.info("=" * 60)
    logger.info("Binding to: http://%s:%d", RUNTIME_CONFIG.host, RUNTIME_CONFIG.port)
    logger.info(
        "Platform: %s, Profile: %s (%s), Instance: %s",
        PLATFORM_NAME,
        BOT_PROFILE.profile_id,
        BOT_PROFILE.display_name,
        RUNTIME_CONFIG.instance_id,
    )
    logger.info("Bot profile path: %s", BOT_PROFILE_PATH)
    logger.info("")
    logger.info("Endpoints:")
    logger.info("  POST /webhook                        - Platform webhooks")
    logger.info("  POST /sessions                       - Open session and join")
    logger.info("  POST /sessions/{id}/interview/start  - Start interview")
    logger.info("  POST /sessions/{id}/stop             - Stop session")
    logger.info("  GET  /sessions                       - List sessions")
    logger.info("  GET  /sessions/{id}                  - Session detail")
    logger.info("  GET  /health                         - Health check")
    logger.info("=" * 60)

    uvicorn.run(
        app,
        host=RUNTIME_CONFIG.host,
        port=RUNTIME_CONFIG.port,
        log_level="info",
    )
