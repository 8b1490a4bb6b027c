"""Bot profile models: identity, timing, join policy, backends and notifications."""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, Field, model_validator


class JoinPolicy(str, Enum):
    """What to do when the platform reports ``meeting.started``."""

    AUTO = "auto"
    MANUAL = "manual"


class BackendType(str, Enum):
    """Supported collaborator backends."""

    SIMULATED = "simulated"
    REMOTE = "remote"


class NotificationRouteType(str, Enum):
    """Supported notification route types."""

    LOG = "log"
    WEBHOOK = "webhook"


class TimingSpec(BaseModel):
    """Timeouts and intervals, in seconds."""

    question_interval_seconds: float = Field(default=30.0, ge=0.0)
    join_timeout_seconds: float = Field(default=60.0, gt=0.0)
    join_poll_interval_seconds: float = Field(default=1.0, gt=0.0)
    action_timeout_seconds: float = Field(default=15.0, gt=0.0)
    leave_timeout_seconds: float = Field(default=15.0, gt=0.0)

    model_config = {"extra": "forbid"}


class BackendSpec(BaseModel):
    """Automation, speech and media backend selection."""

    type: BackendType = BackendType.SIMULATED
    base_url: str | None = None
    headers: dict[str, str] = Field(default_factory=dict)
    timeout_seconds: float = Field(default=30.0, gt=0.0)
    join_url_template: str = Field(default="https://zoom.us/j/{meeting_id}", min_length=1)
    speech: bool = True
    media_stream: bool = False

    @model_validator(mode="after")
    def validate_backend(self) -> "BackendSpec":
        if self.type == BackendType.REMOTE and not self.base_url:
            raise ValueError("backend.base_url is required for the remote backend")
        if "{meeting_id}" not in self.join_url_template:
            raise ValueError("backend.join_url_template must contain '{meeting_id}'")
        return self

    model_config = {"extra": "forbid"}


class NotificationRouteSpec(BaseModel):
    """Single notification route declaration."""

    id: str = Field(..., min_length=1)
    type: NotificationRouteType
    enabled: bool = True
    url: str | None = None
    headers: dict[str, str] = Field(default_factory=dict)
    timeout_seconds: float = 5.0
    signing_secret: str | None = None
    @model_validator(mode="after")
    def validate_route(self) -> "NotificationRouteSpec":
        if self.type == NotificationRouteType.WEBHOOK and self.enabled and not self.url:
            raise ValueError("notifications.routes[].url is required for enabled webhook routes")
        return self

    model_config = {"extra": "forbid"}


class NotificationsSpec(BaseModel):
    """Where session transitions are reported."""

    routes: tuple[NotificationRouteSpec, ...] = Field(..., min_length=1)

    @model_validator(mode="after")
    def validate_route_ids(self) -> "NotificationsSpec":
        ids = [route.id for route in self.routes]
        if len(ids) != len(set(ids)):
            raise ValueError("notifications.routes must have unique ids")
        return self

    model_config = {"extra": "forbid"}


class BotProfile(BaseModel):
    """Canonical configuration for one interview bot deployment."""

    profile_id: str = Field(..., min_length=1)
    display_name: str = Field(..., min_length=1)
    join_policy: JoinPolicy = JoinPolicy.AUTO
    auto_start_interview: bool = True
    question_set: str = Field(default="default", min_length=1)
    timing: TimingSpec = Field(default_factory=TimingSpec)
    join_detection_strategies: tuple[str, ...] = Field(..., min_length=1)
    recent_session_capacity: int = Field(default=50, ge=1)
    backend: BackendSpec = Field(default_factory=BackendSpec)
    notifications: NotificationsSpec

    @model_validator(mode="after")
    def validate_strategies(self) -> "BotProfile":
        if any(not strategy.strip() for strategy in self.join_detection_strategies):
            raise ValueError("join_detection_strategies must not contain blank entries")
        if len(set(self.join_detection_strategies)) != len(self.join_detection_strategies):
            raise ValueError("join_detection_strategies must be unique")
        return self

    model_config = {"extra": "forbid"}
