"""Interview bot deployment platform: profiles, backends and notification routes."""

from bot_platform.profile_loader import (
    DEFAULT_PROFILE_PATH,
    PLATFORM_NAME,
    load_bot_profile,
    resolve_profile_path,
)
from bot_platform.profile_models import (
    BackendSpec,
    BackendType,
    BotProfile,
    JoinPolicy,
    NotificationRouteSpec,
    NotificationRouteType,
    NotificationsSpec,
    TimingSpec,
)

__all__ = [
    "load_bot_profile",
    "resolve_profile_path",
    "DEFAULT_PROFILE_PATH",
    "PLATFORM_NAME",
    "BackendSpec",
    "BackendType",
    "BotProfile",
    "JoinPolicy",
    "NotificationRouteSpec",
    "NotificationRouteType",
    "NotificationsSpec",
    "TimingSpec",
]
