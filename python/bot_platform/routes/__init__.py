"""Notification routing package."""

from bot_platform.routes.base import RouteDispatchResult
from bot_platform.routes.router import (
    NotificationOrchestrator,
    build_notification_orchestrator,
    build_transition_payload,
)

__all__ = [
    "RouteDispatchResult",
    "NotificationOrchestrator",
    "build_notification_orchestrator",
    "build_transition_payload",
]
