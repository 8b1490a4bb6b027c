"""Route orchestrator for profile-configured notifications."""

from __future__ import annotations

import logging
from typing import Any

from bot_platform.profile_models import BotProfile, NotificationRouteType
from bot_platform.routes.base import NotificationRoute, RouteDispatchResult
from bot_platform.routes.log import LogRoute
from bot_platform.routes.webhook import WebhookRoute
from interview_bot.models import SessionSummary, TransitionRecord


logger = logging.getLogger(__name__)


def build_transition_payload(
    summary: SessionSummary,
    record: TransitionRecord,
    profile_id: str,
    instance_id: str,
) -> dict[str, Any]:
    """Shape one lifecycle transition for outbound routes."""
    return {
        "event_type": "session_transition",
        "profile_id": profile_id,
        "instance_id": instance_id,
        "meeting_id": summary.meetingId,
        "from_state": record.from_state.value,
        "to_state": record.to_state.value,
        "reason": record.reason,
        "at": record.at,
        "session": summary.model_dump(mode="json", exclude={"history"}),
    }


class NotificationOrchestrator:
    """Dispatches payloads to all enabled notification routes."""

    def __init__(self, routes: tuple[NotificationRoute, ...]) -> None:
        self._routes = routes
        self.dispatch_total = 0
        self.dispatch_failures = 0

    @property
    def route_count(self) -> int:
        return len(self._routes)

    async def dispatch_all(self, payload: dict[str, Any]) -> list[RouteDispatchResult]:
        results: list[RouteDispatchResult] = []
        for route in self._routes:
            results.append(await route.dispatch(payload))
        self.dispatch_total += len(results)
        for failed in (result for result in results if not result.ok):
            self.dispatch_failures += 1
            logger.warning(
                "Route dispatch failed: route_id=%s route_type=%s detail=%s",
                failed.route_id,
                failed.route_type,
                failed.detail,
            )
        return results

    async def aclose(self) -> None:
        """Close every route; a failing close is logged, not raised."""
        for route in self._routes:
            try:
                await route.aclose()
            except Exception as exc:  # noqa: BLE001 - shutdown must reach every route
                logger.warning("Route close failed: route_id=%s error=%s", route.route_id, exc)


def build_notification_orchestrator(profile: BotProfile) -> NotificationOrchestrator:
    """Create route instances from a validated bot profile."""
    routes: list[NotificationRoute] = []

    for route in profile.notifications.routes:
        if not route.enabled:
            continue

        if route.type == NotificationRouteType.LOG:
            routes.append(LogRoute(route.id))
            continue

        if route.type == NotificationRouteType.WEBHOOK:
            if not route.url:
                raise RuntimeError(
                    f"Route '{route.id}' is webhook but has no URL configured."
                )
            routes.append(
                WebhookRoute(
                    route_id=route.id,
                    url=route.url,
                    headers=route.headers,
                    timeout_seconds=route.timeout_seconds,
                    signing_secret=route.signing_secret,
                )
            )
            continue

        raise RuntimeError(f"Unsupported route type '{route.type.value}'.")

    if not routes:
        raise RuntimeError("No enabled notification routes configured in bot profile.")

    return NotificationOrchestrator(tuple(routes))
