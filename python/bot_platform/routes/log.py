"""Log route: writes session transitions to the service log."""

from __future__ import annotations

import logging
from typing import Any

from bot_platform.routes.base import RouteDispatchResult


logger = logging.getLogger(__name__)


class LogRoute:
    """Logs each transition payload at INFO."""

    route_type = "log"

    def __init__(self, route_id: str) -> None:
        self.route_id = route_id

    async def dispatch(self, payload: dict[str, Any]) -> RouteDispatchResult:
        logger.info(
            "[%s] meeting=%s %s -> %s reason=%s",
            self.route_id,
            payload.get("meeting_id"),
            payload.get("from_state"),
            payload.get("to_state"),
            payload.get("reason"),
        )
        return RouteDispatchResult(
            route_id=self.route_id,
            route_type=self.route_type,
            ok=True,
        )

    async def aclose(self) -> None:
        return None
