"""Notification route interfaces and shared types."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol


@dataclass(frozen=True)
class RouteDispatchResult:
    """Outcome of delivering one transition payload to one route."""

    route_id: str
    route_type: str
    ok: bool
    detail: str | None = None


class NotificationRoute(Protocol):
    """
    A destination for session transition payloads.

    ``dispatch`` reports failures in its result instead of raising, so one
    broken route never blocks the others or the session that triggered it.
    """

    route_id: str
    route_type: str

    async def dispatch(self, payload: dict[str, Any]) -> RouteDispatchResult:
        ...

    async def aclose(self) -> None:
        """Release connections held by the route."""
