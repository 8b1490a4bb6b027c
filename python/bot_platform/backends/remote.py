"""
HTTP client backends for an external browser automation service.

The automation service owns the real browser tabs. This module only speaks
its small JSON contract:

    POST   /viewports                      {meeting_id, join_url} -> {viewport_id}
    POST   /viewports/{id}/display-name    {display_name}
    POST   /viewports/{id}/joined          {strategy} -> {joined}
    POST   /viewports/{id}/chat            {text}
    POST   /viewports/{id}/leave
    DELETE /viewports/{id}
    POST   /speech                         {text}

Transport and HTTP errors surface as ``AutomationFailure`` so the lifecycle
treats them like any other automation step failure.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx

from interview_bot.errors import AutomationFailure


logger = logging.getLogger(__name__)


class AutomationServiceClient:
    """Thin async wrapper around the automation service HTTP API."""

    def __init__(
        self,
        base_url: str,
        headers: dict[str, str] | None = None,
        timeout_seconds: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=headers or {},
            timeout=httpx.Timeout(timeout_seconds, connect=min(timeout_seconds, 10.0)),
            transport=transport,
        )

    async def request(
        self,
        step: str,
        method: str,
        path: str,
        payload: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Send one request and return the decoded JSON body (empty dict if none)."""
        try:
            response = await self._client.request(method, path, json=payload)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise AutomationFailure(
                step,
                f"HTTP {exc.response.status_code}: {exc.response.text[:160]}",
            ) from exc
        except httpx.HTTPError as exc:
            raise AutomationFailure(step, f"{type(exc).__name__}: {exc}") from exc

        if not response.content:
            return {}
        try:
            body = response.json()
        except ValueError as exc:
            raise AutomationFailure(step, "automation service returned invalid JSON") from exc
        if not isinstance(body, dict):
            raise AutomationFailure(step, "automation service returned a non-object body")
        return body

    async def aclose(self) -> None:
        await self._client.aclose()


class RemoteViewport:
    """Viewport controller backed by one automation service tab."""

    def __init__(self, client: AutomationServiceClient, viewport_id: str, meeting_id: str) -> None:
        self._client = client
        self.viewport_id = viewport_id
        self.meeting_id = meeting_id

    @classmethod
    async def open(
        cls,
        client: AutomationServiceClient,
        meeting_id: str,
        join_url: str,
    ) -> "RemoteViewport":
        body = await client.request(
            "open viewport",
            "POST",
            "/viewports",
            {"meeting_id": meeting_id, "join_url": join_url},
        )
        viewport_id = body.get("viewport_id")
        if not viewport_id:
            raise AutomationFailure("open viewport", "response is missing viewport_id")
        logger.info("Opened remote viewport %s for meeting %s", viewport_id, meeting_id)
        return cls(client, str(viewport_id), meeting_id)

    def _path(self, suffix: str = "") -> str:
        return f"/viewports/{self.viewport_id}{suffix}"

    async def enter_display_name(self, display_name: str) -> None:
        await self._client.request(
            "enter display name",
            "POST",
            self._path("/display-name"),
            {"display_name": display_name},
        )

    async def confirm_joined(self, strategy: str) -> bool:
        body = await self._client.request(
            "confirm joined",
            "POST",
            self._path("/joined"),
            {"strategy": strategy},
        )
        return bool(body.get("joined"))

    async def send_chat_message(self, text: str) -> None:
        await self._client.request("send chat message", "POST", self._path("/chat"), {"text": text})

    async def confirm_left(self) -> None:
        await self._client.request("leave meeting", "POST", self._path("/leave"))

    async def release(self) -> None:
        await self._client.request("release viewport", "DELETE", self._path())


class RemoteSpeechSynthesizer:
    """Speech output through the automation service."""

    def __init__(self, client: AutomationServiceClient) -> None:
        self._client = client

    async def speak(self, text: str) -> None:
        await self._client.request("speak", "POST", "/speech", {"text": text})
