"""Webhook notification route."""

from __future__ import annotations

import json
import time
from typing import Any

import httpx

from bot_platform.routes.base import RouteDispatchResult
from interview_bot.signature import compute_signature


class WebhookRoute:
    """
    POST session transition payloads to an external HTTP endpoint.

    When ``signing_secret`` is set, each body is signed the same way the
    platform signs webhooks to us (``X-Signature-Timestamp`` and
    ``X-Signature: v0=<hex>``), so receivers can reuse one verifier.
    """

    route_type = "webhook"

    def __init__(
        self,
        route_id: str,
        url: str,
        headers: dict[str, str] | None = None,
        timeout_seconds: float = 5.0,
        signing_secret: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.route_id = route_id
        self.url = url
        self.headers = headers or {}
        self.timeout_seconds = timeout_seconds
        self._signing_secret = signing_secret
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.timeout_seconds,
                transport=self._transport,
            )
        return self._client

    def _request_headers(self, payload: dict[str, Any], body: bytes) -> dict[str, str]:
        headers = {
            "Content-Type": "application/json",
            "X-Bot-Event": str(payload.get("event_type", "")),
            "X-Bot-Meeting-Id": str(payload.get("meeting_id", "")),
            **self.headers,
        }
        if self._signing_secret:
            timestamp = str(int(time.time()))
            headers["X-Signature-Timestamp"] = timestamp
            headers["X-Signature"] = compute_signature(body, timestamp, self._signing_secret)
        return headers

    def _result(self, ok: bool, detail: str | None = None) -> RouteDispatchResult:
        return RouteDispatchResult(
            route_id=self.route_id,
            route_type=self.route_type,
            ok=ok,
            detail=detail,
        )

    async def dispatch(self, payload: dict[str, Any]) -> RouteDispatchResult:
        try:
            body = json.dumps(payload, separators=(",", ":")).encode("utf-8")
            response = await self._get_client().post(
                self.url,
                content=body,
                headers=self._request_headers(payload, body),
            )
        except Exception as exc:  # noqa: BLE001 - dispatch must never throw
            return self._result(False, f"{type(exc).__name__}: {exc}")

        if response.status_code >= 400:
            return self._result(False, f"HTTP {response.status_code}: {response.text[:160]}")
        return self._result(True)

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None
