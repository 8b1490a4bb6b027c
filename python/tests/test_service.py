"""
FastAPI endpoint tests for the Meeting Interview Bot service.

Tests the webhook, management and health endpoints using httpx AsyncClient
with proper lifespan management via asgi-lifespan. Collaborators are the
in-memory fakes from ``tests.fakes``.

Last Grunted: 10/19/2026
"""

from __future__ import annotations

import asyncio
import hashlib
import hmac
from typing import AsyncIterator

import pytest
import pytest_asyncio
from asgi_lifespan import LifespanManager
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from bot_platform.backends import BackendBundle
from bot_service import SECURITY_HEADERS, RuntimeConfig, create_app
from tests.fakes import (
    TEST_SECRET,
    FakeSpeech,
    FakeViewportFactory,
    eventually,
    generate_challenge_body,
    generate_webhook_body,
    make_profile,
    sign_body,
)


def _runtime_config(secret: str | None = TEST_SECRET) -> RuntimeConfig:
    return RuntimeConfig(
        webhook_secret=secret,
        host="127.0.0.1",
        port=8080,
        profile_path=None,
        instance_id="test",
    )


def _build_app(
    factory: FakeViewportFactory,
    secret: str | None = TEST_SECRET,
    **profile_overrides,
) -> FastAPI:
    return create_app(
        _runtime_config(secret),
        make_profile(**profile_overrides),
        backends=BackendBundle(viewport_factory=factory, speech=FakeSpeech()),
    )


@pytest_asyncio.fixture
async def factory() -> FakeViewportFactory:
    return FakeViewportFactory()


@pytest_asyncio.fixture
async def client(factory: FakeViewportFactory) -> AsyncIterator[AsyncClient]:
    """
    Create async test client with proper lifespan management.

    Uses LifespanManager so the app's lifespan builds the registry and
    session manager before requests arrive.
    """
    app = _build_app(factory)
    async with LifespanManager(app) as manager:
        transport = ASGITransport(app=manager.app)
        async with AsyncClient(transport=transport, base_url="http://test") as ac:
            yield ac


async def _wait_state(client: AsyncClient, meeting_id: str, state: str) -> None:
    async def _check() -> bool:
        response = await client.get(f"/sessions/{meeting_id}")
        return response.status_code == 200 and response.json()["session"]["state"] == state

    await eventually(_check)


async def _post_webhook(client: AsyncClient, body, **sign_kwargs):
    raw, headers = sign_body(body, **sign_kwargs)
    return await client.post("/webhook", content=raw, headers=headers)


# =============================================================================
# Health / Index
# =============================================================================


class TestHealthEndpoint:
    """Tests for /health and /."""

    @pytest.mark.asyncio
    async def test_health_returns_healthy(self, client: AsyncClient) -> None:
        """Health check returns healthy status and session count."""
        response = await client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["ok"] is True
        assert data["status"] == "healthy"
        assert data["active_sessions"] == 0
        assert data["profile_id"] == "test"
        assert data["instance_id"] == "test"
        assert data["webhook_secret_configured"] is True
        assert data["timestamp"].endswith("Z")
        assert data["started_at"].endswith("Z")
        assert data["started_at"] <= data["timestamp"]

    @pytest.mark.asyncio
    async def test_security_headers_present(self, client: AsyncClient) -> None:
        """Every response carries the security headers."""
        for path in ("/health", "/", "/sessions", "/sessions/missing"):
            response = await client.get(path)
            for header, value in SECURITY_HEADERS.items():
                assert response.headers[header] == value

    @pytest.mark.asyncio
    async def test_cors_preflight_allowed_origin(self, client: AsyncClient) -> None:
        """Dashboards on allowed origins pass CORS preflight."""
        response = await client.options(
            "/sessions",
            headers={
                "Origin": "http://localhost:3000",
                "Access-Control-Request-Method": "POST",
            },
        )

        assert response.status_code == 200
        assert response.headers["access-control-allow-origin"] == "http://localhost:3000"

    @pytest.mark.asyncio
    async def test_index_lists_endpoints(self, client: AsyncClient) -> None:
        """The index reports status and endpoints."""
        data = (await client.get("/")).json()

        assert data["status"] == "running"
        assert data["endpoints"]["webhook"] == "POST /webhook"

    @pytest.mark.asyncio
    async def test_index_oauth_code(self, client: AsyncClient) -> None:
        """An OAuth redirect gets a small HTML confirmation."""
        response = await client.get("/", params={"code": "abc123"})

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/html")
        assert "Interview Bot Connected" in response.text
        assert "abc123" not in response.text


# =============================================================================
# Webhook
# =============================================================================


class TestWebhookVerification:
    """Signature checks on POST /webhook."""

    @pytest.mark.asyncio
    async def test_challenge_answered(self, client: AsyncClient) -> None:
        """A signed URL validation gets the HMAC of the plain token."""
        response = await _post_webhook(client, generate_challenge_body("plain-123"))

        assert response.status_code == 200
        expected = hmac.new(TEST_SECRET.encode(), b"plain-123", hashlib.sha256).hexdigest()
        assert response.json() == {"plainToken": "plain-123", "encryptedToken": expected}

    @pytest.mark.asyncio
    async def test_missing_headers_rejected(self, client: AsyncClient) -> None:
        """No signature headers: 401 and no session."""
        response = await client.post(
            "/webhook",
            json=generate_webhook_body("meeting.started", id="1"),
        )

        assert response.status_code == 401
        assert response.json()["error_code"] == "VERIFICATION_FAILED"
        assert (await client.get("/sessions")).json()["active_sessions"] == 0

    @pytest.mark.asyncio
    async def test_wrong_signature_rejected(self, client: AsyncClient) -> None:
        """A signature made with another secret is a 401."""
        response = await _post_webhook(
            client,
            generate_webhook_body("meeting.started", id="1"),
            secret="wrong",
        )
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_unsigned_challenge_rejected(self, client: AsyncClient) -> None:
        """Challenges are answered only after verification."""
        response = await client.post("/webhook", json=generate_challenge_body())
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_missing_secret_fails_closed(self, factory: FakeViewportFactory) -> None:
        """Without a configured secret every webhook is rejected."""
        app = _build_app(factory, secret=None)
        async with LifespanManager(app) as manager:
            transport = ASGITransport(app=manager.app)
            async with AsyncClient(transport=transport, base_url="http://test") as ac:
                response = await _post_webhook(ac, generate_challenge_body())
                health = (await ac.get("/health")).json()

        assert response.status_code == 401
        assert health["webhook_secret_configured"] is False

    @pytest.mark.asyncio
    async def test_platform_header_names_accepted(self, client: AsyncClient) -> None:
        """x-zm-* header names work on the /zoom/webhook alias."""
        raw, headers = sign_body(generate_challenge_body("tok"))
        platform_headers = {
            "Content-Type": "application/json",
            "x-zm-request-timestamp": headers["X-Signature-Timestamp"],
            "x-zm-signature": headers["X-Signature"],
        }

        response = await client.post("/zoom/webhook", content=raw, headers=platform_headers)

        assert response.status_code == 200
        assert response.json()["plainToken"] == "tok"

    @pytest.mark.asyncio
    async def test_malformed_verified_body(self, client: AsyncClient) -> None:
        """A correctly signed body that is not JSON is a 400."""
        response = await _post_webhook(client, b"this is not json")

        assert response.status_code == 400
        assert response.json()["error_code"] == "MALFORMED_WEBHOOK"


class TestWebhookEvents:
    """Verified events drive sessions."""

    @pytest.mark.asyncio
    async def test_meeting_started_joins(self, client: AsyncClient, factory: FakeViewportFactory) -> None:
        """meeting.started opens a session and the bot joins."""
        response = await _post_webhook(
            client,
            generate_webhook_body("meeting.started", id=85746065, topic="Backend"),
        )

        assert response.status_code == 200
        assert response.json() == {"ok": True, "message": None, "event": "meeting.started"}
        await _wait_state(client, "85746065", "in_meeting")
        assert factory.viewports["85746065"].display_name == "Interview Bot"

    @pytest.mark.asyncio
    async def test_manual_join_policy(self, factory: FakeViewportFactory) -> None:
        """With manual join, meeting.started does not create a session."""
        app = _build_app(factory, join_policy="manual")
        async with LifespanManager(app) as manager:
            transport = ASGITransport(app=manager.app)
            async with AsyncClient(transport=transport, base_url="http://test") as ac:
                response = await _post_webhook(
                    ac, generate_webhook_body("meeting.started", id="1")
                )
                sessions = (await ac.get("/sessions")).json()

        assert response.status_code == 200
        assert sessions["active_sessions"] == 0

    @pytest.mark.asyncio
    async def test_meeting_ended_unknown_is_ok(self, client: AsyncClient) -> None:
        """meeting.ended for an unknown meeting is acknowledged."""
        response = await _post_webhook(client, generate_webhook_body("meeting.ended", id="404"))

        assert response.status_code == 200
        assert response.json()["event"] == "meeting.ended"

    @pytest.mark.asyncio
    async def test_meeting_ended_stops_session(self, client: AsyncClient) -> None:
        """meeting.ended stops an active session."""
        await _post_webhook(client, generate_webhook_body("meeting.started", id="1"))
        await _wait_state(client, "1", "in_meeting")

        await _post_webhook(client, generate_webhook_body("meeting.ended", id="1"))

        await _wait_state(client, "1", "left")
        assert (await client.get("/sessions")).json()["active_sessions"] == 0

    @pytest.mark.asyncio
    async def test_participant_joined(self, client: AsyncClient) -> None:
        """Participants are appended to the session."""
        await client.post("/sessions", json={"meetingId": "1"})
        await _post_webhook(
            client,
            generate_webhook_body(
                "meeting.participant_joined",
                id="1",
                participant={"user_id": "7", "user_name": "Sarah Chen"},
            ),
        )

        session = (await client.get("/sessions/1")).json()["session"]
        assert session["participantCount"] == 1

    @pytest.mark.asyncio
    async def test_unknown_event_ok(self, client: AsyncClient) -> None:
        """Unhandled events are acknowledged and ignored."""
        response = await _post_webhook(client, {"event": "recording.completed", "payload": {}})
        assert response.status_code == 200


# =============================================================================
# Management API
# =============================================================================


class TestSessionsEndpoints:
    """POST/GET /sessions and friends."""

    @pytest.mark.asyncio
    async def test_open_session(self, client: AsyncClient) -> None:
        """POST /sessions answers 202 with the session summary."""
        response = await client.post("/sessions", json={"meetingId": "1", "topic": "Backend"})

        assert response.status_code == 202
        data = response.json()
        assert data["ok"] is True
        assert data["session"]["meetingId"] == "1"
        assert data["session"]["topic"] == "Backend"
        assert data["session"]["state"] == "idle"
        assert data["joinLink"] == "https://zoom.us/j/1"

    @pytest.mark.asyncio
    async def test_bot_join_alias(self, client: AsyncClient) -> None:
        """POST /bot/join behaves like POST /sessions."""
        response = await client.post("/bot/join", json={"meetingId": 42})

        assert response.status_code == 202
        assert response.json()["session"]["meetingId"] == "42"
        assert response.json()["session"]["topic"] == "Manual Meeting"

    @pytest.mark.asyncio
    async def test_open_session_requires_meeting_id(self, client: AsyncClient) -> None:
        """Request validation rejects a missing meetingId."""
        response = await client.post("/sessions", json={"topic": "x"})
        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_concurrent_open_one_conflict(self, client: AsyncClient) -> None:
        """Two simultaneous opens: one 202, one 409."""
        responses = await asyncio.gather(
            client.post("/sessions", json={"meetingId": "1"}),
            client.post("/sessions", json={"meetingId": "1"}),
        )

        codes = sorted(r.status_code for r in responses)
        assert codes == [202, 409]
        conflict = next(r for r in responses if r.status_code == 409)
        assert conflict.json() == {
            "ok": False,
            "error": "Session already active for meeting '1'.",
            "error_code": "DUPLICATE_SESSION",
        }

    @pytest.mark.asyncio
    async def test_interview_flow(self, client: AsyncClient, factory: FakeViewportFactory) -> None:
        """Join, start the interview, and run to completion."""
        await client.post("/sessions", json={"meetingId": "1"})
        await _wait_state(client, "1", "in_meeting")

        response = await client.post("/sessions/1/interview/start")

        assert response.status_code == 200
        assert response.json()["session"]["state"] == "interviewing"
        await _wait_state(client, "1", "left")
        session = (await client.get("/sessions/1")).json()["session"]
        assert session["questionIndex"] == len(factory.viewports["1"].sent)
        assert [h["to_state"] for h in session["history"]][-2:] == ["ending", "left"]

    @pytest.mark.asyncio
    async def test_interview_start_wrong_state(self, factory: FakeViewportFactory) -> None:
        """Starting twice is a 409."""
        app = _build_app(factory, timing={"question_interval_seconds": 10.0})
        async with LifespanManager(app) as manager:
            transport = ASGITransport(app=manager.app)
            async with AsyncClient(transport=transport, base_url="http://test") as ac:
                await ac.post("/sessions", json={"meetingId": "1"})
                await _wait_state(ac, "1", "in_meeting")

                first = await ac.post("/sessions/1/interview/start")
                second = await ac.post("/sessions/1/interview/start")

        assert first.status_code == 200
        assert second.status_code == 409
        assert second.json()["error_code"] == "INVALID_TRANSITION"

    @pytest.mark.asyncio
    async def test_interview_start_unknown(self, client: AsyncClient) -> None:
        """Unknown meetings are a 404."""
        response = await client.post("/sessions/nope/interview/start")

        assert response.status_code == 404
        assert response.json()["error_code"] == "SESSION_NOT_FOUND"

    @pytest.mark.asyncio
    async def test_stop_is_idempotent(self, client: AsyncClient) -> None:
        """Stopping twice returns the same final state."""
        await client.post("/sessions", json={"meetingId": "1"})
        await _wait_state(client, "1", "in_meeting")

        first = await client.post("/sessions/1/stop", json={"reason": "operator stop"})
        second = await client.post("/sessions/1/stop")

        assert first.status_code == 200
        assert second.status_code == 200
        assert first.json()["session"]["state"] == "left"
        assert second.json()["session"]["state"] == "left"
        assert first.json()["session"]["history"][-2]["reason"] == "operator stop"

    @pytest.mark.asyncio
    async def test_stop_unknown(self, client: AsyncClient) -> None:
        """Never-seen meetings are a 404."""
        response = await client.post("/sessions/nope/stop")
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_list_sessions(self, client: AsyncClient) -> None:
        """GET /sessions lists active sessions and recent history."""
        await client.post("/sessions", json={"meetingId": "1", "topic": "A"})
        await client.post("/sessions", json={"meetingId": "2", "topic": "B"})
        await _wait_state(client, "2", "in_meeting")
        await client.post("/sessions/2/stop")

        data = (await client.get("/sessions")).json()

        assert data["active_sessions"] == 1
        assert [s["meetingId"] for s in data["sessions"]] == ["1"]
        assert [s["meetingId"] for s in data["recent"]] == ["2"]
        assert data["recent"][0]["state"] == "left"
        assert (await client.get("/meetings")).json()["active_sessions"] == 1

    @pytest.mark.asyncio
    async def test_failed_join_visible(self) -> None:
        """A failed join shows up with its reason."""
        app = _build_app(FakeViewportFactory(fail_acquire=True))
        async with LifespanManager(app) as manager:
            transport = ASGITransport(app=manager.app)
            async with AsyncClient(transport=transport, base_url="http://test") as ac:
                await ac.post("/sessions", json={"meetingId": "1"})
                await _wait_state(ac, "1", "failed")
                session = (await ac.get("/sessions/1")).json()["session"]

        assert "acquire viewport" in session["failureReason"]

    @pytest.mark.asyncio
    async def test_get_unknown_session(self, client: AsyncClient) -> None:
        """GET for an unknown meeting is a 404 error body."""
        response = await client.get("/sessions/nope")

        assert response.status_code == 404
        assert response.json()["ok"] is False


class TestShutdown:
    """Lifespan shutdown releases everything."""

    @pytest.mark.asyncio
    async def test_shutdown_stops_sessions(self, factory: FakeViewportFactory) -> None:
        """Leaving the lifespan stops active sessions."""
        app = _build_app(factory)
        async with LifespanManager(app) as manager:
            transport = ASGITransport(app=manager.app)
            async with AsyncClient(transport=transport, base_url="http://test") as ac:
                await ac.post("/sessions", json={"meetingId": "1"})
                await _wait_state(ac, "1", "in_meeting")

        assert factory.viewports["1"].release_count == 1
        assert factory.viewports["1"].left == 1
