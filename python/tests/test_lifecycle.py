"""Tests for the bot lifecycle state machine."""

from __future__ import annotations

import asyncio
from typing import Optional

import pytest

from interview_bot import (
    AutomationFailure,
    BotLifecycle,
    InvalidTransitionError,
    SessionNotFoundError,
    SessionRegistry,
    SessionState,
    SessionSummary,
    StrategyChain,
    TransitionRecord,
)
from tests.fakes import (
    FakeMedia,
    FakeSpeech,
    FakeViewportFactory,
    eventually,
    make_settings,
)


class Harness:
    """One registered session plus its lifecycle and fakes."""

    def __init__(
        self,
        registry: SessionRegistry,
        lifecycle: BotLifecycle,
        factory: FakeViewportFactory,
        speech: FakeSpeech,
        media: Optional[FakeMedia],
        transitions: list[tuple[SessionState, SessionState]],
    ) -> None:
        self.registry = registry
        self.lifecycle = lifecycle
        self.session = lifecycle.session
        self.factory = factory
        self.speech = speech
        self.media = media
        self.transitions = transitions

    @property
    def viewport(self):
        return self.factory.viewports.get(self.session.meeting_id)

    def states(self) -> list[SessionState]:
        return [record.to_state for record in self.session.history]


async def build(
    questions=("Q1", "Q2"),
    factory: Optional[FakeViewportFactory] = None,
    speech: Optional[FakeSpeech] = None,
    media: Optional[FakeMedia] = None,
    **settings_overrides,
) -> Harness:
    registry = SessionRegistry()
    session = await registry.create("85746065", "Backend interview")
    factory = factory or FakeViewportFactory()
    speech = speech or FakeSpeech()
    transitions: list[tuple[SessionState, SessionState]] = []

    async def listener(summary: SessionSummary, record: TransitionRecord) -> None:
        transitions.append((record.from_state, record.to_state))

    lifecycle = BotLifecycle(
        session=session,
        registry=registry,
        viewport_factory=factory,
        questions=questions,
        settings=make_settings(**settings_overrides),
        speech=speech,
        media=media,
        listener=listener,
    )
    return Harness(registry, lifecycle, factory, speech, media, transitions)


# =============================================================================
# Join
# =============================================================================


class TestStart:
    """idle -> joining -> in_meeting, or failed."""

    @pytest.mark.asyncio
    async def test_successful_join(self) -> None:
        """Join enters the display name and lands in in_meeting."""
        h = await build()

        summary = await h.lifecycle.start()

        assert summary.state == SessionState.IN_MEETING
        assert h.states() == [SessionState.JOINING, SessionState.IN_MEETING]
        assert h.session.history[-1].reason == "joined via leave_button"
        assert h.viewport.display_name == "Interview Bot"
        assert h.session.viewport is h.viewport
        assert h.viewport.release_count == 0

    @pytest.mark.asyncio
    async def test_first_matching_strategy_wins(self) -> None:
        """Strategies are tried in order; the first success is recorded."""
        h = await build(factory=FakeViewportFactory(matching_strategies={"participants_button"}))

        await h.lifecycle.start()

        assert h.session.state == SessionState.IN_MEETING
        assert h.session.history[-1].reason == "joined via participants_button"
        assert h.viewport.probed[:2] == ["leave_button", "participants_button"]

    @pytest.mark.asyncio
    async def test_strategy_chain_abort_stops_polling(self) -> None:
        """An abort callback ends detection before the overall timeout."""
        chain = StrategyChain(("leave_button", "participants_button"))
        probed: list[str] = []

        async def never_joined(strategy: str) -> bool:
            probed.append(strategy)
            return False

        with pytest.raises(AutomationFailure) as exc_info:
            await asyncio.wait_for(
                chain.first_match(
                    never_joined,
                    timeout=30.0,
                    poll_interval=0.01,
                    abort=lambda: len(probed) >= 3,
                ),
                2.0,
            )

        assert exc_info.value.detail == "detection aborted"
        assert len(probed) == 3

    @pytest.mark.asyncio
    async def test_late_viewport_released_after_acquire_timeout(self) -> None:
        """A viewport that arrives after the acquire timeout is released, not leaked."""
        h = await build(
            factory=FakeViewportFactory(acquire_delay_seconds=0.2),
            action_timeout_seconds=0.05,
        )

        summary = await h.lifecycle.start()

        assert summary.state == SessionState.FAILED
        assert (summary.failureReason or "").startswith("acquire viewport: timed out")
        assert h.session.viewport is None
        await eventually(lambda: h.viewport is not None and h.viewport.release_count == 1)

    @pytest.mark.asyncio
    async def test_detection_exhausted_fails_and_releases(self) -> None:
        """No strategy succeeds before the join timeout: failed, released, removed."""
        h = await build(
            factory=FakeViewportFactory(matching_strategies=set()),
            join_timeout_seconds=0.1,
        )

        summary = await h.lifecycle.start()

        assert summary.state == SessionState.FAILED
        assert "confirm joined" in (summary.failureReason or "")
        assert h.viewport.release_count == 1
        assert h.session.viewport is None
        with pytest.raises(SessionNotFoundError):
            await h.registry.get("85746065")

    @pytest.mark.asyncio
    async def test_acquire_failure(self) -> None:
        """A viewport that cannot be acquired fails the join with nothing to release."""
        h = await build(factory=FakeViewportFactory(fail_acquire=True))

        summary = await h.lifecycle.start()

        assert summary.state == SessionState.FAILED
        assert "acquire viewport" in (summary.failureReason or "")
        assert h.viewport is None
        assert h.registry.count == 0

    @pytest.mark.asyncio
    async def test_display_name_failure_releases_once(self) -> None:
        """A fatal automation error mid-join releases the viewport exactly once."""
        h = await build(factory=FakeViewportFactory(fail_on={"enter_display_name"}))

        summary = await h.lifecycle.start()

        assert summary.state == SessionState.FAILED
        assert h.viewport.release_count == 1
        assert h.states() == [SessionState.JOINING, SessionState.FAILED]

    @pytest.mark.asyncio
    async def test_hung_step_times_out(self) -> None:
        """Collaborator calls are bounded by the action timeout."""
        h = await build(factory=FakeViewportFactory(hang_on={"enter_display_name"}))

        summary = await h.lifecycle.start()

        assert summary.state == SessionState.FAILED
        assert "timed out" in (summary.failureReason or "")
        assert h.viewport.release_count == 1

    @pytest.mark.asyncio
    async def test_start_twice_rejected(self) -> None:
        """start is legal only from idle."""
        h = await build()
        await h.lifecycle.start()

        with pytest.raises(InvalidTransitionError):
            await h.lifecycle.start()
        assert h.session.state == SessionState.IN_MEETING

    @pytest.mark.asyncio
    async def test_media_stream_connected_and_disconnected(self) -> None:
        """The media stream follows the meeting presence."""
        media = FakeMedia()
        h = await build(media=media)

        await h.lifecycle.start()
        assert media.connected_to == "85746065"

        await h.lifecycle.stop()
        assert media.disconnects == 1

    @pytest.mark.asyncio
    async def test_media_failure_is_not_fatal(self) -> None:
        """Join succeeds without a media stream."""
        h = await build(media=FakeMedia(fail_connect=True))

        summary = await h.lifecycle.start()

        assert summary.state == SessionState.IN_MEETING

    @pytest.mark.asyncio
    async def test_auto_start_interview(self) -> None:
        """With auto start, a successful join begins the interview."""
        h = await build(question_interval_seconds=10.0, auto_start_interview=True)

        summary = await h.lifecycle.start()

        assert summary.state == SessionState.INTERVIEWING
        await eventually(lambda: h.viewport.sent == ["Q1"])
        await h.lifecycle.stop()


# =============================================================================
# Interview
# =============================================================================


class TestInterview:
    """in_meeting -> interviewing -> ending -> left."""

    @pytest.mark.asyncio
    async def test_start_interview_from_idle_rejected(self) -> None:
        """start_interview before joining changes nothing."""
        h = await build()

        with pytest.raises(InvalidTransitionError) as exc_info:
            await h.lifecycle.start_interview()

        assert exc_info.value.status_code == 409
        assert h.session.state == SessionState.IDLE
        assert h.session.history == []

    @pytest.mark.asyncio
    async def test_full_run(self) -> None:
        """Q1 immediately, Q2 after one interval, then leave and unregister."""
        h = await build(question_interval_seconds=0.05)
        await h.lifecycle.start()

        summary = await h.lifecycle.start_interview()
        assert summary.state == SessionState.INTERVIEWING

        await eventually(lambda: h.session.state == SessionState.LEFT)

        assert h.viewport.sent == ["Q1", "Q2"]
        assert h.speech.spoken == ["Q1", "Q2"]
        assert h.session.question_index == 2
        assert h.viewport.left == 1
        assert h.viewport.release_count == 1
        assert h.states() == [
            SessionState.JOINING,
            SessionState.IN_MEETING,
            SessionState.INTERVIEWING,
            SessionState.ENDING,
            SessionState.LEFT,
        ]
        assert h.session.history[3].reason == "question sequence exhausted"
        assert h.registry.count == 0

    @pytest.mark.asyncio
    async def test_speech_failure_not_fatal(self) -> None:
        """Questions still go to chat when speech is down."""
        h = await build(speech=FakeSpeech(fail=True), question_interval_seconds=0.01)
        await h.lifecycle.start()
        await h.lifecycle.start_interview()

        await eventually(lambda: h.session.state.is_terminal)

        assert h.session.state == SessionState.LEFT
        assert h.viewport.sent == ["Q1", "Q2"]

    @pytest.mark.asyncio
    async def test_chat_failure_fails_session(self) -> None:
        """A chat delivery error is an automation failure."""
        h = await build(factory=FakeViewportFactory(fail_on={"send_chat_message"}))
        await h.lifecycle.start()
        await h.lifecycle.start_interview()

        await eventually(lambda: h.session.state.is_terminal)

        assert h.session.state == SessionState.FAILED
        assert h.session.question_index == 0
        assert h.viewport.release_count == 1
        assert h.registry.count == 0

    @pytest.mark.asyncio
    async def test_listener_sees_every_transition(self) -> None:
        """The transition listener receives records in order."""
        h = await build(question_interval_seconds=0.01)
        await h.lifecycle.start()
        await h.lifecycle.start_interview()
        await eventually(lambda: h.session.state.is_terminal)
        await eventually(lambda: len(h.transitions) == 5)

        assert h.transitions == [
            (SessionState.IDLE, SessionState.JOINING),
            (SessionState.JOINING, SessionState.IN_MEETING),
            (SessionState.IN_MEETING, SessionState.INTERVIEWING),
            (SessionState.INTERVIEWING, SessionState.ENDING),
            (SessionState.ENDING, SessionState.LEFT),
        ]


# =============================================================================
# Stop
# =============================================================================


class TestStop:
    """stop() is safe from any state and idempotent."""

    @pytest.mark.asyncio
    async def test_stop_from_idle(self) -> None:
        """Nothing to release: straight to left."""
        h = await build()

        summary = await h.lifecycle.stop()

        assert summary.state == SessionState.LEFT
        assert h.factory.viewports == {}
        assert h.registry.count == 0
        with pytest.raises(InvalidTransitionError):
            await h.lifecycle.start()

    @pytest.mark.asyncio
    async def test_stop_mid_interview(self) -> None:
        """Stopping cancels the pending timer; no further questions."""
        h = await build(question_interval_seconds=10.0)
        await h.lifecycle.start()
        await h.lifecycle.start_interview()
        await eventually(lambda: h.viewport.sent == ["Q1"])

        summary = await h.lifecycle.stop("operator stop")
        await asyncio.sleep(0.05)

        assert summary.state == SessionState.LEFT
        assert h.session.question_index == 1
        assert h.viewport.sent == ["Q1"]
        assert h.lifecycle.scheduler is not None
        assert h.lifecycle.scheduler.cancelled is True
        assert h.session.scheduled_timer is None
        assert h.session.history[-2].reason == "operator stop"

    @pytest.mark.asyncio
    async def test_double_stop_is_idempotent(self) -> None:
        """A second stop is a no-op and does not release again."""
        h = await build()
        await h.lifecycle.start()

        first = await h.lifecycle.stop()
        second = await h.lifecycle.stop()

        assert first.state == second.state == SessionState.LEFT
        assert h.viewport.release_count == 1
        assert len(second.history) == len(first.history)

    @pytest.mark.asyncio
    async def test_concurrent_stops(self) -> None:
        """Simultaneous stops settle once."""
        h = await build()
        await h.lifecycle.start()

        results = await asyncio.gather(h.lifecycle.stop(), h.lifecycle.stop())

        assert all(result.state == SessionState.LEFT for result in results)
        assert h.viewport.release_count == 1

    @pytest.mark.asyncio
    async def test_stop_during_join(self) -> None:
        """A stop landing mid-join fails the session after the current step."""
        h = await build(
            factory=FakeViewportFactory(matching_strategies=set()),
            join_timeout_seconds=0.2,
        )
        join = asyncio.create_task(h.lifecycle.start())
        await eventually(lambda: h.viewport is not None and len(h.viewport.probed) > 0)

        summary = await h.lifecycle.stop()
        await join

        assert summary.state == SessionState.FAILED
        assert h.viewport.release_count == 1
        assert h.registry.count == 0

    @pytest.mark.asyncio
    async def test_stop_during_detection_returns_promptly(self) -> None:
        """A stop mid-detection ends the join without waiting out the join timeout."""
        h = await build(
            factory=FakeViewportFactory(matching_strategies=set()),
            join_timeout_seconds=30.0,
            join_poll_interval_seconds=0.05,
        )
        join = asyncio.create_task(h.lifecycle.start())
        await eventually(lambda: h.viewport is not None and len(h.viewport.probed) > 0)

        loop = asyncio.get_running_loop()
        started = loop.time()
        summary = await asyncio.wait_for(h.lifecycle.stop("operator stop"), timeout=2.0)
        elapsed = loop.time() - started
        await join

        assert elapsed < 1.0
        assert summary.state == SessionState.FAILED
        assert summary.failureReason == "confirm joined: operator stop during join"
        assert h.viewport.release_count == 1
        assert h.registry.count == 0

    @pytest.mark.asyncio
    async def test_departure_error_still_leaves(self) -> None:
        """A failed leave is recorded; release and removal still happen."""
        h = await build(factory=FakeViewportFactory(fail_on={"confirm_left"}))
        await h.lifecycle.start()

        summary = await h.lifecycle.stop()

        assert summary.state == SessionState.LEFT
        assert (summary.history[-1].reason or "").startswith("departure error")
        assert h.viewport.release_count == 1
        assert h.registry.count == 0

    @pytest.mark.asyncio
    async def test_release_failure_recorded(self) -> None:
        """A failing release is recorded on the session and removal proceeds."""
        h = await build(factory=FakeViewportFactory(fail_on={"release"}))
        await h.lifecycle.start()

        summary = await h.lifecycle.stop()

        assert summary.state == SessionState.LEFT
        assert summary.releaseError is not None
        assert "release" in summary.releaseError
        assert h.session.viewport is None
        assert h.registry.count == 0
        archived = await h.registry.find("85746065")
        assert archived is not None and archived.releaseError == summary.releaseError
