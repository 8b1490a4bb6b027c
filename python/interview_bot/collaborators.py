"""
Capability interfaces consumed by the orchestration engine.

Concrete automation, speech and media backends live outside the engine
(see ``bot_platform.backends``). Every call is treated as long-latency and
fallible; the lifecycle bounds each one with a timeout.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Protocol, Sequence

from .errors import AutomationFailure


__all__ = [
    "ViewportController",
    "ViewportFactory",
    "SpeechSynthesizer",
    "MediaStreamClient",
    "StrategyChain",
]


logger = logging.getLogger(__name__)


class ViewportController(Protocol):
    """Automation surface inside one meeting client, owned by one session."""

    async def enter_display_name(self, display_name: str) -> None:
        """Fill in the bot's display name and submit the join action."""

    async def confirm_joined(self, strategy: str) -> bool:
        """Return True if the named detection strategy sees the meeting surface."""

    async def send_chat_message(self, text: str) -> None:
        """Post a message to the meeting chat."""

    async def confirm_left(self) -> None:
        """Leave the meeting and wait for the client to confirm departure."""

    async def release(self) -> None:
        """Free the underlying automation resource. Called once per session."""


ViewportFactory = Callable[[str], Awaitable[ViewportController]]
"""Acquire a viewport navigated to the given meeting id."""


class SpeechSynthesizer(Protocol):
    """Text-to-speech output into the meeting."""

    async def speak(self, text: str) -> None:
        """Speak the given text."""


class MediaStreamClient(Protocol):
    """Live audio stream for a joined meeting."""

    async def connect(self, meeting_id: str) -> None:
        """Start receiving the meeting's media stream."""

    async def disconnect(self) -> None:
        """Stop receiving and free stream resources."""


class StrategyChain:
    """
    Ordered list of detection strategies; the first one that succeeds wins.

    Strategies are opaque names handed to a probe callable (for a browser
    backend they would be selectors or checks). The chain is evaluated in
    order, round after round, until one succeeds or the overall wait runs out.

    Example:
        >>> chain = StrategyChain(("leave_button", "participants_panel"))
        >>> matched = await chain.first_match(viewport.confirm_joined, timeout=30.0)
    """

    def __init__(self, strategies: Sequence[str]) -> None:
        cleaned = tuple(s.strip() for s in strategies if s and s.strip())
        if not cleaned:
            raise ValueError("StrategyChain requires at least one strategy.")
        self.strategies = cleaned

    def __len__(self) -> int:
        return len(self.strategies)

    async def first_match(
        self,
        probe: Callable[[str], Awaitable[bool]],
        *,
        timeout: float,
        poll_interval: float = 0.5,
        attempt_timeout: float | None = None,
        step: str = "detect",
        abort: Callable[[], bool] | None = None,
    ) -> str:
        """
        Run the probe against each strategy until one returns True.

        Args:
            probe: Coroutine function taking a strategy name.
            timeout: Overall bound in seconds across all rounds.
            poll_interval: Pause between rounds.
            attempt_timeout: Bound for a single probe call. Defaults to the
                remaining overall time.
            step: Label used in errors and logs.
            abort: Checked before every probe and every pause; returning
                True ends detection at once.

        Returns:
            The name of the first strategy that succeeded.

        Raises:
            AutomationFailure: If no strategy succeeded within ``timeout``,
                or ``abort`` fired.
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        rounds = 0

        def check_abort() -> None:
            if abort is not None and abort():
                raise AutomationFailure(step, "detection aborted")

        while True:
            rounds += 1
            for strategy in self.strategies:
                check_abort()
                remaining = deadline - loop.time()
                if remaining <= 0:
                    break
                bound = remaining if attempt_timeout is None else min(attempt_timeout, remaining)
                try:
                    if await asyncio.wait_for(probe(strategy), timeout=bound):
                        logger.debug("%s matched strategy '%s' in round %d", step, strategy, rounds)
                        return strategy
                except asyncio.TimeoutError:
                    logger.debug("%s strategy '%s' timed out", step, strategy)

            check_abort()
            remaining = deadline - loop.time()
            if remaining <= 0:
                raise AutomationFailure(
                    step,
                    f"no strategy of {list(self.strategies)} succeeded within {timeout:.1f}s",
                )
            await asyncio.sleep(min(poll_interval, remaining))
