"""
core/poller.py -- Post-pull environment polling.

After a backup pull the backup service may tear the development environment
down and build it again, so a single "ready" probe proves little. The poller
re-checks on a fixed tick until the environment has been ready for a whole
stability window, or gives up after a hard ceiling.

State machine per customer:

    Polling --ready for >= stability window--> Stable   (terminal)
    Polling --not ready after ceiling--------> TimedOut (terminal)

A ready tick counts for the interval that preceded it, so with a 60s tick and
a 120s window two consecutive ready ticks are needed. Any non-ready tick
resets the streak. The ceiling is only checked on non-ready ticks.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from core.models import EnvironmentStatus

logger = logging.getLogger("pullboard.poller")

CheckFn = Callable[[], Awaitable[EnvironmentStatus]]
StatusCallback = Callable[[str, EnvironmentStatus], None]


class PollPhase(str, Enum):
    polling = "polling"
    stable = "stable"
    timed_out = "timed_out"


@dataclass(frozen=True)
class PollTiming:
    tick_seconds: float = 60.0
    stability_seconds: float = 120.0
    max_seconds: float = 1800.0


@dataclass
class PollState:
    customer_id: str
    started_at: float
    phase: PollPhase = PollPhase.polling
    ticks: int = 0
    ready_streak: int = 0
    last_status: Optional[EnvironmentStatus] = None
    finished_at: Optional[float] = None

    @property
    def terminal(self) -> bool:
        return self.phase != PollPhase.polling


def advance(state: PollState, status: EnvironmentStatus, now: float, timing: PollTiming) -> PollState:
    """Apply one tick's observation to state. No-op once terminal."""
    if state.terminal:
        return state

    state.ticks += 1
    state.last_status = status

    if status == EnvironmentStatus.ready:
        state.ready_streak += 1
        if state.ready_streak * timing.tick_seconds >= timing.stability_seconds:
            state.phase = PollPhase.stable
            state.finished_at = now
        return state

    state.ready_streak = 0
    if now - state.started_at >= timing.max_seconds:
        state.phase = PollPhase.timed_out
        state.finished_at = now
    return state


class StatusBoard:
    """Latest live environment status per customer, as published by the poller."""

    def __init__(self) -> None:
        self._entries: dict[str, tuple[EnvironmentStatus, str]] = {}

    def publish(self, customer_id: str, status: EnvironmentStatus) -> None:
        self._entries[str(customer_id)] = (status, datetime.now(timezone.utc).isoformat())

    def get(self, customer_id: object) -> Optional[tuple[EnvironmentStatus, str]]:
        return self._entries.get(str(customer_id))


class EnvironmentPoller:
    """Runs at most one poll per customer id as an asyncio task."""

    def __init__(
        self,
        on_status: StatusCallback,
        timing: PollTiming = PollTiming(),
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.timing = timing
        self._on_status = on_status
        self._clock = clock
        self._tasks: dict[str, asyncio.Task] = {}
        self._states: dict[str, PollState] = {}

    def is_active(self, customer_id: object) -> bool:
        return str(customer_id) in self._tasks

    def get_state(self, customer_id: object) -> Optional[PollState]:
        return self._states.get(str(customer_id))

    def start(self, customer_id: object, check: CheckFn) -> bool:
        """Begin polling customer_id. Returns False if a poll is already running."""
        key = str(customer_id)
        if key in self._tasks:
            logger.info("Poll already active for customer %s", key)
            return False
        state = PollState(customer_id=key, started_at=self._clock())
        self._states[key] = state
        self._tasks[key] = asyncio.get_running_loop().create_task(self._run(state, check))
        logger.info("Polling started for customer %s", key)
        return True

    async def aclose(self) -> None:
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()

    async def _run(self, state: PollState, check: CheckFn) -> None:
        try:
            while not state.terminal:
                await asyncio.sleep(self.timing.tick_seconds)
                try:
                    status = await check()
                except Exception:
                    # A failed tick is rescheduled like a not-ready one.
                    logger.exception("Environment check failed for customer %s", state.customer_id)
                    status = EnvironmentStatus.unavailable
                self._on_status(state.customer_id, status)
                advance(state, status, self._clock(), self.timing)
            logger.info(
                "Polling for customer %s finished: %s after %d ticks (last status %s)",
                state.customer_id,
                state.phase.value,
                state.ticks,
                state.last_status.value if state.last_status else None,
            )
        finally:
            self._tasks.pop(state.customer_id, None)
