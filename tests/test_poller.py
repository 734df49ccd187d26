"""Unit tests for core/poller.py.

advance() is a pure state transition and is tested tick by tick with
synthetic timestamps. EnvironmentPoller is exercised with millisecond timing
under asyncio.run().
"""

import asyncio

from core.models import EnvironmentStatus
from core.poller import EnvironmentPoller, PollPhase, PollState, PollTiming, StatusBoard, advance

READY = EnvironmentStatus.ready
NOT_READY = EnvironmentStatus.not_ready
UNAVAILABLE = EnvironmentStatus.unavailable

_TIMING = PollTiming(tick_seconds=60, stability_seconds=120, max_seconds=1800)


def _run_ticks(statuses, timing=_TIMING):
    """Feed statuses at 60s ticks. Returns (state, phases seen after each tick)."""
    state = PollState(customer_id="1", started_at=0.0)
    phases = []
    for i, status in enumerate(statuses, start=1):
        advance(state, status, now=i * timing.tick_seconds, timing=timing)
        phases.append(state.phase)
    return state, phases


# ---------------------------------------------------------------------------
# advance()
# ---------------------------------------------------------------------------


class TestAdvance:
    def test_late_ready_pair_becomes_stable(self):
        state, phases = _run_ticks([NOT_READY] * 29 + [READY, READY])
        assert phases[:30] == [PollPhase.polling] * 30
        assert phases[30] == PollPhase.stable
        assert state.ticks == 31
        assert state.finished_at == 31 * 60

    def test_single_ready_is_not_stable(self):
        state, _ = _run_ticks([READY])
        assert state.phase == PollPhase.polling
        assert state.ready_streak == 1

    def test_two_consecutive_ready_is_stable(self):
        state, _ = _run_ticks([READY, READY])
        assert state.phase == PollPhase.stable

    def test_interrupted_ready_resets_streak(self):
        state, phases = _run_ticks([READY, NOT_READY, READY])
        assert state.phase == PollPhase.polling
        assert state.ready_streak == 1
        state, _ = _run_ticks([READY, UNAVAILABLE, READY, READY])
        assert state.phase == PollPhase.stable

    def test_times_out_after_ceiling_without_ready(self):
        state, phases = _run_ticks([NOT_READY] * 30)
        assert phases[28] == PollPhase.polling
        assert phases[29] == PollPhase.timed_out
        assert state.last_status == NOT_READY

    def test_unavailable_counts_toward_timeout(self):
        state, _ = _run_ticks([UNAVAILABLE] * 30)
        assert state.phase == PollPhase.timed_out
        assert state.last_status == UNAVAILABLE

    def test_terminal_state_ignores_further_ticks(self):
        state, _ = _run_ticks([READY, READY])
        advance(state, NOT_READY, now=10_000, timing=_TIMING)
        assert state.phase == PollPhase.stable
        assert state.ticks == 2
        assert state.last_status == READY


# ---------------------------------------------------------------------------
# StatusBoard
# ---------------------------------------------------------------------------


def test_status_board_keys_by_string_id():
    board = StatusBoard()
    board.publish("42", READY)
    status, at = board.get(42)
    assert status == READY
    assert at.endswith("+00:00")
    assert board.get(43) is None


# ---------------------------------------------------------------------------
# EnvironmentPoller
# ---------------------------------------------------------------------------

_FAST = PollTiming(tick_seconds=0.01, stability_seconds=0.02, max_seconds=5.0)


async def _wait_idle(poller: EnvironmentPoller, customer_id: str) -> None:
    for _ in range(500):
        if not poller.is_active(customer_id):
            return
        await asyncio.sleep(0.01)
    raise AssertionError("poll did not finish")


def _scripted(statuses):
    """A check() returning statuses in order, repeating the last one."""
    remaining = list(statuses)

    async def check():
        if len(remaining) > 1:
            return remaining.pop(0)
        return remaining[0]

    return check


class TestEnvironmentPoller:
    def test_reaches_stable_and_publishes_each_tick(self):
        published = []
        poller = EnvironmentPoller(on_status=lambda cid, s: published.append((cid, s)), timing=_FAST)

        async def scenario():
            assert poller.start(5, _scripted([NOT_READY, READY, READY])) is True
            await _wait_idle(poller, "5")

        asyncio.run(scenario())
        state = poller.get_state(5)
        assert state.phase == PollPhase.stable
        assert published == [("5", NOT_READY), ("5", READY), ("5", READY)]

    def test_second_start_while_active_is_noop(self):
        poller = EnvironmentPoller(on_status=lambda cid, s: None, timing=_FAST)

        async def scenario():
            first = poller.start("6", _scripted([NOT_READY, READY, READY]))
            second = poller.start("6", _scripted([READY]))
            await _wait_idle(poller, "6")
            return first, second

        assert asyncio.run(scenario()) == (True, False)

    def test_times_out(self):
        timing = PollTiming(tick_seconds=0.01, stability_seconds=0.02, max_seconds=0.05)
        poller = EnvironmentPoller(on_status=lambda cid, s: None, timing=timing)

        async def scenario():
            poller.start("7", _scripted([NOT_READY]))
            await _wait_idle(poller, "7")

        asyncio.run(scenario())
        state = poller.get_state("7")
        assert state.phase == PollPhase.timed_out
        assert state.last_status == NOT_READY

    def test_failing_check_is_treated_as_unavailable(self):
        published = []
        poller = EnvironmentPoller(on_status=lambda cid, s: published.append(s), timing=_FAST)
        calls = {"n": 0}

        async def check():
            calls["n"] += 1
            if calls["n"] == 1:
                raise RuntimeError("boom")
            return READY

        async def scenario():
            poller.start("8", check)
            await _wait_idle(poller, "8")

        asyncio.run(scenario())
        assert published[0] == UNAVAILABLE
        assert poller.get_state("8").phase == PollPhase.stable

    def test_aclose_cancels_active_polls(self):
        poller = EnvironmentPoller(on_status=lambda cid, s: None, timing=PollTiming(tick_seconds=60))

        async def scenario():
            poller.start("9", _scripted([NOT_READY]))
            await poller.aclose()
            return poller.is_active("9")

        assert asyncio.run(scenario()) is False
        assert poller.get_state("9").phase == PollPhase.polling
