"""
core/context.py -- The explicit state object shared by every route.

One DashboardContext is built per process in the API lifespan and stored on
app.state.ctx. Route handlers and the poller get the cache, orchestrator and
stores from here instead of from module globals, which is also what lets the
tests swap in fakes.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from functools import partial
from typing import Optional

from cache.store import ValidationCache
from core.config import Settings
from core.orchestrator import ProbeFn, ValidationOrchestrator
from core.poller import EnvironmentPoller, PollTiming, StatusBoard
from core.prober import probe_environment
from inventory.hosting import ResidentHostingMap
from inventory.store import TimestampStore


@dataclass
class DashboardContext:
    settings: Settings
    probe: ProbeFn
    cache: ValidationCache
    orchestrator: ValidationOrchestrator
    poller: EnvironmentPoller
    board: StatusBoard
    timestamps: TimestampStore
    resident_map: ResidentHostingMap
    # Customer ids whose backup trigger has been sent but not yet answered.
    pulls_in_progress: set[str] = field(default_factory=set)

    async def aclose(self) -> None:
        await self.poller.aclose()
        await self.orchestrator.aclose()


def build_context(
    settings: Settings,
    probe: Optional[ProbeFn] = None,
    resident_map: Optional[ResidentHostingMap] = None,
    timestamps: Optional[TimestampStore] = None,
) -> DashboardContext:
    """Wire up a context from settings. Any collaborator may be overridden."""
    probe = probe or partial(probe_environment, settings=settings)
    cache = ValidationCache()
    orchestrator = ValidationOrchestrator(
        cache,
        probe,
        cooldown_seconds=settings.validation_cooldown_seconds,
    )
    board = StatusBoard()
    poller = EnvironmentPoller(
        on_status=board.publish,
        timing=PollTiming(
            tick_seconds=settings.poll_tick_seconds,
            stability_seconds=settings.poll_stability_seconds,
            max_seconds=settings.poll_max_seconds,
        ),
    )
    return DashboardContext(
        settings=settings,
        probe=probe,
        cache=cache,
        orchestrator=orchestrator,
        poller=poller,
        board=board,
        timestamps=timestamps or TimestampStore(settings.timestamps_path),
        resident_map=resident_map if resident_map is not None else ResidentHostingMap.load(settings.resident_map_path),
    )
