"""
core/orchestrator.py -- Deduplicated, debounced environment validation.

Many dashboard rows can observe the same domain as "pending" on every fetch.
The orchestrator makes sure that turns into at most one probe per domain per
cache generation, and that a single customer is not re-enqueued more than
once per cool-down window.

Concurrency model: everything here runs on the event loop. Probes are
blocking requests calls, so they run in a worker thread via asyncio.to_thread
and hand their result back to the loop, which is the only writer of the
cache and the in-flight table.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from typing import Any, Optional

from cache.store import ValidationCache
from core.enricher import has_valid_domain
from core.models import ProbeReason, ProbeResult, ValidationStatus

logger = logging.getLogger("pullboard.orchestrator")

ProbeFn = Callable[[str], ProbeResult]


def status_for(result: Optional[ProbeResult]) -> ValidationStatus:
    """Map a cache entry to the status shown on a row. None means pending."""
    if result is None:
        return ValidationStatus.pending
    if result.reachable:
        return ValidationStatus.valid
    if result.reason == ProbeReason.redirected_to_main_site:
        return ValidationStatus.redirected
    if result.reason in (ProbeReason.network_error, ProbeReason.api_error):
        return ValidationStatus.error
    return ValidationStatus.invalid


class ValidationOrchestrator:
    """Owns the validation cache and the set of probes in flight."""

    def __init__(
        self,
        cache: ValidationCache,
        probe: ProbeFn,
        cooldown_seconds: float = 5.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.cache = cache
        self._probe = probe
        self._cooldown = cooldown_seconds
        self._clock = clock
        self._inflight: dict[str, asyncio.Task] = {}
        self._last_enqueued: dict[str, float] = {}

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    def get_status(self, domain: str) -> ValidationStatus:
        if not has_valid_domain(domain):
            return ValidationStatus.invalid
        return status_for(self.cache.get(domain))

    def is_inflight(self, domain: str) -> bool:
        return _key(domain) in self._inflight

    # ------------------------------------------------------------------
    # Write side
    # ------------------------------------------------------------------

    def request_validation(
        self,
        domain: str,
        customer_id: Optional[Any] = None,
        itar_hosting: bool = False,
    ) -> bool:
        """Enqueue a probe for domain unless one is cached, running, or debounced.

        Returns True only when a new probe was started. Must be called from
        the event loop.
        """
        if itar_hosting or not has_valid_domain(domain):
            logger.debug("Refusing to validate %r (itar=%s)", domain, itar_hosting)
            return False

        key = _key(domain)
        if key in self.cache or key in self._inflight:
            return False

        debounce_key = f"customer:{customer_id}" if customer_id is not None else f"domain:{key}"
        now = self._clock()
        last = self._last_enqueued.get(debounce_key)
        if last is not None and now - last < self._cooldown:
            logger.debug("Validation of %s debounced for %s", key, debounce_key)
            return False
        self._last_enqueued[debounce_key] = now

        self._start(key)
        return True

    async def refresh(self, domain: str) -> Optional[ProbeResult]:
        """Force a fresh probe, joining one that is already running.

        Used after a backup pull and by the poller, which both need a live
        answer rather than the memoized one.
        """
        if not has_valid_domain(domain):
            return None
        key = _key(domain)
        task = self._inflight.get(key)
        if task is None:
            self.invalidate(key)
            task = self._start(key)
        return await asyncio.shield(task)

    def invalidate(self, domain: str) -> None:
        """Forget the result for domain. A probe already running will not write back."""
        key = _key(domain)
        self.cache.invalidate(key)
        self._inflight.pop(key, None)

    async def aclose(self) -> None:
        tasks = list(self._inflight.values())
        self._inflight.clear()
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _start(self, key: str) -> asyncio.Task:
        generation = self.cache.generation(key)
        task = asyncio.get_running_loop().create_task(self._run(key, generation))
        self._inflight[key] = task
        logger.debug("Probe started for %s (generation %d)", key, generation)
        return task

    async def _run(self, key: str, generation: int) -> ProbeResult:
        try:
            result = await asyncio.to_thread(self._probe, key)
            if not self.cache.set(key, result, generation=generation):
                logger.debug("Discarding stale probe result for %s", key)
            return result
        finally:
            if self._inflight.get(key) is asyncio.current_task():
                del self._inflight[key]


def _key(domain: str) -> str:
    return domain.strip().lower()
