"""
cache/store.py -- In-memory memo table of environment probe results.

One entry per domain, not per customer: every row that references the same
domain reads the same result. Entries never expire on their own. They are
dropped only by an explicit invalidate() (e.g. after a backup pull), which
also bumps the domain's generation so a probe started before the
invalidation cannot write its stale result back.

Usage:
    cache = ValidationCache()
    gen = cache.generation("acme")
    cache.set("acme", result, generation=gen)   # False if invalidated meanwhile
    cache.get("acme")                           # ProbeResult or None
    cache.invalidate("acme")
"""

from typing import Optional

from core.models import ProbeResult


def _key(domain: str) -> str:
    return domain.strip().lower()


class ValidationCache:
    def __init__(self) -> None:
        self._entries: dict[str, ProbeResult] = {}
        self._generations: dict[str, int] = {}

    def get(self, domain: str) -> Optional[ProbeResult]:
        """Return the stored result for domain, or None while it is pending."""
        return self._entries.get(_key(domain))

    def __contains__(self, domain: str) -> bool:
        return _key(domain) in self._entries

    def generation(self, domain: str) -> int:
        return self._generations.get(_key(domain), 0)

    def set(self, domain: str, result: ProbeResult, generation: Optional[int] = None) -> bool:
        """Store result for domain. Last writer wins within a generation.

        Returns False (and stores nothing) when `generation` is given and the
        domain has been invalidated since it was read.
        """
        key = _key(domain)
        if generation is not None and generation != self._generations.get(key, 0):
            return False
        self._entries[key] = result
        return True

    def invalidate(self, domain: str) -> None:
        """Drop the entry for domain and start a new generation."""
        key = _key(domain)
        self._entries.pop(key, None)
        self._generations[key] = self._generations.get(key, 0) + 1
