"""
tests/conftest.py -- Shared test fixtures for the backup dashboard integration tests.

This module provides:
  - FakeProbe: a scripted stand-in for core.prober.probe_environment
  - _make_test_context(): a DashboardContext with a temp timestamp file,
    an in-memory resident map and the fake probe
  - _patch_lifespan(): wires the test context into app.state, bypassing real startup
  - api_client: TestClient plus the context and fake probe behind it

The TestClient talks to http://localhost because TrustedHostMiddleware
rejects the default "testserver" host. Rate limiting is switched off so the
order and number of tests in a session cannot trip a limit.
"""

from __future__ import annotations

import threading
from collections.abc import Generator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

import pytest
from fastapi.testclient import TestClient

from api.limiter import limiter
from api.main import app
from core.config import Settings
from core.context import DashboardContext, build_context
from core.models import ProbeReason, ProbeResult
from inventory.hosting import ResidentHostingMap
from inventory.store import TimestampStore

RESIDENT_MAP = {"Residentco": "residentco_db"}


class FakeProbe:
    """Returns scripted ProbeResults per domain and records every call.

    Unscripted domains are reachable. Thread-safe, because the orchestrator
    calls it through asyncio.to_thread.
    """

    def __init__(self, results: Optional[dict[str, ProbeResult]] = None) -> None:
        self.results = dict(results or {})
        self.calls: list[str] = []
        self._lock = threading.Lock()

    def __call__(self, domain: str) -> ProbeResult:
        with self._lock:
            self.calls.append(domain)
        return self.results.get(
            domain,
            ProbeResult(reachable=True, http_status=200, final_url=f"http://{domain}.devhost.test/auth/login_new"),
        )

    def redirect(self, domain: str) -> None:
        self.results[domain] = ProbeResult(
            reachable=False,
            http_status=200,
            final_url="https://vendor.test/login",
            reason=ProbeReason.redirected_to_main_site,
        )


def make_settings(tmp_dir: Path, **overrides) -> Settings:
    values = dict(
        vendor_api_url="https://vendor-api.test",
        backup_service_url="https://backup.test/pull",
        backup_password="secret",
        dev_host_suffix="devhost.test",
        main_site_domain="vendor.test",
        excluded_customer_ids=["999"],
        timestamps_path=tmp_dir / "data" / "pull-timestamps.json",
        resident_map_path=tmp_dir / "missing.json",
        # Long enough that no poll tick fires during a route test.
        poll_tick_seconds=3600.0,
    )
    values.update(overrides)
    return Settings(**values)


def _make_test_context(tmp_dir: Path, probe: FakeProbe) -> DashboardContext:
    settings = make_settings(tmp_dir)
    return build_context(
        settings,
        probe=probe,
        resident_map=ResidentHostingMap(RESIDENT_MAP),
        timestamps=TimestampStore(settings.timestamps_path),
    )


def _patch_lifespan(ctx: DashboardContext):
    @asynccontextmanager
    async def test_lifespan(app):
        app.state.ctx = ctx
        yield
        await ctx.aclose()

    return test_lifespan


@pytest.fixture(scope="module")
def api_client(tmp_path_factory) -> Generator[tuple[TestClient, DashboardContext, FakeProbe], None, None]:
    """Yield (client, ctx, probe) for API integration tests.

    One context per test module: tests in a module share the validation
    cache, so use distinct domains and customer ids per test.
    """
    probe = FakeProbe()
    ctx = _make_test_context(tmp_path_factory.mktemp("api"), probe)
    app.router.lifespan_context = _patch_lifespan(ctx)
    limiter.enabled = False

    with TestClient(app, base_url="http://localhost", raise_server_exceptions=True) as client:
        yield client, ctx, probe

    limiter.enabled = True
