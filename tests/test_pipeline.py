"""Unit tests for core/pipeline.py -- load_customers and run_pull.

The vendor API and the backup service are mocked at the names imported into
core.pipeline. run_pull is driven with asyncio.run(); the poll tick is an
hour so no tick fires while a test runs, and every scenario closes the
context before its loop ends.
"""

import asyncio
import time
from unittest.mock import patch

import pytest

from core.config import Settings
from core.context import build_context
from core.fetcher import VendorAPIError
from core.models import EnvironmentStatus, ProbeResult
from core.pipeline import IneligibleCustomerError, backup_database_name, load_customers, run_pull
from inventory.hosting import ResidentHostingMap
from inventory.store import TimestampStore

_RESIDENT = ResidentHostingMap({"Residentco": "residentco_db"})


def _settings(tmp_path) -> Settings:
    return Settings(
        backup_service_url="https://backup.test/pull",
        excluded_customer_ids=["999"],
        timestamps_path=tmp_path / "pulls.json",
        poll_tick_seconds=3600.0,
    )


def _context(tmp_path):
    settings = _settings(tmp_path)
    return build_context(
        settings,
        probe=lambda domain: ProbeResult(reachable=True, http_status=200),
        resident_map=_RESIDENT,
        timestamps=TimestampStore(settings.timestamps_path),
    )


# ---------------------------------------------------------------------------
# load_customers / backup_database_name
# ---------------------------------------------------------------------------


class TestLoadCustomers:
    def test_fetches_then_enriches(self, tmp_path):
        raw = [
            {"id": 1, "name": "Acme", "domain": "acme", "ok_to_bill": 1},
            {"id": 999, "name": "Internal", "domain": "internal", "ok_to_bill": 1},
            {"id": 2, "name": "Unbilled", "domain": "unbilled", "ok_to_bill": 0},
        ]
        with patch("core.pipeline.fetch_customers", return_value=raw) as mock_fetch:
            result = load_customers(
                _settings(tmp_path), "tok", {}, {"1": {"last_pulled_at": "2026-01-01T00:00:00+00:00"}}, name="Acme"
            )

        mock_fetch.assert_called_once()
        assert mock_fetch.call_args.args[1] == "tok"
        assert mock_fetch.call_args.kwargs == {"name": "Acme"}
        assert [c.id for c in result.customers] == [1]
        assert result.customers[0].last_pulled_at == "2026-01-01T00:00:00+00:00"
        assert result.summary.total == 1

    def test_vendor_error_propagates(self, tmp_path):
        with patch("core.pipeline.fetch_customers", side_effect=VendorAPIError("down")):
            with pytest.raises(VendorAPIError):
                load_customers(_settings(tmp_path), "tok", {}, {})


class TestBackupDatabaseName:
    def test_plain_customer_uses_domain(self):
        assert backup_database_name(" Acme ", False, _RESIDENT) == "acme"

    def test_resident_customer_uses_mapped_database(self):
        assert backup_database_name("residentco", True, _RESIDENT) == "residentco_db"


# ---------------------------------------------------------------------------
# run_pull
# ---------------------------------------------------------------------------


def _pull(ctx, *args):
    async def scenario():
        try:
            outcome = await run_pull(ctx, *args)
            return outcome, ctx.poller.is_active(args[0])
        finally:
            await ctx.aclose()

    return asyncio.run(scenario())


class TestRunPull:
    def test_success_records_invalidates_and_starts_poll(self, tmp_path):
        ctx = _context(tmp_path)
        ctx.cache.set("acme", ProbeResult(reachable=True))

        with patch("core.pipeline.trigger_backup", return_value={"ok": True}) as mock_backup:
            outcome, active = _pull(ctx, "11", "Acme", False, False)

        mock_backup.assert_called_once_with(ctx.settings, "acme")
        assert outcome.triggered is True
        assert outcome.polling is True
        assert outcome.database == "acme"
        assert active is True
        assert ctx.timestamps.get("11") == outcome.timestamp
        assert "acme" not in ctx.cache
        assert ctx.board.get("11")[0] == EnvironmentStatus.not_ready

    def test_resident_customer_pulls_mapped_database(self, tmp_path):
        ctx = _context(tmp_path)
        with patch("core.pipeline.trigger_backup", return_value="queued") as mock_backup:
            outcome, _ = _pull(ctx, "12", "residentco", True, False)
        mock_backup.assert_called_once_with(ctx.settings, "residentco_db")
        assert outcome.database == "residentco_db"

    @pytest.mark.parametrize(
        "domain, resident, itar, expected",
        [
            ("acme", False, True, EnvironmentStatus.itar_hosting),
            ("undefined", False, False, EnvironmentStatus.invalid_domain),
            ("unmapped", True, False, EnvironmentStatus.unavailable),
        ],
    )
    def test_ineligible_customers_rejected(self, tmp_path, domain, resident, itar, expected):
        ctx = _context(tmp_path)
        with patch("core.pipeline.trigger_backup") as mock_backup:
            with pytest.raises(IneligibleCustomerError) as exc_info:
                _pull(ctx, "13", domain, resident, itar)
        assert exc_info.value.status == expected
        mock_backup.assert_not_called()
        assert ctx.timestamps.get("13") is None

    def test_backup_failure_records_nothing_and_starts_no_poll(self, tmp_path):
        ctx = _context(tmp_path)
        with patch("core.pipeline.trigger_backup", side_effect=VendorAPIError("timeout", detail="timeout")):
            with pytest.raises(VendorAPIError):
                _pull(ctx, "14", "acme", False, False)
        assert ctx.timestamps.get("14") is None
        assert ctx.poller.get_state("14") is None
        assert ctx.board.get("14") is None

    def test_repeat_while_polling_is_not_triggered_again(self, tmp_path):
        ctx = _context(tmp_path)

        async def scenario():
            try:
                first = await run_pull(ctx, "15", "acme", False, False)
                second = await run_pull(ctx, "15", "acme", False, False)
                return first, second
            finally:
                await ctx.aclose()

        with patch("core.pipeline.trigger_backup", return_value={}) as mock_backup:
            first, second = asyncio.run(scenario())

        assert mock_backup.call_count == 1
        assert second.triggered is False
        assert second.polling is True
        assert second.timestamp == first.timestamp

    def test_overlapping_pulls_trigger_backup_once(self, tmp_path):
        ctx = _context(tmp_path)
        calls = []

        def slow_backup(settings, database):
            calls.append(database)
            time.sleep(0.2)
            return {}

        async def scenario():
            try:
                return await asyncio.gather(
                    run_pull(ctx, "16", "acme", False, False),
                    run_pull(ctx, "16", "acme", False, False),
                )
            finally:
                await ctx.aclose()

        with patch("core.pipeline.trigger_backup", side_effect=slow_backup):
            first, second = asyncio.run(scenario())

        assert calls == ["acme"]
        assert [first.triggered, second.triggered] == [True, False]
        assert second.polling is True
        assert ctx.pulls_in_progress == set()

    def test_failed_pull_releases_customer(self, tmp_path):
        ctx = _context(tmp_path)
        with patch("core.pipeline.trigger_backup", side_effect=VendorAPIError("down")):
            with pytest.raises(VendorAPIError):
                _pull(ctx, "17", "acme", False, False)
        assert ctx.pulls_in_progress == set()

        with patch("core.pipeline.trigger_backup", return_value={}):
            outcome, _ = _pull(ctx, "17", "acme", False, False)
        assert outcome.triggered is True
