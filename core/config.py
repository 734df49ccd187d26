"""
core/config.py -- Every setting the dashboard reads, in one pydantic-settings model.

Nothing else in the project touches os.environ. Field names double as
environment variable names (backup_service_url -> BACKUP_SERVICE_URL); a .env
file in the working directory is read too. List fields take JSON in the
environment, e.g. EXCLUDED_CUSTOMER_IDS='["1", "42"]'.

get_settings() builds Settings on first use and hands back the same instance
afterwards. Tests construct Settings(...) directly with overrides instead.

The validator at the bottom normalises the vendor URL and refuses poll and
probe timings that would make the poller spin or never finish.

This module imports nothing else from the project.
"""

import logging
from functools import lru_cache
from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("pullboard.config")

_ROOT = Path(__file__).resolve().parent.parent


class Settings(BaseSettings):
    """Dashboard settings. Every field has a default, so Settings() works with no .env."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    debug: bool = False

    # ------------------------------------------------------------------
    # Vendor customer API
    # ------------------------------------------------------------------

    vendor_api_url: str = "https://4-19-fifo.cetecerpdevel.com"
    # Only used by the CLI. HTTP callers pass their own token through.
    preshared_token: str = ""
    vendor_timeout: float = 10.0
    # Known internal/test accounts that never appear on the dashboard.
    excluded_customer_ids: list[str] = ["1"]

    # ------------------------------------------------------------------
    # Backup-trigger service
    # ------------------------------------------------------------------

    backup_service_url: str = ""
    backup_password: str = ""
    backup_timeout: float = 45.0

    # ------------------------------------------------------------------
    # Environment probing
    # ------------------------------------------------------------------

    dev_host_suffix: str = "cetecerpdevel.com"
    main_site_domain: str = "cetecerp.com"
    probe_timeout: float = 5.0
    probe_max_redirects: int = 5

    # ------------------------------------------------------------------
    # Validation orchestrator and poller timing (seconds)
    # ------------------------------------------------------------------

    validation_cooldown_seconds: float = 5.0
    poll_tick_seconds: float = 60.0
    poll_stability_seconds: float = 120.0
    poll_max_seconds: float = 1800.0

    # ------------------------------------------------------------------
    # Local files
    # ------------------------------------------------------------------

    resident_map_path: Path = _ROOT / "config" / "resident-dbs.json"
    timestamps_path: Path = _ROOT / "data" / "pull-timestamps.json"

    # ------------------------------------------------------------------
    # Links shown on each row
    # ------------------------------------------------------------------

    customer_view_url: str = "https://internal.cetecerpbeta.com/react/customer/{id}/view?newversion=1"

    # ------------------------------------------------------------------
    # HTTP surface
    # ------------------------------------------------------------------

    cors_origins: list[str] = ["http://localhost:5173", "http://localhost:3000"]
    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "*.localhost"]
    pull_rate_limit: str = "10/minute"

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_settings(self) -> "Settings":
        """Normalise URLs and reject timing values the poller cannot honour.

        The vendor URL is accepted without a scheme (as it is usually copied
        from a browser bar) and promoted to https://.
        """
        url = self.vendor_api_url.strip().rstrip("/")
        if url and not url.startswith(("http://", "https://")):
            url = f"https://{url}"
        self.vendor_api_url = url

        for name in ("poll_tick_seconds", "poll_stability_seconds", "poll_max_seconds", "probe_timeout"):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name.upper()} must be greater than zero.")
        if self.probe_max_redirects < 0:
            raise ValueError("PROBE_MAX_REDIRECTS must not be negative.")
        if self.validation_cooldown_seconds < 0:
            raise ValueError("VALIDATION_COOLDOWN_SECONDS must not be negative.")

        if not self.backup_service_url:
            logger.warning("BACKUP_SERVICE_URL is not set -- backup pulls will be rejected.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the process-wide Settings. Call get_settings.cache_clear() to re-read the environment."""
    return Settings()
