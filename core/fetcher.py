"""
fetcher.py -- Calls to the vendor customer API and the backup-trigger service.

Unlike the prober, failures here are surfaced: the dashboard must tell the
user that the customer list or the backup request failed so they can retry
by hand. Nothing in this module retries.
"""

import logging
from typing import Any, Optional

import requests

from core.config import Settings

logger = logging.getLogger("pullboard.fetcher")

CUSTOMER_PATH = "/api/customer"

# Query parameters the vendor customer endpoint understands. Anything else the
# caller sends is dropped rather than forwarded.
CUSTOMER_QUERY_KEYS = ("id", "name", "external_key", "columns")

# Module-level session shared across all fetcher calls for connection pooling.
_session = requests.Session()
_session.max_redirects = 3


class VendorAPIError(Exception):
    """An upstream call failed. `message` is safe to show to the user."""

    def __init__(self, message: str, status: Optional[int] = None, detail: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.status = status
        self.detail = detail


def fetch_customers(settings: Settings, preshared_token: str, **query: Optional[str]) -> list[dict[str, Any]]:
    """Fetch the raw customer array from the vendor API.

    Only non-blank values for CUSTOMER_QUERY_KEYS are forwarded. Raises
    VendorAPIError on transport failure, non-2xx status, or a body that is
    not a JSON array.
    """
    if not preshared_token:
        raise ValueError("preshared_token is required")

    params: dict[str, str] = {}
    for key in CUSTOMER_QUERY_KEYS:
        value = query.get(key)
        if value is not None and str(value).strip():
            params[key] = str(value).strip()
    params["preshared_token"] = preshared_token

    url = f"{settings.vendor_api_url}{CUSTOMER_PATH}"
    try:
        resp = _session.get(url, params=params, timeout=settings.vendor_timeout)
        resp.raise_for_status()
    except requests.HTTPError as e:
        status = e.response.status_code if e.response is not None else None
        logger.warning("Vendor customer API returned %s", status)
        raise VendorAPIError("Failed to fetch customers from the vendor API.", status=status, detail=f"HTTP {status}") from e
    except requests.RequestException as e:
        logger.warning("Vendor customer API unreachable: %s", type(e).__name__)
        raise VendorAPIError("Failed to fetch customers from the vendor API.", detail=type(e).__name__) from e

    # requests.JSONDecodeError is also a RequestException, so decode separately.
    try:
        data = resp.json()
    except ValueError as e:
        logger.warning("Vendor customer API returned invalid JSON: %s", e)
        raise VendorAPIError("The vendor API returned an unreadable response.", detail=str(e)) from e

    # A single-customer lookup comes back as an object, not a list.
    if isinstance(data, dict):
        data = [data]
    if not isinstance(data, list):
        raise VendorAPIError("The vendor API returned an unexpected payload.", detail=type(data).__name__)
    return [row for row in data if isinstance(row, dict)]


def trigger_backup(settings: Settings, database: str) -> Any:
    """Ask the backup service to pull `database` into its development environment.

    The response body is opaque; it is returned only for logging. Raises
    VendorAPIError when the service is not configured, times out after
    settings.backup_timeout seconds, or answers with an error status.
    """
    if not settings.backup_service_url:
        raise VendorAPIError("The backup service is not configured.")

    params = {"password": settings.backup_password, "db": database}
    try:
        resp = _session.get(settings.backup_service_url, params=params, timeout=settings.backup_timeout)
        resp.raise_for_status()
    except requests.Timeout as e:
        logger.warning("Backup request for %s timed out after %.0fs", database, settings.backup_timeout)
        raise VendorAPIError("The backup service did not respond in time.", detail="timeout") from e
    except requests.HTTPError as e:
        status = e.response.status_code if e.response is not None else None
        logger.warning("Backup request for %s failed with %s", database, status)
        raise VendorAPIError("The backup service rejected the request.", status=status, detail=f"HTTP {status}") from e
    except requests.RequestException as e:
        logger.warning("Backup request for %s failed: %s", database, type(e).__name__)
        raise VendorAPIError("Could not reach the backup service.", detail=type(e).__name__) from e

    try:
        return resp.json()
    except ValueError:
        return resp.text
