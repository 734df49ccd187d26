"""
prober.py -- Single-shot reachability probe for a customer's development environment.

A development environment that does not exist yet is not reported as an error
by the vendor's edge: the request is redirected to the main marketing/login
site instead. The probe therefore follows redirects and inspects where it
ended up, not just the status code.

Contract: probe_environment() never raises. Every failure mode is folded into
a ProbeResult with reachable=False, so callers need no exception handling.
"""

import logging
from typing import Optional

import requests

from core.config import Settings, get_settings
from core.models import LOGIN_PROBE_PATH, ProbeReason, ProbeResult

logger = logging.getLogger("pullboard.prober")

# Statuses below this count as a response from the environment itself (401s
# and 404s included). Anything at or above is an upstream error.
_SERVER_ERROR = 500


def _make_session(max_redirects: int) -> requests.Session:
    session = requests.Session()
    session.max_redirects = max_redirects
    return session


_session: Optional[requests.Session] = None


def _get_session(settings: Settings) -> requests.Session:
    global _session
    if _session is None or _session.max_redirects != settings.probe_max_redirects:
        _session = _make_session(settings.probe_max_redirects)
    return _session


def probe_url(domain: str, settings: Optional[Settings] = None) -> str:
    """Return the login-probe URL for a customer domain."""
    settings = settings or get_settings()
    return f"http://{domain.strip().lower()}.{settings.dev_host_suffix}{LOGIN_PROBE_PATH}"


def classify_final_url(domain: str, final_url: str, main_site_domain: str) -> bool:
    """True when the probe landed on the vendor's main site rather than the environment."""
    final = final_url.lower()
    return main_site_domain.lower() in final and domain.strip().lower() not in final


def probe_environment(domain: str, settings: Optional[Settings] = None) -> ProbeResult:
    """Probe the development environment for `domain` and classify it.

    Priority order:
      1. transport failure (timeout, DNS, refused, redirect loop) -> network_error
      2. final URL on the main site and not mentioning the domain -> redirected_to_main_site
      3. 5xx from the environment                                  -> api_error
      4. anything else                                             -> reachable
    """
    settings = settings or get_settings()
    url = probe_url(domain, settings)
    try:
        resp = _get_session(settings).get(url, timeout=settings.probe_timeout, allow_redirects=True)
    except (requests.RequestException, ValueError) as e:
        logger.warning("Probe of %s failed: %s", url, e)
        return ProbeResult(reachable=False, error=str(e), reason=ProbeReason.network_error)

    final_url = resp.url or url
    if classify_final_url(domain, final_url, settings.main_site_domain):
        logger.info("Probe of %s redirected to main site (%s)", domain, final_url)
        return ProbeResult(
            reachable=False,
            http_status=resp.status_code,
            final_url=final_url,
            reason=ProbeReason.redirected_to_main_site,
        )

    if resp.status_code >= _SERVER_ERROR:
        logger.warning("Probe of %s returned %d", url, resp.status_code)
        return ProbeResult(
            reachable=False,
            http_status=resp.status_code,
            final_url=final_url,
            error=f"HTTP {resp.status_code}",
            reason=ProbeReason.api_error,
        )

    return ProbeResult(reachable=True, http_status=resp.status_code, final_url=final_url)
