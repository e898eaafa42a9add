"""
LibreGlance: LibreLinkUp API client.

Constants, error types and the two raw API calls (login, connections) plus
the transports that carry them. No config loading, no normalization.
Used by libre_session.py and libre_reading.py.
"""

from __future__ import annotations

import json
import logging
import subprocess
from types import MappingProxyType
from typing import TYPE_CHECKING, Optional, Protocol

import requests

if TYPE_CHECKING:
    from libre_session import Credentials, Session

logger = logging.getLogger("libre_glance.client")

BASE_URL = "https://api.libreview.io"
LOGIN_ENDPOINT = "/llu/auth/login"
CONNECTIONS_ENDPOINT = "/llu/connections"
PRODUCT = "llu.android"
CLIENT_VERSION = "4.16.0"
DEFAULT_TIMEOUT = 30.0

# Region code (as sent in a login redirect) -> regional API host
REGIONAL_HOSTS = MappingProxyType({
    "AE": "https://api-ae.libreview.io",
    "AP": "https://api-ap.libreview.io",
    "AU": "https://api-au.libreview.io",
    "CA": "https://api-ca.libreview.io",
    "DE": "https://api-de.libreview.io",
    "EU": "https://api-eu.libreview.io",
    "EU2": "https://api-eu2.libreview.io",
    "FR": "https://api-fr.libreview.io",
    "JP": "https://api-jp.libreview.io",
    "US": "https://api-us.libreview.io",
})


# ── Errors ──────────────────────────────────────────────────────────

class LibreError(Exception):
    """Base class for every failure reported to the widget."""


class NotConfigured(LibreError):
    """Username or password missing; nothing was sent to the service."""

    def __init__(self, message: str = "Not configured - set credentials in settings"):
        super().__init__(message)


class ConfigError(LibreError):
    """The settings file or environment could not be read."""


class TransportError(LibreError):
    """Network, timeout or parse failure below the API layer."""


class AuthError(LibreError):
    """Login rejected, redirect could not be followed, or no token issued."""


class ResolutionError(LibreError):
    """Authenticated call failed or returned no usable glucose data."""


# ── Transports ──────────────────────────────────────────────────────

class Transport(Protocol):
    def request(
        self,
        method: str,
        url: str,
        headers: dict[str, str],
        body: Optional[dict] = None,
    ) -> dict:
        """Send one request and return the decoded JSON object.

        Raises TransportError on any failure below the API layer.
        """
        ...


class RequestsTransport:
    """HTTP transport backed by a requests.Session."""

    def __init__(self, timeout: float = DEFAULT_TIMEOUT, session: Optional[requests.Session] = None):
        self.timeout = timeout
        self._session = session or requests.Session()

    def request(self, method: str, url: str, headers: dict[str, str], body: Optional[dict] = None) -> dict:
        try:
            resp = self._session.request(
                method,
                url,
                headers=headers,
                json=body,
                timeout=self.timeout,
            )
        except requests.Timeout as e:
            raise TransportError(f"Request timed out after {self.timeout:g}s") from e
        except requests.RequestException as e:
            raise TransportError(f"Request failed: {e}") from e

        try:
            payload = resp.json()
        except ValueError as e:
            if resp.ok:
                raise TransportError(f"Failed to parse response: {e}") from e
            detail = resp.text[:200] if resp.text else "No response body"
            raise TransportError(f"HTTP {resp.status_code}: {resp.reason} - {detail}") from e

        if not isinstance(payload, dict):
            raise TransportError("Failed to parse response: expected a JSON object")
        # A non-2xx answer with a JSON body still carries the service status
        if not resp.ok:
            logger.warning("HTTP %d from %s", resp.status_code, url)
        return payload


class CurlTransport:
    """Transport that shells out to curl, as the shell widget backend does."""

    def __init__(self, timeout: float = DEFAULT_TIMEOUT, curl: str = "curl"):
        self.timeout = timeout
        self.curl = curl

    def build_args(self, method: str, url: str, headers: dict[str, str], body: Optional[dict] = None) -> list[str]:
        args = [self.curl, "-s", "-X", method]
        for name, value in headers.items():
            args += ["-H", f"{name}: {value}"]
        if body is not None:
            args += ["-d", json.dumps(body)]
        args += ["--max-time", f"{self.timeout:g}", url]
        return args

    def request(self, method: str, url: str, headers: dict[str, str], body: Optional[dict] = None) -> dict:
        try:
            result = subprocess.run(
                self.build_args(method, url, headers, body),
                capture_output=True, text=True, timeout=self.timeout,
            )
        except subprocess.TimeoutExpired as e:
            raise TransportError(f"Request timed out after {self.timeout:g}s") from e
        except OSError as e:
            raise TransportError(f"Request failed: {e}") from e

        if result.returncode != 0:
            detail = result.stderr.strip() or f"curl exited with status {result.returncode}"
            raise TransportError(f"Request failed: {detail}")

        try:
            payload = json.loads(result.stdout)
        except ValueError as e:
            raise TransportError(f"Failed to parse response: {e}") from e
        if not isinstance(payload, dict):
            raise TransportError("Failed to parse response: expected a JSON object")
        return payload


# ── API calls ───────────────────────────────────────────────────────

def base_headers() -> dict[str, str]:
    """Headers every LibreLinkUp call carries."""
    return {
        "Content-Type": "application/json",
        "product": PRODUCT,
        "version": CLIENT_VERSION,
    }


def _send(transport: Transport, method: str, url: str, headers: dict[str, str], body: Optional[dict] = None) -> dict:
    logger.debug("%s %s", method, url)
    try:
        return transport.request(method, url, headers, body)
    except TransportError:
        raise
    except Exception as e:
        # anything else a transport raises is still a transport failure
        raise TransportError(f"Request failed: {e}") from e


def login(transport: Transport, host: str, credentials: Credentials) -> dict:
    """POST the credentials to one host's login endpoint.

    Returns the raw response payload; interpreting status, redirect and
    token is left to the SessionNegotiator.
    """
    body = {"email": credentials.username, "password": credentials.password}
    return _send(transport, "POST", host + LOGIN_ENDPOINT, base_headers(), body)


def get_connections(transport: Transport, session: Session) -> dict:
    """GET the follower's connection list on the session's regional host."""
    headers = base_headers()
    headers["Authorization"] = f"Bearer {session.token}"
    if session.account_hash:
        headers["account-id"] = session.account_hash
    return _send(transport, "GET", session.region_host + CONNECTIONS_ENDPOINT, headers)


def error_message(payload: dict, default: str) -> str:
    """Pull the service-provided error message out of a non-success payload."""
    error = payload.get("error")
    if isinstance(error, dict) and error.get("message"):
        return str(error["message"])
    return default
