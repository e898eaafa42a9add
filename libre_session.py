"""
LibreGlance: LibreLinkUp session negotiation.

Logs in against the global host, follows regional redirects with a bounded
loop and returns an explicit Session value. Nothing is cached between calls.
"""

from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass, field
from typing import Optional

from libre_client import (
    BASE_URL,
    REGIONAL_HOSTS,
    AuthError,
    Transport,
    error_message,
    login,
)

logger = logging.getLogger("libre_glance.session")

MAX_REDIRECTS = 5


@dataclass(frozen=True)
class Credentials:
    username: str
    password: str = field(repr=False)


@dataclass(frozen=True)
class Session:
    """Result of one successful authentication cycle."""

    token: str = field(repr=False)
    account_hash: Optional[str]
    region_host: str


def account_hash(user_id: str) -> str:
    """Hex SHA-256 of the service user id, sent as the account-id header."""
    return hashlib.sha256(user_id.encode("utf-8")).hexdigest()


class SessionNegotiator:
    """Runs the login/redirect state machine for one set of credentials.

    The current host and the visited regions are local to each
    authenticate() call, so one negotiator can serve concurrent callers.
    """

    def __init__(self, transport: Transport, base_url: str = BASE_URL, max_redirects: int = MAX_REDIRECTS):
        self.transport = transport
        self.base_url = base_url
        self.max_redirects = max_redirects

    def authenticate(self, credentials: Credentials) -> Session:
        """Log in, following at most one redirect per distinct region.

        Raises TransportError when a login call fails below the API layer and
        AuthError for rejected credentials, unknown or looping redirects and
        missing tokens.
        """
        host = self.base_url
        visited: set[str] = set()

        while True:
            logger.info("Logging in at %s", host)
            response = login(self.transport, host, credentials)

            if response.get("status") != 0:
                message = error_message(response, "authentication failed")
                logger.warning("Login rejected at %s (status=%s)", host, response.get("status"))
                raise AuthError(message)

            data = response.get("data")
            if not isinstance(data, dict):
                data = {}

            region = data.get("region")
            if data.get("redirect") and region:
                code = str(region).upper()
                if code in visited or len(visited) >= self.max_redirects:
                    logger.error("Redirect loop at region %s after %d hops", code, len(visited))
                    raise AuthError("redirect loop")
                regional_host = REGIONAL_HOSTS.get(code)
                if regional_host is None:
                    raise AuthError(f"unknown region: {region}")
                visited.add(code)
                logger.info("Redirected to region %s (%s)", code, regional_host)
                host = regional_host
                continue

            ticket = data.get("authTicket")
            token = ticket.get("token") if isinstance(ticket, dict) else None
            if not token:
                raise AuthError("no auth token received")

            user = data.get("user")
            user_id = user.get("id") if isinstance(user, dict) else None
            if not user_id:
                logger.warning("Login response has no user id; account-id header will be omitted")

            logger.info("Authenticated at %s", host)
            return Session(
                token=token,
                account_hash=account_hash(str(user_id)) if user_id else None,
                region_host=host,
            )
