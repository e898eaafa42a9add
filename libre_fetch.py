"""
LibreGlance: fetch the current reading for the widget.

One call = one fresh login + one connections call. Returns a JSON-ready dict,
either the reading or {"error": message}. Used by widget.py.
"""

from __future__ import annotations

import logging
from typing import Optional

from libre_client import LibreError, RequestsTransport, Transport
from libre_config import Configuration
from libre_reading import ReadingResolver
from libre_session import SessionNegotiator

logger = logging.getLogger("libre_glance.fetch")


def fetch_latest_reading(config: Configuration, transport: Optional[Transport] = None) -> dict:
    """Fetch and normalize the primary patient's latest glucose reading.

    Returns the reading dict (value, rawValue, mmolValue, trend, arrow,
    level, color, unit, timestamp) or {"error": ...} for any LibreError.
    Missing credentials are reported without touching the network.
    """
    try:
        credentials = config.require_credentials()
        transport = transport or RequestsTransport()

        session = SessionNegotiator(transport).authenticate(credentials)
        reading = ReadingResolver(transport).resolve(session, config)
    except LibreError as exc:
        logger.warning("Fetch failed (%s): %s", type(exc).__name__, exc)
        return {"error": str(exc)}

    return reading.to_dict()
