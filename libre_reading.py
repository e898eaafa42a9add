"""
LibreGlance: glucose reading resolution and normalization.

Fetches the connection list for an authenticated session and turns the first
patient's glucoseMeasurement into a display-ready reading.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum
from typing import TYPE_CHECKING, Any, Optional

from libre_client import (
    ResolutionError,
    Transport,
    TransportError,
    error_message,
    get_connections,
)

if TYPE_CHECKING:
    from libre_config import Configuration
    from libre_session import Session

logger = logging.getLogger("libre_glance.reading")

MGDL_PER_MMOL = 18.0182
UNIT_MMOL = "mmol/L"
UNIT_MGDL = "mg/dL"

# ── LibreLinkUp trend codes → arrow glyphs ─────────────────────────
TREND_ARROWS = {
    1: "⇊",   # falling fast
    2: "↓",   # falling
    3: "↘",   # falling slowly
    4: "→",   # stable
    5: "↗",   # rising slowly
    6: "↑",   # rising
    7: "⇈",   # rising fast
}


class Level(str, Enum):
    LOW = "LOW"
    HIGH = "HIGH"
    NORMAL = ""


LEVEL_COLORS = {
    Level.LOW: "#E53935",
    Level.HIGH: "#FB8C00",
    Level.NORMAL: "#43A047",
}


@dataclass(frozen=True)
class NormalizedReading:
    display_value: str
    raw_mg_dl: float
    mmol: float
    mmol_value: str
    trend_code: Optional[int]
    trend_arrow: str
    level: Level
    color: str
    unit: str
    timestamp: Optional[str]

    def to_dict(self) -> dict:
        """JSON object handed to the widget."""
        return {
            "value": self.display_value,
            "rawValue": self.raw_mg_dl,
            "mmolValue": self.mmol_value,
            "trend": self.trend_code,
            "arrow": self.trend_arrow,
            "level": self.level.value,
            "color": self.color,
            "unit": self.unit,
            "timestamp": self.timestamp,
        }


# ── Helpers ─────────────────────────────────────────────────────────

def mg_dl_to_mmol(mg_dl: float) -> float:
    return mg_dl / MGDL_PER_MMOL


def format_mmol(mmol: float) -> str:
    """One-decimal mmol/L string.

    Rounded half-up from the hundredths, so 100 mg/dL (5.5499...) shows
    as 5.6.
    """
    hundredths = Decimal(repr(mmol)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)
    return str(hundredths.quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))


def format_mg_dl(mg_dl: float) -> str:
    # half-up, not banker's rounding
    return str(int(math.floor(mg_dl + 0.5)))


def trend_arrow(trend_code: Any) -> str:
    """Arrow glyph for a trend code; unknown codes give an empty string."""
    try:
        return TREND_ARROWS.get(int(trend_code), "")
    except (TypeError, ValueError):
        return ""


def classify(mmol: float, low_threshold: float, high_threshold: float) -> Level:
    if mmol < low_threshold:
        return Level.LOW
    if mmol > high_threshold:
        return Level.HIGH
    return Level.NORMAL


def level_color(level: Level) -> str:
    return LEVEL_COLORS[level]


def normalize_measurement(measurement: dict, config: Configuration) -> NormalizedReading:
    """Build a NormalizedReading from a raw glucoseMeasurement dict.

    Thresholds are always compared in mmol/L at full precision, whatever
    unit the widget displays.
    """
    raw = measurement.get("ValueInMgPerDl") or measurement.get("Value")
    if raw is None:
        raise ResolutionError("glucose measurement has no value")
    try:
        raw_mg_dl = float(raw)
    except (TypeError, ValueError) as e:
        raise ResolutionError(f"invalid glucose value: {raw!r}") from e

    mmol = mg_dl_to_mmol(raw_mg_dl)
    mmol_value = format_mmol(mmol)
    display_value = format_mg_dl(raw_mg_dl) if config.glucose_unit == UNIT_MGDL else mmol_value
    level = classify(mmol, config.low_threshold, config.high_threshold)

    trend_code = measurement.get("TrendArrow")
    if isinstance(trend_code, float) and trend_code.is_integer():
        trend_code = int(trend_code)

    return NormalizedReading(
        display_value=display_value,
        raw_mg_dl=raw_mg_dl,
        mmol=mmol,
        mmol_value=mmol_value,
        trend_code=trend_code,
        trend_arrow=trend_arrow(trend_code),
        level=level,
        color=level_color(level),
        unit=config.glucose_unit,
        timestamp=measurement.get("Timestamp"),
    )


# ── Resolver ────────────────────────────────────────────────────────

class ReadingResolver:
    """Turns an authenticated Session into the primary patient's reading."""

    def __init__(self, transport: Transport):
        self.transport = transport

    def resolve(self, session: Session, config: Configuration) -> NormalizedReading:
        try:
            response = get_connections(self.transport, session)
        except TransportError as e:
            logger.error("Connections call failed: %s", e)
            raise ResolutionError(str(e)) from e

        if response.get("status") != 0:
            logger.warning("Connections call rejected (status=%s)", response.get("status"))
            raise ResolutionError(error_message(response, "failed to get connections"))

        connections = response.get("data")
        if not isinstance(connections, list) or not connections:
            raise ResolutionError("no linked patients")

        # Only the primary patient is shown
        measurement = connections[0].get("glucoseMeasurement") if isinstance(connections[0], dict) else None
        if not isinstance(measurement, dict) or not measurement:
            raise ResolutionError("no glucose measurement")

        reading = normalize_measurement(measurement, config)
        logger.info(
            "Resolved reading: %s %s %s (level=%s) at %s",
            reading.display_value, reading.unit, reading.trend_arrow,
            reading.level.value or "NORMAL", reading.timestamp,
        )
        return reading
