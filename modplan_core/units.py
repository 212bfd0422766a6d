"""Session/unit conversion and mixed-fraction display helpers."""

from __future__ import annotations

from .calendar_utils import round_half_up
from .constants import SESSIONS_PER_UNIT


def units_to_sessions(units: float) -> int:
    return max(0, round_half_up(float(units) * SESSIONS_PER_UNIT))


def sessions_to_units(sessions: float) -> float:
    """45-minute units, kept to 6 decimals so re-summing does not drift."""
    return round(float(sessions) / SESSIONS_PER_UNIT * 1_000_000) / 1_000_000


def format_sessions_as_mixed_fraction(sessions: float) -> str:
    """18 sessions -> '6', 20 -> '6 2/3', 1 -> '1/3', -4 -> '-1 1/3'."""
    rounded = round_half_up(float(sessions or 0))
    if rounded == 0:
        return "0"
    sign = "-" if rounded < 0 else ""
    whole, remainder = divmod(abs(rounded), SESSIONS_PER_UNIT)
    if remainder == 0:
        return f"{sign}{whole}"
    if whole == 0:
        return f"{sign}{remainder}/{SESSIONS_PER_UNIT}"
    return f"{sign}{whole} {remainder}/{SESSIONS_PER_UNIT}"


def format_signed_sessions_as_mixed_fraction(sessions: float) -> str:
    rounded = round_half_up(float(sessions or 0))
    if rounded > 0:
        return "+" + format_sessions_as_mixed_fraction(rounded)
    return format_sessions_as_mixed_fraction(rounded)
