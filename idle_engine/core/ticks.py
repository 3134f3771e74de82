from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

MS_PER_TICK = 100
TICKS_PER_SECOND = 1000 // MS_PER_TICK
TICKS_PER_HOUR = TICKS_PER_SECOND * 60 * 60


def round_half_up(value: float) -> int:
    """Round to the nearest integer with .5 going away from zero."""
    return int(Decimal(repr(float(value))).quantize(Decimal(1), rounding=ROUND_HALF_UP))


def ms_to_ticks(ms: int | float) -> int:
    return max(0, int(ms) // MS_PER_TICK)


def seconds_to_ticks(seconds: float) -> int:
    return round_half_up(float(seconds) * TICKS_PER_SECOND)


def ticks_to_ms(ticks: int) -> int:
    return int(ticks) * MS_PER_TICK


def ticks_to_seconds(ticks: int) -> float:
    return int(ticks) / TICKS_PER_SECOND
