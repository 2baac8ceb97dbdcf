"""Small numeric helpers shared by the calculators.

Raw records may carry NaN/Infinity in any numeric field.  These helpers
let each calculator drop a bad value from the one metric it would
corrupt instead of letting it poison downstream sums.
"""

from __future__ import annotations

import math
from typing import Any, Iterable

FALLBACK_INITIAL_CAPITAL = 100_000.0
PROFIT_FACTOR_CAP = 999.0


def is_finite(value: Any) -> bool:
    """True for real numbers that are neither NaN nor infinite."""
    if value is None or isinstance(value, bool):
        return False
    try:
        return math.isfinite(value)
    except TypeError:
        return False


def finite_or_none(value: Any) -> float | None:
    return float(value) if is_finite(value) else None


def finite_or(value: Any, default: float) -> float:
    return float(value) if is_finite(value) else default


def positive_or_none(value: Any) -> float | None:
    """The value if it is finite and strictly positive, else ``None``."""
    if is_finite(value) and value > 0:
        return float(value)
    return None


def mean_or_zero(values: Iterable[float]) -> float:
    values = list(values)
    return sum(values) / len(values) if values else 0.0


def median(values: Iterable[float]) -> float:
    ordered = sorted(values)
    n = len(ordered)
    if n == 0:
        return 0.0
    mid = n // 2
    if n % 2 == 0:
        return (ordered[mid - 1] + ordered[mid]) / 2
    return ordered[mid]


def pct_change_from_peak(equity: float, high_water_mark: float) -> float:
    """Drawdown percent (<= 0) of *equity* below *high_water_mark*."""
    if not is_finite(high_water_mark) or high_water_mark <= 0:
        return 0.0
    return (equity - high_water_mark) / high_water_mark * 100.0
