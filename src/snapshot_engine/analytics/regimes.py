"""Volatility-regime analysis.

Trades are bucketed by opening and by closing VIX into three bands:

    low     VIX < 18
    medium  18 <= VIX < 25
    high    VIX >= 25

Every band is always reported; empty bands carry zeroed statistics.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Sequence

from ..core.models import Trade
from ..core.numeric import finite_or_none, is_finite

VIX_BANDS: tuple[tuple[str, float, float], ...] = (
    ("< 18", float("-inf"), 18.0),
    ("18 - 25", 18.0, 25.0),
    (">= 25", 25.0, float("inf")),
)


@dataclass(frozen=True)
class VolatilityRegimePoint:
    date: datetime
    opening_vix: float | None
    closing_vix: float | None
    pl: float
    rom: float | None


@dataclass(frozen=True)
class RegimeBandStats:
    band: str
    count: int = 0
    avg_rom: float = 0.0
    win_rate: float = 0.0  # 0-1


@dataclass(frozen=True)
class VixRegimeSummary:
    opening: tuple[RegimeBandStats, ...]
    closing: tuple[RegimeBandStats, ...]


def calculate_volatility_regimes(trades: Sequence[Trade]) -> list[VolatilityRegimePoint]:
    """One point per trade carrying at least one finite VIX reading."""
    points = []
    for trade in trades:
        opening = finite_or_none(trade.opening_vix)
        closing = finite_or_none(trade.closing_vix)
        if (opening is None and closing is None) or not is_finite(trade.pl):
            continue
        points.append(VolatilityRegimePoint(trade.opened_at, opening, closing, trade.pl, trade.rom))
    return points


def _band_stats(name: str, members: list[VolatilityRegimePoint]) -> RegimeBandStats:
    if not members:
        return RegimeBandStats(name)
    roms = [p.rom for p in members if p.rom is not None]
    wins = sum(1 for p in members if p.pl > 0)
    return RegimeBandStats(
        band=name,
        count=len(members),
        avg_rom=sum(roms) / len(roms) if roms else 0.0,
        win_rate=wins / len(members),
    )


def _summarize(points: Sequence[VolatilityRegimePoint], attr: str) -> tuple[RegimeBandStats, ...]:
    rows = []
    for name, low, high in VIX_BANDS:
        members = [
            p for p in points
            if getattr(p, attr) is not None and low <= getattr(p, attr) < high
        ]
        rows.append(_band_stats(name, members))
    return tuple(rows)


def summarize_vix_regimes(points: Sequence[VolatilityRegimePoint]) -> VixRegimeSummary:
    """Per-band trade count, average ROM and win rate, by opening and closing VIX."""
    return VixRegimeSummary(
        opening=_summarize(points, "opening_vix"),
        closing=_summarize(points, "closing_vix"),
    )
