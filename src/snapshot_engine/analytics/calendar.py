"""Calendar aggregation: day-of-week, daily/weekly/monthly P&L, and
compounding monthly percentage returns.

All bucketing uses the trade's open date (UTC calendar date).

Monthly percentages are order dependent: each month is expressed
against the balance *compounded up to that month*, never against
today's capital projected backwards.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from typing import Sequence

from ..core.cancellation import CancelToken, checkpoint
from ..core.models import DailyLogEntry, Trade
from ..core.numeric import FALLBACK_INITIAL_CAPITAL, is_finite
from .equity import initial_capital_from_trades
from .normalizer import sort_by_open

logger = logging.getLogger(__name__)

DAY_NAMES = ["Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday"]

MonthGrid = dict[int, dict[int, float]]


@dataclass
class _DayBucket:
    """Accumulator for one weekday."""

    count: int = 0
    total_pl: float = 0.0
    total_rom: float = 0.0
    rom_samples: int = 0

    def record(self, trade: Trade) -> None:
        self.count += 1
        self.total_pl += trade.pl
        rom = trade.rom
        if rom is not None:
            self.total_rom += rom
            self.rom_samples += 1


@dataclass(frozen=True)
class DayOfWeekStats:
    day: str
    count: int
    avg_pl: float
    avg_rom: float  # Percent, over trades with positive margin only


@dataclass(frozen=True)
class TradeSequencePoint:
    trade_number: int
    date: datetime
    pl: float
    rom: float  # 0 when the trade has no usable margin


@dataclass(frozen=True)
class RomPoint:
    date: datetime
    rom: float


def _finite_pl(trades: Sequence[Trade]) -> list[Trade]:
    return [t for t in trades if is_finite(t.pl)]


# ---------------------------------------------------------------------- #
# Day of week                                                              #
# ---------------------------------------------------------------------- #

def calculate_day_of_week(trades: Sequence[Trade]) -> list[DayOfWeekStats]:
    """Per-weekday count, average P&L and average ROM, Monday first.

    Weekdays without trades are omitted.
    """
    buckets: dict[int, _DayBucket] = defaultdict(_DayBucket)
    for trade in _finite_pl(trades):
        buckets[trade.date_opened.weekday()].record(trade)

    return [
        DayOfWeekStats(
            day=DAY_NAMES[weekday],
            count=b.count,
            avg_pl=b.total_pl / b.count if b.count else 0.0,
            avg_rom=b.total_rom / b.rom_samples if b.rom_samples else 0.0,
        )
        for weekday, b in sorted(buckets.items())
    ]


# ---------------------------------------------------------------------- #
# Period P&L                                                               #
# ---------------------------------------------------------------------- #

def calculate_daily_pl(trades: Sequence[Trade]) -> dict[str, float]:
    """``YYYY-MM-DD -> summed P&L`` in date order."""
    daily: dict[str, float] = defaultdict(float)
    for trade in _finite_pl(trades):
        daily[trade.date_opened.isoformat()] += trade.pl
    return dict(sorted(daily.items()))


def calculate_weekly_pl(trades: Sequence[Trade]) -> dict[str, float]:
    """ISO week (``YYYY-Www``) -> summed P&L in week order."""
    weekly: dict[str, float] = defaultdict(float)
    for trade in _finite_pl(trades):
        year, week, _ = trade.date_opened.isocalendar()
        weekly[f"{year}-W{week:02d}"] += trade.pl
    return dict(sorted(weekly.items()))


def _monthly_pl(trades: Sequence[Trade]) -> dict[tuple[int, int], float]:
    monthly: dict[tuple[int, int], float] = defaultdict(float)
    for trade in _finite_pl(trades):
        monthly[(trade.date_opened.year, trade.date_opened.month)] += trade.pl
    return monthly


def _zero_grid(years: Sequence[int]) -> MonthGrid:
    if not years:
        return {}
    return {
        year: {month: 0.0 for month in range(1, 13)}
        for year in range(min(years), max(years) + 1)
    }


def calculate_monthly_returns(trades: Sequence[Trade]) -> MonthGrid:
    """``{year: {month: pl}}`` over the observed year range, zero-filled."""
    monthly = _monthly_pl(trades)
    grid = _zero_grid([year for year, _ in monthly])
    for (year, month), pl in monthly.items():
        grid[year][month] = pl
    return grid


# ---------------------------------------------------------------------- #
# Monthly percentage returns                                               #
# ---------------------------------------------------------------------- #

async def _percent_from_trades(
    trades: Sequence[Trade],
    *,
    fallback_capital: float,
    token: CancelToken | None,
    yield_every: int,
) -> MonthGrid:
    ordered = sort_by_open(_finite_pl(trades))
    if not ordered:
        return {}

    capital = initial_capital_from_trades(ordered, fallback_capital)

    monthly: dict[tuple[int, int], float] = defaultdict(float)
    for i, trade in enumerate(ordered):
        if i and i % yield_every == 0:
            await checkpoint(token, "Computing monthly returns")
        monthly[(trade.date_opened.year, trade.date_opened.month)] += trade.pl

    grid = _zero_grid([year for year, _ in monthly])
    for (year, month) in sorted(monthly):
        pl = monthly[(year, month)]
        grid[year][month] = pl / capital * 100.0 if capital > 0 else 0.0
        capital += pl
    return grid


async def _percent_from_daily_logs(
    trades: Sequence[Trade],
    daily_logs: Sequence[DailyLogEntry],
    *,
    fallback_capital: float,
    token: CancelToken | None,
    yield_every: int,
) -> MonthGrid:
    trade_based = await _percent_from_trades(
        trades, fallback_capital=fallback_capital, token=token, yield_every=yield_every
    )

    start_balance: dict[tuple[int, int], float] = {}
    for i, entry in enumerate(sorted(daily_logs, key=lambda e: e.date)):
        if i and i % yield_every == 0:
            await checkpoint(token, "Computing monthly returns")
        balance = entry.equity_value()
        if balance is None:
            continue
        start_balance.setdefault((entry.date.year, entry.date.month), balance)

    monthly = _monthly_pl(trades)
    grid = _zero_grid([year for year, _ in monthly])
    for (year, month), pl in monthly.items():
        start = start_balance.get((year, month))
        if start is not None and start > 0:
            grid[year][month] = pl / start * 100.0
        else:
            grid[year][month] = trade_based.get(year, {}).get(month, 0.0)
    return grid


async def calculate_monthly_returns_percent(
    trades: Sequence[Trade],
    daily_logs: Sequence[DailyLogEntry] | None = None,
    *,
    fallback_capital: float = FALLBACK_INITIAL_CAPITAL,
    token: CancelToken | None = None,
    yield_every: int = 100,
) -> MonthGrid:
    """Monthly return in percent of the month's starting balance.

    With a daily log, the starting balance is the first ledger balance
    of the month (months without one fall back to the trade-based
    figure).  Without one, capital compounds month by month from the
    initial capital estimate.
    """
    if daily_logs:
        return await _percent_from_daily_logs(
            trades, daily_logs, fallback_capital=fallback_capital, token=token, yield_every=yield_every
        )
    return await _percent_from_trades(
        trades, fallback_capital=fallback_capital, token=token, yield_every=yield_every
    )


# ---------------------------------------------------------------------- #
# Per-trade projections                                                    #
# ---------------------------------------------------------------------- #

def calculate_trade_sequence(trades: Sequence[Trade]) -> list[TradeSequencePoint]:
    return [
        TradeSequencePoint(
            trade_number=number,
            date=trade.opened_at,
            pl=trade.pl,
            rom=trade.rom or 0.0,
        )
        for number, trade in enumerate(_finite_pl(trades), start=1)
    ]


def calculate_rom_timeline(trades: Sequence[Trade]) -> list[RomPoint]:
    return [RomPoint(t.opened_at, t.rom) for t in trades if t.rom is not None]


def calculate_return_distribution(trades: Sequence[Trade]) -> list[float]:
    """ROM of every trade with positive margin, in trade order."""
    return [t.rom for t in trades if t.rom is not None]
