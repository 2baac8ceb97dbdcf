"""Equity curve and drawdown reconstruction.

Two sources are possible for the account value behind the curve:

* the **ledger**: daily-log balances, or each trade's ``funds_at_close``.
  Both describe the *whole account* and are only trusted when the
  snapshot covers every strategy at real size;
* **cumulative P&L**: an initial capital estimate plus the running sum
  of the (possibly filtered) trades' P&L.

The caller decides which one applies (``use_ledger_balances``); this
module never looks at filters itself.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Sequence

from ..core.cancellation import CancelToken, checkpoint
from ..core.models import DailyLogEntry, Trade, as_utc_datetime
from ..core.numeric import (
    FALLBACK_INITIAL_CAPITAL,
    finite_or_none,
    is_finite,
    pct_change_from_peak,
)
from .normalizer import sort_by_close, sort_by_open

logger = logging.getLogger(__name__)

_TIE_OFFSET = timedelta(seconds=1)


@dataclass(frozen=True)
class EquityPoint:
    date: datetime
    equity: float
    high_water_mark: float
    trade_number: int


@dataclass(frozen=True)
class DrawdownPoint:
    date: datetime
    drawdown_pct: float


@dataclass(frozen=True)
class EquityCurve:
    """Parallel equity / drawdown series plus the source that produced them."""

    equity_curve: tuple[EquityPoint, ...]
    drawdown_data: tuple[DrawdownPoint, ...]
    source: str  # "daily_log" | "trades"
    initial_capital: float | None = None

    @property
    def final_equity(self) -> float | None:
        return self.equity_curve[-1].equity if self.equity_curve else None

    @property
    def max_drawdown_pct(self) -> float:
        """Deepest drawdown as a positive percentage."""
        if not self.drawdown_data:
            return 0.0
        return abs(min(p.drawdown_pct for p in self.drawdown_data))


# ---------------------------------------------------------------------- #
# Initial capital                                                          #
# ---------------------------------------------------------------------- #

def initial_capital_from_trades(
    trades: Sequence[Trade],
    fallback: float = FALLBACK_INITIAL_CAPITAL,
) -> float:
    """Account value before the chronologically first trade.

    ``first.funds_at_close - first.pl`` when that is finite and positive,
    otherwise *fallback*.
    """
    if not trades:
        return fallback
    first = sort_by_open(trades)[0]
    if not is_finite(first.funds_at_close) or not is_finite(first.pl):
        return fallback
    capital = first.funds_at_close - first.pl
    return capital if capital > 0 else fallback


def initial_capital_from_daily_logs(entries: Sequence[DailyLogEntry]) -> float | None:
    """``net_liquidity - daily_pl`` of the earliest ledger entry, if usable."""
    if not entries:
        return None
    first = min(entries, key=lambda e: e.date)
    balance = first.equity_value()
    if balance is None:
        return None
    return balance - (finite_or_none(first.daily_pl) or 0.0)


# ---------------------------------------------------------------------- #
# Reconstruction                                                           #
# ---------------------------------------------------------------------- #

def _unique_after(stamp: datetime, previous: datetime | None) -> datetime:
    if previous is not None and stamp <= previous:
        return previous + _TIE_OFFSET
    return stamp


async def build_equity_and_drawdown(
    trades: Sequence[Trade],
    daily_logs: Sequence[DailyLogEntry] | None = None,
    *,
    use_ledger_balances: bool = True,
    fallback_capital: float = FALLBACK_INITIAL_CAPITAL,
    token: CancelToken | None = None,
    yield_every: int = 100,
) -> EquityCurve:
    """Build the canonical equity curve and its drawdown series.

    The daily log wins when it is present *and* ledger balances are
    trustworthy; otherwise the curve is rebuilt from trades.
    """
    if use_ledger_balances and daily_logs:
        return await _from_daily_logs(trades, daily_logs, token=token, yield_every=yield_every)
    return await _from_trades(
        trades,
        use_ledger_balances=use_ledger_balances,
        fallback_capital=fallback_capital,
        token=token,
        yield_every=yield_every,
    )


async def _from_daily_logs(
    trades: Sequence[Trade],
    daily_logs: Sequence[DailyLogEntry],
    *,
    token: CancelToken | None,
    yield_every: int,
) -> EquityCurve:
    entries = sorted(daily_logs, key=lambda e: e.date)
    closed = sort_by_close(t for t in trades if t.is_closed)

    equity_curve: list[EquityPoint] = []
    drawdown_data: list[DrawdownPoint] = []
    closed_count = 0
    high_water_mark = float("-inf")
    previous: datetime | None = None

    for i, entry in enumerate(entries):
        if i and i % yield_every == 0:
            await checkpoint(token, "Building equity curve")

        # Monotonic pointer: both sequences are date-ordered.
        while closed_count < len(closed) and closed[closed_count].close_date <= entry.date:
            closed_count += 1

        equity = entry.equity_value()
        if equity is None:
            logger.debug("Skipping ledger entry %s without a finite balance", entry.date)
            continue

        if equity > high_water_mark:
            high_water_mark = equity

        reported = finite_or_none(entry.drawdown_pct)
        drawdown_pct = reported if reported is not None else pct_change_from_peak(equity, high_water_mark)

        stamp = _unique_after(as_utc_datetime(entry.date), previous)
        previous = stamp
        equity_curve.append(EquityPoint(stamp, equity, high_water_mark, closed_count))
        drawdown_data.append(DrawdownPoint(stamp, drawdown_pct))

    return EquityCurve(
        equity_curve=tuple(equity_curve),
        drawdown_data=tuple(drawdown_data),
        source="daily_log",
        initial_capital=initial_capital_from_daily_logs(entries),
    )


async def _from_trades(
    trades: Sequence[Trade],
    *,
    use_ledger_balances: bool,
    fallback_capital: float,
    token: CancelToken | None,
    yield_every: int,
) -> EquityCurve:
    usable = [t for t in trades if is_finite(t.pl)]
    closed = sort_by_close(t for t in usable if t.is_closed)

    if closed:
        ordered = closed
        stamps = [as_utc_datetime(t.close_date) for t in ordered]
        anchor = stamps[0] - _TIE_OFFSET
    else:
        # Nothing closed yet: chart the open positions by open date.
        ordered = sort_by_open(usable)
        stamps = [as_utc_datetime(t.date_opened) for t in ordered]
        anchor = stamps[0] if stamps else None

    if not ordered:
        return EquityCurve(equity_curve=(), drawdown_data=(), source="trades")

    initial_capital = initial_capital_from_trades(ordered, fallback_capital)
    running = initial_capital
    high_water_mark = running

    equity_curve = [EquityPoint(anchor, running, high_water_mark, 0)]
    previous = anchor

    for index, (trade, base) in enumerate(zip(ordered, stamps)):
        if index and index % yield_every == 0:
            await checkpoint(token, "Building equity curve")

        funds = finite_or_none(trade.funds_at_close)
        if use_ledger_balances and closed and funds is not None:
            running = funds
        else:
            running = running + trade.pl
        high_water_mark = max(high_water_mark, running)

        stamp = _unique_after(base + _TIE_OFFSET * (index + 1), previous)
        previous = stamp
        equity_curve.append(EquityPoint(stamp, running, high_water_mark, index + 1))

    drawdown_data = tuple(
        DrawdownPoint(p.date, pct_change_from_peak(p.equity, p.high_water_mark))
        for p in equity_curve
    )
    return EquityCurve(
        equity_curve=tuple(equity_curve),
        drawdown_data=drawdown_data,
        source="trades",
        initial_capital=initial_capital,
    )
