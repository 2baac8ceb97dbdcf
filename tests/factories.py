"""Record factories shared by the snapshot engine tests."""

from __future__ import annotations

from datetime import date, timedelta
from typing import Any

from snapshot_engine.core.models import DailyLogEntry, Trade

START = date(2024, 1, 1)  # A Monday

_SAME_DAY = object()


def make_trade(
    pl: float,
    *,
    opened: date = START,
    time_opened: str = "09:30:00",
    closed: Any = _SAME_DAY,
    time_closed: str | None = "15:45:00",
    strategy: str = "Iron Condor",
    margin: float | None = None,
    funds: float | None = None,
    contracts: float = 1.0,
    **extra: Any,
) -> Trade:
    """Build a trade; it closes the day it opens unless *closed* says otherwise."""
    date_closed = opened if closed is _SAME_DAY else closed
    return Trade(
        date_opened=opened,
        time_opened=time_opened,
        date_closed=date_closed,
        time_closed=time_closed if date_closed is not None else None,
        pl=pl,
        strategy=strategy,
        margin_req=margin,
        funds_at_close=funds,
        num_contracts=contracts,
        **extra,
    )


def make_trade_series(
    pnl: list[float],
    *,
    start: date = START,
    initial_capital: float | None = 100_000.0,
    strategy: str = "Iron Condor",
    **extra: Any,
) -> list[Trade]:
    """One trade per day with ``funds_at_close`` tracking a running balance."""
    trades = []
    balance = initial_capital
    for i, pl in enumerate(pnl):
        if balance is not None:
            balance += pl
        trades.append(make_trade(
            pl,
            opened=start + timedelta(days=i),
            funds=balance,
            strategy=strategy,
            **extra,
        ))
    return trades


def make_log(day: date, net_liquidity: float | None, **extra: Any) -> DailyLogEntry:
    return DailyLogEntry(date=day, net_liquidity=net_liquidity, **extra)
