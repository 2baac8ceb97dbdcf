"""Per-trade auxiliary views: margin utilization, exit reasons, holding periods."""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime
from typing import Sequence

from ..core.models import Trade, as_utc_datetime
from ..core.numeric import finite_or, is_finite

UNKNOWN_REASON = "Unknown"


@dataclass(frozen=True)
class MarginUtilizationPoint:
    date: datetime
    margin_req: float
    funds_at_close: float
    num_contracts: float
    pl: float


@dataclass(frozen=True)
class ExitReasonSummary:
    reason: str
    count: int
    total_pl: float
    avg_pl: float


@dataclass(frozen=True)
class HoldingPeriod:
    trade_number: int
    opened_at: datetime
    closed_at: datetime | None
    duration_hours: float
    pl: float
    strategy: str


def calculate_margin_utilization(trades: Sequence[Trade]) -> list[MarginUtilizationPoint]:
    """Margin, account balance and size per trade; trades with none of them are skipped."""
    points = []
    for trade in trades:
        margin = finite_or(trade.margin_req, 0.0)
        funds = finite_or(trade.funds_at_close, 0.0)
        contracts = finite_or(trade.num_contracts, 0.0)
        if margin == 0 and funds == 0 and contracts == 0:
            continue
        points.append(MarginUtilizationPoint(trade.opened_at, margin, funds, contracts, trade.pl))
    return points


def calculate_exit_reason_breakdown(trades: Sequence[Trade]) -> list[ExitReasonSummary]:
    """Count and P&L per close reason, in first-seen order."""
    totals: dict[str, list[float]] = defaultdict(lambda: [0, 0.0])
    for trade in trades:
        if not is_finite(trade.pl):
            continue
        reason = (trade.reason_for_close or "").strip() or UNKNOWN_REASON
        totals[reason][0] += 1
        totals[reason][1] += trade.pl

    return [
        ExitReasonSummary(reason, int(count), total, total / count)
        for reason, (count, total) in totals.items()
    ]


def calculate_holding_periods(trades: Sequence[Trade]) -> list[HoldingPeriod]:
    """Hours from open to close; open positions report zero."""
    periods = []
    for number, trade in enumerate(trades, start=1):
        opened = as_utc_datetime(trade.date_opened, trade.time_opened)
        closed = as_utc_datetime(trade.date_closed, trade.time_closed) if trade.is_closed else None
        hours = (closed - opened).total_seconds() / 3600 if closed else 0.0
        periods.append(HoldingPeriod(number, opened, closed, hours, trade.pl, trade.strategy))
    return periods
