"""Fixed-window trailing performance metrics.

For every trade index ``i >= window - 1`` computes, over the trailing
``window`` trades: win rate, mean P&L, volatility (population std),
profit factor and a Sharpe-like ratio (mean / volatility).

Win/loss counts and gross profit/loss slide in O(1) per step and are
re-seeded from the window every ``window`` steps.  Mean and volatility
come from one pass over the window; that pass is the dominant
cost and matches :func:`window_metrics` exactly.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime
from typing import Sequence

from ..core.cancellation import CancelToken, checkpoint
from ..core.models import Trade
from ..core.numeric import PROFIT_FACTOR_CAP, is_finite

DEFAULT_WINDOW = 30


@dataclass(frozen=True)
class RollingPoint:
    date: datetime
    win_rate: float  # 0-1
    mean_pl: float
    volatility: float
    profit_factor: float
    sharpe_ratio: float


def _profit_factor(gross_profit: float, gross_loss: float, cap: float) -> float:
    if gross_loss > 0:
        return gross_profit / gross_loss
    return cap if gross_profit > 0 else 0.0


def window_metrics(
    pnl: Sequence[float],
    *,
    profit_factor_cap: float = PROFIT_FACTOR_CAP,
) -> tuple[float, float, float, float, float]:
    """Brute-force metrics for one window.

    Returns ``(win_rate, mean_pl, volatility, profit_factor, sharpe_ratio)``.
    """
    n = len(pnl)
    if n == 0:
        return 0.0, 0.0, 0.0, 0.0, 0.0
    wins = sum(1 for x in pnl if x > 0)
    mean_pl = sum(pnl) / n
    volatility = math.sqrt(sum((x - mean_pl) ** 2 for x in pnl) / n)
    gross_profit = sum(x for x in pnl if x > 0)
    gross_loss = sum(-x for x in pnl if x < 0)
    sharpe = mean_pl / volatility if volatility > 0 else 0.0
    return (
        wins / n,
        mean_pl,
        volatility,
        _profit_factor(gross_profit, gross_loss, profit_factor_cap),
        sharpe,
    )


async def calculate_rolling_metrics(
    trades: Sequence[Trade],
    *,
    window: int = DEFAULT_WINDOW,
    profit_factor_cap: float = PROFIT_FACTOR_CAP,
    token: CancelToken | None = None,
    yield_every: int = 100,
) -> list[RollingPoint]:
    """Sliding-window metrics in the given trade order.

    Trades with a non-finite P&L are skipped.  Fewer than *window*
    usable trades yields an empty list.
    """
    usable = [t for t in trades if is_finite(t.pl)]
    if len(usable) < window:
        return []

    pnl = [float(t.pl) for t in usable]

    window_wins = 0
    window_losses = 0
    gross_profit = 0.0
    gross_loss = 0.0

    def admit(x: float, sign: int) -> None:
        nonlocal window_wins, window_losses, gross_profit, gross_loss
        if x > 0:
            window_wins += sign
            gross_profit += sign * x
        elif x < 0:
            window_losses += sign
            gross_loss += sign * -x

    def reseed(start: int) -> None:
        nonlocal window_wins, window_losses, gross_profit, gross_loss
        window_wins = window_losses = 0
        gross_profit = gross_loss = 0.0
        for x in pnl[start:start + window]:
            admit(x, +1)

    reseed(0)

    points: list[RollingPoint] = []
    for i in range(window - 1, len(pnl)):
        if i % yield_every == 0:
            await checkpoint(token, "Calculating rolling metrics")

        start = i - window + 1
        if start and start % window == 0:
            reseed(start)

        values = pnl[start:i + 1]
        mean_pl = sum(values) / window
        volatility = math.sqrt(sum((x - mean_pl) ** 2 for x in values) / window)

        # Counts guard the sums against float residue after removals.
        profit = gross_profit if window_wins else 0.0
        loss = gross_loss if window_losses else 0.0

        points.append(RollingPoint(
            date=usable[i].opened_at,
            win_rate=window_wins / window,
            mean_pl=mean_pl,
            volatility=volatility,
            profit_factor=_profit_factor(profit, loss, profit_factor_cap),
            sharpe_ratio=mean_pl / volatility if volatility > 0 else 0.0,
        ))

        if i + 1 < len(pnl):
            admit(pnl[start], -1)
            admit(pnl[i + 1], +1)

    return points
