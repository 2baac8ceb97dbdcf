"""Summary portfolio statistics.

Ratios follow the usual daily-return conventions:

* Sharpe uses the sample standard deviation (ddof=1) of daily returns,
  a daily risk-free rate of ``risk_free_rate / 100 / 252`` and is
  annualized by sqrt(252).
* Sortino uses the population standard deviation (ddof=0) of the
  negative excess returns only.
* CAGR and Calmar are percentages; Calmar divides CAGR by the maximum
  drawdown percent.

Daily returns come from the ledger when it may be trusted, otherwise
from the trades grouped by open date, compounding from the initial
capital estimate.
"""

from __future__ import annotations

import math
from collections import defaultdict
from dataclasses import dataclass
from typing import Sequence

import numpy as np

from ..core.models import DailyLogEntry, Trade
from ..core.numeric import FALLBACK_INITIAL_CAPITAL, PROFIT_FACTOR_CAP, finite_or_none, is_finite
from .equity import initial_capital_from_daily_logs, initial_capital_from_trades
from .normalizer import sort_by_close, sort_by_open

_DAYS_PER_YEAR = 365.25
_MIN_DOWNSIDE = 1e-10


@dataclass(frozen=True)
class PortfolioStats:
    """Headline statistics for one snapshot.  Win rates are fractions (0-1)."""

    total_trades: int = 0
    total_pl: float = 0.0
    winning_trades: int = 0
    losing_trades: int = 0
    break_even_trades: int = 0
    win_rate: float = 0.0
    avg_win: float = 0.0
    avg_loss: float = 0.0
    max_win: float = 0.0
    max_loss: float = 0.0
    sharpe_ratio: float | None = None
    sortino_ratio: float | None = None
    calmar_ratio: float | None = None
    cagr: float | None = None
    kelly_percentage: float | None = None
    max_drawdown: float = 0.0  # Positive percent
    avg_daily_pl: float = 0.0
    total_commissions: float = 0.0
    net_pl: float = 0.0
    profit_factor: float = 0.0
    initial_capital: float = 0.0
    max_win_streak: int = 0
    max_loss_streak: int = 0
    current_streak: int = 0  # Positive for wins, negative for losses
    time_in_drawdown: float | None = None  # Percent of periods
    monthly_win_rate: float = 0.0
    weekly_win_rate: float = 0.0

    def summary(self) -> dict[str, str | int]:
        """Return summary dict for logging."""
        return {
            "trades": self.total_trades,
            "total_pl": f"{self.total_pl:.2f}",
            "win_rate": f"{self.win_rate:.1%}",
            "profit_factor": f"{self.profit_factor:.2f}",
            "max_dd": f"{self.max_drawdown:.2f}%",
            "sharpe": f"{self.sharpe_ratio:.2f}" if self.sharpe_ratio is not None else "n/a",
        }


# ---------------------------------------------------------------------- #
# Building blocks                                                          #
# ---------------------------------------------------------------------- #

def calculate_initial_capital(
    trades: Sequence[Trade],
    daily_logs: Sequence[DailyLogEntry] | None = None,
    fallback: float = FALLBACK_INITIAL_CAPITAL,
) -> float:
    """Capital before any P&L: ledger first, then the first trade, else *fallback*."""
    if not trades:
        return 0.0
    if daily_logs:
        from_logs = initial_capital_from_daily_logs(daily_logs)
        if from_logs is not None and from_logs > 0:
            return from_logs
    return initial_capital_from_trades(trades, fallback)


def _group_by_day(trades: Sequence[Trade]) -> list[float]:
    """Summed P&L per open date, in date order."""
    daily: dict = defaultdict(float)
    for trade in trades:
        daily[trade.date_opened] += trade.pl
    return [daily[day] for day in sorted(daily)]


def _compounded_returns(day_pl: Sequence[float], capital: float) -> list[float]:
    returns = []
    for pl in day_pl:
        if capital <= 0:
            break
        returns.append(pl / capital)
        capital += pl
    return returns


def _ledger_balance_returns(daily_logs: Sequence[DailyLogEntry]) -> list[float]:
    """Day-over-day balance change of consecutive ledger entries."""
    balances = [b for b in (e.equity_value() for e in sorted(daily_logs, key=lambda e: e.date)) if b is not None]
    if len(balances) < 2:
        return []
    eq = np.array(balances)
    prev = eq[:-1]
    mask = prev > 0
    return ((eq[1:][mask] - prev[mask]) / prev[mask]).tolist()


def _ledger_pl_returns(daily_logs: Sequence[DailyLogEntry]) -> list[float]:
    """``daily_pl`` over the balance the day started from."""
    returns = []
    for entry in daily_logs:
        balance = entry.equity_value()
        pl = finite_or_none(entry.daily_pl)
        if balance is None or pl is None:
            continue
        start = balance - pl
        returns.append(pl / start if start > 0 else 0.0)
    return returns


def _trade_equity_path(
    trades: Sequence[Trade],
    *,
    use_ledger_balances: bool,
    fallback_capital: float,
) -> tuple[float, np.ndarray] | None:
    """Starting capital and the account value after each closed trade."""
    closed = sort_by_close(t for t in trades if t.is_closed)
    if use_ledger_balances:
        closed = [t for t in closed if is_finite(t.funds_at_close)]
        if not closed:
            return None
        start = closed[0].funds_at_close - closed[0].pl
        return start, np.array([t.funds_at_close for t in closed])

    if not closed:
        return None
    start = initial_capital_from_trades(trades, fallback_capital)
    return start, start + np.cumsum([t.pl for t in closed])


def _drawdowns(start: float, values: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
    """Peak-relative drawdown percent (positive) and the running peak."""
    peaks = np.maximum.accumulate(np.concatenate(([start], values)))[1:]
    with np.errstate(divide="ignore", invalid="ignore"):
        dd = np.where(peaks > 0, (peaks - values) / peaks * 100.0, 0.0)
    return dd, peaks


def calculate_max_drawdown(
    trades: Sequence[Trade],
    daily_logs: Sequence[DailyLogEntry] | None = None,
    *,
    use_ledger_balances: bool = True,
    fallback_capital: float = FALLBACK_INITIAL_CAPITAL,
) -> float:
    """Deepest drawdown as a positive percentage."""
    if daily_logs:
        reported = [abs(v) for v in (finite_or_none(e.drawdown_pct) for e in daily_logs) if v is not None]
        if reported:
            return max(reported)
        balances = [b for b in (e.equity_value() for e in sorted(daily_logs, key=lambda e: e.date)) if b is not None]
        if balances:
            dd, _ = _drawdowns(balances[0], np.array(balances))
            return float(dd.max())
        return 0.0

    path = _trade_equity_path(trades, use_ledger_balances=use_ledger_balances, fallback_capital=fallback_capital)
    if path is None:
        return 0.0
    dd, _ = _drawdowns(*path)
    return float(max(dd.max(), 0.0))


def calculate_time_in_drawdown(
    trades: Sequence[Trade],
    daily_logs: Sequence[DailyLogEntry] | None = None,
    *,
    use_ledger_balances: bool = True,
    fallback_capital: float = FALLBACK_INITIAL_CAPITAL,
) -> float | None:
    """Percent of ledger days (or closed trades) spent below the peak."""
    if daily_logs:
        reported = [v for v in (finite_or_none(e.drawdown_pct) for e in daily_logs) if v is not None]
        if reported:
            return sum(1 for v in reported if v < 0) / len(reported) * 100.0

    path = _trade_equity_path(trades, use_ledger_balances=use_ledger_balances, fallback_capital=fallback_capital)
    if path is None:
        return None
    _, values = path
    _, peaks = _drawdowns(*path)
    return float(np.mean(values < peaks) * 100.0)


def calculate_streaks(trades: Sequence[Trade]) -> tuple[int, int, int]:
    """``(max_win_streak, max_loss_streak, current_streak)``.

    Break-even trades end both kinds of streak.
    """
    max_win = max_loss = wins = losses = 0
    for trade in sort_by_open(trades):
        if trade.pl > 0:
            wins, losses = wins + 1, 0
            max_win = max(max_win, wins)
        elif trade.pl < 0:
            wins, losses = 0, losses + 1
            max_loss = max(max_loss, losses)
        else:
            wins = losses = 0
    current = wins if wins else -losses
    return max_win, max_loss, current


def calculate_periodic_win_rates(trades: Sequence[Trade]) -> tuple[float, float]:
    """Share of calendar months and ISO weeks with positive summed P&L."""
    months: dict[tuple[int, int], float] = defaultdict(float)
    weeks: dict[tuple[int, int], float] = defaultdict(float)
    for trade in trades:
        day = trade.date_opened
        months[(day.year, day.month)] += trade.pl
        iso = day.isocalendar()
        weeks[(iso[0], iso[1])] += trade.pl

    def share(buckets: dict) -> float:
        return sum(1 for pl in buckets.values() if pl > 0) / len(buckets) if buckets else 0.0

    return share(months), share(weeks)


def calculate_cagr(trades: Sequence[Trade], initial_capital: float) -> float | None:
    if not trades:
        return None
    ordered = sort_by_open(trades)
    start = ordered[0].date_opened
    end = max(t.date_closed or t.date_opened for t in ordered)
    years = (end - start).days / _DAYS_PER_YEAR
    if years <= 0:
        return None

    final_value = initial_capital + sum(t.pl for t in trades)
    if initial_capital <= 0 or final_value <= 0:
        return None
    return ((final_value / initial_capital) ** (1 / years) - 1) * 100.0


def calculate_kelly_percentage(pl: np.ndarray) -> float | None:
    wins = pl[pl > 0]
    losses = pl[pl < 0]
    if len(wins) == 0 or len(losses) == 0:
        return None
    win_rate = len(wins) / len(pl)
    avg_loss = abs(float(np.mean(losses)))
    if avg_loss == 0:
        return None
    ratio = float(np.mean(wins)) / avg_loss
    return (win_rate * ratio - (1 - win_rate)) / ratio * 100.0


def _sharpe(returns: Sequence[float], daily_rf: float, periods: int) -> float | None:
    if len(returns) < 2:
        return None
    r = np.array(returns)
    std = float(np.std(r, ddof=1))
    if std == 0:
        return None
    return float((np.mean(r) - daily_rf) / std * math.sqrt(periods))


def _sortino(returns: Sequence[float], daily_rf: float, periods: int) -> float | None:
    if len(returns) < 2:
        return None
    excess = np.array(returns) - daily_rf
    downside = excess[excess < 0]
    if len(downside) == 0:
        return None
    deviation = float(np.std(downside))
    if deviation < _MIN_DOWNSIDE:
        return None
    return float(np.mean(excess) / deviation * math.sqrt(periods))


# ---------------------------------------------------------------------- #
# Entry point                                                              #
# ---------------------------------------------------------------------- #

def calculate_portfolio_stats(
    trades: Sequence[Trade],
    daily_logs: Sequence[DailyLogEntry] | None = None,
    *,
    use_ledger_balances: bool = True,
    risk_free_rate: float = 2.0,
    annualization_factor: int = 252,
    fallback_capital: float = FALLBACK_INITIAL_CAPITAL,
    profit_factor_cap: float = PROFIT_FACTOR_CAP,
) -> PortfolioStats:
    """Compute headline statistics over *trades*.

    Parameters
    ----------
    trades:
        Filtered trades.  Trades with a non-finite P&L are ignored.
    daily_logs:
        Whole-account ledger.  Ignored unless *use_ledger_balances*.
    use_ledger_balances:
        False when the trades are a strategy subset or one-lot scaled;
        drawdown then follows cumulative P&L instead of account balances.
    risk_free_rate:
        Annual rate in percent.
    """
    valid = sort_by_open(t for t in trades if is_finite(t.pl))
    if not valid:
        return PortfolioStats()

    logs = list(daily_logs) if use_ledger_balances and daily_logs else None

    pl = np.array([t.pl for t in valid])
    wins = pl[pl > 0]
    losses = pl[pl < 0]

    total_pl = float(np.sum(pl))
    total_commissions = sum(t.total_commissions for t in valid)
    gross_profit = float(np.sum(wins)) if len(wins) else 0.0
    gross_loss = abs(float(np.sum(losses))) if len(losses) else 0.0
    if gross_loss > 0:
        profit_factor = gross_profit / gross_loss
    else:
        profit_factor = profit_factor_cap if gross_profit > 0 else 0.0

    initial_capital = calculate_initial_capital(valid, logs, fallback_capital)
    trade_capital = initial_capital_from_trades(valid, fallback_capital)

    daily_rf = risk_free_rate / 100 / annualization_factor
    day_pl = _group_by_day(valid)
    if logs and len(logs) > 1:
        sharpe_returns = _ledger_balance_returns(logs)
    else:
        sharpe_returns = _compounded_returns(day_pl, trade_capital)
    sortino_returns = _ledger_pl_returns(logs) if logs else _compounded_returns(day_pl, trade_capital)

    if logs:
        ledger_pl = [v for v in (finite_or_none(e.daily_pl) for e in logs) if v is not None]
        avg_daily_pl = float(np.mean(ledger_pl)) if ledger_pl else 0.0
    else:
        avg_daily_pl = float(np.mean(day_pl))

    drawdown_args = {"use_ledger_balances": use_ledger_balances, "fallback_capital": fallback_capital}
    max_drawdown = calculate_max_drawdown(valid, logs, **drawdown_args)
    cagr = calculate_cagr(valid, trade_capital)
    max_win_streak, max_loss_streak, current_streak = calculate_streaks(valid)
    monthly_win_rate, weekly_win_rate = calculate_periodic_win_rates(valid)

    return PortfolioStats(
        total_trades=len(valid),
        total_pl=total_pl,
        winning_trades=len(wins),
        losing_trades=len(losses),
        break_even_trades=int(np.sum(pl == 0)),
        win_rate=len(wins) / len(valid),
        avg_win=float(np.mean(wins)) if len(wins) else 0.0,
        avg_loss=float(np.mean(losses)) if len(losses) else 0.0,
        max_win=float(np.max(wins)) if len(wins) else 0.0,
        max_loss=float(np.min(losses)) if len(losses) else 0.0,
        sharpe_ratio=_sharpe(sharpe_returns, daily_rf, annualization_factor),
        sortino_ratio=_sortino(sortino_returns, daily_rf, annualization_factor) if len(valid) > 1 else None,
        calmar_ratio=cagr / max_drawdown if cagr and max_drawdown else None,
        cagr=cagr,
        kelly_percentage=calculate_kelly_percentage(pl),
        max_drawdown=max_drawdown,
        avg_daily_pl=avg_daily_pl,
        total_commissions=total_commissions,
        net_pl=total_pl - total_commissions,
        profit_factor=profit_factor,
        initial_capital=initial_capital,
        max_win_streak=max_win_streak,
        max_loss_streak=max_loss_streak,
        current_streak=current_streak,
        time_in_drawdown=calculate_time_in_drawdown(valid, logs, **drawdown_args),
        monthly_win_rate=monthly_win_rate,
        weekly_win_rate=weekly_win_rate,
    )
