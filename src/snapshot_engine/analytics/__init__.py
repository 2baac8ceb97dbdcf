"""Snapshot analytics: the calculators behind every chart view.

Key components
--------------
**Inputs**

normalize_records          Validate, one-lot scale, filter and sort records

**Series**

build_equity_and_drawdown  Ledger- or trade-sourced equity curve + drawdown
calculate_rolling_metrics  Trailing-window win rate, volatility, profit factor
calculate_monthly_returns_percent  Compounding monthly percentage grid

**Distributions & summaries**

calculate_streak_distributions  Win/loss run-length distributions
calculate_mfe_mae_data          Per-trade excursion metrics
summarize_vix_regimes           Per-VIX-band ROM and win rate
calculate_portfolio_stats       Headline statistics (Sharpe, CAGR, drawdown...)
"""

from .calendar import (
    calculate_daily_pl,
    calculate_day_of_week,
    calculate_monthly_returns,
    calculate_monthly_returns_percent,
    calculate_return_distribution,
    calculate_rom_timeline,
    calculate_trade_sequence,
    calculate_weekly_pl,
)
from .efficiency import calculate_premium_efficiency, premium_efficiency_percent
from .equity import EquityCurve, build_equity_and_drawdown
from .excursion import (
    calculate_mfe_mae_data,
    calculate_mfe_mae_stats,
    create_excursion_distribution,
)
from .normalizer import NormalizedRecords, normalize_records
from .portfolio_stats import PortfolioStats, calculate_portfolio_stats
from .regimes import calculate_volatility_regimes, summarize_vix_regimes
from .rolling import calculate_rolling_metrics
from .streaks import StreakDistribution, calculate_streak_distributions
from .trade_views import (
    calculate_exit_reason_breakdown,
    calculate_holding_periods,
    calculate_margin_utilization,
)

__all__ = [
    "calculate_daily_pl",
    "calculate_day_of_week",
    "calculate_monthly_returns",
    "calculate_monthly_returns_percent",
    "calculate_return_distribution",
    "calculate_rom_timeline",
    "calculate_trade_sequence",
    "calculate_weekly_pl",
    "calculate_premium_efficiency",
    "premium_efficiency_percent",
    "EquityCurve",
    "build_equity_and_drawdown",
    "calculate_mfe_mae_data",
    "calculate_mfe_mae_stats",
    "create_excursion_distribution",
    "NormalizedRecords",
    "normalize_records",
    "PortfolioStats",
    "calculate_portfolio_stats",
    "calculate_volatility_regimes",
    "summarize_vix_regimes",
    "calculate_rolling_metrics",
    "StreakDistribution",
    "calculate_streak_distributions",
    "calculate_exit_reason_breakdown",
    "calculate_holding_periods",
    "calculate_margin_utilization",
]
