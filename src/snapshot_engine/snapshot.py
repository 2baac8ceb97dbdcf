"""Snapshot orchestrator.

Sequences the calculators into one cooperative, cancellable pipeline:

    normalize -> portfolio stats -> equity/drawdown -> calendar -> streaks
    -> rolling metrics -> regimes -> trade views -> MFE/MAE -> Snapshot

Every stage boundary is a checkpoint: the cancellation token is polled
and control is handed back to the event loop.  Progress events are
purely observational.

Usage::

    token = CancelToken()
    snapshot = await build_snapshot(
        trades, daily_logs,
        filters=SnapshotFilters(strategies=("Iron Condor",)),
        on_progress=lambda p: print(p.step, p.percent),
        cancel_token=token,
    )
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from .analytics.calendar import (
    DayOfWeekStats,
    RomPoint,
    TradeSequencePoint,
    calculate_daily_pl,
    calculate_day_of_week,
    calculate_monthly_returns,
    calculate_monthly_returns_percent,
    calculate_return_distribution,
    calculate_rom_timeline,
    calculate_trade_sequence,
    calculate_weekly_pl,
)
from .analytics.efficiency import PremiumEfficiencyPoint, calculate_premium_efficiency
from .analytics.equity import DrawdownPoint, EquityPoint, build_equity_and_drawdown
from .analytics.excursion import (
    ExcursionBucket,
    ExcursionPoint,
    ExcursionStats,
    calculate_mfe_mae_data,
    calculate_mfe_mae_stats,
    create_excursion_distribution,
)
from .analytics.normalizer import normalize_records, sort_by_open
from .analytics.portfolio_stats import PortfolioStats, calculate_portfolio_stats
from .analytics.regimes import (
    VixRegimeSummary,
    VolatilityRegimePoint,
    calculate_volatility_regimes,
    summarize_vix_regimes,
)
from .analytics.rolling import RollingPoint, calculate_rolling_metrics
from .analytics.streaks import StreakDistribution, calculate_streak_distributions
from .analytics.trade_views import (
    ExitReasonSummary,
    HoldingPeriod,
    MarginUtilizationPoint,
    calculate_exit_reason_breakdown,
    calculate_holding_periods,
    calculate_margin_utilization,
)
from .core.cancellation import CancelToken, check_cancelled, yield_to_host
from .core.config import SnapshotSettings
from .core.errors import SnapshotCancelled
from .core.models import DailyLogEntry, SnapshotFilters, SnapshotProgress, Trade, frozen_mapping
from .observability.logger import get_logger, new_run_id

logger = get_logger(__name__)

ProgressCallback = Callable[[SnapshotProgress], None]


# ---------------------------------------------------------------------------
# Output
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ChartData:
    """Every derived series behind the dashboard charts."""

    equity_curve: tuple[EquityPoint, ...] = ()
    drawdown_data: tuple[DrawdownPoint, ...] = ()
    equity_source: str = "trades"  # "daily_log" | "trades"
    day_of_week_data: tuple[DayOfWeekStats, ...] = ()
    return_distribution: tuple[float, ...] = ()
    streak_data: StreakDistribution = field(default_factory=StreakDistribution)
    monthly_returns: Mapping[int, Mapping[int, float]] = field(default_factory=frozen_mapping)
    monthly_returns_percent: Mapping[int, Mapping[int, float]] = field(default_factory=frozen_mapping)
    daily_pl: Mapping[str, float] = field(default_factory=frozen_mapping)
    weekly_pl: Mapping[str, float] = field(default_factory=frozen_mapping)
    trade_sequence: tuple[TradeSequencePoint, ...] = ()
    rom_timeline: tuple[RomPoint, ...] = ()
    rolling_metrics: tuple[RollingPoint, ...] = ()
    volatility_regimes: tuple[VolatilityRegimePoint, ...] = ()
    vix_regime_summary: VixRegimeSummary | None = None
    premium_efficiency: tuple[PremiumEfficiencyPoint, ...] = ()
    margin_utilization: tuple[MarginUtilizationPoint, ...] = ()
    exit_reason_breakdown: tuple[ExitReasonSummary, ...] = ()
    holding_periods: tuple[HoldingPeriod, ...] = ()
    mfe_mae_data: tuple[ExcursionPoint, ...] = ()
    mfe_mae_stats: Mapping[str, ExcursionStats] = field(default_factory=frozen_mapping)
    mfe_mae_distribution: tuple[ExcursionBucket, ...] = ()


@dataclass(frozen=True)
class Snapshot:
    """Immutable result of one :func:`build_snapshot` run."""

    filtered_trades: tuple[Trade, ...]
    filtered_daily_logs: tuple[DailyLogEntry, ...]
    portfolio_stats: PortfolioStats
    chart_data: ChartData
    use_ledger_balances: bool = True
    run_id: str = ""
    created_at: datetime | None = None


# ---------------------------------------------------------------------------
# Progress / checkpoints
# ---------------------------------------------------------------------------

class _Stages:
    """Checkpoint bookkeeping for one run: token, progress and stage timing."""

    def __init__(self, token: CancelToken | None, on_progress: ProgressCallback | None) -> None:
        self.token = token
        self.on_progress = on_progress
        self._step = ""
        self._started = time.perf_counter()

    async def enter(self, step: str, percent: int) -> None:
        """Poll, announce *step*, then yield."""
        check_cancelled(self.token, step)
        self._finish_step()
        self._step = step
        if self.on_progress is not None:
            self.on_progress(SnapshotProgress(step=step, percent=percent))
        await yield_to_host()

    async def checkpoint(self) -> None:
        check_cancelled(self.token, self._step)
        await yield_to_host()
        check_cancelled(self.token, self._step)

    def _finish_step(self) -> None:
        now = time.perf_counter()
        if self._step:
            logger.debug("snapshot_stage_done", step=self._step, elapsed_ms=round((now - self._started) * 1000, 2))
        self._started = now


# ---------------------------------------------------------------------------
# Chart-data sub-pipeline
# ---------------------------------------------------------------------------

async def process_chart_data(
    trades: Sequence[Trade],
    daily_logs: Sequence[DailyLogEntry] | None = None,
    *,
    use_ledger_balances: bool = True,
    on_progress: ProgressCallback | None = None,
    cancel_token: CancelToken | None = None,
    settings: SnapshotSettings | None = None,
) -> ChartData:
    """Compute every chart series from already-normalized records."""
    return await _process_chart_data(
        sort_by_open(trades),
        daily_logs,
        use_ledger_balances=use_ledger_balances,
        stages=_Stages(cancel_token, on_progress),
        settings=settings or SnapshotSettings(),
    )


async def _process_chart_data(
    trades: list[Trade],
    daily_logs: Sequence[DailyLogEntry] | None,
    *,
    use_ledger_balances: bool,
    stages: _Stages,
    settings: SnapshotSettings,
) -> ChartData:
    engine = settings.engine
    token = stages.token
    ledger = daily_logs if use_ledger_balances else None

    await stages.enter("Building equity curve", 25)
    curve = await build_equity_and_drawdown(
        trades,
        ledger,
        use_ledger_balances=use_ledger_balances,
        fallback_capital=engine.fallback_initial_capital,
        token=token,
        yield_every=engine.yield_every,
    )
    await stages.checkpoint()

    await stages.enter("Calculating day of week stats", 30)
    day_of_week = calculate_day_of_week(trades)
    await stages.checkpoint()

    return_distribution = calculate_return_distribution(trades)
    streaks = calculate_streak_distributions(trades)
    await stages.checkpoint()

    await stages.enter("Computing monthly returns", 40)
    monthly_returns = calculate_monthly_returns(trades)
    await stages.checkpoint()

    monthly_percent = await calculate_monthly_returns_percent(
        trades,
        ledger,
        fallback_capital=engine.fallback_initial_capital,
        token=token,
        yield_every=engine.yield_every,
    )
    daily_pl = calculate_daily_pl(trades)
    weekly_pl = calculate_weekly_pl(trades)
    trade_sequence = calculate_trade_sequence(trades)
    await stages.checkpoint()

    await stages.enter("Calculating rolling metrics", 50)
    rom_timeline = calculate_rom_timeline(trades)
    rolling = await calculate_rolling_metrics(
        trades,
        window=engine.rolling_window,
        profit_factor_cap=engine.profit_factor_cap,
        token=token,
        yield_every=engine.yield_every,
    )
    await stages.checkpoint()

    await stages.enter("Analyzing volatility regimes", 70)
    regimes = calculate_volatility_regimes(trades)
    regime_summary = summarize_vix_regimes(regimes)
    await stages.checkpoint()

    premium_efficiency = calculate_premium_efficiency(trades)
    await stages.checkpoint()

    await stages.enter("Computing margin utilization", 80)
    margin_utilization = calculate_margin_utilization(trades)
    await stages.checkpoint()

    exit_reasons = calculate_exit_reason_breakdown(trades)
    await stages.checkpoint()

    holding_periods = calculate_holding_periods(trades)
    await stages.checkpoint()

    await stages.enter("Calculating MFE/MAE analysis", 90)
    mfe_mae_data = await calculate_mfe_mae_data(trades, token=token, yield_every=engine.yield_every)
    await stages.checkpoint()
    mfe_mae_stats = await calculate_mfe_mae_stats(mfe_mae_data, token=token)
    await stages.checkpoint()

    await stages.enter("Finalizing (distributions)", 95)
    distribution = await create_excursion_distribution(
        mfe_mae_data,
        bucket_size=engine.excursion_bucket_size,
        max_buckets=engine.max_excursion_buckets,
        token=token,
    )
    await stages.checkpoint()

    await stages.enter("Finalizing (packaging)", 98)
    return ChartData(
        equity_curve=curve.equity_curve,
        drawdown_data=curve.drawdown_data,
        equity_source=curve.source,
        day_of_week_data=tuple(day_of_week),
        return_distribution=tuple(return_distribution),
        streak_data=streaks,
        monthly_returns=frozen_mapping(monthly_returns),
        monthly_returns_percent=frozen_mapping(monthly_percent),
        daily_pl=frozen_mapping(daily_pl),
        weekly_pl=frozen_mapping(weekly_pl),
        trade_sequence=tuple(trade_sequence),
        rom_timeline=tuple(rom_timeline),
        rolling_metrics=tuple(rolling),
        volatility_regimes=tuple(regimes),
        vix_regime_summary=regime_summary,
        premium_efficiency=tuple(premium_efficiency),
        margin_utilization=tuple(margin_utilization),
        exit_reason_breakdown=tuple(exit_reasons),
        holding_periods=tuple(holding_periods),
        mfe_mae_data=tuple(mfe_mae_data),
        mfe_mae_stats=frozen_mapping(mfe_mae_stats),
        mfe_mae_distribution=tuple(distribution),
    )


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

async def build_snapshot(
    trades: Iterable[Trade | Mapping[str, Any]],
    daily_logs: Iterable[DailyLogEntry | Mapping[str, Any]] | None = None,
    filters: SnapshotFilters | None = None,
    risk_free_rate: float | None = None,
    normalize_to_one_lot: bool | None = None,
    on_progress: ProgressCallback | None = None,
    cancel_token: CancelToken | None = None,
    settings: SnapshotSettings | None = None,
) -> Snapshot:
    """Build a complete performance snapshot.

    Parameters
    ----------
    trades:
        Trade models or raw mappings (camelCase or snake_case keys), in
        any order.
    daily_logs:
        Optional whole-account ledger.
    filters:
        Date range and strategy restrictions, applied once up front.
    risk_free_rate:
        Annual percent; defaults to ``settings.risk_free_rate`` (2.0).
    normalize_to_one_lot:
        Scale every trade to one contract; defaults to the setting.
    on_progress:
        Called with :class:`SnapshotProgress` at each named checkpoint.
    cancel_token:
        Polled at every checkpoint.

    Raises
    ------
    SnapshotCancelled
        The token was cancelled; no partial result is produced.
    InvalidRecordError
        A raw record could not be validated.
    """
    settings = settings or SnapshotSettings()
    if risk_free_rate is None:
        risk_free_rate = settings.risk_free_rate
    if normalize_to_one_lot is None:
        normalize_to_one_lot = settings.normalize_to_one_lot

    run_id = new_run_id()
    stages = _Stages(cancel_token, on_progress)

    try:
        await stages.enter("Filtering trades", 5)
        records = normalize_records(
            trades, daily_logs, filters, normalize_to_one_lot=normalize_to_one_lot
        )
        await stages.checkpoint()

        use_ledger = records.use_ledger_balances
        logger.info(
            "snapshot_filtered",
            trades=len(records.trades),
            daily_logs=len(records.daily_logs or ()),
            strategy_filter=records.strategy_filter_active,
            date_filter=records.date_filter_active,
            one_lot=records.normalized_to_one_lot,
            use_ledger_balances=use_ledger,
        )

        await stages.enter("Calculating portfolio stats", 10)
        stats = calculate_portfolio_stats(
            records.trades,
            records.daily_logs,
            use_ledger_balances=use_ledger,
            risk_free_rate=risk_free_rate,
            annualization_factor=settings.engine.annualization_factor,
            fallback_capital=settings.engine.fallback_initial_capital,
            profit_factor_cap=settings.engine.profit_factor_cap,
        )
        await stages.checkpoint()

        chart_data = await _process_chart_data(
            list(records.trades),
            records.daily_logs,
            use_ledger_balances=use_ledger,
            stages=stages,
            settings=settings,
        )

        await stages.enter("Complete", 100)
    except SnapshotCancelled as exc:
        logger.info("snapshot_cancelled", step=exc.step)
        raise

    logger.info("snapshot_complete", **stats.summary())
    return Snapshot(
        filtered_trades=records.trades,
        filtered_daily_logs=records.daily_logs or (),
        portfolio_stats=stats,
        chart_data=chart_data,
        use_ledger_balances=use_ledger,
        run_id=run_id,
        created_at=datetime.now().astimezone(),
    )


def build_snapshot_sync(*args: Any, **kwargs: Any) -> Snapshot:
    """Run :func:`build_snapshot` on a fresh event loop."""
    return asyncio.run(build_snapshot(*args, **kwargs))
