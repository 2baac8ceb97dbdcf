"""Maximum favourable / adverse excursion (MFE / MAE) analysis.

Each trade with recorded intra-trade excursions is expressed as a
percentage of a denominator (premium, then margin, then MFE itself),
and separately against every available *normalization basis* so the
statistics can be compared like for like.

All three stages are coroutines that checkpoint inside their loops and
share the snapshot's cancellation token.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Sequence

from ..core.cancellation import CancelToken, checkpoint
from ..core.models import Trade, frozen_mapping
from ..core.numeric import finite_or_none, is_finite, mean_or_zero, median
from .efficiency import total_max_loss, total_max_profit, total_premium

logger = logging.getLogger(__name__)

NORMALIZATION_BASES = ("premium", "margin")

_STEP = "Calculating MFE/MAE analysis"
_DISTRIBUTION_STEP = "Finalizing (distributions)"


@dataclass(frozen=True)
class NormalizedExcursion:
    denominator: float
    mfe_percent: float
    mae_percent: float
    pl_percent: float


@dataclass(frozen=True)
class ExcursionPoint:
    trade_number: int
    date: datetime
    strategy: str
    mfe: float  # Whole-position dollars, 0 when unknown
    mae: float
    pl: float
    is_winner: bool
    basis: str  # "premium" | "margin" | "maxProfit" | "unknown"
    denominator: float | None = None
    mfe_percent: float | None = None
    mae_percent: float | None = None
    pl_percent: float | None = None
    profit_capture_percent: float | None = None  # pl / mfe
    excursion_ratio: float | None = None  # mfe / mae
    margin_req: float | None = None
    premium: float | None = None
    normalized_by: Mapping[str, NormalizedExcursion] = field(default_factory=frozen_mapping)
    num_contracts: float | None = None
    opening_vix: float | None = None
    closing_vix: float | None = None
    short_long_ratio_change: float | None = None
    short_long_ratio_change_pct: float | None = None


@dataclass(frozen=True)
class ExcursionStats:
    avg_mfe_percent: float
    avg_mae_percent: float
    avg_profit_capture_percent: float
    avg_excursion_ratio: float
    winner_avg_profit_capture: float
    loser_avg_profit_capture: float
    median_mfe_percent: float
    median_mae_percent: float
    total_trades: int
    trades_with_mfe: int
    trades_with_mae: int


@dataclass(frozen=True)
class ExcursionBucket:
    bucket: str
    mfe_count: int
    mae_count: int
    range: tuple[float, float]


# ---------------------------------------------------------------------- #
# Per-trade metrics                                                        #
# ---------------------------------------------------------------------- #

def _short_long_change(trade: Trade) -> tuple[float | None, float | None]:
    opening = finite_or_none(trade.opening_short_long_ratio)
    closing = finite_or_none(trade.closing_short_long_ratio)
    if not opening or closing is None:
        return None, None
    return closing / opening, (closing - opening) / opening * 100.0


def trade_excursion_metrics(trade: Trade, trade_number: int) -> ExcursionPoint | None:
    """Excursion metrics for one trade, or ``None`` without MFE/MAE data."""
    mfe = total_max_profit(trade)
    mae = total_max_loss(trade)
    if mfe is None and mae is None:
        return None
    if not is_finite(trade.pl):
        logger.debug("Skipping trade %d with non-finite P&L", trade_number)
        return None

    premium = total_premium(trade)
    margin = abs(trade.margin_req) if is_finite(trade.margin_req) and trade.margin_req != 0 else None

    denominators = {"premium": premium, "margin": margin}
    if premium:
        basis, denominator = "premium", premium
    elif margin:
        basis, denominator = "margin", margin
    elif mfe:
        basis, denominator = "maxProfit", mfe
    else:
        basis, denominator = "unknown", None

    normalized_by = {
        name: NormalizedExcursion(
            denominator=denom,
            mfe_percent=(mfe or 0.0) / denom * 100.0,
            mae_percent=(mae or 0.0) / denom * 100.0,
            pl_percent=trade.pl / denom * 100.0,
        )
        for name in NORMALIZATION_BASES
        if (denom := denominators[name])
    }

    ratio_change, ratio_change_pct = _short_long_change(trade)

    mfe_percent = mae_percent = pl_percent = None
    if denominator:
        mfe_percent = mfe / denominator * 100.0 if mfe else None
        mae_percent = mae / denominator * 100.0 if mae else None
        pl_percent = trade.pl / denominator * 100.0

    return ExcursionPoint(
        trade_number=trade_number,
        date=trade.opened_at,
        strategy=trade.strategy,
        mfe=mfe or 0.0,
        mae=mae or 0.0,
        pl=trade.pl,
        is_winner=trade.pl > 0,
        basis=basis,
        denominator=denominator,
        mfe_percent=mfe_percent,
        mae_percent=mae_percent,
        pl_percent=pl_percent,
        profit_capture_percent=trade.pl / mfe * 100.0 if mfe else None,
        excursion_ratio=mfe / mae if mfe and mae else None,
        margin_req=finite_or_none(trade.margin_req),
        premium=premium,
        normalized_by=frozen_mapping(normalized_by),
        num_contracts=finite_or_none(trade.num_contracts),
        opening_vix=finite_or_none(trade.opening_vix),
        closing_vix=finite_or_none(trade.closing_vix),
        short_long_ratio_change=ratio_change,
        short_long_ratio_change_pct=ratio_change_pct,
    )


async def calculate_mfe_mae_data(
    trades: Sequence[Trade],
    *,
    token: CancelToken | None = None,
    yield_every: int = 100,
) -> list[ExcursionPoint]:
    points: list[ExcursionPoint] = []
    for i, trade in enumerate(trades):
        point = trade_excursion_metrics(trade, i + 1)
        if point is not None:
            points.append(point)
        if i and i % yield_every == 0:
            await checkpoint(token, _STEP)
    return points


# ---------------------------------------------------------------------- #
# Statistics                                                               #
# ---------------------------------------------------------------------- #

@dataclass
class _BasisAggregate:
    mfe_percents: list[float] = field(default_factory=list)
    mae_percents: list[float] = field(default_factory=list)
    trades_with_mfe: int = 0
    trades_with_mae: int = 0


async def calculate_mfe_mae_stats(
    points: Sequence[ExcursionPoint],
    *,
    token: CancelToken | None = None,
    yield_every: int = 200,
) -> dict[str, ExcursionStats]:
    """Aggregate statistics per normalization basis.

    Profit capture and excursion ratio do not depend on the basis and
    are shared by every entry.  Bases no trade could use are omitted.
    """
    if not points:
        return {}

    await checkpoint(token, _STEP)

    aggregates = {name: _BasisAggregate() for name in NORMALIZATION_BASES}
    captures: list[float] = []
    winner_captures: list[float] = []
    loser_captures: list[float] = []
    ratios: list[float] = []

    for i, point in enumerate(points):
        if point.profit_capture_percent is not None:
            captures.append(point.profit_capture_percent)
            (winner_captures if point.is_winner else loser_captures).append(point.profit_capture_percent)
        if point.excursion_ratio is not None:
            ratios.append(point.excursion_ratio)

        for name, metrics in point.normalized_by.items():
            agg = aggregates[name]
            agg.mfe_percents.append(metrics.mfe_percent)
            agg.mae_percents.append(metrics.mae_percent)
            if point.mfe > 0:
                agg.trades_with_mfe += 1
            if point.mae > 0:
                agg.trades_with_mae += 1

        if i and i % yield_every == 0:
            await checkpoint(token, _STEP)

    await checkpoint(token, _STEP)

    results: dict[str, ExcursionStats] = {}
    for name, agg in aggregates.items():
        if not agg.mfe_percents:
            continue
        results[name] = ExcursionStats(
            avg_mfe_percent=mean_or_zero(agg.mfe_percents),
            avg_mae_percent=mean_or_zero(agg.mae_percents),
            avg_profit_capture_percent=mean_or_zero(captures),
            avg_excursion_ratio=mean_or_zero(ratios),
            winner_avg_profit_capture=mean_or_zero(winner_captures),
            loser_avg_profit_capture=mean_or_zero(loser_captures),
            median_mfe_percent=median(agg.mfe_percents),
            median_mae_percent=median(agg.mae_percents),
            total_trades=len(agg.mfe_percents),
            trades_with_mfe=agg.trades_with_mfe,
            trades_with_mae=agg.trades_with_mae,
        )
        await checkpoint(token, _STEP)
    return results


# ---------------------------------------------------------------------- #
# Distribution                                                             #
# ---------------------------------------------------------------------- #

async def create_excursion_distribution(
    points: Sequence[ExcursionPoint],
    *,
    bucket_size: float = 10.0,
    max_buckets: int = 500,
    token: CancelToken | None = None,
    yield_every: int = 500,
) -> list[ExcursionBucket]:
    """Histogram of MFE% and MAE% in ``bucket_size``-point buckets.

    When the largest value would need more than *max_buckets* buckets the
    bucket width is stretched to ``max_value / max_buckets``.  Values on
    the upper edge land in the last bucket.
    """
    if not points:
        return []

    await checkpoint(token, _DISTRIBUTION_STEP)

    mfe_values = [p.mfe_percent for p in points if p.mfe_percent is not None]
    mae_values = [p.mae_percent for p in points if p.mae_percent is not None]
    max_value = max(mfe_values + mae_values, default=0.0)
    if max_value <= 0:
        return []

    width = bucket_size
    count = max(1, math.ceil(max_value / width))
    if count > max_buckets:
        width = max_value / max_buckets
        count = max_buckets

    await checkpoint(token, _DISTRIBUTION_STEP)

    def index_of(value: float) -> int:
        return min(count - 1, max(0, math.floor(value / width)))

    mfe_counts = [0] * count
    mae_counts = [0] * count
    processed = 0
    for values, counts in ((mfe_values, mfe_counts), (mae_values, mae_counts)):
        for value in values:
            counts[index_of(value)] += 1
            processed += 1
            if processed % yield_every == 0:
                await checkpoint(token, _DISTRIBUTION_STEP)

    await checkpoint(token, _DISTRIBUTION_STEP)

    return [
        ExcursionBucket(
            bucket=f"{i * width:.2f}-{(i + 1) * width:.2f}%",
            mfe_count=mfe_counts[i],
            mae_count=mae_counts[i],
            range=(i * width, (i + 1) * width),
        )
        for i in range(count)
    ]
