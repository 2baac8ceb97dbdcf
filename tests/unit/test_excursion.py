"""Tests for premium efficiency and MFE/MAE excursion analysis."""

from datetime import datetime, timezone

import pytest

from snapshot_engine.analytics.efficiency import (
    calculate_premium_efficiency,
    premium_efficiency_percent,
    total_max_loss,
    total_max_profit,
    total_premium,
)
from snapshot_engine.analytics.excursion import (
    ExcursionPoint,
    calculate_mfe_mae_data,
    calculate_mfe_mae_stats,
    create_excursion_distribution,
    trade_excursion_metrics,
)
from snapshot_engine.core.cancellation import CancelToken
from snapshot_engine.core.errors import SnapshotCancelled

from tests.factories import make_trade


def _point(mfe_percent, mae_percent=None):
    return ExcursionPoint(
        trade_number=1,
        date=datetime(2024, 1, 1, tzinfo=timezone.utc),
        strategy="Iron Condor",
        mfe=0.0,
        mae=0.0,
        pl=0.0,
        is_winner=False,
        basis="premium",
        mfe_percent=mfe_percent,
        mae_percent=mae_percent,
    )


class TestPositionTotals:
    def test_premium_in_cents(self):
        trade = make_trade(-500.0, premium=250.0, premium_precision="cents", contracts=10, margin=10_000.0)
        assert total_premium(trade) == pytest.approx(2_500.0)

    def test_per_share_premium_gets_option_multiplier(self):
        trade = make_trade(250.0, premium=2.5, premium_precision="dollars", contracts=10, margin=10_000.0)
        assert total_premium(trade) == pytest.approx(2_500.0)

    def test_position_sized_premium_is_left_alone(self):
        trade = make_trade(250.0, premium=800.0, contracts=10, margin=10_000.0)
        assert total_premium(trade) == pytest.approx(8_000.0)

    def test_without_margin_uses_notional_threshold(self):
        assert total_premium(make_trade(1.0, premium=2.0)) == pytest.approx(200.0)
        assert total_premium(make_trade(1.0, premium=6_000.0)) == pytest.approx(6_000.0)

    def test_negative_contracts_and_values_are_absolute(self):
        trade = make_trade(1.0, max_loss=-3.0, contracts=-2, margin=1_000.0)
        assert total_max_loss(trade) == pytest.approx(600.0)

    def test_missing_or_zero_values(self):
        assert total_premium(make_trade(1.0)) is None
        assert total_max_profit(make_trade(1.0, max_profit=0.0)) is None
        assert total_max_loss(make_trade(1.0, max_loss=float("nan"))) is None


class TestPremiumEfficiency:
    def test_premium_basis(self):
        trade = make_trade(-500.0, premium=250.0, premium_precision="cents", contracts=10, margin=10_000.0)
        result = premium_efficiency_percent(trade)
        assert result.basis == "premium"
        assert result.percentage == pytest.approx(-20.0)
        assert result.denominator == pytest.approx(2_500.0)

    def test_max_profit_fallback(self):
        trade = make_trade(250.0, max_profit=2.5, contracts=10, margin=10_000.0)
        result = premium_efficiency_percent(trade)
        assert result.basis == "maxProfit"
        assert result.denominator == pytest.approx(2_500.0)
        assert result.percentage == pytest.approx(10.0)

    def test_margin_fallback(self):
        result = premium_efficiency_percent(make_trade(50.0, margin=-1_000.0))
        assert result.basis == "margin"
        assert result.percentage == pytest.approx(5.0)

    def test_unknown_basis(self):
        result = premium_efficiency_percent(make_trade(50.0))
        assert result.basis == "unknown"
        assert result.percentage is None

    def test_non_finite_pl_keeps_basis_without_percentage(self):
        result = premium_efficiency_percent(make_trade(float("inf"), margin=1_000.0))
        assert result.basis == "margin"
        assert result.percentage is None

    def test_points_are_numbered_and_sum_commissions(self):
        trades = [
            make_trade(10.0, margin=100.0, opening_commissions_fees=1.5, closing_commissions_fees=2.0),
            make_trade(20.0),
        ]
        points = calculate_premium_efficiency(trades)
        assert [p.trade_number for p in points] == [1, 2]
        assert points[0].total_commissions == pytest.approx(3.5)
        assert points[0].efficiency_pct == pytest.approx(10.0)
        assert points[1].efficiency_basis == "unknown"


class TestTradeExcursion:
    def test_metrics_against_every_basis(self):
        trade = make_trade(100.0, premium=2.0, margin=1_000.0, max_profit=1.5, max_loss=3.0)
        point = trade_excursion_metrics(trade, 7)

        assert point.trade_number == 7
        assert point.basis == "premium"
        assert point.denominator == pytest.approx(200.0)
        assert point.mfe == pytest.approx(150.0)
        assert point.mae == pytest.approx(300.0)
        assert point.mfe_percent == pytest.approx(75.0)
        assert point.mae_percent == pytest.approx(150.0)
        assert point.pl_percent == pytest.approx(50.0)

        margin = point.normalized_by["margin"]
        assert margin.mfe_percent == pytest.approx(15.0)
        assert margin.mae_percent == pytest.approx(30.0)
        assert margin.pl_percent == pytest.approx(10.0)

        assert point.profit_capture_percent == pytest.approx(66.6666667)
        assert point.excursion_ratio == pytest.approx(0.5)
        assert point.is_winner is True

    def test_max_profit_is_the_last_resort_denominator(self):
        point = trade_excursion_metrics(make_trade(-20.0, max_profit=1.0), 1)
        assert point.basis == "maxProfit"
        assert point.mfe_percent == pytest.approx(100.0)
        assert point.mae_percent is None
        assert point.normalized_by == {}

    def test_short_long_ratio_change(self):
        trade = make_trade(
            1.0, max_profit=1.0, opening_short_long_ratio=2.0, closing_short_long_ratio=3.0,
        )
        point = trade_excursion_metrics(trade, 1)
        assert point.short_long_ratio_change == pytest.approx(1.5)
        assert point.short_long_ratio_change_pct == pytest.approx(50.0)

    def test_trades_without_excursions_are_skipped(self):
        assert trade_excursion_metrics(make_trade(10.0, margin=100.0), 1) is None
        assert trade_excursion_metrics(make_trade(float("nan"), max_profit=1.0), 1) is None

    @pytest.mark.asyncio
    async def test_data_keeps_original_trade_numbers(self):
        trades = [make_trade(1.0), make_trade(2.0, max_profit=1.0), make_trade(3.0, max_loss=1.0)]
        points = await calculate_mfe_mae_data(trades)
        assert [p.trade_number for p in points] == [2, 3]


class TestExcursionStats:
    @pytest.mark.asyncio
    async def test_per_basis_aggregates(self):
        trades = [
            make_trade(100.0, premium=2.0, margin=1_000.0, max_profit=1.5, max_loss=3.0),
            make_trade(-50.0, premium=2.0, margin=1_000.0, max_profit=1.0, max_loss=1.0),
        ]
        points = await calculate_mfe_mae_data(trades)
        stats = await calculate_mfe_mae_stats(points)

        assert set(stats) == {"premium", "margin"}
        premium = stats["premium"]
        assert premium.avg_mfe_percent == pytest.approx(62.5)
        assert premium.avg_mae_percent == pytest.approx(100.0)
        assert premium.median_mfe_percent == pytest.approx(62.5)
        assert premium.avg_profit_capture_percent == pytest.approx((200 / 3 - 50) / 2)
        assert premium.winner_avg_profit_capture == pytest.approx(200 / 3)
        assert premium.loser_avg_profit_capture == pytest.approx(-50.0)
        assert premium.avg_excursion_ratio == pytest.approx(0.75)
        assert premium.total_trades == 2
        assert premium.trades_with_mfe == 2
        assert stats["margin"].avg_mfe_percent == pytest.approx(12.5)

    @pytest.mark.asyncio
    async def test_bases_without_data_are_omitted(self):
        points = await calculate_mfe_mae_data([make_trade(10.0, max_profit=1.0)])
        assert await calculate_mfe_mae_stats(points) == {}

    @pytest.mark.asyncio
    async def test_empty(self):
        assert await calculate_mfe_mae_stats([]) == {}

    @pytest.mark.asyncio
    async def test_cancellation(self):
        points = [_point(10.0)]
        with pytest.raises(SnapshotCancelled):
            await calculate_mfe_mae_stats(points, token=CancelToken(cancelled=True))


class TestExcursionDistribution:
    @pytest.mark.asyncio
    async def test_fixed_width_buckets(self):
        points = [_point(5.0, 25.0), _point(150.0)]
        buckets = await create_excursion_distribution(points)

        assert len(buckets) == 15
        assert buckets[0].bucket == "0.00-10.00%"
        assert buckets[0].mfe_count == 1
        assert buckets[2].mae_count == 1
        # The maximum sits on the upper edge and lands in the last bucket.
        assert buckets[14].mfe_count == 1
        assert buckets[14].range == (140.0, 150.0)

    @pytest.mark.asyncio
    async def test_bucket_count_is_capped(self):
        buckets = await create_excursion_distribution([_point(10_000.0, 10.0)])
        assert len(buckets) == 500
        assert buckets[0].range == (0.0, 20.0)
        assert buckets[0].mae_count == 1
        assert buckets[-1].mfe_count == 1
        assert buckets[-1].bucket == "9980.00-10000.00%"

    @pytest.mark.asyncio
    async def test_nothing_positive(self):
        assert await create_excursion_distribution([_point(0.0), _point(None)]) == []

    @pytest.mark.asyncio
    async def test_empty(self):
        assert await create_excursion_distribution([]) == []

    @pytest.mark.asyncio
    async def test_cancellation(self):
        with pytest.raises(SnapshotCancelled, match="Finalizing"):
            await create_excursion_distribution([_point(5.0)], token=CancelToken(cancelled=True))
