"""Tests for win/loss streak analysis."""

from datetime import timedelta

import pytest

from snapshot_engine.analytics.streaks import calculate_streak_distributions, find_streaks

from tests.factories import START, make_trade, make_trade_series


class TestStreakDistributions:
    def test_reference_sequence(self):
        trades = make_trade_series([100, 200, -50, -100, 150, 300, 400, -75])
        result = calculate_streak_distributions(trades)

        assert result.win_distribution == {2: 1, 3: 1}
        assert result.loss_distribution == {1: 1, 2: 1}
        stats = result.statistics
        assert stats.max_win_streak == 3
        assert stats.max_loss_streak == 2
        assert stats.avg_win_streak == pytest.approx(2.5)
        assert stats.avg_loss_streak == pytest.approx(1.5)
        assert stats.total_win_streaks == 2
        assert stats.total_loss_streaks == 2

    def test_streak_totals(self):
        trades = make_trade_series([100, 200, -50, -100, 150, 300, 400, -75])
        streaks = find_streaks(trades)
        assert [(s.kind, s.length, s.total_pl) for s in streaks] == [
            ("win", 2, 300),
            ("loss", 2, -150),
            ("win", 3, 850),
            ("loss", 1, -75),
        ]

    def test_sorted_chronologically_before_walking(self):
        trades = make_trade_series([100, 200, -50, -100, 150, 300, 400, -75])
        result = calculate_streak_distributions(list(reversed(trades)))
        assert result.win_distribution == {2: 1, 3: 1}

    def test_time_breaks_same_day_ties(self):
        trades = [
            make_trade(-1.0, opened=START, time_opened="15:00:00"),
            make_trade(1.0, opened=START, time_opened="09:30:00"),
            make_trade(1.0, opened=START + timedelta(days=1)),
        ]
        assert [(s.kind, s.length) for s in find_streaks(trades)] == [("win", 1), ("loss", 1), ("win", 1)]

    def test_zero_pl_counts_as_loss(self):
        result = calculate_streak_distributions(make_trade_series([0, -5, 0]))
        assert result.loss_distribution == {3: 1}
        assert result.win_distribution == {}

    def test_single_trade(self):
        result = calculate_streak_distributions(make_trade_series([10]))
        assert result.win_distribution == {1: 1}
        assert result.statistics.avg_loss_streak == 0.0

    def test_empty(self):
        result = calculate_streak_distributions([])
        assert result.streaks == ()
        assert result.win_distribution == {}
        assert result.loss_distribution == {}
        assert result.statistics.max_win_streak == 0
        assert result.statistics.avg_win_streak == 0.0
        assert result.statistics.avg_loss_streak == 0.0
