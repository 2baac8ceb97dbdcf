"""Property tests: streak runs partition the trade sequence."""

from hypothesis import given, settings
from hypothesis import strategies as st

from snapshot_engine.analytics.streaks import calculate_streak_distributions

from tests.factories import make_trade_series

pnl_lists = st.lists(st.integers(min_value=-1_000, max_value=1_000).map(float), max_size=80)


@given(pnl=pnl_lists)
@settings(max_examples=150, deadline=None)
def test_runs_cover_every_trade(pnl):
    result = calculate_streak_distributions(make_trade_series(pnl))

    covered = sum(length * count for length, count in result.win_distribution.items())
    covered += sum(length * count for length, count in result.loss_distribution.items())
    assert covered == len(pnl)
    assert sum(s.total_pl for s in result.streaks) == sum(pnl)


@given(pnl=pnl_lists)
@settings(max_examples=150, deadline=None)
def test_runs_alternate(pnl):
    result = calculate_streak_distributions(make_trade_series(pnl))
    stats = result.statistics

    assert abs(stats.total_win_streaks - stats.total_loss_streaks) <= 1
    kinds = [s.kind for s in result.streaks]
    assert all(a != b for a, b in zip(kinds, kinds[1:]))
