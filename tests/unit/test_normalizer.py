"""Tests for record validation, one-lot scaling and filtering."""

from datetime import date, timedelta

import pytest

from snapshot_engine.analytics.normalizer import (
    normalize_records,
    normalize_trades_to_one_lot,
    sort_by_close,
    sort_by_open,
)
from snapshot_engine.core.errors import InvalidRecordError
from snapshot_engine.core.models import DateRange, SnapshotFilters

from tests.factories import START, make_log, make_trade


@pytest.fixture
def mixed_trades():
    return [
        make_trade(100.0, opened=START + timedelta(days=2), strategy="Iron Condor"),
        make_trade(-40.0, opened=START, strategy="Put Spread"),
        make_trade(60.0, opened=START + timedelta(days=1), strategy="Iron Condor"),
        make_trade(25.0, opened=START + timedelta(days=5), strategy="Put Spread"),
    ]


@pytest.fixture
def logs():
    return [make_log(START + timedelta(days=i), 100_000.0 + i * 10) for i in range(7)]


class TestCoercion:
    def test_raw_mappings_are_validated(self):
        records = normalize_records([{"dateOpened": "2024-01-02", "pl": 5}])
        assert records.trades[0].pl == 5

    def test_invalid_trade_reports_index(self):
        with pytest.raises(InvalidRecordError) as info:
            normalize_records([{"dateOpened": "2024-01-02", "pl": 5}, {"pl": 1}])
        assert info.value.kind == "trade"
        assert info.value.index == 1

    def test_invalid_daily_log(self):
        with pytest.raises(InvalidRecordError, match="daily log"):
            normalize_records([], [{"netLiquidity": 5}])


class TestOrdering:
    def test_sort_by_open_uses_time_tie_break(self):
        late = make_trade(1.0, time_opened="14:00:00")
        early = make_trade(2.0, time_opened="09:31:00")
        assert [t.pl for t in sort_by_open([late, early])] == [2.0, 1.0]

    def test_sort_by_close_falls_back_to_open_date(self):
        still_open = make_trade(1.0, opened=START, closed=None)
        closed_later = make_trade(2.0, opened=START - timedelta(days=3), closed=START + timedelta(days=1))
        assert [t.pl for t in sort_by_close([closed_later, still_open])] == [1.0, 2.0]

    def test_output_is_sorted_by_open(self, mixed_trades):
        records = normalize_records(mixed_trades)
        assert [t.pl for t in records.trades] == [-40.0, 60.0, 100.0, 25.0]


class TestFilters:
    def test_no_filters(self, mixed_trades, logs):
        records = normalize_records(mixed_trades, logs)
        assert len(records.trades) == 4
        assert len(records.daily_logs) == 7
        assert records.use_ledger_balances is True

    def test_strategy_filter_drops_logs_and_ledger(self, mixed_trades, logs):
        records = normalize_records(mixed_trades, logs, SnapshotFilters(strategies=("Iron Condor",)))
        assert [t.pl for t in records.trades] == [60.0, 100.0]
        assert records.daily_logs is None
        assert records.strategy_filter_active is True
        assert records.use_ledger_balances is False

    def test_empty_strategy_list_keeps_everything(self, mixed_trades, logs):
        records = normalize_records(mixed_trades, logs, SnapshotFilters(strategies=()))
        assert len(records.trades) == 4
        assert records.use_ledger_balances is True

    def test_date_range_filters_trades_and_logs(self, mixed_trades, logs):
        window = DateRange(from_=START + timedelta(days=1), to=START + timedelta(days=2))
        records = normalize_records(mixed_trades, logs, SnapshotFilters(date_range=window))
        assert [t.pl for t in records.trades] == [60.0, 100.0]
        assert [e.date for e in records.daily_logs] == [START + timedelta(days=1), START + timedelta(days=2)]
        assert records.date_filter_active is True
        # A date-only window still covers the whole account.
        assert records.use_ledger_balances is True

    def test_filter_matching_nothing(self, mixed_trades):
        records = normalize_records(mixed_trades, None, SnapshotFilters(strategies=("Butterfly",)))
        assert records.trades == ()


class TestOneLot:
    def test_scales_per_contract_fields(self):
        trade = make_trade(
            500.0, contracts=5, margin=10_000.0, funds=100_500.0,
            opening_commissions_fees=10.0, closing_commissions_fees=5.0,
        )
        (scaled,) = normalize_trades_to_one_lot([trade])
        assert scaled.pl == pytest.approx(100.0)
        assert scaled.margin_req == pytest.approx(2_000.0)
        assert scaled.opening_commissions_fees == pytest.approx(2.0)
        assert scaled.closing_commissions_fees == pytest.approx(1.0)
        assert scaled.num_contracts == 1.0

    def test_funds_become_per_lot_running_balance(self):
        trades = [
            make_trade(1_000.0, opened=START, contracts=10, funds=101_000.0),
            make_trade(-500.0, opened=START + timedelta(days=1), contracts=10, funds=100_500.0),
        ]
        scaled = normalize_trades_to_one_lot(trades)
        # Per-lot seed: (101000 - 1000) / 10
        assert scaled[0].funds_at_close == pytest.approx(10_100.0)
        assert scaled[1].funds_at_close == pytest.approx(10_050.0)

    def test_missing_funds_fall_back_to_default_capital(self):
        (scaled,) = normalize_trades_to_one_lot([make_trade(10.0, contracts=2)])
        assert scaled.funds_at_close == pytest.approx(100_000.0 + 5.0)

    def test_single_contract_unchanged(self):
        (scaled,) = normalize_trades_to_one_lot([make_trade(42.0, margin=1_000.0)])
        assert scaled.pl == 42.0
        assert scaled.margin_req == 1_000.0

    def test_one_lot_drops_logs_and_ledger(self, mixed_trades, logs):
        records = normalize_records(mixed_trades, logs, normalize_to_one_lot=True)
        assert records.daily_logs is None
        assert records.use_ledger_balances is False

    def test_input_order_is_kept(self):
        trades = [
            make_trade(1.0, opened=START + timedelta(days=3)),
            make_trade(2.0, opened=START),
        ]
        assert [t.pl for t in normalize_trades_to_one_lot(trades)] == [1.0, 2.0]

    def test_empty(self):
        assert normalize_trades_to_one_lot([]) == []
