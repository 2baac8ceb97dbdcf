"""Record normalizer: validation, one-lot scaling and filtering.

Turns raw trade / daily-log inputs into the frozen, chronologically
sorted lists every downstream calculator reads.  Filters are applied
exactly once here; nothing after this point mutates the lists.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from pydantic import ValidationError

from ..core.errors import InvalidRecordError
from ..core.models import DailyLogEntry, SnapshotFilters, Trade
from ..core.numeric import FALLBACK_INITIAL_CAPITAL, is_finite

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------- #
# Coercion                                                                 #
# ---------------------------------------------------------------------- #

def coerce_trades(records: Iterable[Trade | Mapping[str, Any]]) -> list[Trade]:
    """Validate raw trade mappings into :class:`Trade` models.

    Already-built models pass through untouched.

    Raises
    ------
    InvalidRecordError
        If a mapping is missing required fields or has unparseable values.
    """
    trades: list[Trade] = []
    for index, record in enumerate(records):
        if isinstance(record, Trade):
            trades.append(record)
            continue
        try:
            trades.append(Trade.model_validate(record))
        except ValidationError as exc:
            raise InvalidRecordError("trade", index, str(exc)) from exc
    return trades


def coerce_daily_logs(
    records: Iterable[DailyLogEntry | Mapping[str, Any]] | None,
) -> list[DailyLogEntry] | None:
    if records is None:
        return None
    entries: list[DailyLogEntry] = []
    for index, record in enumerate(records):
        if isinstance(record, DailyLogEntry):
            entries.append(record)
            continue
        try:
            entries.append(DailyLogEntry.model_validate(record))
        except ValidationError as exc:
            raise InvalidRecordError("daily log", index, str(exc)) from exc
    return entries


# ---------------------------------------------------------------------- #
# Ordering                                                                 #
# ---------------------------------------------------------------------- #

def sort_by_open(trades: Iterable[Trade]) -> list[Trade]:
    """Canonical order: open date, then open time.  Stable for ties."""
    return sorted(trades, key=lambda t: t.open_sort_key)


def sort_by_close(trades: Iterable[Trade]) -> list[Trade]:
    """Close date (open date for open positions), then close time."""
    return sorted(trades, key=lambda t: t.close_sort_key)


# ---------------------------------------------------------------------- #
# One-lot normalization                                                    #
# ---------------------------------------------------------------------- #

def _scale(value: float | None, factor: float) -> float | None:
    return value * factor if is_finite(value) else value


def _one_lot(trade: Trade) -> Trade:
    contracts = abs(trade.num_contracts) if is_finite(trade.num_contracts) else 0.0
    if contracts <= 1:
        return trade.model_copy(update={"num_contracts": 1.0})

    factor = 1.0 / contracts
    return trade.model_copy(update={
        "pl": trade.pl * factor,
        "margin_req": _scale(trade.margin_req, factor),
        "opening_commissions_fees": _scale(trade.opening_commissions_fees, factor),
        "closing_commissions_fees": _scale(trade.closing_commissions_fees, factor),
        "num_contracts": 1.0,
    })


def _per_lot_initial_capital(chronological: list[Trade]) -> float:
    if not chronological:
        return FALLBACK_INITIAL_CAPITAL
    first = chronological[0]
    if not is_finite(first.funds_at_close) or not is_finite(first.pl):
        return FALLBACK_INITIAL_CAPITAL
    contracts = abs(first.num_contracts) if is_finite(first.num_contracts) else 0.0
    per_lot = (first.funds_at_close - first.pl) / max(1.0, contracts or 1.0)
    if not is_finite(per_lot) or per_lot <= 0:
        return FALLBACK_INITIAL_CAPITAL
    return per_lot


def normalize_trades_to_one_lot(trades: list[Trade]) -> list[Trade]:
    """Scale every trade to a single-contract equivalent.

    ``pl``, ``margin_req`` and commissions are divided by the contract
    count.  ``funds_at_close`` is rewritten as a per-lot running balance
    so it no longer reflects the whole account.  Input order is kept.
    """
    if not trades:
        return []

    normalized = [_one_lot(t) for t in trades]

    order = sorted(range(len(trades)), key=lambda i: trades[i].close_sort_key)
    running = _per_lot_initial_capital([trades[i] for i in order])
    for i in order:
        pl = normalized[i].pl
        if is_finite(pl):
            running += pl
        normalized[i] = normalized[i].model_copy(update={"funds_at_close": running})
    return normalized


# ---------------------------------------------------------------------- #
# Filtering                                                                #
# ---------------------------------------------------------------------- #

@dataclass(frozen=True)
class NormalizedRecords:
    """Output of :func:`normalize_records`, read-only from here on."""

    trades: tuple[Trade, ...]
    daily_logs: tuple[DailyLogEntry, ...] | None
    strategy_filter_active: bool
    date_filter_active: bool
    normalized_to_one_lot: bool

    @property
    def use_ledger_balances(self) -> bool:
        """Whether whole-account balances may stand in for equity.

        Only true when the analysis covers every strategy at real size;
        otherwise equity must come from cumulative filtered P&L.
        """
        return not self.normalized_to_one_lot and not self.strategy_filter_active


def normalize_records(
    trades: Iterable[Trade | Mapping[str, Any]],
    daily_logs: Iterable[DailyLogEntry | Mapping[str, Any]] | None = None,
    filters: SnapshotFilters | None = None,
    *,
    normalize_to_one_lot: bool = False,
) -> NormalizedRecords:
    """Validate, optionally one-lot scale, filter and sort the raw records."""
    source = coerce_trades(trades)
    logs = coerce_daily_logs(daily_logs)

    if normalize_to_one_lot:
        source = normalize_trades_to_one_lot(source)
        # Ledger balances are account-sized; they cannot describe one lot.
        logs = None

    filters = filters or SnapshotFilters()
    date_range = filters.date_range
    date_filter_active = bool(date_range and date_range.is_active)
    strategies = filters.active_strategies

    selected = source
    if date_filter_active:
        selected = [t for t in selected if date_range.contains(t.date_opened)]
        if logs is not None:
            logs = [e for e in logs if date_range.contains(e.date)]

    if strategies:
        wanted = set(strategies)
        selected = [t for t in selected if t.strategy in wanted]
        logs = None

    logger.debug(
        "Normalized %d of %d trades (strategies=%s, dates=%s, one_lot=%s)",
        len(selected), len(source), bool(strategies), date_filter_active, normalize_to_one_lot,
    )

    return NormalizedRecords(
        trades=tuple(sort_by_open(selected)),
        daily_logs=tuple(logs) if logs is not None else None,
        strategy_filter_active=bool(strategies),
        date_filter_active=date_filter_active,
        normalized_to_one_lot=normalize_to_one_lot,
    )
