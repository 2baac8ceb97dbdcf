"""Per-trade efficiency helpers.

Premium, max profit and max loss are recorded per contract and, for
option structures, per share.  The ``total_*`` helpers turn them into
whole-position dollar amounts:

* premium quoted in cents is divided by 100;
* the value is multiplied by the (absolute) contract count;
* the 100x option multiplier is applied when the result looks like a
  per-share figure, i.e. it is under half the posted margin, or there is
  no margin and it is under 5,000.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Sequence

from ..core.models import Trade
from ..core.numeric import finite_or_none, is_finite

OPTION_CONTRACT_MULTIPLIER = 100
MARGIN_RATIO_THRESHOLD = 0.5
SMALL_NOTIONAL_THRESHOLD = 5_000


def _contract_count(trade: Trade) -> float:
    contracts = abs(trade.num_contracts) if is_finite(trade.num_contracts) else 0.0
    return contracts if contracts > 0 else 1.0


def _abs_margin(trade: Trade) -> float | None:
    if is_finite(trade.margin_req) and trade.margin_req != 0:
        return abs(trade.margin_req)
    return None


def _apply_option_multiplier(total: float, trade: Trade) -> float:
    if not is_finite(total) or total <= 0:
        return total

    margin = _abs_margin(trade)
    if margin is not None:
        if 0 < total / margin < MARGIN_RATIO_THRESHOLD:
            return total * OPTION_CONTRACT_MULTIPLIER
        return total

    if total < SMALL_NOTIONAL_THRESHOLD:
        return total * OPTION_CONTRACT_MULTIPLIER
    return total


def _position_total(value: float, trade: Trade, *, is_premium: bool = False) -> float | None:
    base = abs(value)
    if is_premium and trade.premium_precision == "cents":
        base /= 100
    total = _apply_option_multiplier(base * _contract_count(trade), trade)
    return total if is_finite(total) and total > 0 else None


def total_premium(trade: Trade) -> float | None:
    if not is_finite(trade.premium):
        return None
    return _position_total(trade.premium, trade, is_premium=True)


def total_max_profit(trade: Trade) -> float | None:
    if not is_finite(trade.max_profit) or trade.max_profit == 0:
        return None
    return _position_total(trade.max_profit, trade)


def total_max_loss(trade: Trade) -> float | None:
    if not is_finite(trade.max_loss) or trade.max_loss == 0:
        return None
    return _position_total(trade.max_loss, trade)


@dataclass(frozen=True)
class EfficiencyResult:
    basis: str  # "premium" | "maxProfit" | "margin" | "unknown"
    percentage: float | None = None
    denominator: float | None = None


def premium_efficiency_percent(trade: Trade) -> EfficiencyResult:
    """P&L as a percent of total premium, else max profit, else margin."""
    candidates = (
        ("premium", total_premium(trade)),
        ("maxProfit", total_max_profit(trade)),
        ("margin", _abs_margin(trade)),
    )
    for basis, denominator in candidates:
        if denominator:
            percentage = trade.pl / denominator * 100.0
            if not is_finite(percentage):
                return EfficiencyResult(basis)
            return EfficiencyResult(basis, percentage, denominator)
    return EfficiencyResult("unknown")


@dataclass(frozen=True)
class PremiumEfficiencyPoint:
    trade_number: int
    date: datetime
    pl: float
    premium: float | None
    avg_closing_cost: float | None
    max_profit: float | None
    max_loss: float | None
    total_commissions: float | None
    efficiency_pct: float | None
    efficiency_denominator: float | None
    efficiency_basis: str
    total_premium: float | None


def calculate_premium_efficiency(trades: Sequence[Trade]) -> list[PremiumEfficiencyPoint]:
    points = []
    for number, trade in enumerate(trades, start=1):
        result = premium_efficiency_percent(trade)
        commissions = None
        if is_finite(trade.opening_commissions_fees) and is_finite(trade.closing_commissions_fees):
            commissions = trade.opening_commissions_fees + trade.closing_commissions_fees
        points.append(PremiumEfficiencyPoint(
            trade_number=number,
            date=trade.opened_at,
            pl=trade.pl,
            premium=finite_or_none(trade.premium),
            avg_closing_cost=finite_or_none(trade.avg_closing_cost),
            max_profit=finite_or_none(trade.max_profit),
            max_loss=finite_or_none(trade.max_loss),
            total_commissions=commissions,
            efficiency_pct=result.percentage,
            efficiency_denominator=result.denominator,
            efficiency_basis=result.basis,
            total_premium=total_premium(trade),
        ))
    return points
