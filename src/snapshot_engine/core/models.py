"""Input record models for the snapshot engine.

These are the canonical shapes of the raw records a snapshot is built
from.  Both accept the camelCase keys of the dashboard's JSON exports
(``dateOpened``, ``fundsAtClose``, ...) as well as the snake_case field
names, and are frozen once constructed.

NaN/Infinity are accepted in numeric fields on purpose: the calculators
drop bad values from the specific metric they would corrupt.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import date, datetime, time, timezone
from types import MappingProxyType
from typing import Any, TypeVar

from pydantic import BaseModel, Field, field_validator

from .numeric import finite_or_none, positive_or_none

UNKNOWN_STRATEGY = "Unknown"

# The ledger model has a field called ``date``.
CalendarDate = date

K = TypeVar("K")
V = TypeVar("V")


def _coerce_date(value: Any) -> Any:
    """Accept ``date``, ``datetime`` or ISO strings (with or without time)."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone(timezone.utc)
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str) and "T" in value:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        if parsed.tzinfo is not None:
            parsed = parsed.astimezone(timezone.utc)
        return parsed.date()
    return value


def _parse_clock(value: str | None) -> time:
    if not value:
        return time(0, 0)
    try:
        return time.fromisoformat(value)
    except ValueError:
        return time(0, 0)


def as_utc_datetime(day: date, clock: str | None = None) -> datetime:
    """Midnight UTC of *day*, shifted by an ``HH:MM[:SS]`` clock if given."""
    return datetime.combine(day, _parse_clock(clock), tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Trade
# ---------------------------------------------------------------------------

class Trade(BaseModel):
    """One opened (optionally closed) option position."""

    date_opened: date = Field(alias="dateOpened")
    time_opened: str = Field(default="", alias="timeOpened")
    date_closed: date | None = Field(default=None, alias="dateClosed")
    time_closed: str | None = Field(default=None, alias="timeClosed")

    pl: float
    num_contracts: float = Field(default=1.0, alias="numContracts")
    margin_req: float | None = Field(default=None, alias="marginReq")
    funds_at_close: float | None = Field(default=None, alias="fundsAtClose")
    premium: float | None = None
    premium_precision: str | None = Field(default=None, alias="premiumPrecision")  # "dollars" | "cents"

    strategy: str = UNKNOWN_STRATEGY
    legs: str = ""
    reason_for_close: str | None = Field(default=None, alias="reasonForClose")

    opening_price: float | None = Field(default=None, alias="openingPrice")
    closing_price: float | None = Field(default=None, alias="closingPrice")
    avg_closing_cost: float | None = Field(default=None, alias="avgClosingCost")
    opening_commissions_fees: float = Field(default=0.0, alias="openingCommissionsFees")
    closing_commissions_fees: float = Field(default=0.0, alias="closingCommissionsFees")

    # Market context
    opening_vix: float | None = Field(default=None, alias="openingVix")
    closing_vix: float | None = Field(default=None, alias="closingVix")
    opening_short_long_ratio: float | None = Field(default=None, alias="openingShortLongRatio")
    closing_short_long_ratio: float | None = Field(default=None, alias="closingShortLongRatio")
    gap: float | None = None
    movement: float | None = None

    # Intra-trade excursion (per contract)
    max_profit: float | None = Field(default=None, alias="maxProfit")
    max_loss: float | None = Field(default=None, alias="maxLoss")

    model_config = {"frozen": True, "populate_by_name": True}

    @field_validator("date_opened", "date_closed", mode="before")
    @classmethod
    def _dates(cls, value: Any) -> Any:
        return _coerce_date(value)

    @field_validator("strategy", mode="before")
    @classmethod
    def _strategy(cls, value: Any) -> Any:
        if value is None or (isinstance(value, str) and not value.strip()):
            return UNKNOWN_STRATEGY
        return value

    @field_validator("opening_commissions_fees", "closing_commissions_fees", mode="before")
    @classmethod
    def _fees(cls, value: Any) -> Any:
        return 0.0 if value is None else value

    # ------------------------------------------------------------------ #
    # Derived                                                              #
    # ------------------------------------------------------------------ #

    @property
    def is_closed(self) -> bool:
        return self.date_closed is not None

    @property
    def close_date(self) -> date:
        """Close date, or open date for positions still open."""
        return self.date_closed or self.date_opened

    @property
    def opened_at(self) -> datetime:
        return as_utc_datetime(self.date_opened)

    @property
    def open_sort_key(self) -> tuple[date, str]:
        return (self.date_opened, self.time_opened or "")

    @property
    def close_sort_key(self) -> tuple[date, str]:
        return (self.close_date, self.time_closed or "")

    @property
    def total_commissions(self) -> float:
        return (finite_or_none(self.opening_commissions_fees) or 0.0) + (
            finite_or_none(self.closing_commissions_fees) or 0.0
        )

    @property
    def rom(self) -> float | None:
        """Return on margin in percent; ``None`` without usable margin."""
        margin = positive_or_none(self.margin_req)
        pl = finite_or_none(self.pl)
        if margin is None or pl is None:
            return None
        return pl / margin * 100.0


# ---------------------------------------------------------------------------
# Daily log
# ---------------------------------------------------------------------------

class DailyLogEntry(BaseModel):
    """Whole-account ledger snapshot for one calendar day."""

    date: CalendarDate
    net_liquidity: float | None = Field(default=None, alias="netLiquidity")
    current_funds: float | None = Field(default=None, alias="currentFunds")
    trading_funds: float | None = Field(default=None, alias="tradingFunds")
    withdrawn: float | None = None
    daily_pl: float | None = Field(default=None, alias="dailyPl")
    daily_pl_pct: float | None = Field(default=None, alias="dailyPlPct")
    drawdown_pct: float | None = Field(default=None, alias="drawdownPct")
    block_id: str | None = Field(default=None, alias="blockId")

    model_config = {"frozen": True, "populate_by_name": True}

    @field_validator("date", mode="before")
    @classmethod
    def _date(cls, value: Any) -> Any:
        return _coerce_date(value)

    def equity_value(self) -> float | None:
        """First finite balance in priority order, or ``None``."""
        for candidate in (self.net_liquidity, self.current_funds, self.trading_funds):
            value = finite_or_none(candidate)
            if value is not None:
                return value
        return None


# ---------------------------------------------------------------------------
# Filters
# ---------------------------------------------------------------------------

class DateRange(BaseModel):
    """Inclusive date window; either bound may be omitted."""

    from_: date | None = Field(default=None, alias="from")
    to: date | None = None

    model_config = {"frozen": True, "populate_by_name": True}

    @field_validator("from_", "to", mode="before")
    @classmethod
    def _bounds(cls, value: Any) -> Any:
        return _coerce_date(value)

    @property
    def is_active(self) -> bool:
        return self.from_ is not None or self.to is not None

    def contains(self, day: date) -> bool:
        if self.from_ is not None and day < self.from_:
            return False
        if self.to is not None and day > self.to:
            return False
        return True


class SnapshotFilters(BaseModel):
    """Optional date-range and strategy restrictions, applied once."""

    date_range: DateRange | None = Field(default=None, alias="dateRange")
    strategies: tuple[str, ...] | None = None

    model_config = {"frozen": True, "populate_by_name": True}

    @property
    def active_strategies(self) -> tuple[str, ...] | None:
        """Strategy filter, or ``None`` when absent or empty."""
        return self.strategies or None


# ---------------------------------------------------------------------------
# Progress
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class SnapshotProgress:
    """Observational progress event emitted at pipeline checkpoints."""

    step: str
    percent: int


# ---------------------------------------------------------------------------
# Read-only views
# ---------------------------------------------------------------------------

def frozen_mapping(mapping: Mapping[K, V] | None = None) -> Mapping[K, V]:
    """Read-only copy of *mapping*; nested dicts are frozen too."""
    if not mapping:
        return MappingProxyType({})
    return MappingProxyType({
        key: frozen_mapping(value) if isinstance(value, dict) else value
        for key, value in mapping.items()
    })
