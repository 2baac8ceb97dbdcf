"""Trade snapshot engine.

Turns a trader's raw trade records (and optional daily account log) into
one immutable bundle of performance analytics: equity and drawdown
series, rolling risk metrics, calendar return grids, streaks, volatility
regimes and excursion statistics.
"""

from .core.cancellation import CancelToken
from .core.errors import SnapshotCancelled
from .core.models import DailyLogEntry, DateRange, SnapshotFilters, SnapshotProgress, Trade
from .snapshot import ChartData, Snapshot, build_snapshot, build_snapshot_sync, process_chart_data

__version__ = "0.1.0"

__all__ = [
    "build_snapshot",
    "build_snapshot_sync",
    "process_chart_data",
    "Snapshot",
    "ChartData",
    "Trade",
    "DailyLogEntry",
    "SnapshotFilters",
    "DateRange",
    "SnapshotProgress",
    "CancelToken",
    "SnapshotCancelled",
]
