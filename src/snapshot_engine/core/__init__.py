"""Core types: records, settings, errors and cancellation primitives."""

from .cancellation import CancelToken, checkpoint
from .config import SnapshotSettings, load_settings
from .errors import (
    ConfigError,
    DataError,
    InvalidRecordError,
    SnapshotCancelled,
    SnapshotError,
)
from .models import DailyLogEntry, DateRange, SnapshotFilters, SnapshotProgress, Trade

__all__ = [
    "CancelToken",
    "checkpoint",
    "SnapshotSettings",
    "load_settings",
    "ConfigError",
    "DataError",
    "InvalidRecordError",
    "SnapshotCancelled",
    "SnapshotError",
    "DailyLogEntry",
    "DateRange",
    "SnapshotFilters",
    "SnapshotProgress",
    "Trade",
]
