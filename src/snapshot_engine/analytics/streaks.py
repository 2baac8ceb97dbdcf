"""Win/loss streak analysis.

A trade is a win when ``pl > 0``; anything else (including scratch
trades) counts as a loss.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Sequence

from ..core.models import Trade, frozen_mapping
from ..core.numeric import is_finite
from .normalizer import sort_by_open


@dataclass(frozen=True)
class Streak:
    kind: str  # "win" | "loss"
    length: int
    total_pl: float


@dataclass(frozen=True)
class StreakStatistics:
    max_win_streak: int = 0
    max_loss_streak: int = 0
    avg_win_streak: float = 0.0
    avg_loss_streak: float = 0.0
    total_win_streaks: int = 0
    total_loss_streaks: int = 0


@dataclass(frozen=True)
class StreakDistribution:
    streaks: tuple[Streak, ...] = ()
    win_distribution: Mapping[int, int] = field(default_factory=frozen_mapping)
    loss_distribution: Mapping[int, int] = field(default_factory=frozen_mapping)
    statistics: StreakStatistics = field(default_factory=StreakStatistics)


def find_streaks(trades: Sequence[Trade]) -> list[Streak]:
    """Maximal same-sign runs in chronological (open) order."""
    streaks: list[Streak] = []
    kind: str | None = None
    length = 0
    total = 0.0

    for trade in sort_by_open(t for t in trades if is_finite(t.pl)):
        current = "win" if trade.pl > 0 else "loss"
        if current == kind:
            length += 1
            total += trade.pl
            continue
        if kind is not None:
            streaks.append(Streak(kind, length, total))
        kind, length, total = current, 1, trade.pl

    if kind is not None:
        streaks.append(Streak(kind, length, total))
    return streaks


def _average(lengths: list[int]) -> float:
    return sum(lengths) / len(lengths) if lengths else 0.0


def calculate_streak_distributions(trades: Sequence[Trade]) -> StreakDistribution:
    """Run-length distributions (``length -> occurrences``) plus summary stats."""
    streaks = find_streaks(trades)
    wins = [s.length for s in streaks if s.kind == "win"]
    losses = [s.length for s in streaks if s.kind == "loss"]

    return StreakDistribution(
        streaks=tuple(streaks),
        win_distribution=frozen_mapping(dict(sorted(Counter(wins).items()))),
        loss_distribution=frozen_mapping(dict(sorted(Counter(losses).items()))),
        statistics=StreakStatistics(
            max_win_streak=max(wins, default=0),
            max_loss_streak=max(losses, default=0),
            avg_win_streak=_average(wins),
            avg_loss_streak=_average(losses),
            total_win_streaks=len(wins),
            total_loss_streaks=len(losses),
        ),
    )
