"""Shared fixtures for the snapshot engine test suite."""

from __future__ import annotations

import random

import pytest

from snapshot_engine.core.cancellation import CancelToken

from tests.factories import make_trade_series


@pytest.fixture
def journal():
    """45 daily Iron Condor trades carrying every optional analytics field."""
    rng = random.Random(11)
    pnl = [float(rng.randint(-400, 600)) for _ in range(45)]
    return make_trade_series(
        pnl,
        margin=5_000.0,
        premium=2.5,
        max_profit=2.5,
        max_loss=4.0,
        opening_vix=17.0,
        closing_vix=21.0,
        reason_for_close="Profit Target",
    )


@pytest.fixture
def cancelled_token():
    return CancelToken(cancelled=True)
