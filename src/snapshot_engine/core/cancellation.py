"""Cooperative cancellation and yielding for long-running snapshot stages.

The pipeline runs on a single event loop.  Heavy stages call
:func:`checkpoint` between units of work: it polls the token and then
hands control back to the loop so the host stays responsive.

Usage::

    token = CancelToken()
    task = asyncio.create_task(build_snapshot(trades, cancel_token=token))
    ...
    token.cancel()          # next checkpoint raises SnapshotCancelled
"""

from __future__ import annotations

import asyncio

from .errors import SnapshotCancelled


class CancelToken:
    """Poll-based cancellation flag shared by every pipeline stage."""

    __slots__ = ("_cancelled", "_reason")

    def __init__(self, *, cancelled: bool = False) -> None:
        self._cancelled = cancelled
        self._reason = ""

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def reason(self) -> str:
        return self._reason

    def cancel(self, reason: str = "") -> None:
        """Request cancellation.  Idempotent."""
        if not self._cancelled:
            self._cancelled = True
            self._reason = reason

    def raise_if_cancelled(self, step: str = "") -> None:
        if self._cancelled:
            raise SnapshotCancelled(step)


def check_cancelled(token: CancelToken | None, step: str = "") -> None:
    """Raise :class:`SnapshotCancelled` if *token* has been cancelled."""
    if token is not None:
        token.raise_if_cancelled(step)


async def yield_to_host() -> None:
    """Give the event loop one turn before continuing."""
    await asyncio.sleep(0)


async def checkpoint(token: CancelToken | None, step: str = "") -> None:
    """Poll *token*, yield, then poll again.

    The second poll catches a cancel issued by another task while this
    one was suspended.
    """
    check_cancelled(token, step)
    await yield_to_host()
    check_cancelled(token, step)
