"""Tests for run_id propagation in structured logging."""

import asyncio
import contextvars

from snapshot_engine.observability.logger import _add_run_id, get_run_id, new_run_id, setup_logging


def test_new_run_id_is_visible_in_context():
    async def run():
        rid = new_run_id()
        return rid, get_run_id()

    rid, seen = asyncio.run(run())
    assert len(rid) == 12
    assert seen == rid


def test_processor_stamps_run_id():
    async def run():
        rid = new_run_id()
        return rid, _add_run_id(None, "info", {"event": "snapshot_complete"})

    rid, event = asyncio.run(run())
    assert event["run_id"] == rid


def test_processor_leaves_entries_outside_a_run_alone():
    event = contextvars.Context().run(_add_run_id, None, "info", {"event": "idle"})
    assert "run_id" not in event


def test_setup_logging_accepts_both_renderers():
    setup_logging(level="DEBUG", format="json")
    setup_logging(level="warning", format="console")
