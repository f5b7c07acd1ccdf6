"""Tests for the pipeline scheduler."""

from __future__ import annotations

import asyncio
import logging

import pytest

from reply_ledger.workers.base import TickOutcome
from reply_ledger.workers.scheduler import PipelineScheduler


class CountingWorker:
    def __init__(self, name: str, *, fail_first: bool = False) -> None:
        self.name = name
        self.calls = 0
        self.fail_first = fail_first
        self.ticked = asyncio.Event()

    async def process(self) -> TickOutcome:
        self.calls += 1
        if self.fail_first and self.calls == 1:
            raise RuntimeError("boom")
        if self.calls >= 2:
            self.ticked.set()
        return TickOutcome(worker=self.name, succeeded=self.calls)


@pytest.mark.asyncio
async def test_run_once_returns_outcome() -> None:
    scheduler = PipelineScheduler()
    worker = CountingWorker("evaluation")
    scheduler.register("evaluation", worker, 60)

    outcome = await scheduler.run_once("evaluation")

    assert outcome.succeeded == 1
    assert scheduler.last_outcomes["evaluation"] is outcome
    assert not scheduler.running


@pytest.mark.asyncio
async def test_run_once_unknown_worker() -> None:
    scheduler = PipelineScheduler()

    with pytest.raises(KeyError):
        await scheduler.run_once("missing")


@pytest.mark.asyncio
async def test_run_once_propagates_worker_errors() -> None:
    scheduler = PipelineScheduler()
    scheduler.register("reply", CountingWorker("reply", fail_first=True), 60)

    with pytest.raises(RuntimeError, match="boom"):
        await scheduler.run_once("reply")


def test_duplicate_registration_is_rejected() -> None:
    scheduler = PipelineScheduler()
    scheduler.register("reply", CountingWorker("reply"), 60)

    with pytest.raises(ValueError):
        scheduler.register("reply", CountingWorker("reply"), 60)
    assert scheduler.job_names == ["reply"]


@pytest.mark.asyncio
async def test_failed_tick_is_logged_and_loop_continues(caplog) -> None:
    scheduler = PipelineScheduler()
    worker = CountingWorker("publication", fail_first=True)
    scheduler.register("publication", worker, 0.1)

    with caplog.at_level(logging.ERROR, logger="reply_ledger.workers.scheduler"):
        await scheduler.start()
        assert scheduler.running
        await asyncio.wait_for(worker.ticked.wait(), timeout=5)
        await scheduler.stop()

    assert not scheduler.running
    assert worker.calls >= 2
    assert "Worker publication tick failed" in caplog.text
    assert scheduler.last_outcomes["publication"].succeeded >= 2
