"""Runs each stage worker on its own interval.

Every registered job gets one asyncio task that runs ``process()`` to
completion and then waits for the job's interval, so two ticks of the same
worker never overlap. Workers never call each other; they only share the
database.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Protocol

from reply_ledger.workers.base import TickOutcome

logger = logging.getLogger(__name__)


class StageWorker(Protocol):
    name: str

    async def process(self) -> TickOutcome: ...


@dataclass
class Job:
    name: str
    worker: StageWorker
    interval: float


class PipelineScheduler:
    """Owns the background tasks of every pipeline stage."""

    def __init__(self) -> None:
        self._jobs: dict[str, Job] = {}
        self._tasks: dict[str, asyncio.Task[None]] = {}
        self._stopping = asyncio.Event()
        self.last_outcomes: dict[str, TickOutcome] = {}

    @property
    def job_names(self) -> list[str]:
        return list(self._jobs)

    @property
    def running(self) -> bool:
        return any(not task.done() for task in self._tasks.values())

    def register(self, name: str, worker: StageWorker, interval: float) -> None:
        if name in self._jobs:
            raise ValueError(f"Job {name!r} is already registered")
        self._jobs[name] = Job(name=name, worker=worker, interval=max(0.1, float(interval)))

    async def start(self) -> None:
        """Start one background loop per registered job."""
        if self.running:
            return
        self._stopping.clear()
        for job in self._jobs.values():
            self._tasks[job.name] = asyncio.create_task(self._run(job), name=f"worker:{job.name}")
        logger.info("Pipeline scheduler started %d jobs", len(self._tasks))

    async def stop(self) -> None:
        """Signal every loop to stop and wait for in-flight ticks to finish."""
        if not self._tasks:
            return
        self._stopping.set()
        await asyncio.gather(*self._tasks.values())
        self._tasks.clear()
        logger.info("Pipeline scheduler stopped")

    async def run_once(self, name: str) -> TickOutcome:
        """Run exactly one tick of ``name`` and return its outcome."""
        try:
            job = self._jobs[name]
        except KeyError:
            raise KeyError(f"Unknown worker {name!r}; known: {', '.join(self._jobs)}") from None
        outcome = await job.worker.process()
        self.last_outcomes[name] = outcome
        return outcome

    async def _tick(self, job: Job) -> None:
        try:
            self.last_outcomes[job.name] = await job.worker.process()
        except Exception:
            logger.exception("Worker %s tick failed", job.name)

    async def _run(self, job: Job) -> None:
        while not self._stopping.is_set():
            await self._tick(job)
            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=job.interval)
            except TimeoutError:
                continue
