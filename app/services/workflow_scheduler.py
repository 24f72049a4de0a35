"""
Lightweight in-process poller that wakes suspended workflow runs.
Runs persisted as pending or sleeping are resumed once next_wake_at passes.
"""
from __future__ import annotations

import asyncio
import logging
from typing import Dict

from app.services.workflow_engine import WorkflowEngine

logger = logging.getLogger(__name__)


class WorkflowScheduler:
    """Polls the run table for due workflow runs and resumes them."""

    def __init__(self, engine: WorkflowEngine, poll_seconds: int = 30, batch_size: int = 50):
        self.engine = engine
        self.poll_seconds = poll_seconds
        self.batch_size = batch_size
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task | None = None
        self._running: Dict[str, asyncio.Task] = {}

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start scheduler loop as background task."""
        if self.is_running:
            return
        self.engine.recover_interrupted()
        self._stop_event.clear()
        self._task = asyncio.create_task(self._run_loop())
        logger.info("WorkflowScheduler started (poll every %ss)", self.poll_seconds)

    async def stop(self) -> None:
        """Stop scheduler loop and wait for in-flight runs."""
        self._stop_event.set()
        if self._task:
            await self._task
        if self._running:
            await asyncio.gather(*self._running.values(), return_exceptions=True)
        logger.info("WorkflowScheduler stopped")

    async def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.tick()
            except Exception as exc:
                logger.exception("WorkflowScheduler tick failed: %s", exc)
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.poll_seconds)
            except asyncio.TimeoutError:
                pass

    def tick(self) -> list[asyncio.Task]:
        """Spawn a task for every due run not already in flight."""
        started = []
        for run_id in self.engine.due_run_ids(self.batch_size):
            if run_id in self._running:
                continue
            task = asyncio.create_task(self._resume(run_id))
            self._running[run_id] = task
            started.append(task)
        return started

    async def _resume(self, run_id: str) -> None:
        try:
            status = await self.engine.resume(run_id)
            logger.debug("Scheduled resume of run %s finished with status=%s", run_id, status)
        except Exception as exc:
            logger.exception("Scheduled resume failed for run %s: %s", run_id, exc)
        finally:
            self._running.pop(run_id, None)
