from __future__ import annotations

import asyncio

import pytest

from conftest import utc
from app.models import RUN_COMPLETED, RUN_SLEEPING
from app.services.workflow_engine import WorkflowEngine
from app.services.workflow_scheduler import WorkflowScheduler


@pytest.mark.asyncio
async def test_tick_resumes_due_runs_once(session_factory, clock):
    engine = WorkflowEngine(session_factory, clock=clock)
    passes = []

    async def handler(ctx):
        passes.append(ctx.run_id)
        await ctx.sleep_until("wait", utc(2024, 2, 2))

    engine.register("poll", handler)
    run_id = engine.trigger("poll", {})
    scheduler = WorkflowScheduler(engine, poll_seconds=1)

    tasks = scheduler.tick()
    assert len(tasks) == 1
    await asyncio.gather(*tasks)
    assert engine.get_run(run_id)["status"] == RUN_SLEEPING

    # nothing due until the wake time
    assert scheduler.tick() == []

    clock.set(utc(2024, 2, 2, 0, 30))
    await asyncio.gather(*scheduler.tick())
    assert engine.get_run(run_id)["status"] == RUN_COMPLETED
    assert passes == [run_id, run_id]


@pytest.mark.asyncio
async def test_start_and_stop_loop(session_factory, clock):
    engine = WorkflowEngine(session_factory, clock=clock)

    async def handler(ctx):
        return None

    engine.register("quick", handler)
    run_id = engine.trigger("quick", {})
    scheduler = WorkflowScheduler(engine, poll_seconds=1)

    scheduler.start()
    assert scheduler.is_running
    for _ in range(50):
        if engine.get_run(run_id)["status"] == RUN_COMPLETED:
            break
        await asyncio.sleep(0.01)
    await scheduler.stop()

    assert not scheduler.is_running
    assert engine.get_run(run_id)["status"] == RUN_COMPLETED
