"""
Durable workflow host.

A run is a persisted record plus an ordered log of named steps. Every time a
run is resumed its handler executes again from the top: steps that already
completed return their recorded result instead of running a second time, and
``sleep_until`` parks the run by raising ``WorkflowSuspended`` after storing
the wake time. ``WorkflowScheduler`` polls for runs whose wake time has
arrived and hands them back to ``WorkflowEngine.resume``.
"""
from __future__ import annotations

import inspect
import logging
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, Optional

from sqlalchemy import or_, select, update
from sqlalchemy.orm import Session

from app.core.clock import Clock, coerce_utc, now_utc, parse_uuid
from app.core.exceptions import NotFoundError
from app.models import (
    RUN_COMPLETED,
    RUN_FAILED,
    RUN_PENDING,
    RUN_RUNNING,
    RUN_SLEEPING,
    STEP_COMPLETED,
    STEP_SLEEPING,
    WorkflowRun,
    WorkflowStep,
)

logger = logging.getLogger(__name__)

WorkflowHandler = Callable[["WorkflowContext"], Awaitable[Any]]
SessionFactory = Callable[[], Session]

RESUMABLE_STATUSES = (RUN_PENDING, RUN_SLEEPING)
MAX_ERROR_LENGTH = 2000


class WorkflowSuspended(Exception):
    """Raised from ``sleep_until`` to park the run until ``wake_at``."""

    def __init__(self, step_name: str, wake_at: datetime):
        super().__init__(f"{step_name} until {wake_at.isoformat()}")
        self.step_name = step_name
        self.wake_at = wake_at


class WorkflowContext:
    """Step primitives handed to a workflow handler for one execution pass."""

    def __init__(self, run: WorkflowRun, db: Session, clock: Clock):
        self.run_id = str(run.id)
        self.request_payload: Dict[str, Any] = dict(run.payload or {})
        self._run = run
        self._db = db
        self._clock = clock
        self._steps: Dict[str, WorkflowStep] = {step.name: step for step in run.steps}

    @property
    def completed_steps(self) -> list[str]:
        return [name for name, step in self._steps.items() if step.status == STEP_COMPLETED]

    async def run(self, name: str, fn: Callable[[], Any]) -> Any:
        """Execute ``fn`` once per run; later passes replay the stored result."""
        step = self._steps.get(name)
        if step is not None and step.status == STEP_COMPLETED:
            logger.debug("Run %s replaying step %r", self.run_id, name)
            return (step.result or {}).get("value")

        value = fn()
        if inspect.isawaitable(value):
            value = await value
        self._record(name, kind="run", status=STEP_COMPLETED, result={"value": value})
        logger.info("Run %s completed step %r", self.run_id, name)
        return value

    async def sleep_until(self, name: str, wake_at: datetime) -> None:
        """Suspend the run until ``wake_at`` unless that moment has already passed."""
        wake_at = coerce_utc(wake_at)
        step = self._steps.get(name)
        if step is not None and step.status == STEP_COMPLETED:
            return

        if wake_at <= self._clock():
            if step is None:
                self._record(name, kind="sleep", status=STEP_COMPLETED, wake_at=wake_at)
            else:
                step.status = STEP_COMPLETED
                step.completed_at = self._clock()
                self._db.commit()
            return

        if step is None:
            self._record(name, kind="sleep", status=STEP_SLEEPING, wake_at=wake_at)
        raise WorkflowSuspended(name, wake_at)

    def _record(
        self,
        name: str,
        *,
        kind: str,
        status: str,
        result: Optional[Dict[str, Any]] = None,
        wake_at: Optional[datetime] = None,
    ) -> WorkflowStep:
        step = WorkflowStep(
            run_id=self._run.id,
            position=len(self._steps),
            name=name,
            kind=kind,
            status=status,
            result=result,
            wake_at=wake_at,
            completed_at=self._clock() if status == STEP_COMPLETED else None,
        )
        self._db.add(step)
        self._run.next_step_index = len(self._steps) + 1
        self._db.commit()
        self._steps[name] = step
        return step


class WorkflowEngine:
    """Registers workflow handlers and drives their persisted runs."""

    def __init__(
        self,
        session_factory: SessionFactory,
        clock: Clock = now_utc,
        retry_delay_seconds: int = 60,
    ):
        self._session_factory = session_factory
        self._clock = clock
        self._retry_delay = timedelta(seconds=retry_delay_seconds)
        self._handlers: Dict[str, WorkflowHandler] = {}

    @property
    def clock(self) -> Clock:
        return self._clock

    def register(self, name: str, handler: WorkflowHandler) -> None:
        self._handlers[name] = handler
        logger.info("Registered workflow %r", name)

    def trigger(self, workflow_name: str, payload: Dict[str, Any], retries: int = 0) -> str:
        """Persist a new run that is due immediately and return its id."""
        if workflow_name not in self._handlers:
            raise NotFoundError(f"Unknown workflow {workflow_name!r}")
        db = self._session_factory()
        try:
            run = WorkflowRun(
                workflow_name=workflow_name,
                payload=dict(payload),
                status=RUN_PENDING,
                next_wake_at=self._clock(),
                retries=max(0, retries),
                attempts=0,
                next_step_index=0,
            )
            db.add(run)
            db.commit()
            run_id = str(run.id)
        finally:
            db.close()
        logger.info("Triggered workflow %r run %s payload=%s", workflow_name, run_id, payload)
        return run_id

    def due_run_ids(self, limit: int = 50) -> list[str]:
        now = self._clock()
        db = self._session_factory()
        try:
            rows = db.execute(
                select(WorkflowRun.id)
                .where(
                    WorkflowRun.status.in_(RESUMABLE_STATUSES),
                    or_(WorkflowRun.next_wake_at.is_(None), WorkflowRun.next_wake_at <= now),
                )
                .order_by(WorkflowRun.next_wake_at.asc())
                .limit(limit)
            ).scalars().all()
            return [str(row) for row in rows]
        finally:
            db.close()

    async def run_due(self, limit: int = 50) -> Dict[str, Optional[str]]:
        """Resume every due run one after another. Returns run id -> resulting status."""
        results: Dict[str, Optional[str]] = {}
        for run_id in self.due_run_ids(limit):
            results[run_id] = await self.resume(run_id)
        return results

    def recover_interrupted(self) -> int:
        """Hand runs left in ``running`` by a dead process back to the poller."""
        db = self._session_factory()
        try:
            result = db.execute(
                update(WorkflowRun)
                .where(WorkflowRun.status == RUN_RUNNING)
                .values(status=RUN_PENDING, next_wake_at=self._clock())
                .execution_options(synchronize_session=False)
            )
            db.commit()
            recovered = result.rowcount or 0
        finally:
            db.close()
        if recovered:
            logger.warning("Recovered %s interrupted workflow run(s)", recovered)
        return recovered

    async def resume(self, run_id: str) -> Optional[str]:
        """Execute one pass of a due run and persist where it stopped."""
        run_uuid = parse_uuid(run_id)
        if run_uuid is None:
            return None

        db = self._session_factory()
        try:
            if not self._claim(db, run_uuid):
                run = db.get(WorkflowRun, run_uuid)
                return run.status if run else None

            run = db.get(WorkflowRun, run_uuid)
            handler = self._handlers.get(run.workflow_name)
            if handler is None:
                run.status = RUN_FAILED
                run.error = f"No handler registered for workflow {run.workflow_name!r}"
                run.finished_at = self._clock()
                db.commit()
                logger.error("Run %s failed: %s", run_id, run.error)
                return run.status

            self._wake_elapsed_sleeps(db, run)
            ctx = WorkflowContext(run, db, self._clock)
            try:
                await handler(ctx)
            except WorkflowSuspended as suspended:
                run.status = RUN_SLEEPING
                run.next_wake_at = suspended.wake_at
                db.commit()
                logger.info(
                    "Run %s suspended at step %r until %s",
                    run_id,
                    suspended.step_name,
                    suspended.wake_at.isoformat(),
                )
            except Exception as exc:
                db.rollback()
                run = db.get(WorkflowRun, run_uuid)
                self._record_failure(db, run, exc)
            else:
                run.status = RUN_COMPLETED
                run.next_wake_at = None
                run.finished_at = self._clock()
                db.commit()
                logger.info("Run %s completed (%s steps)", run_id, run.next_step_index)
            return run.status
        finally:
            db.close()

    def get_run(self, run_id: str) -> Optional[Dict[str, Any]]:
        run_uuid = parse_uuid(run_id)
        if run_uuid is None:
            return None
        db = self._session_factory()
        try:
            run = db.get(WorkflowRun, run_uuid)
            if run is None:
                return None
            return {
                "id": str(run.id),
                "workflow": run.workflow_name,
                "payload": run.payload or {},
                "status": run.status,
                "next_wake_at": coerce_utc(run.next_wake_at).isoformat() if run.next_wake_at else None,
                "next_step_index": run.next_step_index,
                "retries": run.retries,
                "attempts": run.attempts,
                "error": run.error,
                "finished_at": coerce_utc(run.finished_at).isoformat() if run.finished_at else None,
                "steps": [
                    {
                        "position": step.position,
                        "name": step.name,
                        "kind": step.kind,
                        "status": step.status,
                        "wake_at": coerce_utc(step.wake_at).isoformat() if step.wake_at else None,
                        "completed_at": coerce_utc(step.completed_at).isoformat() if step.completed_at else None,
                    }
                    for step in run.steps
                ],
            }
        finally:
            db.close()

    def _claim(self, db: Session, run_uuid) -> bool:
        now = self._clock()
        result = db.execute(
            update(WorkflowRun)
            .where(
                WorkflowRun.id == run_uuid,
                WorkflowRun.status.in_(RESUMABLE_STATUSES),
                or_(WorkflowRun.next_wake_at.is_(None), WorkflowRun.next_wake_at <= now),
            )
            .values(status=RUN_RUNNING)
            .execution_options(synchronize_session=False)
        )
        db.commit()
        return result.rowcount == 1

    def _wake_elapsed_sleeps(self, db: Session, run: WorkflowRun) -> None:
        now = self._clock()
        woke = False
        for step in run.steps:
            if step.status == STEP_SLEEPING and step.wake_at and coerce_utc(step.wake_at) <= now:
                step.status = STEP_COMPLETED
                step.completed_at = now
                woke = True
                logger.info("Run %s resumed after sleep step %r", run.id, step.name)
        if woke:
            db.commit()

    def _record_failure(self, db: Session, run: WorkflowRun, exc: Exception) -> None:
        run.attempts = (run.attempts or 0) + 1
        run.error = str(exc)[:MAX_ERROR_LENGTH]
        if run.attempts <= (run.retries or 0):
            run.status = RUN_SLEEPING
            run.next_wake_at = self._clock() + self._retry_delay
            db.commit()
            logger.warning(
                "Run %s step failed (attempt %s of %s), retrying at %s: %s",
                run.id,
                run.attempts,
                run.retries + 1,
                run.next_wake_at.isoformat(),
                exc,
            )
            return
        run.status = RUN_FAILED
        run.next_wake_at = None
        run.finished_at = self._clock()
        db.commit()
        logger.error("Run %s failed: %s", run.id, exc, exc_info=exc)
