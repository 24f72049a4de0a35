from __future__ import annotations

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, status

from app.api.dependencies import get_current_user, get_workflow_engine, verify_workflow_token
from app.schemas.workflow import ReminderTrigger
from app.services.reminder_workflow import WORKFLOW_NAME
from app.services.workflow_engine import WorkflowEngine

router = APIRouter()


@router.post(
    "/send-reminders",
    status_code=status.HTTP_202_ACCEPTED,
    dependencies=[Depends(verify_workflow_token)],
)
async def send_reminders(
    payload: ReminderTrigger,
    background_tasks: BackgroundTasks,
    engine: WorkflowEngine = Depends(get_workflow_engine),
):
    run_id = engine.trigger(WORKFLOW_NAME, {"subscriptionId": payload.subscription_id}, retries=0)
    background_tasks.add_task(engine.resume, run_id)
    return {"success": True, "workflowRunId": run_id}


@router.get("/runs/{run_id}", dependencies=[Depends(get_current_user)])
async def workflow_run_detail(
    run_id: str,
    engine: WorkflowEngine = Depends(get_workflow_engine),
):
    run = engine.get_run(run_id)
    if not run:
        raise HTTPException(status_code=404, detail="Workflow run not found")
    return run
