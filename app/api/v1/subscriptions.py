from __future__ import annotations

from typing import Any

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, status
from sqlalchemy.orm import Session

from app.api.dependencies import get_current_user, get_workflow_engine
from app.database import get_db
from app.models import Subscription
from app.schemas.subscription import SubscriptionCreate, SubscriptionUpdate
from app.services.reminder_workflow import WORKFLOW_NAME
from app.services.subscription_service import (
    cancel_subscription,
    create_subscription,
    delete_subscription,
    get_subscription,
    list_user_subscriptions,
    serialize_subscription,
    update_subscription,
)
from app.services.workflow_engine import WorkflowEngine

router = APIRouter()


def _owned(db: Session, subscription_id: str, user: dict[str, Any]) -> Subscription:
    sub = get_subscription(db, subscription_id)
    if str(sub.user_id) != user["id"]:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")
    return sub


@router.post("/", status_code=status.HTTP_201_CREATED)
async def post_subscription(
    payload: SubscriptionCreate,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    user: dict[str, Any] = Depends(get_current_user),
    engine: WorkflowEngine = Depends(get_workflow_engine),
):
    sub = create_subscription(db, user["id"], payload.model_dump())
    run_id = engine.trigger(WORKFLOW_NAME, {"subscriptionId": str(sub.id)}, retries=0)
    background_tasks.add_task(engine.resume, run_id)
    return {
        "success": True,
        "message": "Subscription created successfully",
        "data": serialize_subscription(sub),
        "workflowRunId": run_id,
    }


@router.get("/user/{user_id}")
async def get_user_subscriptions(
    user_id: str,
    db: Session = Depends(get_db),
    user: dict[str, Any] = Depends(get_current_user),
):
    if user_id != user["id"]:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    subs = list_user_subscriptions(db, user["id"])
    return {
        "success": True,
        "message": "Subscriptions fetched successfully",
        "data": [serialize_subscription(s) for s in subs],
    }


@router.get("/{subscription_id}")
async def subscription_detail(
    subscription_id: str,
    db: Session = Depends(get_db),
    user: dict[str, Any] = Depends(get_current_user),
):
    sub = _owned(db, subscription_id, user)
    return {
        "success": True,
        "message": "Subscription fetched successfully",
        "data": serialize_subscription(sub),
    }


@router.put("/{subscription_id}")
async def put_subscription(
    subscription_id: str,
    payload: SubscriptionUpdate,
    db: Session = Depends(get_db),
    user: dict[str, Any] = Depends(get_current_user),
):
    sub = _owned(db, subscription_id, user)
    sub = update_subscription(db, sub, payload.model_dump(exclude_unset=True))
    return {
        "success": True,
        "message": "Subscription updated successfully",
        "data": serialize_subscription(sub),
    }


@router.put("/{subscription_id}/cancel")
async def put_cancel_subscription(
    subscription_id: str,
    db: Session = Depends(get_db),
    user: dict[str, Any] = Depends(get_current_user),
):
    sub = _owned(db, subscription_id, user)
    sub = cancel_subscription(db, sub)
    return {
        "success": True,
        "message": "Subscription cancelled successfully",
        "data": serialize_subscription(sub),
    }


@router.delete("/{subscription_id}")
async def remove_subscription(
    subscription_id: str,
    db: Session = Depends(get_db),
    user: dict[str, Any] = Depends(get_current_user),
):
    sub = _owned(db, subscription_id, user)
    data = delete_subscription(db, sub)
    return {
        "success": True,
        "message": "Subscription deleted successfully",
        "data": data,
    }
