"""Shared API dependencies."""
from __future__ import annotations

import hmac

from fastapi import Header, HTTPException, Request, status

from app.config import Settings, settings
from app.core.logger import get_logger
from app.core.security import get_current_user
from app.services.workflow_engine import WorkflowEngine

logger = get_logger(__name__)


def get_workflow_engine(request: Request) -> WorkflowEngine:
    engine = getattr(request.app.state, "workflow_engine", None)
    if engine is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Workflow engine is not running",
        )
    return engine


def verify_workflow_token(x_workflow_token: str | None = Header(default=None)) -> None:
    """Require the shared workflow token on trigger calls when one is configured."""
    if settings.workflow_token is None:
        return
    expected = settings.workflow_token.get_secret_value()
    if not x_workflow_token or not hmac.compare_digest(x_workflow_token, expected):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid workflow token",
        )


def warn_if_trigger_unprotected(app_settings: Settings = settings) -> bool:
    """Log a warning when production exposes the reminder trigger without a token."""
    if app_settings.app_env != "production" or app_settings.workflow_token is not None:
        return False
    logger.warning(
        "WORKFLOW_TOKEN is not set; POST /workflows/send-reminders accepts unauthenticated calls "
        "and each call starts another reminder series"
    )
    return True


__all__ = [
    "get_current_user",
    "get_workflow_engine",
    "verify_workflow_token",
    "warn_if_trigger_unprotected",
]
