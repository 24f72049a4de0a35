"""
Subscription Tracker - FastAPI Application
Subscriptions, bearer auth and durable renewal reminders
"""
from fastapi import FastAPI, Depends, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware

from app.database import SessionLocal, init_db
from app.config import Settings, settings
from app.core.clock import Clock, now_utc
from app.core.exceptions import AppError
from app.core.logger import configure_logging, get_logger
from app.core.security import get_current_user
from app.integrations.email import EmailService
from app.services.notification_service import ReminderNotifier
from app.services.reminder_workflow import WORKFLOW_NAME, ReminderWorkflow
from app.services.subscription_service import SubscriptionRepository
from app.services.workflow_engine import WorkflowEngine
from app.services.workflow_scheduler import WorkflowScheduler

from app.api.dependencies import warn_if_trigger_unprotected
from app.api.routes import health, auth
from app.api.v1 import subscriptions, users, workflows

configure_logging(settings.log_level)
logger = get_logger(__name__)


def create_workflow_engine(
    app_settings: Settings = settings,
    session_factory=SessionLocal,
    clock: Clock = now_utc,
    notifier: ReminderNotifier | None = None,
) -> WorkflowEngine:
    """Wire the durable host with the reminder workflow and its collaborators."""
    engine = WorkflowEngine(
        session_factory,
        clock=clock,
        retry_delay_seconds=app_settings.workflow_retry_delay_seconds,
    )
    notifier = notifier or ReminderNotifier(EmailService(app_settings), days=app_settings.reminder_days)
    engine.register(
        WORKFLOW_NAME,
        ReminderWorkflow(
            subscriptions=SubscriptionRepository(session_factory),
            notifier=notifier,
            clock=clock,
            days=app_settings.reminder_days,
            recheck_status=app_settings.reminder_recheck_status,
        ),
    )
    return engine


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handle startup and shutdown events."""
    logger.info("Starting %s...", settings.app_name)

    init_db()
    logger.info("Database initialized")

    engine = create_workflow_engine()
    app.state.workflow_engine = engine

    scheduler = WorkflowScheduler(
        engine,
        poll_seconds=settings.workflow_poll_seconds,
        batch_size=settings.workflow_batch_size,
    )
    app.state.workflow_scheduler = scheduler
    if settings.workflow_scheduler_enabled:
        scheduler.start()
    else:
        logger.info("Workflow scheduler disabled by configuration")

    warn_if_trigger_unprotected(settings)
    logger.info("API running on %s environment", settings.app_env)
    yield
    # Shutdown
    await scheduler.stop()
    logger.info("Shutting down %s...", settings.app_name)


app = FastAPI(
    title=settings.app_name,
    description="Backend API for tracking subscriptions and renewal reminders",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(ProxyHeadersMiddleware, trusted_hosts="*")

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": str(exc)},
    )


@app.get("/")
async def root() -> dict:
    return {
        "name": settings.app_name,
        "message": "Welcome to the Subscription Tracker API",
        "environment": settings.app_env,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


prefix = settings.api_v1_prefix
app.include_router(health.router, prefix=prefix, tags=["Health"])
app.include_router(auth.router, prefix=f"{prefix}/auth", tags=["Auth"])
app.include_router(
    users.router, prefix=f"{prefix}/users", tags=["Users"], dependencies=[Depends(get_current_user)]
)
app.include_router(subscriptions.router, prefix=f"{prefix}/subscriptions", tags=["Subscriptions"])
app.include_router(workflows.router, prefix=f"{prefix}/workflows", tags=["Workflows"])
