"""
Health API Routes
"""
from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse

from app.database import check_database_connection, database_health

router = APIRouter()


@router.get("/health")
async def health_check(request: Request) -> JSONResponse:
    """Application, database and workflow poller health"""
    db = database_health()
    ok = bool(db.get("ok")) and check_database_connection()
    scheduler = getattr(request.app.state, "workflow_scheduler", None)
    return JSONResponse(
        status_code=status.HTTP_200_OK if ok else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "status": "healthy" if ok else "degraded",
            "database": db,
            "workflow_scheduler": bool(scheduler and scheduler.is_running),
        },
    )
