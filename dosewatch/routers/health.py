"""Health check endpoints for container orchestration."""

from typing import Any

from fastapi import APIRouter, Request, Response, status
from fastapi.responses import JSONResponse

from dosewatch.database import check_database_connection

router = APIRouter(tags=["Health"])


@router.get("/health", response_model=None)
async def health_check(request: Request) -> Response:
    """
    Health check endpoint with database and escalation engine status.

    Returns 200 when the database is reachable, 503 otherwise.
    """
    db_connected = await check_database_connection()
    runtime = getattr(request.app.state, "escalation", None)

    content: dict[str, Any] = {
        "status": "healthy" if db_connected else "degraded",
        "database": "connected" if db_connected else "disconnected",
        "escalation_engine": "running" if runtime is not None else "stopped",
    }
    if runtime is not None:
        content["active_escalations"] = len(runtime.engine.active())

    return JSONResponse(
        status_code=status.HTTP_200_OK if db_connected else status.HTTP_503_SERVICE_UNAVAILABLE,
        content=content,
    )


@router.get("/health/live")
async def liveness_probe() -> dict[str, Any]:
    """
    Liveness probe.

    Returns success if the application process is running. Does not check
    external dependencies.
    """
    return {"status": "alive"}


@router.get("/health/ready", response_model=None)
async def readiness_probe() -> Response:
    """
    Readiness probe.

    Checks database connectivity, which the contact directory and
    alert log depend on.
    """
    if await check_database_connection():
        return JSONResponse(
            status_code=status.HTTP_200_OK,
            content={"status": "ready", "database": "connected"},
        )
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"status": "not_ready", "database": "disconnected"},
    )
