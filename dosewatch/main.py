"""DoseWatch FastAPI Application."""

import asyncio
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from dosewatch.config import settings
from dosewatch.database import close_database
from dosewatch.logging_config import get_logger, setup_logging
from dosewatch.middleware import CorrelationIdMiddleware
from dosewatch.migrations import run_migrations
from dosewatch.routers import alert_stream, doses, escalation, health
from dosewatch.services.runtime import build_runtime
from dosewatch.services.scheduler import start_scheduler, stop_scheduler

setup_logging(
    log_format=settings.log_format,
    log_level=settings.log_level,
    service_name=settings.service_name,
)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler.

    A malformed escalation ladder raises here and aborts startup.
    """
    if settings.run_migrations:
        await asyncio.to_thread(run_migrations)

    scheduler = start_scheduler()

    app.state.escalation = None
    if settings.escalation_enabled:
        try:
            app.state.escalation = build_runtime(scheduler)
        except Exception:
            stop_scheduler()
            raise
        logger.info(
            "Escalation engine started",
            levels=len(app.state.escalation.engine.ladder),
        )
    else:
        logger.warning("Escalation engine disabled by configuration")

    logger.info("DoseWatch API started")

    yield

    logger.info("Shutting down DoseWatch API...")
    if app.state.escalation is not None:
        await app.state.escalation.engine.shutdown()
    stop_scheduler()
    await close_database()
    logger.info("DoseWatch API shutdown complete")


app = FastAPI(
    title="DoseWatch API",
    description="Missed-medication escalation service",
    version="0.1.0",
    lifespan=lifespan,
)

# Middleware (order matters: first added = last executed)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(CorrelationIdMiddleware)

app.include_router(health.router)
app.include_router(escalation.router)
app.include_router(doses.router)
app.include_router(alert_stream.router)


@app.get("/")
async def root() -> dict[str, Any]:
    """Root endpoint."""
    return {
        "name": "DoseWatch API",
        "version": "0.1.0",
        "docs": "/docs",
    }
