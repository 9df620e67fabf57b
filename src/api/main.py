"""
FILE: src/api/main.py
"""

import logging
from contextlib import asynccontextmanager

from fastapi import APIRouter, FastAPI, Request, status
from fastapi.responses import JSONResponse

from src.api.observability import setup_observability
from src.api.persistence_profile import validate_persistence_profile_guardrails
from src.api.routers.financial_reports import (
    get_financial_report_repository,
)
from src.api.routers.financial_reports import (
    router as financial_report_router,
)
from src.api.routers.financial_reports_config import (
    outdated_job_enabled,
    outdated_job_interval_seconds,
)
from src.core.reporting import schedule_outdated_reports_job, stop_outdated_reports_job


@asynccontextmanager
async def _app_lifespan(app: FastAPI):
    validate_persistence_profile_guardrails()
    app.state.outdated_reports_job = None
    if outdated_job_enabled():
        app.state.outdated_reports_job = schedule_outdated_reports_job(
            repository_provider=get_financial_report_repository,
            interval_seconds=outdated_job_interval_seconds(),
        )
    try:
        yield
    finally:
        handle = app.state.outdated_reports_job
        if handle is not None:
            stop_outdated_reports_job(handle)
            app.state.outdated_reports_job = None


app = FastAPI(
    title="Financial Reporting Snapshot API",
    version="0.1.0",
    description=(
        "Immutable financial report snapshots with checksum verification, version history, "
        "and background detection of reports whose source data changed after submission."
    ),
    openapi_tags=[
        {
            "name": "Financial Report Snapshots",
            "description": "Snapshot, integrity, versioning, and approval workflow endpoints.",
        },
        {
            "name": "Health",
            "description": "Liveness and readiness probes.",
        },
    ],
    lifespan=_app_lifespan,
)

setup_observability(app)
logger = logging.getLogger(__name__)

app.include_router(financial_report_router)


health_router = APIRouter(tags=["Health"])


@health_router.get("/health", summary="Health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@health_router.get("/health/live", summary="Liveness")
def health_live() -> dict[str, str]:
    return {"status": "live"}


@health_router.get("/health/ready", summary="Readiness")
def health_ready() -> dict[str, str]:
    return {"status": "ready"}


app.include_router(health_router)
app.include_router(health_router, prefix="/api/v1")


@app.exception_handler(Exception)
async def unhandled_exception_to_problem_details(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled exception while serving request", exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        media_type="application/problem+json",
        content={
            "type": "about:blank",
            "title": "Internal Server Error",
            "status": 500,
            "detail": "An unexpected error occurred.",
            "instance": str(request.url.path),
        },
    )
