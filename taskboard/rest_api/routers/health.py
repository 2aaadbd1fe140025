"""
Health check endpoints.
Provides the O(1) liveness snapshot and a detailed check that queries the
database.
"""

from typing import Any

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from taskboard.rest_api.dependencies import (
    get_app_settings,
    get_connection_manager,
    get_health_reporter,
    get_store,
)
from taskboard.rest_api.repositories.task_store import StoreGateway
from taskboard.rest_api.services.health_reporter import HealthReporter
from taskboard.shared.config.settings import Settings
from taskboard.shared.utils.health import HealthStatus, run_check
from taskboard.ws_gateway.connection_manager import ConnectionManager


router = APIRouter(tags=["health"])


@router.get("/")
def health_check(reporter: HealthReporter = Depends(get_health_reporter)) -> dict[str, Any]:
    """
    Basic health check endpoint.
    Reads in-memory state only; never touches the database.
    """
    return {"status": "ok", **reporter.report().to_dict()}


async def check_database_health(store: StoreGateway) -> dict:
    """Check database connectivity with a live query."""
    await store.ping()
    return {"in_flight": store.in_flight}


@router.get("/health/detailed")
async def detailed_health_check(
    store: StoreGateway = Depends(get_store),
    reporter: HealthReporter = Depends(get_health_reporter),
    manager: ConnectionManager = Depends(get_connection_manager),
    settings: Settings = Depends(get_app_settings),
):
    """
    Detailed health check that verifies connectivity to the database.

    Returns 503 Service Unavailable if the database is down.
    """
    database = await run_check(
        "database",
        lambda: check_database_health(store),
        timeout=settings.health_check_timeout,
    )

    checks = {
        "service": "taskboard",
        "environment": settings.environment,
        **reporter.report().to_dict(),
        "dependencies": {"database": database.to_dict()},
        "websocket": manager.get_stats(),
    }

    checks["status"] = (
        HealthStatus.HEALTHY.value if database.healthy else HealthStatus.DEGRADED.value
    )

    if not database.healthy:
        return JSONResponse(content=checks, status_code=503)

    return checks
