"""
Application lifespan handler.
Manages startup and shutdown events for the FastAPI application.
"""

import asyncio
from contextlib import asynccontextmanager

from fastapi import FastAPI

from taskboard.shared.config.logging import setup_logging, rest_api_logger as logger
from taskboard.shared.config.settings import Settings
from taskboard.ws_gateway.connection_manager import ConnectionManager


async def start_keepalive(manager: ConnectionManager, interval: float) -> None:
    """
    Periodically push a ping frame to every session.

    Runs until cancelled; a failing round is logged and the loop continues.
    """
    while True:
        try:
            await asyncio.sleep(interval)
            manager.send_keepalive()
        except asyncio.CancelledError:
            break
        except Exception as e:
            logger.error("Error in keepalive loop", error=str(e))


def validate_settings(settings: Settings) -> None:
    """Abort startup in production when the configuration is unsafe."""
    errors = settings.validate_production_settings()
    if not errors:
        return

    for error in errors:
        logger.error("Configuration error: %s", error)
    if settings.environment == "production":
        raise RuntimeError(
            f"Production configuration errors: {'; '.join(errors)}. "
            "Server will not start with unsafe configuration."
        )
    logger.warning("Running with unsafe defaults (acceptable for development only)")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan handler.

    Startup:
    - Logging and configuration checks
    - Store connection and schema (failure aborts startup)
    - Keepalive task pinging every session

    Shutdown:
    - Close every WebSocket session, abandoning queued broadcasts
    - Drain in-flight store operations, then dispose the pool
    """
    settings: Settings = app.state.settings
    store = app.state.store
    manager: ConnectionManager = app.state.connection_manager

    setup_logging(settings)
    validate_settings(settings)

    logger.info("Starting task board", port=settings.port, env=settings.environment)

    # StoreUnavailable propagates and stops the server
    await store.connect()

    keepalive_task = asyncio.create_task(
        start_keepalive(manager, interval=settings.ws_keepalive_interval),
        name="ws_keepalive",
    )

    yield

    logger.info("Shutting down task board")
    keepalive_task.cancel()
    try:
        await keepalive_task
    except asyncio.CancelledError:
        pass

    await manager.close_all()
    await store.close(drain_timeout=settings.shutdown_drain_timeout)
    logger.info("Shutdown complete")
