"""
Task board main application.
Entry point for the FastAPI server: REST endpoints and the realtime feed
run in one process and share one connection manager.
"""

from fastapi import FastAPI

from taskboard import __version__
from taskboard.rest_api.core.cors import configure_cors
from taskboard.rest_api.core.errors import register_exception_handlers
from taskboard.rest_api.core.lifespan import lifespan
from taskboard.rest_api.repositories.task_store import StoreGateway
from taskboard.rest_api.routers import health_router, tasks_router, users_router
from taskboard.rest_api.services.coordinator import MutationCoordinator
from taskboard.rest_api.services.health_reporter import HealthReporter
from taskboard.shared.config.settings import Settings, get_settings
from taskboard.shared.infrastructure.correlation import CorrelationIdMiddleware
from taskboard.shared.infrastructure.db import build_engine
from taskboard.ws_gateway.connection_manager import ConnectionManager
from taskboard.ws_gateway.endpoint import router as feed_router


def create_app(settings: Settings | None = None) -> FastAPI:
    """
    Build the application and its components.

    Components live on ``app.state`` so every app (one per test, one per
    process in production) has its own store, registry and fanout.
    """
    settings = settings or get_settings()

    app = FastAPI(
        title="Task Board",
        description="Shared task list with realtime change notifications",
        version=__version__,
        lifespan=lifespan,
    )

    store = StoreGateway(build_engine(settings), max_concurrency=settings.store_max_concurrency)
    manager = ConnectionManager.from_settings(settings)

    app.state.settings = settings
    app.state.store = store
    app.state.connection_manager = manager
    app.state.coordinator = MutationCoordinator(store, manager)
    app.state.health_reporter = HealthReporter(store, manager.registry)

    register_exception_handlers(app)
    app.add_middleware(CorrelationIdMiddleware)
    configure_cors(app, settings)

    app.include_router(health_router)
    app.include_router(users_router)
    app.include_router(tasks_router)
    app.include_router(feed_router)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = app.state.settings
    uvicorn.run(
        app,
        host="0.0.0.0",
        port=settings.port,
        ws_ping_interval=settings.ws_ping_interval,
        ws_ping_timeout=settings.ws_ping_timeout,
    )
