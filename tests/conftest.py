"""
Pytest configuration and fixtures for task board tests.
"""

import asyncio

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from starlette.websockets import WebSocketState
from unittest.mock import AsyncMock

from taskboard.main import create_app
from taskboard.rest_api.repositories.task_store import StoreGateway
from taskboard.shared.config.settings import Settings
from taskboard.shared.infrastructure.db import build_engine


# SQLite in-memory database for testing. One shared connection (StaticPool),
# so the gateway runs a single store operation at a time.
SQLALCHEMY_DATABASE_URL = "sqlite://"


def make_settings(**overrides) -> Settings:
    values = {
        "database_url": SQLALCHEMY_DATABASE_URL,
        "environment": "testing",
        "debug": False,
        "store_max_concurrency": 1,
        "ws_keepalive_interval": 3600.0,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


def make_websocket() -> AsyncMock:
    """A connected WebSocket stand-in whose sends are recorded."""
    ws = AsyncMock()
    ws.client_state = WebSocketState.CONNECTED
    ws.application_state = WebSocketState.CONNECTED
    return ws


def sent_frames(ws: AsyncMock) -> list[dict]:
    return [call.args[0] for call in ws.send_json.await_args_list]


async def wait_for_frames(ws: AsyncMock, count: int, timeout: float = 1.0) -> list[dict]:
    """Yield to the writer tasks until ``ws`` has been sent ``count`` frames."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while ws.send_json.await_count < count:
        if loop.time() > deadline:
            raise AssertionError(
                f"expected {count} frames, got {ws.send_json.await_count}: {sent_frames(ws)}"
            )
        await asyncio.sleep(0.005)
    return sent_frames(ws)


@pytest.fixture
def test_settings() -> Settings:
    return make_settings()


@pytest.fixture(scope="function")
def app(test_settings):
    """A fresh application with its own in-memory database."""
    return create_app(test_settings)


@pytest.fixture(scope="function")
def client(app):
    """
    Create a test client. Entering the client runs the lifespan, which
    connects the store and creates the schema.
    """
    with TestClient(app) as test_client:
        yield test_client


@pytest_asyncio.fixture
async def store(test_settings):
    """A connected store gateway over a fresh in-memory database."""
    gateway = StoreGateway(build_engine(test_settings), max_concurrency=1)
    await gateway.connect()
    yield gateway
    await gateway.close(drain_timeout=1.0)
