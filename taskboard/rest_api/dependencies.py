"""
FastAPI dependencies.
Components are built once per application in ``create_app`` and kept on
``app.state``; routes receive them through these accessors.
"""

from fastapi import Request

from taskboard.rest_api.repositories.task_store import StoreGateway
from taskboard.rest_api.services.coordinator import MutationCoordinator
from taskboard.rest_api.services.health_reporter import HealthReporter
from taskboard.shared.config.settings import Settings
from taskboard.ws_gateway.connection_manager import ConnectionManager


def get_coordinator(request: Request) -> MutationCoordinator:
    return request.app.state.coordinator


def get_store(request: Request) -> StoreGateway:
    return request.app.state.store


def get_health_reporter(request: Request) -> HealthReporter:
    return request.app.state.health_reporter


def get_connection_manager(request: Request) -> ConnectionManager:
    return request.app.state.connection_manager


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings
