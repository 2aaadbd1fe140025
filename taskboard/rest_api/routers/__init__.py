"""
HTTP routers: tasks, users and health.
"""

from taskboard.rest_api.routers.health import router as health_router
from taskboard.rest_api.routers.tasks import router as tasks_router
from taskboard.rest_api.routers.users import router as users_router

__all__ = ["health_router", "tasks_router", "users_router"]
