"""
Application wiring: lifespan, CORS and exception handlers.
"""

from taskboard.rest_api.core.cors import configure_cors
from taskboard.rest_api.core.errors import register_exception_handlers
from taskboard.rest_api.core.lifespan import lifespan

__all__ = ["configure_cors", "lifespan", "register_exception_handlers"]
