"""
Infrastructure: database engine construction and request correlation.
"""

from taskboard.shared.infrastructure.db import (
    build_engine,
    build_session_factory,
    session_scope,
)
from taskboard.shared.infrastructure.correlation import (
    CorrelationIdFilter,
    CorrelationIdMiddleware,
    bind_request_id,
    get_request_id,
    resolve_request_id,
)

__all__ = [
    "build_engine",
    "build_session_factory",
    "session_scope",
    "CorrelationIdFilter",
    "CorrelationIdMiddleware",
    "bind_request_id",
    "get_request_id",
    "resolve_request_id",
]
