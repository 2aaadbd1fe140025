"""
Centralized exceptions for consistent error handling.

The store gateway and the mutation coordinator raise these; the HTTP layer
turns them into ``{"error": ...}`` responses with the carried status code.

Usage:
    from taskboard.shared.utils.exceptions import NotFound, InvalidRequest

    raise NotFound("Task", task_id)
    raise InvalidRequest("Email required", field="email")
"""

from typing import Any

from fastapi import status

from taskboard.shared.config.logging import get_logger

logger = get_logger(__name__)


class TaskboardError(Exception):
    """
    Base exception with automatic logging.

    All domain exceptions inherit from this class to ensure consistent
    logging and response format.
    """

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(
        self,
        detail: str,
        log_level: str = "warning",
        **log_context: Any,
    ):
        log_fn = getattr(logger, log_level, logger.warning)
        log_fn(detail, status_code=self.status_code, **log_context)

        super().__init__(detail)
        self.detail = detail
        self.log_context = log_context


# =============================================================================
# 400 Bad Request Errors
# =============================================================================


class InvalidRequest(TaskboardError):
    """
    A required field is missing or malformed (400).

    Usage:
        raise InvalidRequest("Email required", field="email")
    """

    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, detail: str, **log_context: Any):
        super().__init__(detail, log_level="warning", **log_context)


# =============================================================================
# 404 Not Found Errors
# =============================================================================


class NotFound(TaskboardError):
    """
    Mutation target absent, or the write changed nothing (404).

    Usage:
        raise NotFound("Task", task_id)
    """

    status_code = status.HTTP_404_NOT_FOUND

    def __init__(self, entity: str, entity_id: str | None = None, **log_context: Any):
        super().__init__(
            f"{entity} not found",
            log_level="info",
            entity=entity,
            entity_id=entity_id,
            **log_context,
        )
        self.entity = entity
        self.entity_id = entity_id


# =============================================================================
# 500 Internal Server Errors
# =============================================================================


class StoreUnavailable(TaskboardError):
    """
    Persistence layer unreachable, timed out, or out of pool slots (500).

    Usage:
        raise StoreUnavailable("update", error=str(exc))
    """

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, operation: str, **log_context: Any):
        super().__init__(
            f"Store unavailable during {operation}",
            log_level="error",
            operation=operation,
            **log_context,
        )
        self.operation = operation


# =============================================================================
# Realtime handshake errors
# =============================================================================


class Unauthorized(TaskboardError):
    """
    WebSocket handshake without an identity claim.

    Not an HTTP response: the gateway closes the socket with the
    ``AUTH_FAILED`` close code and this message as the reason.
    """

    status_code = status.HTTP_401_UNAUTHORIZED

    def __init__(self, reason: str = "Unauthorized", **log_context: Any):
        super().__init__(reason, log_level="warning", **log_context)
