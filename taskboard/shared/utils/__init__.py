"""
Utilities: domain exceptions and health check helpers.
"""

from taskboard.shared.utils.exceptions import (
    TaskboardError,
    InvalidRequest,
    NotFound,
    StoreUnavailable,
    Unauthorized,
)
from taskboard.shared.utils.health import (
    HealthStatus,
    CheckResult,
    run_check,
)

__all__ = [
    # exceptions
    "TaskboardError",
    "InvalidRequest",
    "NotFound",
    "StoreUnavailable",
    "Unauthorized",
    # health
    "HealthStatus",
    "CheckResult",
    "run_check",
]
