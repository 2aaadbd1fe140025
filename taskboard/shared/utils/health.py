"""
Dependency checks for the detailed health check.

A check is any coroutine that raises when its dependency is unhealthy and
may return a dict of facts worth reporting. ``run_check`` bounds it with a
deadline and turns the outcome into a ``CheckResult`` that never raises.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable

from taskboard.shared.config.logging import get_logger
from taskboard.shared.utils.exceptions import TaskboardError

logger = get_logger(__name__)

HealthCheck = Callable[[], Awaitable[dict[str, Any] | None]]


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
    DEGRADED = "degraded"


@dataclass(frozen=True)
class CheckResult:
    status: HealthStatus
    latency_ms: float
    error: str | None = None
    facts: dict[str, Any] | None = None

    @property
    def healthy(self) -> bool:
        return self.status is HealthStatus.HEALTHY

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {
            "status": self.status.value,
            "latency_ms": round(self.latency_ms, 2),
        }
        if self.error:
            body["error"] = self.error
        if self.facts:
            body.update(self.facts)
        return body


async def run_check(name: str, check: HealthCheck, timeout: float) -> CheckResult:
    """
    Run ``check`` with a deadline.

    Domain errors report their public message; anything else reports the
    exception text.
    """
    started = time.perf_counter()

    def elapsed() -> float:
        return (time.perf_counter() - started) * 1000

    try:
        facts = await asyncio.wait_for(check(), timeout=timeout)
    except asyncio.TimeoutError:
        logger.warning("Health check timed out", check=name, timeout=timeout)
        return CheckResult(HealthStatus.UNHEALTHY, elapsed(), error=f"timeout after {timeout}s")
    except TaskboardError as e:
        logger.warning("Health check failed", check=name, error=e.detail)
        return CheckResult(HealthStatus.UNHEALTHY, elapsed(), error=e.detail)
    except Exception as e:
        logger.warning("Health check failed", check=name, error=str(e))
        return CheckResult(HealthStatus.UNHEALTHY, elapsed(), error=str(e))

    return CheckResult(HealthStatus.HEALTHY, elapsed(), facts=facts or None)
