"""
Health Reporter.

Aggregate liveness from component state already held in memory: the store
gateway's connection flag and the registry's active session count. No
query is issued, so ``report()`` is O(1) and safe to call at any rate.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from taskboard.rest_api.repositories.task_store import StoreGateway
    from taskboard.ws_gateway.registry import ConnectionRegistry


@dataclass(frozen=True, slots=True)
class HealthReport:
    store_reachable: bool
    active_session_count: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "storeReachable": self.store_reachable,
            "activeSessionCount": self.active_session_count,
        }


class HealthReporter:
    """Read-only view over store and registry liveness."""

    def __init__(self, store: "StoreGateway", registry: "ConnectionRegistry") -> None:
        self._store = store
        self._registry = registry

    def report(self) -> HealthReport:
        return HealthReport(
            store_reachable=self._store.is_connected,
            active_session_count=self._registry.active_count,
        )
