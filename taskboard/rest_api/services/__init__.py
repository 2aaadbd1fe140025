"""
Domain services: change events, the mutation coordinator and the health
reporter.
"""

from taskboard.rest_api.services.change_event import ChangeEvent, ChangeKind, EventSink
from taskboard.rest_api.services.coordinator import MutationCoordinator
from taskboard.rest_api.services.health_reporter import HealthReport, HealthReporter

__all__ = [
    "ChangeEvent",
    "ChangeKind",
    "EventSink",
    "MutationCoordinator",
    "HealthReport",
    "HealthReporter",
]
