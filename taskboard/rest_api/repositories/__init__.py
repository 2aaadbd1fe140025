"""
Repository layer: data access for tasks and users.
"""

from taskboard.rest_api.repositories.task_store import StoreGateway, UpdateResult

__all__ = [
    "StoreGateway",
    "UpdateResult",
]
