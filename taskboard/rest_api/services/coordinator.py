"""
Mutation Coordinator.

Sequences "persist, then notify" for every task write:

1. Call the store gateway and wait for it to return.
2. Only if the gateway reports an actual state change, build a ChangeEvent.
3. Hand the event to the sink (the broadcast fanout) synchronously, in the
   same event loop step in which the store call returned.

Because step 3 never awaits, events leave the coordinator in exactly the
order their persistence calls returned. Store errors propagate to the
caller before any event exists; sink errors never propagate at all.

No lock is held across requests. Concurrent writes to the same task are
resolved by the store (last write wins) and broadcast in completion order.
"""

from __future__ import annotations

from typing import Any

from taskboard.rest_api.models import ID_FIELD, OWNER_FIELD
from taskboard.rest_api.repositories.task_store import StoreGateway
from taskboard.rest_api.services.change_event import ChangeEvent, EventSink
from taskboard.shared.config.logging import get_logger, mask_email
from taskboard.shared.utils.exceptions import NotFound

logger = get_logger(__name__)


class MutationCoordinator:
    """
    Ties persisted task mutations to change events.

    Usage:
        coordinator = MutationCoordinator(gateway, fanout)
        task = await coordinator.submit_create({"userEmail": "a@x.com", "title": "T1"})
    """

    def __init__(self, store: StoreGateway, sink: EventSink) -> None:
        self._store = store
        self._sink = sink

    # =========================================================================
    # Writes (emit on success)
    # =========================================================================

    async def submit_create(self, task: dict[str, Any]) -> dict[str, Any]:
        """
        Persist a new task and broadcast ``taskAdded``.

        Returns:
            The created task including its assigned ``_id``.

        Raises:
            InvalidRequest: If ``userEmail`` is missing.
            StoreUnavailable: If the insert failed. Nothing is emitted.
        """
        task_id = await self._store.create(task)

        document = {ID_FIELD: task_id, **{k: v for k, v in task.items() if k != ID_FIELD}}
        self._publish(ChangeEvent.added(document))

        logger.info(
            "Task created",
            task_id=task_id,
            owner=mask_email(document.get(OWNER_FIELD)),
        )
        return document

    async def submit_update(self, task_id: str, fields: dict[str, Any]) -> dict[str, Any]:
        """
        Apply field changes and broadcast ``taskUpdated`` with the full task.

        Raises:
            NotFound: If no task matched or nothing changed. Nothing is emitted.
            StoreUnavailable: If the update failed. Nothing is emitted.
        """
        result = await self._store.update(task_id, fields)

        if result.modified == 0:
            raise NotFound("Task", task_id, matched=result.matched)

        self._publish(ChangeEvent.updated(result.task))

        logger.info("Task updated", task_id=task_id, fields=sorted(fields))
        return result.task

    async def submit_delete(self, task_id: str) -> None:
        """
        Delete a task and broadcast ``taskDeleted`` with the bare identifier.

        Raises:
            NotFound: If nothing was deleted. Nothing is emitted.
            StoreUnavailable: If the delete failed. Nothing is emitted.
        """
        deleted = await self._store.delete(task_id)

        if deleted == 0:
            raise NotFound("Task", task_id)

        self._publish(ChangeEvent.deleted(task_id))

        logger.info("Task deleted", task_id=task_id)

    # =========================================================================
    # Pass-through operations (no events)
    # =========================================================================

    async def list_tasks(self, email: str | None) -> list[dict[str, Any]]:
        """
        Tasks owned by ``email``.

        Clients call this after reconnecting to rebuild state; missed
        events are never replayed.
        """
        return await self._store.list_by_owner(email)

    async def create_user(self, user: dict[str, Any]) -> str:
        """Persist a user record. Users are not broadcast."""
        user_id = await self._store.create_user(user)
        email = user.get("email")
        logger.info(
            "User created",
            user_id=user_id,
            email=mask_email(email if isinstance(email, str) else None),
        )
        return user_id

    # =========================================================================
    # Internal
    # =========================================================================

    def _publish(self, event: ChangeEvent) -> None:
        """Hand an event to the sink. The write already succeeded; never raise."""
        try:
            self._sink.emit(event)
        except Exception as e:
            logger.error(
                "Broadcast side effect failed",
                event_type=event.kind.value,
                task_id=event.task_id,
                error=str(e),
                exc_info=True,
            )
