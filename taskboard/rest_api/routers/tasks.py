"""
Tasks router.
Thin transport over the mutation coordinator: every write goes through it so
that a broadcast follows only a persisted change.
"""

from typing import Any

from fastapi import APIRouter, Body, Depends, Query, status

from taskboard.rest_api.dependencies import get_coordinator
from taskboard.rest_api.services.coordinator import MutationCoordinator


router = APIRouter(prefix="/tasks", tags=["tasks"])


@router.get("")
async def list_tasks(
    email: str | None = Query(default=None),
    coordinator: MutationCoordinator = Depends(get_coordinator),
) -> list[dict[str, Any]]:
    """
    Tasks owned by ``email``.

    Also the recovery path for reconnecting clients: they re-list instead of
    receiving the events they missed.
    """
    return await coordinator.list_tasks(email)


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_task(
    task: dict[str, Any] = Body(...),
    coordinator: MutationCoordinator = Depends(get_coordinator),
) -> dict[str, Any]:
    """Create a task; all active sessions receive ``taskAdded``."""
    return await coordinator.submit_create(task)


@router.put("/{task_id}")
async def update_task(
    task_id: str,
    fields: dict[str, Any] = Body(...),
    coordinator: MutationCoordinator = Depends(get_coordinator),
) -> dict[str, Any]:
    """
    Set the given fields on a task; ``_id`` in the body is ignored.

    404 when no task matched or the body changed nothing.
    """
    return await coordinator.submit_update(task_id, fields)


@router.delete("/{task_id}")
async def delete_task(
    task_id: str,
    coordinator: MutationCoordinator = Depends(get_coordinator),
) -> dict[str, str]:
    """Delete a task; all active sessions receive ``taskDeleted`` with the id."""
    await coordinator.submit_delete(task_id)
    return {"message": "Task deleted successfully"}
