"""
Users router.
"""

from typing import Any

from fastapi import APIRouter, Body, Depends, status

from taskboard.rest_api.dependencies import get_coordinator
from taskboard.rest_api.services.coordinator import MutationCoordinator


router = APIRouter(prefix="/users", tags=["users"])


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_user(
    user: dict[str, Any] = Body(...),
    coordinator: MutationCoordinator = Depends(get_coordinator),
) -> dict[str, Any]:
    """Store a user record. Users are not broadcast."""
    user_id = await coordinator.create_user(user)
    return {"acknowledged": True, "insertedId": user_id}
