"""
SQLAlchemy ORM models for the task board.

Task and User rows keep their identity and the fields the service indexes
on as columns; everything else the client sends lives in a schema-free JSON
document.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any, Optional

from sqlalchemy import JSON, DateTime, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# Wire names shared with the clients
ID_FIELD = "_id"
OWNER_FIELD = "userEmail"


def new_identifier() -> str:
    """Opaque identifier assigned by the store on insert."""
    return uuid.uuid4().hex


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class TimestampMixin:
    """Audit timestamps maintained by the database."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), onupdate=func.now(), nullable=True
    )


class Task(TimestampMixin, Base):
    """
    A task on the shared board.

    ``id`` is assigned on insert and never rewritten. ``user_email`` is the
    owner, set at creation and changed only by an update that carries it.
    """

    __tablename__ = "task"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_identifier)
    user_email: Mapped[str] = mapped_column(String(320), nullable=False, index=True)
    fields: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)

    def to_document(self) -> dict[str, Any]:
        """Serialize to the wire shape: ``{"_id", "userEmail", **fields}``."""
        return {ID_FIELD: self.id, OWNER_FIELD: self.user_email, **(self.fields or {})}


class User(TimestampMixin, Base):
    """An application user. Not linked to Task rows at the data layer."""

    __tablename__ = "app_user"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_identifier)
    email: Mapped[Optional[str]] = mapped_column(String(320), nullable=True, index=True)
    fields: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
