"""
Store Gateway.

CRUD over the task and user collections; the source of truth for the board.

The SQLAlchemy driver is synchronous, so every operation runs on a worker
thread via ``asyncio.to_thread``. A semaphore caps outstanding operations at
``store_max_concurrency`` so a burst of requests queues on the event loop
instead of exhausting the connection pool.

Each operation touches a single row inside a single transaction. Driver
level failures (connection refused, dropped, timed out, pool exhausted)
surface as ``StoreUnavailable`` and flip ``is_connected`` to False until the
next successful operation.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Callable, TypeVar

from sqlalchemy import Engine, delete, select, text
from sqlalchemy.exc import (
    DisconnectionError,
    InterfaceError,
    OperationalError,
    SQLAlchemyError,
    TimeoutError as PoolTimeoutError,
)

from taskboard.rest_api.models import ID_FIELD, OWNER_FIELD, Base, Task, User
from taskboard.shared.config.logging import get_logger, mask_email
from taskboard.shared.infrastructure.db import build_session_factory, session_scope
from taskboard.shared.utils.exceptions import InvalidRequest, StoreUnavailable

logger = get_logger(__name__)

T = TypeVar("T")

_MISSING = object()

# Failures that mean the database itself is unreachable
_CONNECTIVITY_ERRORS = (
    OperationalError,
    InterfaceError,
    DisconnectionError,
    PoolTimeoutError,
)


@dataclass(frozen=True, slots=True)
class UpdateResult:
    """
    Outcome of an update.

    Attributes:
        matched: 1 if a task with the identifier exists, else 0
        modified: 1 if the stored document actually changed, else 0
        task: Full document as committed (None when nothing matched)
    """

    matched: int
    modified: int
    task: dict[str, Any] | None = None


def _require_email(value: Any, message: str, field: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise InvalidRequest(message, field=field)
    return value


class StoreGateway:
    """
    Async facade over the task/user tables.

    Usage:
        gateway = StoreGateway(engine, max_concurrency=10)
        await gateway.connect()
        task_id = await gateway.create({"userEmail": "a@x.com", "title": "T1"})
    """

    def __init__(self, engine: Engine, max_concurrency: int = 10) -> None:
        self._engine = engine
        self._session_factory = build_session_factory(engine)
        self._slots = asyncio.Semaphore(max_concurrency)
        self._max_concurrency = max_concurrency
        self._connected = False
        self._closing = False
        self._in_flight = 0
        self._idle = asyncio.Event()
        self._idle.set()

    # =========================================================================
    # Connection state
    # =========================================================================

    @property
    def is_connected(self) -> bool:
        """Whether the last store interaction succeeded. O(1), no query."""
        return self._connected and not self._closing

    @property
    def in_flight(self) -> int:
        """Number of store operations currently executing."""
        return self._in_flight

    async def connect(self) -> None:
        """
        Verify connectivity and create the schema.

        Raises:
            StoreUnavailable: If the database cannot be reached. Callers at
                startup treat this as fatal.
        """
        try:
            await asyncio.to_thread(self._connect_sync)
        except SQLAlchemyError as e:
            self._connected = False
            raise StoreUnavailable("connect", error=str(e)) from e
        self._connected = True
        logger.info("Store connected", dialect=self._engine.dialect.name)

    def _connect_sync(self) -> None:
        with self._engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        Base.metadata.create_all(bind=self._engine)

    async def ping(self) -> None:
        """Run a live ``SELECT 1``. Used by the detailed health check only."""
        await self._run("ping", self._ping_sync)

    def _ping_sync(self) -> None:
        with self._engine.connect() as conn:
            conn.execute(text("SELECT 1"))

    async def close(self, drain_timeout: float = 10.0) -> None:
        """
        Stop accepting operations, wait for in-flight ones, dispose the pool.

        Operations still running after ``drain_timeout`` are abandoned.
        """
        self._closing = True
        if self._in_flight:
            logger.info("Draining store operations", in_flight=self._in_flight)
            try:
                await asyncio.wait_for(self._idle.wait(), timeout=drain_timeout)
            except asyncio.TimeoutError:
                logger.warning(
                    "Store drain timeout, abandoning operations",
                    remaining=self._in_flight,
                    timeout=drain_timeout,
                )
        self._engine.dispose()
        self._connected = False
        logger.info("Store connection pool closed")

    async def _run(self, operation: str, fn: Callable[..., T], *args: Any) -> T:
        """Execute ``fn`` on a worker thread inside a concurrency slot."""
        if self._closing:
            raise StoreUnavailable(operation, reason="shutting_down")

        async with self._slots:
            self._in_flight += 1
            self._idle.clear()
            try:
                result = await asyncio.to_thread(fn, *args)
            except _CONNECTIVITY_ERRORS as e:
                self._connected = False
                raise StoreUnavailable(operation, error=str(e)) from e
            except SQLAlchemyError as e:
                raise StoreUnavailable(operation, error=str(e)) from e
            finally:
                self._in_flight -= 1
                if self._in_flight == 0:
                    self._idle.set()

        self._connected = True
        return result

    # =========================================================================
    # Tasks
    # =========================================================================

    async def create(self, task: dict[str, Any]) -> str:
        """
        Insert a task and return its newly assigned identifier.

        A client-supplied ``_id`` is discarded; ``userEmail`` is required.
        """
        owner = _require_email(task.get(OWNER_FIELD), "userEmail required", OWNER_FIELD)
        fields = {k: v for k, v in task.items() if k not in (ID_FIELD, OWNER_FIELD)}
        task_id = await self._run("create", self._create_sync, owner, fields)
        logger.debug("Task inserted", task_id=task_id, owner=mask_email(owner))
        return task_id

    def _create_sync(self, owner: str, fields: dict[str, Any]) -> str:
        with session_scope(self._session_factory) as db:
            row = Task(user_email=owner, fields=fields)
            db.add(row)
            db.flush()
            return row.id

    async def list_by_owner(self, email: str | None) -> list[dict[str, Any]]:
        """All tasks owned by ``email``, oldest first."""
        owner = _require_email(email, "Email required", "email")
        return await self._run("list", self._list_sync, owner)

    def _list_sync(self, owner: str) -> list[dict[str, Any]]:
        with session_scope(self._session_factory) as db:
            rows = db.execute(
                select(Task)
                .where(Task.user_email == owner)
                .order_by(Task.created_at, Task.id)
            ).scalars().all()
            return [row.to_document() for row in rows]

    async def update(self, task_id: str, fields: dict[str, Any]) -> UpdateResult:
        """
        Set the given fields on a task and return the committed document.

        ``_id`` in ``fields`` is stripped so identifiers stay immutable.
        Fields not mentioned keep their stored values. The full document is
        read back in the same transaction as the write.
        """
        changes = {k: v for k, v in fields.items() if k != ID_FIELD}
        new_owner = changes.pop(OWNER_FIELD, _MISSING)
        if new_owner is _MISSING:
            new_owner = None
        else:
            _require_email(new_owner, "userEmail must be a non-empty string", OWNER_FIELD)
        return await self._run("update", self._update_sync, task_id, changes, new_owner)

    def _update_sync(
        self,
        task_id: str,
        changes: dict[str, Any],
        new_owner: str | None,
    ) -> UpdateResult:
        with session_scope(self._session_factory) as db:
            row = db.scalar(select(Task).where(Task.id == task_id).with_for_update())
            if row is None:
                return UpdateResult(matched=0, modified=0)

            current = dict(row.fields or {})
            merged = {**current, **changes}
            owner = new_owner if new_owner is not None else row.user_email

            if merged == current and owner == row.user_email:
                return UpdateResult(matched=1, modified=0, task=row.to_document())

            row.fields = merged
            row.user_email = owner
            db.flush()
            return UpdateResult(matched=1, modified=1, task=row.to_document())

    async def delete(self, task_id: str) -> int:
        """Delete a task. Returns the number of rows removed (0 or 1)."""
        return await self._run("delete", self._delete_sync, task_id)

    def _delete_sync(self, task_id: str) -> int:
        with session_scope(self._session_factory) as db:
            result = db.execute(delete(Task).where(Task.id == task_id))
            return result.rowcount or 0

    # =========================================================================
    # Users
    # =========================================================================

    async def create_user(self, user: dict[str, Any]) -> str:
        """Insert a user record and return its identifier."""
        email = user.get("email")
        if not isinstance(email, str):
            email = None
        fields = {
            k: v for k, v in user.items()
            if k != ID_FIELD and not (k == "email" and email is not None)
        }
        return await self._run("create_user", self._create_user_sync, email, fields)

    def _create_user_sync(self, email: str | None, fields: dict[str, Any]) -> str:
        with session_scope(self._session_factory) as db:
            row = User(email=email, fields=fields)
            db.add(row)
            db.flush()
            return row.id
