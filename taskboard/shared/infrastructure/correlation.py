"""
Correlation IDs for log lines.

An HTTP request and a WebSocket session each get one ID, held in a context
variable for as long as they run. Tasks spawned meanwhile (a session's
writer, for example) copy the context and keep the same ID, so every log
line about one request or one connection can be grouped.
"""

import re
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Callable, Iterator

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

HEADER_NAME = "X-Request-ID"

# Client supplied IDs end up in log lines; anything else is replaced
_VALID_ID = re.compile(r"[A-Za-z0-9._:-]{1,64}")

request_id_var: ContextVar[str] = ContextVar("request_id", default="")


def get_request_id() -> str:
    return request_id_var.get()


def resolve_request_id(candidate: str | None) -> str:
    """Reuse a well-formed client ID, otherwise mint a new one."""
    if candidate and _VALID_ID.fullmatch(candidate):
        return candidate
    return uuid.uuid4().hex


@contextmanager
def bind_request_id(request_id: str) -> Iterator[str]:
    token = request_id_var.set(request_id)
    try:
        yield request_id
    finally:
        request_id_var.reset(token)


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """
    Binds an ID to every HTTP request and echoes it in ``X-Request-ID``.

    WebSocket scopes bypass this middleware; the feed endpoint binds its own.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        with bind_request_id(resolve_request_id(request.headers.get(HEADER_NAME))) as request_id:
            request.state.request_id = request_id
            response = await call_next(request)
            response.headers[HEADER_NAME] = request_id
            return response


class CorrelationIdFilter:
    """Stamps ``request_id`` on log records ("-" outside a request)."""

    def filter(self, record) -> bool:
        record.request_id = request_id_var.get() or "-"
        return True
