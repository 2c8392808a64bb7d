"""Structured, run-scoped log events.

The HTTP layer binds a run id per request; the engine binds the declaration it
is working on. :func:`log_event` stamps both onto the record's ``payload`` so
every line emitted for one declaration can be correlated.
"""

from __future__ import annotations

import logging
import uuid
from contextlib import contextmanager
from contextvars import ContextVar, Token
from typing import Iterator, Optional

logger = logging.getLogger(__name__)

_run_id_ctx: ContextVar[Optional[str]] = ContextVar("gtd_run_id", default=None)
_declaration_ctx: ContextVar[Optional[str]] = ContextVar("gtd_declaration_id", default=None)


def new_run_id() -> str:
    return uuid.uuid4().hex


def bind_run_id(value: Optional[str]) -> Token | None:
    """Bind *value* as the current run id and return the reset token."""

    if value is None:
        return None
    return _run_id_ctx.set(value)


def reset_run_id(token: Optional[Token]) -> None:
    if token is None:
        return
    _run_id_ctx.reset(token)


def current_run_id() -> Optional[str]:
    return _run_id_ctx.get()


@contextmanager
def declaration_scope(declaration_id: Optional[str]) -> Iterator[None]:
    """Attach *declaration_id* to every event logged inside the block."""

    token = _declaration_ctx.set(declaration_id)
    try:
        yield
    finally:
        _declaration_ctx.reset(token)


def log_event(event: str, *, level: int = logging.INFO, **fields: object) -> None:
    payload: dict[str, object] = {"event": event, "run_id": current_run_id()}
    declaration_id = _declaration_ctx.get()
    if declaration_id is not None:
        payload["declaration_id"] = declaration_id
    payload.update(fields)
    logger.log(level, event, extra={"payload": payload})
