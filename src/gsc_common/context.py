"""Correlation id for the tool call currently being dispatched.

Each MCP request runs in its own task, so the ContextVar gives concurrent
calls on the one event loop independent ids.
"""

from __future__ import annotations

import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Iterator

_corr_id: ContextVar[str | None] = ContextVar("gsc_corr_id", default=None)


def new_request_id() -> str:
    return uuid.uuid4().hex


def get_request_id() -> str:
    """Current id; outside a call scope one is minted and pinned to the context."""
    rid = _corr_id.get()
    if not rid:
        rid = new_request_id()
        _corr_id.set(rid)
    return rid


@contextmanager
def request_scope(rid: str | None = None) -> Iterator[str]:
    """Bind ``rid`` (or a fresh id) for the duration of the block, then restore the previous one."""
    rid = rid or new_request_id()
    token = _corr_id.set(rid)
    try:
        yield rid
    finally:
        _corr_id.reset(token)
