"""Current-span slot shared by every event producer.

The slot is a ``ContextVar``: each asyncio task (and each thread) works on
its own snapshot, so two interleaved call chains never see each other's
spans. Producers read the current span as their parent, then run their
own work inside :func:`span_scope` so descendants link to them.
"""

from __future__ import annotations

import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from contextvars import ContextVar

_current_span_id: ContextVar[str | None] = ContextVar("aiobs_current_span_id", default=None)


def new_span_id() -> str:
    return uuid.uuid4().hex[:16]


def get_current_span_id() -> str | None:
    return _current_span_id.get()


def set_current_span_id(span_id: str | None) -> str | None:
    """Overwrite the slot and return the previous value for manual restore."""
    previous = _current_span_id.get()
    _current_span_id.set(span_id)
    return previous


@contextmanager
def span_scope(span_id: str | None) -> Iterator[str | None]:
    """Make ``span_id`` current for the block; the previous span is always restored."""
    token = _current_span_id.set(span_id)
    try:
        yield span_id
    finally:
        _current_span_id.reset(token)
