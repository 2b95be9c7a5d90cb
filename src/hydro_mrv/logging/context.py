"""Log context helpers for per-reading enrichment."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager

import structlog


def bind_context(**kwargs: object) -> None:
    """Bind key-value pairs to the current logging context (thread/task-local)."""
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()


@contextmanager
def reading_context(device_id: str, **extra: object) -> Iterator[None]:
    """Bind ``device_id`` (plus any extras) for the duration of a block.

    Keys are unbound on exit so a worker thread reused by a pool does not
    leak one reading's context into the next.
    """
    keys = ("device_id", *extra)
    structlog.contextvars.bind_contextvars(device_id=device_id, **extra)
    try:
        yield
    finally:
        structlog.contextvars.unbind_contextvars(*keys)
