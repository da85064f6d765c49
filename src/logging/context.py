# src/logging/context.py — v2
"""Contextual logging support: attach worker, shard and run id to records.

Context variables are task-local, so shard workers launched concurrently by
the orchestrator each log under their own identity.
"""

from __future__ import annotations

import contextvars
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Iterator

_worker: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "worker", default=None
)
_shard: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "shard", default=None
)
_run_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "run_id", default=None
)


@dataclass
class LogContext:
    """Snapshot of the current logging context."""

    worker: str | None = None
    shard: str | None = None
    run_id: str | None = None

    def as_dict(self) -> dict[str, Any]:
        """Return non-None fields as dict for JSON log injection."""
        return {k: v for k, v in self.__dict__.items() if v is not None}


def get_context() -> LogContext:
    """Snapshot current context variables."""
    return LogContext(
        worker=_worker.get(),
        shard=_shard.get(),
        run_id=_run_id.get(),
    )


def set_worker_context(worker: str, shard: str | None = None, run_id: str | None = None) -> None:
    """Set worker-level context (called once at the start of a worker run)."""
    _worker.set(worker)
    _shard.set(shard)
    if run_id is not None:
        _run_id.set(run_id)


@contextmanager
def worker_context(
    worker: str, shard: str | None = None, run_id: str | None = None
) -> Iterator[None]:
    """Scope a worker context, restoring the previous one on exit."""
    tokens = (
        _worker.set(worker),
        _shard.set(shard),
        _run_id.set(run_id if run_id is not None else _run_id.get()),
    )
    try:
        yield
    finally:
        _run_id.reset(tokens[2])
        _shard.reset(tokens[1])
        _worker.reset(tokens[0])


def clear_context() -> None:
    """Reset all context variables."""
    _worker.set(None)
    _shard.set(None)
    _run_id.set(None)
