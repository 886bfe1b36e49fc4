"""Per-execution-context storage for active builders and recording flags."""

from __future__ import annotations

import asyncio
import threading
import weakref
from contextlib import contextmanager
from contextvars import ContextVar
from typing import TYPE_CHECKING, Callable, Iterator

if TYPE_CHECKING:
    from trace_sampler.tracing.builder import TraceBuilder

_record_sql: ContextVar[bool] = ContextVar("trace_sampler_record_sql", default=True)
_execution_traced: ContextVar[bool] = ContextVar("trace_sampler_execution_traced", default=True)


def current_context_owner() -> object:
    """The running asyncio task, or the current thread outside an event loop."""
    try:
        task = asyncio.current_task()
    except RuntimeError:
        task = None
    return task if task is not None else threading.current_thread()


class ExecutionContextStore:
    """Maps each execution context to its single live :class:`TraceBuilder`.

    Slots are weakly keyed on the owning task or thread, so a context that
    ends without finishing its trace releases the builder with it.  A
    context only ever reads and writes its own slot.  Tasks spawned inside
    a traced task get their own (empty) slot rather than sharing the
    parent's builder.

    Args:
        owner_func: Returns the weak-referenceable owner of the calling
            context.  Defaults to :func:`current_context_owner`.
    """

    def __init__(self, owner_func: Callable[[], object] = current_context_owner) -> None:
        self._owner_func = owner_func
        self._builders: weakref.WeakKeyDictionary[object, TraceBuilder] = (
            weakref.WeakKeyDictionary()
        )

    def get(self) -> TraceBuilder | None:
        return self._builders.get(self._owner_func())

    def set(self, builder: TraceBuilder) -> bool:
        """Install *builder* unless the context already has one.

        Returns:
            ``True`` if *builder* was installed, ``False`` if an existing
            builder was kept.
        """
        return self._builders.setdefault(self._owner_func(), builder) is builder

    def clear(self) -> TraceBuilder | None:
        """Remove and return the context's builder, if any."""
        return self._builders.pop(self._owner_func(), None)

    def __len__(self) -> int:
        return len(self._builders)


def is_recording_sql() -> bool:
    return _record_sql.get()


@contextmanager
def sql_recording(enabled: bool) -> Iterator[None]:
    """Turn SQL capture on or off for the current context within the block."""
    token = _record_sql.set(enabled)
    try:
        yield
    finally:
        _record_sql.reset(token)


def is_execution_traced() -> bool:
    return _execution_traced.get()


@contextmanager
def untraced() -> Iterator[None]:
    """Suppress new traces for work started in the current context."""
    token = _execution_traced.set(False)
    try:
        yield
    finally:
        _execution_traced.reset(token)
