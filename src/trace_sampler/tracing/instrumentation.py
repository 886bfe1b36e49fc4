"""Context managers and a decorator that drive the sampler's scope API.

Call sites normally issue ``notice_first_scope_push`` / ``notice_push_scope`` /
``notice_pop_scope`` / ``notice_scope_empty`` themselves; these helpers keep
that nesting correct for plain Python code::

    with traced_transaction(sampler, "Controller/orders/index") as txn:
        with traced_segment(sampler, "Database/orders/select"):
            sampler.notice_sql(query, None, elapsed)
        txn.custom_parameters["order_count"] = 3
"""

from __future__ import annotations

import functools
import time
from contextlib import contextmanager
from typing import Any, Callable, Iterator, TypeVar

from trace_sampler.core.types import TransactionInfo
from trace_sampler.tracing.sampler import TransactionSampler
from trace_sampler.tracing.segment import Segment

_F = TypeVar("_F", bound=Callable[..., Any])


@contextmanager
def traced_segment(sampler: TransactionSampler, name: str) -> Iterator[Segment | None]:
    """Record the block as a segment named *name* of the running trace.

    Yields ``None`` when no trace is running or the segment limit is hit.
    """
    segment = sampler.notice_push_scope(time.time())
    try:
        yield segment
    finally:
        sampler.notice_pop_scope(name, time.time())


@contextmanager
def traced_transaction(
    sampler: TransactionSampler,
    name: str,
    **custom_parameters: Any,
) -> Iterator[TransactionInfo]:
    """Record the block as a transaction with one top-level segment.

    A transaction opened while another is running on the same context does
    not start a new trace: its work is captured as a segment of the outer
    one.
    """
    txn = TransactionInfo(name=name, custom_parameters=custom_parameters)
    outermost = sampler.builder is None
    if outermost:
        sampler.notice_first_scope_push(time.time())
    try:
        with traced_segment(sampler, name):
            yield txn
    finally:
        if outermost:
            sampler.notice_scope_empty(txn, time.time())


def trace_function(sampler: TransactionSampler, name: str | None = None) -> Callable[[_F], _F]:
    """Decorate a function so each call runs inside :func:`traced_transaction`."""

    def decorator(fn: _F) -> _F:
        label = name or f"Function/{fn.__module__}.{fn.__qualname__}"

        @functools.wraps(fn)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            with traced_transaction(sampler, label):
                return fn(*args, **kwargs)

        return wrapper  # type: ignore[return-value]

    return decorator
