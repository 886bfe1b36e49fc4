"""Shared test fixtures."""
from __future__ import annotations

import time
from typing import Callable

import pytest

from trace_sampler.core.config import TracerConfig
from trace_sampler.core.types import TransactionInfo
from trace_sampler.tracing.builder import TraceBuilder
from trace_sampler.tracing.sampler import TransactionSampler
from trace_sampler.tracing.trace import Trace

RunTrace = Callable[..., "Trace | None"]


@pytest.fixture
def config() -> TracerConfig:
    return TracerConfig(transaction_threshold=0.0)


@pytest.fixture
def sampler(config: TracerConfig) -> TransactionSampler:
    return TransactionSampler(config)


@pytest.fixture
def txn() -> TransactionInfo:
    return TransactionInfo(name="/path")


@pytest.fixture
def run_sample_trace(sampler: TransactionSampler, txn: TransactionInfo) -> RunTrace:
    """Drive one transaction shaped ``ROOT{a{ab,ac}}`` through *sampler*."""

    def run(
        duration: float = 0.0,
        start: float | None = None,
        body: Callable[[], None] | None = None,
    ) -> Trace | None:
        begin = time.time() if start is None else start
        sampler.notice_first_scope_push(begin)
        sampler.notice_transaction(None, {})
        sampler.notice_push_scope(begin)
        sampler.notice_sql("SELECT * FROM sandwiches WHERE bread = 'wheat'", None, 0)
        sampler.notice_push_scope(begin)
        sampler.notice_sql("SELECT * FROM sandwiches WHERE bread = 'white'", None, 0)
        if body is not None:
            body()
        sampler.notice_pop_scope("ab", begin)
        sampler.notice_push_scope(begin)
        sampler.notice_sql("SELECT * FROM sandwiches WHERE bread = 'french'", None, 0)
        sampler.notice_pop_scope("ac", begin)
        sampler.notice_pop_scope("a", begin + duration)
        return sampler.notice_scope_empty(txn, begin + duration)

    return run


@pytest.fixture
def make_trace() -> Callable[..., Trace]:
    """Build a finished single-segment trace of the given duration."""

    def make(
        duration: float,
        force_persist: bool = False,
        threshold: float = 0.0,
    ) -> Trace:
        builder = TraceBuilder(start_time=100.0, threshold=threshold)
        builder.trace_entry(100.0)
        builder.trace_exit("a", 100.0 + duration)
        if force_persist:
            builder.force_persist_transaction()
        return builder.finish_trace(100.0 + duration)

    return make
