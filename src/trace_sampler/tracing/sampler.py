"""TransactionSampler -- builds traces per context and keeps the interesting ones."""

from __future__ import annotations

import random
import threading
from dataclasses import dataclass, field
from typing import Any, Iterable

import structlog

from trace_sampler.core.config import TracerConfig
from trace_sampler.core.constants import SegmentAttribute
from trace_sampler.core.exceptions import FrozenTraceError
from trace_sampler.tracing.backtrace import append_backtrace, capture_backtrace
from trace_sampler.tracing.buffer import SampleBuffer
from trace_sampler.tracing.builder import TraceBuilder
from trace_sampler.tracing.context import (
    ExecutionContextStore,
    is_execution_traced,
    is_recording_sql,
)
from trace_sampler.tracing.messages import append_message, truncate_message
from trace_sampler.tracing.segment import Segment
from trace_sampler.tracing.trace import Trace, TraceSnapshot

logger = structlog.get_logger(__name__)


@dataclass
class SamplerState:
    """Cross-context retention slots for one harvest interval.

    Slot writes are plain reference assignments made by whichever context
    finishes a transaction; a racing harvest may miss or double-count one
    trace.  Only the forced queue is lock-guarded.
    """

    slowest_sample: Trace | None = None
    random_sample: Trace | None = None
    last_sample: Trace | None = None
    harvest_count: int = 0
    sampling_rate: int = 0
    force_persist: list[Trace] = field(default_factory=list)
    force_persist_lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def reset(self) -> None:
        """Empty the per-interval slots (counters survive)."""
        self.slowest_sample = None
        self.random_sample = None
        self.last_sample = None
        with self.force_persist_lock:
            self.force_persist = []


class TransactionSampler:
    """Receives scope notifications from instrumentation and retains traces.

    Each execution context gets its own :class:`TraceBuilder` on
    :meth:`notice_first_scope_push`; every other notification is a no-op
    for a context without one.  When the outermost scope closes
    (:meth:`notice_scope_empty`) the trace is frozen and offered to the
    retention channels:

    * **slowest** -- the single slowest trace at or above its threshold,
    * **random** -- the most recently finished trace, kept every
      ``sampling_rate``-th harvest,
    * **forced** -- traces flagged ``force_persist``, always kept,
    * **developer mode** -- the last ``max_samples`` traces, FIFO.

    Usage::

        sampler = TransactionSampler(TracerConfig(transaction_threshold=0.0))
        sampler.notice_first_scope_push(time.time())
        sampler.notice_push_scope()
        sampler.notice_sql("SELECT * FROM users WHERE id = 1", None, 0.01)
        sampler.notice_pop_scope("Controller/users/show")
        sampler.notice_scope_empty(TransactionInfo(name="/users/1"))
        traces = sampler.harvest()
    """

    def __init__(
        self,
        config: TracerConfig | None = None,
        context_store: ExecutionContextStore | None = None,
    ) -> None:
        self._config = config or TracerConfig()
        self._builders = context_store if context_store is not None else ExecutionContextStore()
        self._samples = SampleBuffer(self._config.max_samples)
        self.state = SamplerState(sampling_rate=self._config.sample_rate)

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    @property
    def config(self) -> TracerConfig:
        return self._config

    def configure(self, config: TracerConfig) -> None:
        """Swap in a new configuration.

        Resizes the developer-mode buffer and, when ``sample_rate`` changed,
        re-applies it through :meth:`set_sampling_rate`.
        """
        previous, self._config = self._config, config
        if config.sample_rate != previous.sample_rate:
            self.set_sampling_rate(config.sample_rate)
        if config.max_samples != self._samples.capacity:
            self._samples.resize(config.max_samples)

    @property
    def sampling_rate(self) -> int:
        return self.state.sampling_rate

    def set_sampling_rate(self, rate: float) -> None:
        """Set the random-channel rate and stagger the harvest counter.

        The counter starts at a random offset in ``[0, rate)`` so that a
        fleet of processes does not keep its random sample on the same
        harvest.
        """
        rate = int(rate)
        self.state.sampling_rate = rate
        self.state.harvest_count = random.randrange(rate) if rate > 0 else 0

    # ------------------------------------------------------------------
    # Builder slot
    # ------------------------------------------------------------------

    @property
    def builder(self) -> TraceBuilder | None:
        return self._builders.get()

    def start_builder(self, timestamp: float | None = None) -> TraceBuilder | None:
        """Attach a builder to the calling context unless one is running.

        When tracing is off (or the context is untraced) any stale builder
        is dropped instead.
        """
        if not self._config.collecting or not is_execution_traced():
            self._builders.clear()
            return None
        current = self._builders.get()
        if current is not None:
            return current
        builder = TraceBuilder(
            timestamp,
            segment_limit=self._config.limit_segments,
            threshold=self._config.slow_threshold,
        )
        self._builders.set(builder)
        logger.debug("builder_started", trace_id=builder.sample_id)
        return builder

    def clear_builder(self) -> None:
        self._builders.clear()

    def current_sample_id(self) -> str | None:
        builder = self.builder
        return builder.sample_id if builder is not None else None

    # ------------------------------------------------------------------
    # Lifecycle notifications
    # ------------------------------------------------------------------

    def notice_first_scope_push(self, timestamp: float | None = None) -> None:
        self.start_builder(timestamp)

    def notice_push_scope(self, timestamp: float | None = None) -> Segment | None:
        builder = self.builder
        if builder is None:
            return None
        segment = builder.trace_entry(timestamp)
        if segment is not None and self._config.developer_mode:
            self.capture_segment_trace(segment)
        return segment

    def capture_segment_trace(self, segment: Segment) -> None:
        """Developer-mode hook: record where every segment was opened."""
        segment[SegmentAttribute.BACKTRACE] = capture_backtrace()

    def notice_pop_scope(
        self, name: str | None = None, timestamp: float | None = None
    ) -> Segment | None:
        builder = self.builder
        if builder is None:
            return None
        if builder.trace.frozen:
            raise FrozenTraceError(
                f"Scope {name!r} popped after trace {builder.sample_id} finished",
                code="TRACE_FROZEN",
                details={"trace_id": builder.sample_id, "segment": name},
            )
        return builder.trace_exit(name, timestamp)

    def scope_depth(self) -> int:
        builder = self.builder
        return builder.scope_depth() if builder is not None else 0

    def notice_transaction(
        self, uri: str | None, request_params: dict[str, Any] | None = None
    ) -> None:
        builder = self.builder
        if builder is None:
            return
        builder.set_transaction_info(uri, request_params, self._config.capture_params)

    def notice_scope_empty(self, txn: Any, timestamp: float | None = None) -> Trace | None:
        """Finish the context's trace and run it through retention.

        *txn* supplies ``name`` and ``custom_parameters`` and may carry
        ``uri``/``request_params`` (see :class:`TransactionInfo`).  Returns
        the finished trace, or ``None`` when there was nothing to finish or
        the transaction was ignored.
        """
        builder = self.builder
        if builder is None:
            return None

        builder.set_transaction_name(txn.name)
        request_params = getattr(txn, "request_params", None)
        uri = getattr(txn, "uri", None)
        if uri is not None or request_params:
            builder.set_transaction_info(uri, request_params, self._config.capture_params)

        trace = builder.finish_trace(timestamp, getattr(txn, "custom_parameters", None))
        # Cleared before retention so re-entrant calls cannot reuse the builder.
        self.clear_builder()

        if builder.ignored:
            logger.debug("transaction_ignored", trace_id=trace.id, name=txn.name)
            return None

        self.state.last_sample = trace
        self.store_sample(trace)
        return trace

    def notice_profile(self, profile: Any) -> None:
        builder = self.builder
        if builder is not None:
            builder.set_profile(profile)

    def notice_transaction_cpu_time(self, cpu_time: float) -> None:
        builder = self.builder
        if builder is not None:
            builder.set_transaction_cpu_time(cpu_time)

    def ignore_transaction(self) -> None:
        builder = self.builder
        if builder is not None:
            builder.ignore_transaction()

    def force_persist_transaction(self) -> None:
        builder = self.builder
        if builder is not None:
            builder.force_persist_transaction()

    # ------------------------------------------------------------------
    # Auxiliary data
    # ------------------------------------------------------------------

    def notice_sql(self, sql: str, connection_config: Any, duration: float) -> None:
        if is_recording_sql():
            self.notice_extra_data(
                sql,
                duration,
                SegmentAttribute.SQL,
                connection_config,
                SegmentAttribute.CONNECTION_CONFIG,
            )

    def notice_nosql(self, key: str, duration: float) -> None:
        self.notice_extra_data(key, duration, SegmentAttribute.KEY)

    def add_segment_parameters(self, params: dict[str, Any]) -> None:
        builder = self.builder
        if builder is None:
            return
        segment = builder.current_segment()
        if segment is not None:
            segment.update_parameters(params)

    def notice_extra_data(
        self,
        message: str,
        duration: float,
        key: SegmentAttribute | str,
        config: Any = None,
        config_key: SegmentAttribute | str | None = None,
    ) -> None:
        builder = self.builder
        if builder is None:
            return
        segment = builder.current_segment()
        if segment is None:
            return
        segment[key] = truncate_message(append_message(segment[key], message))
        if config is not None and config_key is not None:
            segment[config_key] = config
        self.append_backtrace(segment, duration)

    def append_backtrace(self, segment: Segment, duration: float) -> bool:
        return append_backtrace(segment, duration, self._config.stack_trace_threshold)

    # ------------------------------------------------------------------
    # Retention
    # ------------------------------------------------------------------

    def store_sample(self, trace: Trace) -> None:
        self.store_sample_for_developer_mode(trace)
        self.store_random_sample(trace)
        self.store_slowest_sample(trace)
        self.store_force_persist(trace)

    def store_sample_for_developer_mode(self, trace: Trace) -> None:
        if self._config.developer_mode:
            self._samples.append(trace)

    def store_random_sample(self, trace: Trace) -> None:
        if self._config.random_sample:
            self.state.random_sample = trace

    def store_slowest_sample(self, trace: Trace) -> None:
        # forced traces are retained through the forced queue
        if trace.force_persist or trace.duration < trace.threshold:
            return
        if self.slowest_sample(self.state.slowest_sample, trace):
            self.state.slowest_sample = trace

    @staticmethod
    def slowest_sample(old: Trace | None, new: Trace) -> bool:
        """Whether *new* should replace *old* in the slowest slot."""
        if old is None:
            return True
        return new.duration > old.duration

    def store_force_persist(self, trace: Trace) -> None:
        if not trace.force_persist:
            return
        limit = self._config.force_persist_limit
        with self.state.force_persist_lock:
            queue = self.state.force_persist
            queue.append(trace)
            while len(queue) > limit:
                shortest = min(queue, key=lambda t: t.duration)
                queue.remove(shortest)
                logger.debug("force_persist_evicted", trace_id=shortest.id)

    @property
    def samples(self) -> list[Trace]:
        """Developer-mode traces, oldest first."""
        return self._samples.snapshot()

    def drain_samples(self) -> list[Trace]:
        """Return and forget the developer-mode traces."""
        return self._samples.drain()

    # ------------------------------------------------------------------
    # Harvest
    # ------------------------------------------------------------------

    def harvest(self, previous: Iterable[Trace | None] | None = None) -> list[Trace]:
        """Collect this interval's traces and reset the retention slots.

        Args:
            previous: Traces handed back from an earlier harvest that could
                not be sent yet.  They compete with this interval's slowest
                trace; forced ones are always kept.

        Returns:
            The traces to transmit.  A trace over ``limit_segments`` is
            replaced by a truncated copy, so the developer-mode samples and
            the caller's *previous* list keep their full trees.
        """
        if not self._config.enabled:
            return []

        result = self.add_samples_to([t for t in (previous or []) if t is not None])

        limit = self._config.limit_segments
        if limit:
            result = [trace.truncated_copy(limit) for trace in result]

        self.state.reset()
        logger.debug("harvest_complete", traces=len(result))
        return result

    def prepare_to_send(
        self, traces: Iterable[Trace], keep_backtraces: bool = True
    ) -> list[TraceSnapshot]:
        """Snapshot harvested traces using the configured ``record_sql`` mode."""
        record_sql = self._config.record_sql
        return [trace.prepare_to_send(record_sql, keep_backtraces) for trace in traces]

    def add_samples_to(self, result: list[Trace]) -> list[Trace]:
        """Merge the retention slots into *result*.

        Of the unforced candidates only the slowest survives; forced traces
        are all kept.  Survivors keep their relative order, and a trace id
        appears at most once.
        """
        with self.state.force_persist_lock:
            forced = list(self.state.force_persist)
        candidates = list(result) + forced

        slowest = self.state.slowest_sample
        if slowest is not None and slowest.duration >= self._config.slow_threshold:
            candidates.append(slowest)

        unforced = [trace for trace in candidates if not trace.force_persist]
        keep = max(unforced, key=lambda t: t.duration) if unforced else None

        merged = [t for t in candidates if t.force_persist or t is keep]
        self.add_random_sample_to(merged)
        return _unique(merged)

    def add_random_sample_to(self, result: list[Trace]) -> None:
        state = self.state
        sample = state.random_sample
        if (
            self._config.random_sample
            and sample is not None
            and state.sampling_rate > 0
            and state.harvest_count % state.sampling_rate == 0
        ):
            result.append(sample)
        state.harvest_count += 1


def _unique(traces: list[Trace]) -> list[Trace]:
    seen: set[str] = set()
    unique: list[Trace] = []
    for trace in traces:
        if trace.id not in seen:
            seen.add(trace.id)
            unique.append(trace)
    return unique
