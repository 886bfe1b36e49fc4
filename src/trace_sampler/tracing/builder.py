"""TraceBuilder -- grows one trace from push/pop notifications on one context."""

from __future__ import annotations

import time
from typing import Any

import structlog

from trace_sampler.core.exceptions import FrozenTraceError, SegmentStackUnderflowError
from trace_sampler.tracing.segment import Segment
from trace_sampler.tracing.trace import Trace

logger = structlog.get_logger(__name__)


class TraceBuilder:
    """Owns exactly one in-progress :class:`Trace` for one execution context.

    Open segments are kept on an explicit stack; the synthetic root sits
    beneath it and is not counted by :meth:`scope_depth`.  Once the trace
    holds *segment_limit* segments, further entries are not recorded: the
    builder remembers how many it skipped so the matching exits are absorbed
    and the stack stays balanced.

    Args:
        start_time: Absolute start of the transaction (epoch seconds).
        segment_limit: Maximum segments collected; ``0`` means unlimited.
        threshold: Slow-trace threshold stamped on the trace at finish.
    """

    def __init__(
        self,
        start_time: float | None = None,
        segment_limit: int = 0,
        threshold: float = 0.0,
    ) -> None:
        self._trace = Trace(start_time if start_time is not None else time.time())
        self._segment_limit = segment_limit
        self._threshold = threshold
        self._stack: list[Segment] = []
        self._skipped = 0

    @property
    def trace(self) -> Trace:
        return self._trace

    @property
    def sample_id(self) -> str:
        return self._trace.id

    @property
    def ignored(self) -> bool:
        return self._trace.ignored

    def _relative(self, timestamp: float | None) -> float:
        if timestamp is None:
            timestamp = time.time()
        return timestamp - self._trace.start_time

    # ------------------------------------------------------------------
    # Segment stack
    # ------------------------------------------------------------------

    def trace_entry(self, timestamp: float | None = None) -> Segment | None:
        """Open a child of the current segment and make it current.

        Returns ``None`` without recording anything once the segment limit
        has been reached.
        """
        trace = self._trace
        trace.check_mutable("enter a segment in")
        if self._skipped or (
            self._segment_limit and trace.segments_created >= self._segment_limit
        ):
            if self._skipped == 0:
                logger.debug(
                    "segment_limit_reached",
                    trace_id=trace.id,
                    limit=self._segment_limit,
                )
            self._skipped += 1
            return None

        segment = trace.create_segment(self._relative(timestamp))
        parent = self._stack[-1] if self._stack else trace.root_segment
        parent.add_called_segment(segment)
        self._stack.append(segment)
        return segment

    def trace_exit(
        self, name: str | None = None, timestamp: float | None = None
    ) -> Segment | None:
        """Close the current segment, optionally renaming it.

        Raises:
            FrozenTraceError: The trace has already been finished.
            SegmentStackUnderflowError: There is no open segment to close.
        """
        if self._trace.frozen:
            raise FrozenTraceError(
                f"Unexpected segment exit {name!r}: trace {self._trace.id} is already finished",
                code="TRACE_FROZEN",
                details={"trace_id": self._trace.id, "segment": name},
            )
        if self._skipped:
            self._skipped -= 1
            return None
        if not self._stack:
            raise SegmentStackUnderflowError(
                f"Segment exit {name!r} without a matching entry",
                code="STACK_UNDERFLOW",
                details={"trace_id": self._trace.id, "segment": name},
            )
        segment = self._stack.pop()
        if name is not None:
            segment.name = name
        segment.close(self._relative(timestamp))
        return segment

    def scope_depth(self) -> int:
        """Number of open segments, including ones skipped past the limit."""
        return len(self._stack) + self._skipped

    def current_segment(self) -> Segment | None:
        """The innermost open segment, the root when none is open, or ``None``
        once the trace is finished."""
        if self._trace.frozen:
            return None
        if self._stack:
            return self._stack[-1]
        return self._trace.root_segment

    # ------------------------------------------------------------------
    # Transaction metadata
    # ------------------------------------------------------------------

    def ignore_transaction(self) -> None:
        self._trace.ignored = True

    def force_persist_transaction(self) -> None:
        self._trace.force_persist = True

    def set_transaction_name(self, name: str) -> None:
        self._trace.check_mutable("name")
        self._trace.transaction_name = name

    def set_transaction_info(
        self,
        uri: str | None,
        request_params: dict[str, Any] | None = None,
        capture_params: bool = False,
    ) -> None:
        """Record the request URI and, when capturing, the request params."""
        self._trace.check_mutable("annotate")
        if uri is not None:
            self._trace.params["uri"] = uri
        self._trace.params["request_params"] = (
            dict(request_params or {}) if capture_params else {}
        )

    def set_profile(self, profile: Any) -> None:
        self._trace.check_mutable("annotate")
        self._trace.params["profile"] = profile

    def set_transaction_cpu_time(self, cpu_time: float) -> None:
        self._trace.check_mutable("annotate")
        self._trace.params["cpu_time"] = cpu_time

    def finish_trace(
        self,
        timestamp: float | None = None,
        custom_parameters: dict[str, Any] | None = None,
    ) -> Trace:
        """Close the root segment, attach parameters and freeze the trace."""
        trace = self._trace
        if self._stack:
            logger.warning(
                "trace_finished_with_open_segments",
                trace_id=trace.id,
                open_segments=[segment.name for segment in self._stack],
            )
        trace.root_segment.close(self._relative(timestamp))
        trace.custom_parameters = dict(custom_parameters or {})
        trace.threshold = self._threshold
        trace.freeze()
        return trace
