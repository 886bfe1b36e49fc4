"""Transaction trace -- a segment tree plus the metadata needed to rank it."""

from __future__ import annotations

import copy
import uuid
from collections import deque
from datetime import datetime, timezone
from typing import Any

import structlog
from pydantic import BaseModel, ConfigDict, Field

from trace_sampler.core.constants import ROOT_SEGMENT_NAME, RecordSql, SegmentAttribute
from trace_sampler.core.exceptions import FrozenTraceError
from trace_sampler.tracing.segment import Segment

logger = structlog.get_logger(__name__)


class SegmentSnapshot(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    entry_timestamp: float
    exit_timestamp: float | None
    attributes: dict[str, Any] = Field(default_factory=dict)
    children: tuple[SegmentSnapshot, ...] = ()


class TraceSnapshot(BaseModel):
    """Immutable, transport-ready copy of a finished :class:`Trace`."""

    model_config = ConfigDict(frozen=True)

    trace_id: str
    start_time: datetime
    duration: float
    transaction_name: str | None
    force_persist: bool
    truncated: bool
    params: dict[str, Any] = Field(default_factory=dict)
    custom_parameters: dict[str, Any] = Field(default_factory=dict)
    root: SegmentSnapshot


class Trace:
    """A segment tree rooted at a synthetic ``ROOT`` segment.

    A trace is mutated only by the :class:`TraceBuilder` that created it.
    :meth:`freeze` ends that phase; afterwards every structural edit raises
    :class:`FrozenTraceError`.  The one exception is :meth:`truncate`, which
    the sampler applies to harvest-time copies (:meth:`truncated_copy`).
    """

    def __init__(self, start_time: float) -> None:
        self.id: str = uuid.uuid4().hex[:16]
        self.start_time = start_time
        self.root_segment = Segment(0.0, ROOT_SEGMENT_NAME, segment_id=0)
        self.threshold: float = 0.0
        self.transaction_name: str | None = None
        self.custom_parameters: dict[str, Any] = {}
        self.params: dict[str, Any] = {}
        self.ignored = False
        self.force_persist = False
        self.truncated = False
        self._frozen = False
        self._segment_count = 0

    @property
    def frozen(self) -> bool:
        return self._frozen

    @property
    def duration(self) -> float:
        """Root segment duration in seconds (``0.0`` until finished)."""
        return self.root_segment.duration or 0.0

    @property
    def segments_created(self) -> int:
        """Segments allocated so far (not reduced by truncation)."""
        return self._segment_count

    def create_segment(self, entry_timestamp: float) -> Segment:
        """Allocate a segment belonging to this trace (not yet attached)."""
        self.check_mutable("create a segment in")
        self._segment_count += 1
        return Segment(entry_timestamp, segment_id=self._segment_count)

    def count_segments(self) -> int:
        """Number of segments in the tree, excluding the synthetic root."""
        return self.root_segment.count_segments() - 1

    def check_mutable(self, action: str = "modify") -> None:
        if self._frozen:
            raise FrozenTraceError(
                f"Cannot {action} trace {self.id}: it is already finished",
                code="TRACE_FROZEN",
                details={"trace_id": self.id},
            )

    def freeze(self) -> None:
        """Forbid further mutation.  Freezing twice is an error."""
        self.check_mutable("freeze")
        for segment in self.root_segment.walk():
            segment._freeze()
        self._frozen = True

    def truncate(self, limit: int) -> None:
        """Keep the first *limit* segments in breadth-first order.

        Parents are always visited before their children, so the kept
        segments still form a connected tree.  A trace at or under the
        limit is left untouched.
        """
        if self.count_segments() <= limit:
            return
        kept = 0
        queue: deque[Segment] = deque([self.root_segment])
        while queue:
            segment = queue.popleft()
            children: list[Segment] = []
            for child in segment.called_segments:
                if kept >= limit:
                    break
                kept += 1
                children.append(child)
                queue.append(child)
            segment._replace_children(children)
        self.truncated = True
        logger.debug("trace_truncated", trace_id=self.id, limit=limit)

    def truncated_copy(self, limit: int) -> Trace:
        """Return this trace if it fits *limit*, else a truncated deep copy.

        The copy keeps the trace id and stays frozen.  Only the tree is
        copied; attribute values and parameters are shared.
        """
        if self.count_segments() <= limit:
            return self
        clone = copy.copy(self)
        clone.root_segment = self.root_segment._copy_tree()
        clone.truncate(limit)
        return clone

    def to_compact_str(self) -> str:
        return self.root_segment.to_compact_str()

    def prepare_to_send(
        self,
        record_sql: RecordSql = RecordSql.OBFUSCATED,
        keep_backtraces: bool = True,
    ) -> TraceSnapshot:
        """Return an immutable copy ready for serialisation.

        Args:
            record_sql: ``off`` drops captured SQL, ``raw`` keeps it and
                ``obfuscated`` replaces it with its literal-free rendering.
            keep_backtraces: When ``False``, captured backtraces are dropped.
        """
        return TraceSnapshot(
            trace_id=self.id,
            start_time=datetime.fromtimestamp(self.start_time, tz=timezone.utc),
            duration=self.duration,
            transaction_name=self.transaction_name,
            force_persist=self.force_persist,
            truncated=self.truncated,
            params=dict(self.params),
            custom_parameters=dict(self.custom_parameters),
            root=_snapshot_segment(self.root_segment, RecordSql(record_sql), keep_backtraces),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "trace_id": self.id,
            "start_time": self.start_time,
            "duration": self.duration,
            "threshold": self.threshold,
            "transaction_name": self.transaction_name,
            "force_persist": self.force_persist,
            "params": dict(self.params),
            "custom_parameters": dict(self.custom_parameters),
            "root": self.root_segment.to_dict(),
        }

    def __repr__(self) -> str:
        return (
            f"Trace(id={self.id!r}, name={self.transaction_name!r}, "
            f"duration={self.duration!r}, frozen={self._frozen!r})"
        )


def _snapshot_segment(
    segment: Segment, record_sql: RecordSql, keep_backtraces: bool
) -> SegmentSnapshot:
    attributes = segment.attributes
    sql_key = str(SegmentAttribute.SQL)
    if sql_key in attributes:
        if record_sql is RecordSql.OFF:
            del attributes[sql_key]
        elif record_sql is RecordSql.OBFUSCATED:
            attributes[sql_key] = segment.obfuscated_sql
    if not keep_backtraces:
        attributes.pop(str(SegmentAttribute.BACKTRACE), None)
    return SegmentSnapshot(
        name=segment.name,
        entry_timestamp=segment.entry_timestamp,
        exit_timestamp=segment.exit_timestamp,
        attributes=attributes,
        children=tuple(
            _snapshot_segment(child, record_sql, keep_backtraces)
            for child in segment.called_segments
        ),
    )
