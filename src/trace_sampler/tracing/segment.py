"""Trace segment -- a single timed node in a transaction trace tree."""

from __future__ import annotations

import copy
from typing import Any, Iterator

from trace_sampler.core.constants import UNNAMED_SEGMENT, SegmentAttribute
from trace_sampler.core.exceptions import FrozenTraceError, SegmentAlreadyClosedError
from trace_sampler.tracing.sql import obfuscate_sql

AttributeKey = SegmentAttribute | str


class Segment:
    """A named, timed unit of work with ordered children.

    Timestamps are seconds relative to the start of the owning trace.
    Auxiliary data is keyed by :class:`SegmentAttribute`; item access with a
    plain string resolves to the matching attribute kind, and any string that
    is not a known kind is kept in the ``custom`` mapping::

        segment["sql"] = "SELECT 1"           # SegmentAttribute.SQL
        segment["request_id"] = "abc"         # custom parameter
    """

    def __init__(
        self,
        entry_timestamp: float,
        name: str = UNNAMED_SEGMENT,
        segment_id: int = 0,
    ) -> None:
        self.segment_id = segment_id
        self._name = name
        self.entry_timestamp = entry_timestamp
        self.exit_timestamp: float | None = None
        self._called_segments: list[Segment] = []
        self._attributes: dict[SegmentAttribute, Any] = {}
        self._frozen = False
        self._obfuscated: tuple[str, str] | None = None

    # ------------------------------------------------------------------
    # Structure
    # ------------------------------------------------------------------

    @property
    def name(self) -> str:
        return self._name

    @name.setter
    def name(self, value: str) -> None:
        self._check_mutable("rename")
        self._name = value

    @property
    def called_segments(self) -> list[Segment]:
        """Children in call order (a copy; use :meth:`add_called_segment`)."""
        return list(self._called_segments)

    @property
    def duration(self) -> float | None:
        """Elapsed seconds, or ``None`` while the segment is open."""
        if self.exit_timestamp is None:
            return None
        return self.exit_timestamp - self.entry_timestamp

    @property
    def closed(self) -> bool:
        return self.exit_timestamp is not None

    def add_called_segment(self, segment: Segment) -> None:
        self._check_mutable("add a child to")
        self._called_segments.append(segment)

    def close(self, exit_timestamp: float) -> None:
        """Set the exit timestamp.  A segment can only be closed once."""
        self._check_mutable("close")
        if self.exit_timestamp is not None:
            raise SegmentAlreadyClosedError(
                f"Segment {self._name!r} is already closed",
                code="SEGMENT_CLOSED",
                details={"segment": self._name},
            )
        self.exit_timestamp = exit_timestamp

    def count_segments(self) -> int:
        """Count this segment and all of its descendants."""
        return 1 + sum(child.count_segments() for child in self._called_segments)

    def walk(self) -> Iterator[Segment]:
        """Yield this segment and its descendants depth-first, in call order."""
        yield self
        for child in self._called_segments:
            yield from child.walk()

    def to_compact_str(self) -> str:
        """Render the subtree as ``name{child,child{grandchild}}``."""
        if not self._called_segments:
            return self._name
        inner = ",".join(child.to_compact_str() for child in self._called_segments)
        return f"{self._name}{{{inner}}}"

    # ------------------------------------------------------------------
    # Attributes
    # ------------------------------------------------------------------

    def __getitem__(self, key: AttributeKey) -> Any:
        return self.get(key)

    def __setitem__(self, key: AttributeKey, value: Any) -> None:
        self._check_mutable("annotate")
        kind = _resolve(key)
        if kind is None:
            self._attributes.setdefault(SegmentAttribute.CUSTOM, {})[str(key)] = value
        else:
            self._attributes[kind] = value

    def get(self, key: AttributeKey, default: Any = None) -> Any:
        kind = _resolve(key)
        if kind is None:
            return self._attributes.get(SegmentAttribute.CUSTOM, {}).get(str(key), default)
        return self._attributes.get(kind, default)

    def update_parameters(self, params: dict[str, Any]) -> None:
        """Merge *params* into the segment, one key at a time."""
        for key, value in params.items():
            self[key] = value

    @property
    def attributes(self) -> dict[str, Any]:
        """Flat copy of all attributes, custom parameters merged in last."""
        flat: dict[str, Any] = {
            str(kind): value
            for kind, value in self._attributes.items()
            if kind is not SegmentAttribute.CUSTOM
        }
        flat.update(self._attributes.get(SegmentAttribute.CUSTOM, {}))
        return flat

    @property
    def obfuscated_sql(self) -> str | None:
        """The captured SQL with literals replaced by ``?`` (raw text untouched)."""
        raw = self._attributes.get(SegmentAttribute.SQL)
        if raw is None:
            return None
        if self._obfuscated is None or self._obfuscated[0] != raw:
            self._obfuscated = (raw, obfuscate_sql(raw))
        return self._obfuscated[1]

    # ------------------------------------------------------------------
    # Owned by Trace
    # ------------------------------------------------------------------

    def _freeze(self) -> None:
        self._frozen = True

    def _replace_children(self, children: list[Segment]) -> None:
        self._called_segments = children

    def _copy_tree(self) -> Segment:
        clone = copy.copy(self)
        clone._attributes = dict(self._attributes)
        clone._called_segments = [child._copy_tree() for child in self._called_segments]
        return clone

    def _check_mutable(self, action: str) -> None:
        if self._frozen:
            raise FrozenTraceError(
                f"Cannot {action} segment {self._name!r}: its trace is finished",
                code="TRACE_FROZEN",
                details={"segment": self._name},
            )

    def to_dict(self) -> dict[str, Any]:
        """Serialise the subtree to plain dictionaries."""
        return {
            "name": self._name,
            "entry_timestamp": self.entry_timestamp,
            "exit_timestamp": self.exit_timestamp,
            "attributes": self.attributes,
            "children": [child.to_dict() for child in self._called_segments],
        }

    def __repr__(self) -> str:
        return (
            f"Segment(name={self._name!r}, entry={self.entry_timestamp!r}, "
            f"exit={self.exit_timestamp!r}, children={len(self._called_segments)})"
        )


def _resolve(key: AttributeKey) -> SegmentAttribute | None:
    if isinstance(key, SegmentAttribute):
        return key
    try:
        kind = SegmentAttribute(key)
    except ValueError:
        return None
    # "custom" addresses the nested mapping only through update_parameters/attributes
    return None if kind is SegmentAttribute.CUSTOM else kind
