"""Fixed-capacity, lock-guarded FIFO of finished traces for developer mode."""

from __future__ import annotations

import threading
from collections import deque
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from trace_sampler.tracing.trace import Trace


class SampleBuffer:
    """Ring buffer keeping the most recent *capacity* traces.

    Appending past capacity evicts the oldest entry.  Every operation takes
    the same lock, so concurrent appenders and a draining reader never see a
    half-updated buffer.

    Args:
        capacity: Maximum number of traces retained.
    """

    def __init__(self, capacity: int) -> None:
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        self._lock = threading.Lock()
        self._items: deque[Trace] = deque(maxlen=capacity)

    @property
    def capacity(self) -> int:
        maxlen = self._items.maxlen
        assert maxlen is not None
        return maxlen

    def resize(self, capacity: int) -> None:
        """Change the capacity, keeping the newest entries."""
        if capacity < 1:
            raise ValueError("capacity must be at least 1")
        with self._lock:
            self._items = deque(self._items, maxlen=capacity)

    def append(self, trace: Trace) -> None:
        with self._lock:
            self._items.append(trace)

    def snapshot(self) -> list[Trace]:
        """Return the buffered traces, oldest first, leaving them in place."""
        with self._lock:
            return list(self._items)

    def drain(self) -> list[Trace]:
        """Return the buffered traces, oldest first, and empty the buffer."""
        with self._lock:
            items = list(self._items)
            self._items.clear()
            return items

    def clear(self) -> None:
        with self._lock:
            self._items.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)
