"""StatsEngine -- the metric registry fed by harvest-time samplers."""

from __future__ import annotations

import threading
from typing import TYPE_CHECKING

import structlog
from pydantic import BaseModel

if TYPE_CHECKING:
    from trace_sampler.stats.samplers import Sampler

logger = structlog.get_logger(__name__)


class MetricStats(BaseModel):
    call_count: int = 0
    total_call_time: float = 0.0
    min_call_time: float = 0.0
    max_call_time: float = 0.0
    sum_of_squares: float = 0.0

    def record_data_point(self, value: float) -> None:
        if self.call_count == 0:
            self.min_call_time = value
            self.max_call_time = value
        else:
            self.min_call_time = min(self.min_call_time, value)
            self.max_call_time = max(self.max_call_time, value)
        self.call_count += 1
        self.total_call_time += value
        self.sum_of_squares += value * value

    @property
    def average_call_time(self) -> float:
        return self.total_call_time / self.call_count if self.call_count else 0.0


class StatsEngine:
    """Thread-safe registry of named :class:`MetricStats`.

    Also owns the harvest samplers: periodic pollers (CPU, memory) that
    record into this engine each time :meth:`poll_harvest_samplers` runs.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._stats: dict[str, MetricStats] = {}
        self._harvest_samplers: list[Sampler] = []

    # ------------------------------------------------------------------
    # Metrics
    # ------------------------------------------------------------------

    def record_data_point(self, name: str, value: float) -> None:
        with self._lock:
            self._stats.setdefault(name, MetricStats()).record_data_point(value)

    def get_stats(self, name: str) -> MetricStats:
        """Return a copy of the stats recorded under *name* (empty if none)."""
        with self._lock:
            stats = self._stats.get(name)
            return stats.model_copy() if stats is not None else MetricStats()

    def metric_names(self) -> list[str]:
        with self._lock:
            return sorted(self._stats)

    def harvest_metrics(self) -> dict[str, MetricStats]:
        """Return everything recorded so far and start a fresh interval."""
        with self._lock:
            harvested, self._stats = self._stats, {}
        return harvested

    # ------------------------------------------------------------------
    # Harvest samplers
    # ------------------------------------------------------------------

    @property
    def harvest_samplers(self) -> list[Sampler]:
        return list(self._harvest_samplers)

    def add_harvest_sampler(self, sampler: Sampler) -> bool:
        """Register *sampler* unless one of the same class is already present.

        Returns:
            ``True`` if the sampler was added.
        """
        if any(type(existing) is type(sampler) for existing in self._harvest_samplers):
            logger.debug("harvest_sampler_already_registered", sampler=sampler.id)
            return False
        sampler.stats_engine = self
        self._harvest_samplers.append(sampler)
        return True

    def poll_harvest_samplers(self) -> None:
        """Poll every sampler; a sampler that raises is logged and dropped."""
        for sampler in list(self._harvest_samplers):
            try:
                sampler.poll()
            except Exception:
                logger.warning("sampler_poll_failed", sampler=sampler.id, exc_info=True)
                self._harvest_samplers.remove(sampler)
