"""Periodic OS-level samplers that record into a :class:`StatsEngine`."""

from __future__ import annotations

import abc
import time
from typing import Callable, ClassVar

import psutil
import structlog

from trace_sampler.core.exceptions import SamplerUnsupportedError
from trace_sampler.stats.engine import StatsEngine

logger = structlog.get_logger(__name__)


class Sampler(abc.ABC):
    """Base class for poll-and-record samplers.

    Concrete subclasses register themselves in :attr:`sampler_classes` so
    :func:`load_samplers` can instantiate every one that is supported.
    Pass ``register=False`` in the class statement to opt out.
    """

    sampler_classes: ClassVar[list[type[Sampler]]] = []

    def __init_subclass__(cls, register: bool = True, **kwargs: object) -> None:
        super().__init_subclass__(**kwargs)
        # __abstractmethods__ is not computed yet when this hook runs
        if register and not getattr(cls.poll, "__isabstractmethod__", False):
            Sampler.sampler_classes.append(cls)

    def __init__(self, sampler_id: str) -> None:
        self.id = sampler_id
        self.stats_engine: StatsEngine | None = None

    @classmethod
    def supported_on_this_platform(cls) -> bool:
        return True

    @abc.abstractmethod
    def poll(self) -> None: ...

    def _record(self, name: str, value: float) -> None:
        if self.stats_engine is None:
            logger.debug("sampler_without_engine", sampler=self.id, metric=name)
            return
        self.stats_engine.record_data_point(name, value)


class CpuSampler(Sampler):
    """Records process CPU time and utilisation since the previous poll.

    The constructor takes the first reading, so the first :meth:`poll`
    already reports a full interval.

    Args:
        process: Anything with a psutil-style ``cpu_times()`` returning
            ``user`` and ``system`` seconds (defaults to this process).
        clock: Monotonic wall clock in seconds.
        processor_count: CPUs used to scale utilisation.
    """

    def __init__(
        self,
        process: psutil.Process | None = None,
        clock: Callable[[], float] = time.monotonic,
        processor_count: int | None = None,
    ) -> None:
        super().__init__("cpu")
        self._process = process if process is not None else psutil.Process()
        self._clock = clock
        self._processor_count = processor_count or psutil.cpu_count() or 1
        self._last_time: float | None = None
        self._last_user = 0.0
        self._last_system = 0.0
        self.poll()

    def poll(self) -> None:
        now = self._clock()
        times = self._process.cpu_times()
        if self._last_time is not None:
            elapsed = now - self._last_time
            user = times.user - self._last_user
            system = times.system - self._last_system
            self._record("CPU/User Time", user)
            self._record("CPU/System Time", system)
            if elapsed > 0:
                capacity = elapsed * self._processor_count
                self._record("CPU/User/Utilization", user / capacity)
                self._record("CPU/System/Utilization", system / capacity)
        self._last_time = now
        self._last_user = times.user
        self._last_system = times.system


class MemorySampler(Sampler):
    """Records resident memory (RSS) of this process in megabytes.

    Raises:
        SamplerUnsupportedError: psutil cannot read the process's memory
            (e.g. access denied in a sandbox).
    """

    def __init__(self, process: psutil.Process | None = None) -> None:
        super().__init__("memory")
        self._process = process if process is not None else psutil.Process()
        try:
            self._process.memory_info()
        except psutil.Error as exc:
            raise SamplerUnsupportedError(
                f"Memory sampling is not available: {exc}",
                code="SAMPLER_UNSUPPORTED",
                details={"pid": getattr(self._process, "pid", None)},
            ) from exc

    def poll(self) -> None:
        rss = self._process.memory_info().rss
        self._record("Memory/Physical", rss / (1024.0 * 1024.0))


def load_samplers(stats_engine: StatsEngine) -> list[Sampler]:
    """Instantiate every registered sampler this platform supports."""
    loaded: list[Sampler] = []
    for sampler_class in Sampler.sampler_classes:
        if not sampler_class.supported_on_this_platform():
            continue
        try:
            sampler = sampler_class()
        except SamplerUnsupportedError as exc:
            logger.debug("sampler_unsupported", sampler=sampler_class.__name__, error=str(exc))
            continue
        if stats_engine.add_harvest_sampler(sampler):
            loaded.append(sampler)
    return loaded
