"""Transaction trace sampler -- per-context trace trees, bounded retention, harvest."""

from trace_sampler.__version__ import __version__

from trace_sampler.core.config import TracerConfig
from trace_sampler.core.constants import RecordSql, SegmentAttribute
from trace_sampler.core.exceptions import (
    ConfigurationError,
    FrozenTraceError,
    SamplerUnsupportedError,
    SegmentAlreadyClosedError,
    SegmentStackUnderflowError,
    TraceSamplerError,
    TraceStateError,
)
from trace_sampler.core.types import TransactionInfo
from trace_sampler.stats.engine import MetricStats, StatsEngine
from trace_sampler.stats.samplers import CpuSampler, MemorySampler, Sampler, load_samplers
from trace_sampler.tracing.builder import TraceBuilder
from trace_sampler.tracing.context import ExecutionContextStore, sql_recording, untraced
from trace_sampler.tracing.instrumentation import (
    trace_function,
    traced_segment,
    traced_transaction,
)
from trace_sampler.tracing.sampler import SamplerState, TransactionSampler
from trace_sampler.tracing.segment import Segment
from trace_sampler.tracing.trace import Trace, TraceSnapshot
from trace_sampler.utils.logging import configure_logging, get_logger

__all__ = [
    "__version__",
    # Config
    "TracerConfig",
    "RecordSql",
    "SegmentAttribute",
    # Exceptions
    "ConfigurationError",
    "FrozenTraceError",
    "SamplerUnsupportedError",
    "SegmentAlreadyClosedError",
    "SegmentStackUnderflowError",
    "TraceSamplerError",
    "TraceStateError",
    # Tracing
    "ExecutionContextStore",
    "SamplerState",
    "Segment",
    "Trace",
    "TraceBuilder",
    "TraceSnapshot",
    "TransactionInfo",
    "TransactionSampler",
    "sql_recording",
    "trace_function",
    "traced_segment",
    "traced_transaction",
    "untraced",
    # Stats collaborators
    "CpuSampler",
    "MemorySampler",
    "MetricStats",
    "Sampler",
    "StatsEngine",
    "load_samplers",
    # Logging
    "configure_logging",
    "get_logger",
]
