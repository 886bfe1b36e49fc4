from trace_sampler.tracing.backtrace import append_backtrace, capture_backtrace
from trace_sampler.tracing.buffer import SampleBuffer
from trace_sampler.tracing.builder import TraceBuilder
from trace_sampler.tracing.context import (
    ExecutionContextStore,
    is_execution_traced,
    is_recording_sql,
    sql_recording,
    untraced,
)
from trace_sampler.tracing.instrumentation import (
    trace_function,
    traced_segment,
    traced_transaction,
)
from trace_sampler.tracing.messages import (
    MAX_MESSAGE_LENGTH,
    append_message,
    truncate_message,
)
from trace_sampler.tracing.sampler import SamplerState, TransactionSampler
from trace_sampler.tracing.segment import Segment
from trace_sampler.tracing.sql import obfuscate_sql
from trace_sampler.tracing.trace import SegmentSnapshot, Trace, TraceSnapshot

__all__ = [
    "MAX_MESSAGE_LENGTH",
    "ExecutionContextStore",
    "SampleBuffer",
    "SamplerState",
    "Segment",
    "SegmentSnapshot",
    "Trace",
    "TraceBuilder",
    "TraceSnapshot",
    "TransactionSampler",
    "append_backtrace",
    "append_message",
    "capture_backtrace",
    "is_execution_traced",
    "is_recording_sql",
    "obfuscate_sql",
    "sql_recording",
    "trace_function",
    "traced_segment",
    "traced_transaction",
    "truncate_message",
    "untraced",
]
