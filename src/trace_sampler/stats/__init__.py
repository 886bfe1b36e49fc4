from trace_sampler.stats.engine import MetricStats, StatsEngine
from trace_sampler.stats.samplers import CpuSampler, MemorySampler, Sampler, load_samplers

__all__ = [
    "CpuSampler",
    "MemorySampler",
    "MetricStats",
    "Sampler",
    "StatsEngine",
    "load_samplers",
]
