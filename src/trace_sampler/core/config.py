from __future__ import annotations

import os
from typing import Any

from pydantic import BaseModel, Field

from trace_sampler.core.constants import RecordSql
from trace_sampler.core.exceptions import ConfigurationError

_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off"}


class TracerConfig(BaseModel):
    enabled: bool = True
    developer_mode: bool = False
    random_sample: bool = False
    sample_rate: int = Field(default=10, ge=0)
    apdex_t: float = Field(default=0.5, gt=0)
    transaction_threshold: float | None = Field(default=None, ge=0)
    """Explicit slow-trace threshold in seconds. ``None`` means ``4 * apdex_t``."""
    stack_trace_threshold: float = Field(default=0.5, ge=0)
    limit_segments: int = Field(default=4000, ge=0)
    """Maximum segments kept per trace. ``0`` disables the limit."""
    max_samples: int = Field(default=100, ge=1)
    force_persist_limit: int = Field(default=15, ge=0)
    capture_params: bool = False
    record_sql: RecordSql = RecordSql.OBFUSCATED

    @property
    def slow_threshold(self) -> float:
        """Duration at or above which a finished trace counts as slow."""
        if self.transaction_threshold is not None:
            return self.transaction_threshold
        return 4 * self.apdex_t

    @property
    def collecting(self) -> bool:
        """Whether builders should be started at all."""
        return self.enabled or self.developer_mode

    @classmethod
    def from_env(cls) -> TracerConfig:
        """Create a :class:`TracerConfig` from ``TRACE_SAMPLER_*`` environment variables.

        Reads the following env vars (all optional):

        * ``TRACE_SAMPLER_ENABLED`` → ``enabled``
        * ``TRACE_SAMPLER_DEVELOPER_MODE`` → ``developer_mode``
        * ``TRACE_SAMPLER_RANDOM_SAMPLE`` → ``random_sample``
        * ``TRACE_SAMPLER_CAPTURE_PARAMS`` → ``capture_params``
        * ``TRACE_SAMPLER_SAMPLE_RATE`` → ``sample_rate``
        * ``TRACE_SAMPLER_APDEX_T`` → ``apdex_t``
        * ``TRACE_SAMPLER_TRANSACTION_THRESHOLD`` → ``transaction_threshold``
        * ``TRACE_SAMPLER_STACK_TRACE_THRESHOLD`` → ``stack_trace_threshold``
        * ``TRACE_SAMPLER_LIMIT_SEGMENTS`` → ``limit_segments``
        * ``TRACE_SAMPLER_MAX_SAMPLES`` → ``max_samples``
        * ``TRACE_SAMPLER_FORCE_PERSIST_LIMIT`` → ``force_persist_limit``
        * ``TRACE_SAMPLER_RECORD_SQL`` → ``record_sql`` (``off``, ``raw``, ``obfuscated``)

        Any variable that is not set or is empty is left at its default value.
        Log verbosity is set through
        :func:`trace_sampler.utils.logging.configure_logging`, not here.

        Raises:
            ConfigurationError: If a variable cannot be parsed.
        """
        kwargs: dict[str, Any] = {}

        for field, var in (
            ("enabled", "TRACE_SAMPLER_ENABLED"),
            ("developer_mode", "TRACE_SAMPLER_DEVELOPER_MODE"),
            ("random_sample", "TRACE_SAMPLER_RANDOM_SAMPLE"),
            ("capture_params", "TRACE_SAMPLER_CAPTURE_PARAMS"),
        ):
            raw = os.environ.get(var)
            if raw:
                kwargs[field] = _parse_bool(var, raw)

        for field, var, parse in (
            ("sample_rate", "TRACE_SAMPLER_SAMPLE_RATE", int),
            ("apdex_t", "TRACE_SAMPLER_APDEX_T", float),
            ("transaction_threshold", "TRACE_SAMPLER_TRANSACTION_THRESHOLD", float),
            ("stack_trace_threshold", "TRACE_SAMPLER_STACK_TRACE_THRESHOLD", float),
            ("limit_segments", "TRACE_SAMPLER_LIMIT_SEGMENTS", int),
            ("max_samples", "TRACE_SAMPLER_MAX_SAMPLES", int),
            ("force_persist_limit", "TRACE_SAMPLER_FORCE_PERSIST_LIMIT", int),
        ):
            raw = os.environ.get(var)
            if raw:
                try:
                    kwargs[field] = parse(raw)
                except ValueError as exc:
                    raise ConfigurationError(
                        f"{var} must be numeric, got {raw!r}",
                        code="INVALID_ENV",
                        details={"variable": var},
                    ) from exc

        record_sql = os.environ.get("TRACE_SAMPLER_RECORD_SQL")
        if record_sql:
            kwargs["record_sql"] = record_sql

        return cls(**kwargs)


def _parse_bool(var: str, raw: str) -> bool:
    value = raw.strip().lower()
    if value in _TRUTHY:
        return True
    if value in _FALSY:
        return False
    raise ConfigurationError(
        f"{var} must be a boolean, got {raw!r}",
        code="INVALID_ENV",
        details={"variable": var},
    )
