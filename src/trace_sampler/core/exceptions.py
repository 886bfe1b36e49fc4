from __future__ import annotations

from typing import Any


class TraceSamplerError(Exception):
    """Base exception for all trace sampler errors.

    Attributes:
        code: Optional machine-readable error code (e.g. ``"TRACE_FROZEN"``).
        details: Arbitrary key/value context about the error.
    """

    def __init__(
        self,
        message: str,
        code: str | None = None,
        details: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        self.details = details or {}


class ConfigurationError(TraceSamplerError): ...


# ---------------------------------------------------------------------------
# Structural misuse -- programming errors at instrumentation call sites
# ---------------------------------------------------------------------------


class TraceStateError(TraceSamplerError): ...


class FrozenTraceError(TraceStateError, RuntimeError):
    """A finished (frozen) trace was asked to change its tree.

    Raised for stray ``trace_exit`` calls after the transaction ended and for
    any other structural edit on a frozen trace.
    """


class SegmentStackUnderflowError(TraceStateError):
    """A segment was popped with no matching push."""


class SegmentAlreadyClosedError(TraceStateError):
    """A segment's exit timestamp was set twice."""


# ---------------------------------------------------------------------------
# Collaborators
# ---------------------------------------------------------------------------


class SamplerUnsupportedError(TraceSamplerError):
    """An OS-level sampler cannot run on the current platform."""
