"""Call-stack capture for slow segments."""

from __future__ import annotations

import os
import traceback

from trace_sampler.core.constants import SegmentAttribute
from trace_sampler.tracing.segment import Segment

_PACKAGE_DIR = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))


def capture_backtrace() -> str:
    """Return the caller's stack, innermost frame last, without sampler frames."""
    frames = [
        frame
        for frame in traceback.extract_stack()
        if not os.path.abspath(frame.filename).startswith(_PACKAGE_DIR)
    ]
    return "".join(traceback.format_list(frames)).rstrip("\n")


def append_backtrace(segment: Segment, duration: float, threshold: float) -> bool:
    """Attach a backtrace to *segment* when *duration* exceeds *threshold*.

    The boundary is exclusive.  Below it the segment is left as it is, so an
    earlier backtrace survives.  Returns whether a backtrace was attached.
    """
    if duration <= threshold:
        return False
    segment[SegmentAttribute.BACKTRACE] = capture_backtrace()
    return True
