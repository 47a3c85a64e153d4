"""formatter.py - Message layouts and duration text.

MessageFormatter composes one emitted line from five inputs: the serialized
arguments, the trace text, the step and total duration texts, and the label.
The layout mode picks the macro-structure:

    verbose    [label][args][trace]
    minimal    [label][path:line]
               args
    profiling  [step][label total][args]              (per-label timing on)
               [proc_<pid>_][step][total]<trace>[args] (otherwise)
    default    [label][path:line][step][total][args]
"""

import math
import os
import re
from enum import Enum
from typing import Optional

from .stats import StatsAggregator

UNKNOWN_LOCATION = "?:0"
_LOCATION_RE = re.compile(r"^([^:]+):(\d+)")

# Fixed-size buckets, largest first. Not calendar aware.
_DURATION_UNITS = (
    ("y", 365 * 86400),
    ("mo", 30 * 86400),
    ("d", 86400),
    ("h", 3600),
    ("m", 60),
    ("s", 1),
)


class LayoutMode(str, Enum):
    VERBOSE = "verbose"
    MINIMAL = "minimal"
    PROFILING = "profiling"
    DEFAULT = "default"


def format_duration(seconds: float) -> str:
    """Render a duration as ``1h 2m 5s`` style text.

    The integer part is split greedily into y/mo/d/h/m/s buckets and only
    non-zero buckets are emitted. The fractional part is appended as
    milliseconds only when fewer than two buckets were emitted.

    Example:
        >>> format_duration(3725.5)
        '1h 2m 5s'
        >>> format_duration(0.0005)
        '0.500ms'
        >>> format_duration(-1)
        '0s'
    """
    if not seconds > 0:
        return "0s"
    if math.isinf(seconds):
        return "inf"

    whole = int(seconds)
    fraction = seconds - whole
    parts = []
    for suffix, size in _DURATION_UNITS:
        count, whole = divmod(whole, size)
        if count:
            parts.append(f"{count}{suffix}")

    if fraction > 0 and len(parts) < 2:
        parts.append(f"{fraction * 1000:.3f}ms")

    return " ".join(parts) or "0s"


def extract_file_and_line(trace: Optional[str]) -> str:
    """Return the ``path:line`` token of the first trace line, or ``?:0``.

    Example:
        >>> extract_file_and_line("app/Repo.py:42\\napp/Ctl.py:10")
        'app/Repo.py:42'
    """
    if not trace:
        return UNKNOWN_LOCATION
    first_line = trace.split("\n", 1)[0].lstrip()
    match = _LOCATION_RE.match(first_line)
    if not match:
        return UNKNOWN_LOCATION
    return f"{match.group(1)}:{match.group(2)}"


class MessageFormatter:
    """Compose emitted lines under one layout mode.

    Attributes:
        layout (LayoutMode): Active layout.
        _stats (StatsAggregator): Source of per-label cumulative durations for
            the profiling layout.
        _time_by_name (bool): Whether per-label timing is enabled.
        _pid (int): Process id shown by the profiling layout.
    """

    def __init__(
        self,
        layout: LayoutMode = LayoutMode.MINIMAL,
        stats: Optional[StatsAggregator] = None,
        time_by_name: bool = True,
        pid: Optional[int] = None,
    ) -> None:
        self.layout = LayoutMode(layout)
        self._stats = stats or StatsAggregator()
        self._time_by_name = time_by_name
        self._pid = os.getpid() if pid is None else pid

    def format(
        self,
        args_text: str,
        trace: str,
        step_text: str,
        total_text: str,
        label: Optional[str] = None,
    ) -> str:
        label_text = label or ""
        layout = self.layout

        if layout is LayoutMode.VERBOSE:
            return f"[{label_text}][{args_text}][{trace}]"

        if layout is LayoutMode.MINIMAL:
            return f"[{label_text}][{extract_file_and_line(trace)}]\n{args_text}"

        if layout is LayoutMode.PROFILING:
            if self._time_by_name and label:
                cumulative = format_duration(self._stats.total_duration(label))
                return f"[{step_text}][{cumulative}][{args_text}]"
            return f"[proc_{self._pid}_][{step_text}][{total_text}]{trace}[{args_text}]"

        return (
            f"[{label_text}][{extract_file_and_line(trace)}]"
            f"[{step_text}][{total_text}][{args_text}]"
        )
