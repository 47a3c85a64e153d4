"""stack.py - Call-stack capture and aligned trace rendering.

TraceCapturer walks the live Python stack from its caller outwards, drops the
pipeline's own frames, and renders one aligned line per remaining frame:

      orders.py:42  [OrderRepo.fetch ] app/orders.py:42
    handlers.py:118 [          handle] app/handlers.py:118

Columns are padded to the widest value seen for that column within the same
capture; the trailing location column is emitted verbatim. Each retained
frame also bumps the function/file counters in StatsAggregator.

Frames are read through ``sys._getframe`` and ``f_back``; no source context
is loaded.
"""

import os
import sys
from types import FrameType
from typing import List, Optional, Sequence, Tuple

from .stats import StatsAggregator

VENDOR_MARKERS = ("site-packages/", "dist-packages/")

RIGHT = "right"
LEFT = "left"

# (column, direction); a direction of None marks a literal separator.
TRACE_COLUMNS: Tuple[Tuple[str, Optional[str]], ...] = (
    ("name", RIGHT),
    (":", None),
    ("line", LEFT),
    (" [", None),
    ("kind", RIGHT),
    ("function", LEFT),
    ("] ", None),
    ("location", LEFT),
)


class CallFrame:
    """One stack entry, reduced to what a trace line needs.

    Attributes:
        path (str): Absolute source path of the frame.
        line (int): Line currently executing in the frame.
        function (str): Function the frame belongs to (the activity shown).
        kind (str): Owning class as ``"ClassName."`` for method frames, else ``""``.
        callee (str): Function invoked from this line (the frame above it).
    """

    __slots__ = ("path", "line", "function", "kind", "callee")

    def __init__(self, path: str, line: int, function: str, kind: str = "", callee: str = "") -> None:
        self.path = path
        self.line = line
        self.function = function
        self.kind = kind
        self.callee = callee

    def __repr__(self) -> str:  # pragma: no cover
        return f"CallFrame({self.path!r}:{self.line}, {self.kind}{self.function})"


def caller_kind(frame: FrameType) -> str:
    """Return ``"ClassName."`` when ``frame`` runs a method, else ``""``."""
    code = frame.f_code
    if not code.co_argcount or code.co_varnames[0] not in ("self", "cls"):
        return ""
    owner = frame.f_locals.get(code.co_varnames[0])
    if owner is None:
        return ""
    cls = owner if isinstance(owner, type) else type(owner)
    return f"{cls.__name__}."


def collect_frames(start: Optional[FrameType], skip_depth: int, max_frames: int, callee: str = "") -> List[CallFrame]:
    """Walk outward from ``start``, skipping ``skip_depth`` frames and keeping ``max_frames``."""
    frames: List[CallFrame] = []
    frame = start
    index = 0
    while frame is not None and len(frames) < max_frames:
        code = frame.f_code
        if index >= skip_depth:
            frames.append(CallFrame(code.co_filename, frame.f_lineno, code.co_name, caller_kind(frame), callee))
        callee = code.co_name
        frame = frame.f_back
        index += 1
    return frames


class TraceCapturer:
    """Capture the current stack as aligned trace text.

    Attributes:
        _stats (StatsAggregator): Receives counters and field widths.
        _document_root (str): Configured prefix stripped from frame paths.
        _server_root (str): Request context's server root, stripped second.
        _skip_vendor (bool): Drop third-party frames.
        _vendor_prefix (str): Extra cleaned-path prefix treated as third party.

    Example:
        >>> capturer = TraceCapturer(StatsAggregator(), document_root="/srv/app/")
        >>> capturer.clean_path("/srv/app/orders/repo.py")
        'orders/repo.py'
    """

    def __init__(
        self,
        stats: StatsAggregator,
        document_root: str = "",
        server_root: str = "",
        skip_vendor: bool = False,
        vendor_prefix: str = "vendor/",
    ) -> None:
        self._stats = stats
        self._document_root = document_root
        self._server_root = server_root
        self._skip_vendor = skip_vendor
        self._vendor_prefix = vendor_prefix

    def clean_path(self, path: str) -> str:
        if self._document_root and path.startswith(self._document_root):
            path = path[len(self._document_root):]
        if self._server_root and path.startswith(self._server_root):
            path = path[len(self._server_root):]
        return path.lstrip("/")

    def is_vendor(self, clean_path: str) -> bool:
        if self._vendor_prefix and clean_path.startswith(self._vendor_prefix):
            return True
        return any(marker in clean_path for marker in VENDOR_MARKERS)

    def capture(self, skip_depth: int = 0, max_frames: int = 5) -> str:
        """Render the stack above the caller of ``capture``.

        Args:
            skip_depth: Frames to discard first, counted from the caller of
                this method (0 keeps the caller itself).
            max_frames: Frames to keep after the skipped ones.

        Returns:
            Newline-joined trace lines, or ``""`` when no frame survives.
        """
        self._stats.clear_field_widths()
        frames = collect_frames(sys._getframe(1), skip_depth, max_frames, callee="capture")
        return self.render(frames)

    def render(self, frames: Sequence[CallFrame]) -> str:
        stats = self._stats
        rows = []
        for frame in frames:
            clean = self.clean_path(frame.path)
            if self._skip_vendor and self.is_vendor(clean):
                continue

            stats.increment_function_call(f"[{frame.callee}]{clean}")
            stats.increment_file_call(clean)

            location = f"{clean}:{frame.line}"
            rows.append({
                "name": os.path.basename(frame.path),
                "line": str(frame.line),
                "kind": frame.kind,
                "function": frame.function,
                "location": location,
            })

        # First pass fixes each column's width for this capture.
        for row in rows:
            for column, direction in TRACE_COLUMNS[:-1]:
                if direction is not None:
                    stats.field_width(column, row[column])

        return "\n".join(self._align(row) for row in rows)

    def _align(self, row: dict) -> str:
        parts = []
        last = len(TRACE_COLUMNS) - 1
        for position, (column, direction) in enumerate(TRACE_COLUMNS):
            if direction is None:
                parts.append(column)
                continue
            value = row[column]
            if position == last and direction == LEFT:
                parts.append(value)
                continue
            padding = " " * (self._stats.field_width(column, value) - len(value))
            parts.append(padding + value if direction == RIGHT else value + padding)
        return "".join(parts)
