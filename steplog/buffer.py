"""buffer.py - Append-only pending text for one section file.

PendingText is the in-memory store that holds formatted lines between
instrumented calls. Nothing touches the disk until the engine flushes at the
end of the request lifecycle: the writer exports ``snapshot()`` and calls
``clear()`` only once the export has succeeded.

Chunks are joined once at flush time. Nothing is evicted; growth is bounded
by the engine's memory guard. A request runs on one thread, so there is no
locking here.
"""

from typing import List


class PendingText:
    """Unbounded append-only text buffer.

    Example:
        >>> buf = PendingText()
        >>> buf.push("[render][app.py:3]\\n")
        >>> buf.push("[render][app.py:9]\\n")
        >>> len(buf)
        2
        >>> buf.snapshot()
        '[render][app.py:3]\\n[render][app.py:9]\\n'
        >>> buf.clear()
        >>> len(buf)
        0
    """

    __slots__ = ("_chunks",)

    def __init__(self) -> None:
        self._chunks: List[str] = []

    def push(self, text: str) -> None:
        """Append ``text``. Empty strings are ignored."""
        if text:
            self._chunks.append(text)

    def snapshot(self) -> str:
        """Return the whole content without clearing the buffer."""
        return "".join(self._chunks)

    def clear(self) -> None:
        """Drop all pending content without returning it."""
        self._chunks.clear()

    def __len__(self) -> int:
        """Number of pending chunks."""
        return len(self._chunks)

    def __bool__(self) -> bool:
        return bool(self._chunks)
