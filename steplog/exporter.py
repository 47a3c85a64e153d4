"""exporter.py - Pluggable flush target for section content.

This module defines the SectionExporter protocol and two concrete
implementations:

    FileExporter    appends content to the section's file under an exclusive
                    lock, creating parent directories as needed.
    StreamExporter  writes content to a writable stream (default: stderr),
                    prefixed with the file path it would have gone to.

Engine hands every flushed buffer and every immediate report file to its
exporter, so swapping the exporter redirects all persistence at once:

    from steplog import Engine
    from steplog.exporter import StreamExporter

    engine = Engine(exporter=StreamExporter())
"""

import fcntl
import logging
import os
import sys
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Union

from .exceptions import SectionProvisionError

logger = logging.getLogger(__name__)

DIRECTORY_MODE = 0o755
FILE_MODE = 0o644

Content = Union[str, bytes]


def ensure_directory(directory: Union[str, Path]) -> Path:
    """Create ``directory`` (and parents) if missing.

    Raises:
        SectionProvisionError: If the directory cannot be created. Logging
            cannot proceed without its target, so this is fatal.
    """
    directory = Path(directory)
    try:
        directory.mkdir(mode=DIRECTORY_MODE, parents=True, exist_ok=True)
    except OSError as e:
        raise SectionProvisionError(f"Failed to create directory: {directory}") from e
    if not directory.is_dir():
        raise SectionProvisionError(f"Failed to create directory: {directory}")
    return directory


class SectionExporter(ABC):
    """Abstract base class for all flush destinations.

    Example:
        >>> class MemoryExporter(SectionExporter):
        ...     def __init__(self):
        ...         self.files = {}
        ...     def export(self, path, content):
        ...         self.files[str(path)] = self.files.get(str(path), "") + content
    """

    @abstractmethod
    def export(self, path: Path, content: Content) -> None:
        """Append ``content`` to the file at ``path``.

        Args:
            path: Absolute target path (``<run dir>/<section>.log`` and friends).
            content: Text, or already-encoded bytes (CSV exports).
        """


class FileExporter(SectionExporter):
    """Append content to files on disk.

    Each append takes an exclusive ``flock`` on the file so that concurrent
    processes writing the same section never interleave partial content.
    After writing, the file mode is set to ``0o644`` (readable by all, never
    world-writable).

    Attributes:
        _encoding (str): Encoding used for text content.
        _mode (int): Permission bits applied after each append.
    """

    def __init__(self, encoding: str = "utf-8", mode: int = FILE_MODE) -> None:
        self._encoding = encoding
        self._mode = mode

    def export(self, path: Path, content: Content) -> None:
        path = Path(path)
        ensure_directory(path.parent)
        data = content.encode(self._encoding) if isinstance(content, str) else content

        with open(path, "ab") as f:
            fcntl.flock(f.fileno(), fcntl.LOCK_EX)
            try:
                f.write(data)
                f.flush()
            finally:
                fcntl.flock(f.fileno(), fcntl.LOCK_UN)

        self._apply_mode(path)

    # ---------------------------------------------------------------------- #
    # Private helpers
    # ---------------------------------------------------------------------- #

    def _apply_mode(self, path: Path) -> None:
        try:
            os.chmod(path, self._mode)
        except PermissionError:
            # Another user created the file; its mode is theirs to keep.
            logger.debug("Could not chmod %s", path)


class StreamExporter(SectionExporter):
    """Write content to a stream instead of files (default: sys.stderr).

    Output format::

        === [steplog] /var/log/app/run/public.log ===
        [render][app.py:3]
        rows=3

    Attributes:
        _stream: The writable file-like object to write to.
    """

    def __init__(self, stream=None) -> None:
        self._stream = stream or sys.stderr

    def export(self, path: Path, content: Content) -> None:
        if isinstance(content, bytes):
            content = content.decode("utf-8", errors="replace")
        print(f"=== [steplog] {path} ===", file=self._stream)
        self._stream.write(content)
