"""sections.py - Named output channels and the buffered writer.

SectionRegistry maps channel names to files inside the run directory.
BufferedWriter appends every formatted line to the pending buffer of each
registered channel and hands the buffers to a SectionExporter on flush.

Layout on disk (timestamped run, the default)::

    <base>/
        public -> 8974876901_2025_10_19__09/3542__41_18_api_orders_GET   (symlink)
        8974876901_2025_10_19__09/
            3542__41_18_api_orders_GET/
                public.log
                error.log
                stats1
                end
"""

import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Callable, Dict, List, Optional

from .buffer import PendingText
from .config import Config
from .context import RequestContext
from .exporter import Content, FileExporter, SectionExporter, ensure_directory

logger = logging.getLogger(__name__)

LOG_SUFFIX = ".log"
CSV_SUFFIX = ".csv"


class SectionRegistry:
    """Track the active section and every registered channel.

    When ``config.create_new_section`` is set, the first ``switch_section()``
    provisions the run directory. The flag is read once; the config is never
    written to. Every section and channel registered afterwards
    shares its path prefix. Registration order is preserved.
    """

    def __init__(
        self,
        config: Config,
        context: Optional[RequestContext] = None,
        now: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._config = config
        self._context = context or RequestContext()
        self._now = now
        self._channels: Dict[str, None] = {}
        self._prefix: Optional[Path] = None
        self._provision_pending = config.create_new_section
        self.active: Optional[str] = None

    @property
    def prefix(self) -> Path:
        """Directory all channel files live in.

        Until a run directory has been provisioned this is the base path.
        """
        if self._prefix is None:
            return self._config.resolved_base_path()
        return self._prefix

    def switch_section(self, name: str) -> None:
        """Make ``name`` the active section, provisioning the run directory once.

        Raises:
            SectionProvisionError: If the run directory cannot be created.
        """
        self.active = name
        if self._provision_pending:
            self._provision_pending = False
            self._provision(name)
        self.register_channel(name)

    def register_channel(self, name: str) -> None:
        self._channels.setdefault(name, None)

    def unregister_channel(self, name: str) -> None:
        """Forget ``name``. Content already buffered for it stays pending."""
        self._channels.pop(name, None)

    def channels(self) -> List[str]:
        return list(self._channels)

    def is_registered(self, name: str) -> bool:
        return name in self._channels

    def path_for(self, name: str) -> Path:
        suffix = "" if name.endswith(CSV_SUFFIX) else LOG_SUFFIX
        return self.prefix / f"{name}{suffix}"

    # ---------------------------------------------------------------------- #
    # Private helpers
    # ---------------------------------------------------------------------- #

    def _provision(self, name: str) -> None:
        base = self._config.resolved_base_path()
        if self._config.use_name_as_dir:
            run_dir = base / name
        else:
            run_dir = base / self._context.run_directory_name(self._now())

        self._prefix = ensure_directory(run_dir)
        logger.debug("steplog run directory: %s", run_dir)

        if not self._config.use_name_as_dir:
            self._link_latest(base / name, run_dir)

    def _link_latest(self, link: Path, target: Path) -> None:
        """Point ``<base>/<section>`` at the newest run. Best effort."""
        try:
            if link.is_symlink() or link.is_file():
                link.unlink()
            link.symlink_to(target, target_is_directory=True)
        except OSError as e:
            logger.warning("Could not link %s -> %s: %s", link, target, e)


class BufferedWriter:
    """Accumulate formatted text per channel file and flush it in one go.

    Attributes:
        _registry (SectionRegistry): Source of channel names and paths.
        _exporter (SectionExporter): Performs the actual append at flush time.
        _config (Config): Read for ``enable_write``/``enable_output`` on every write.
        _echo_stream: Live output stream; ``None`` means the current ``sys.stdout``.
        _buffers (dict): Pending text keyed by resolved file path.
    """

    def __init__(
        self,
        registry: SectionRegistry,
        config: Config,
        exporter: Optional[SectionExporter] = None,
        echo_stream=None,
    ) -> None:
        self._registry = registry
        self._config = config
        self._exporter = exporter or FileExporter()
        self._echo_stream = echo_stream
        self._buffers: Dict[Path, PendingText] = {}

    @property
    def exporter(self) -> SectionExporter:
        return self._exporter

    def write(self, text: str) -> None:
        """Buffer ``text`` for every registered channel and optionally echo it."""
        if self._config.enable_write:
            for name in self._registry.channels():
                path = self._registry.path_for(name)
                buf = self._buffers.get(path)
                if buf is None:
                    buf = self._buffers[path] = PendingText()
                buf.push(text)

        if self._config.enable_output:
            stream = self._echo_stream or sys.stdout
            stream.write(text)

    def pending(self, path: Path) -> str:
        buf = self._buffers.get(Path(path))
        return buf.snapshot() if buf is not None else ""

    def flush(self) -> int:
        """Append every non-empty buffer to its file and clear it.

        A buffer is cleared only after its export succeeded. Flushing with
        nothing pending is a no-op.

        Returns:
            Number of files appended to.
        """
        written = 0
        for path, buf in self._buffers.items():
            if not buf:
                continue
            self._exporter.export(path, buf.snapshot())
            buf.clear()
            written += 1
        return written

    def write_file(self, name: str, content: Content, suffix: str = "") -> Path:
        """Append ``content`` to ``<prefix>/<name><suffix>`` immediately (unbuffered)."""
        path = self._registry.prefix / f"{name}{suffix}"
        self._exporter.export(path, content)
        return path
