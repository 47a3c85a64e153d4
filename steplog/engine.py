"""engine.py - The write pipeline and request lifecycle.

One Engine is constructed per request by the host and passed to whatever
needs instrumentation. There is no global instance.

Basic usage:

    from steplog import Config, Engine, RequestContext

    engine = Engine(Config(base_path="/var/log/app"), RequestContext.from_cli())
    engine.bootstrap()

    rows = engine.instrument("rows=", fetch_rows(), label="db.fetch")
    engine.info("cache warmed", entries=120)

    engine.on_lifecycle_end()

Every ``instrument()`` call captures the stack, serializes its values,
advances the step timers and appends one formatted line to every registered
channel. Nothing touches the disk until ``on_lifecycle_end()`` (or an explicit
``flush()``), except the report files written through ``write_file()``.
"""

import dataclasses
import json
import logging
import os
import sys
import time
from contextlib import contextmanager
from datetime import datetime
from functools import lru_cache
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional

import psutil

from .config import Config
from .context import RequestContext
from .exporter import Content, SectionExporter
from .formatter import MessageFormatter, format_duration
from .sections import BufferedWriter, SectionRegistry
from .serializer import format_block, format_data, interpolate
from .stack import TraceCapturer
from .stats import StatsAggregator
from .tables import CsvExporter
from .testcases import TestCaseBook
from .values import coerce, coerce_all

logger = logging.getLogger(__name__)

PUBLIC_SECTION = "public"
NESTED_CHILD_MARKER = "[*]"


@lru_cache(maxsize=None)
def _process(pid: int) -> psutil.Process:
    return psutil.Process(pid)


def process_memory() -> int:
    """Resident set size of the current process in bytes."""
    return _process(os.getpid()).memory_info().rss


def _js_template_text(text: str) -> str:
    return text.replace("\\", "\\\\").replace("`", "\\`").replace("${", "\\${")


def _nested_lines(stats: Mapping[str, Any], prefix: str) -> List[str]:
    lines = []
    for key, value in stats.items():
        lines.append(f"{prefix}_{key}\n")
        if isinstance(value, Mapping):
            lines.extend(_nested_lines(value, prefix + NESTED_CHILD_MARKER))
    return lines


class Engine:
    """Instrumentation engine for one request.

    Args:
        config: Options; a default Config when omitted. The engine works on
            a copy, so one Config can be shared by many requests.
        context: The request being instrumented.
        stats: Aggregator to fill (injectable so tests can inspect it).
        exporter: Flush target; files on disk by default.
        hooks: Host objects test-case definitions refer to by name.
        memory_probe: Returns current memory usage in bytes (psutil RSS by default).
        clock: Monotonic seconds used for step and total timers.
        now: Wall clock used to name run directories.
        echo_stream: Live output stream when ``enable_output`` is set.
        delegate: Optional stdlib logger that also receives ``log()`` calls.
    """

    def __init__(
        self,
        config: Optional[Config] = None,
        context: Optional[RequestContext] = None,
        stats: Optional[StatsAggregator] = None,
        exporter: Optional[SectionExporter] = None,
        hooks: Optional[Mapping[str, Any]] = None,
        memory_probe: Callable[[], int] = process_memory,
        clock: Callable[[], float] = time.perf_counter,
        now: Callable[[], datetime] = datetime.now,
        echo_stream=None,
        delegate: Optional[logging.Logger] = None,
    ) -> None:
        # Runtime switches (write, output, disable) change only this engine.
        self.config = dataclasses.replace(config) if config is not None else Config()
        self.context = context or RequestContext()
        self.stats = stats or StatsAggregator()
        self.delegate = delegate

        self.sections = SectionRegistry(self.config, self.context, now)
        self.writer = BufferedWriter(self.sections, self.config, exporter, echo_stream)
        self._capturer = TraceCapturer(
            self.stats,
            document_root=self.config.document_root,
            server_root=self.context.server_root,
            skip_vendor=self.config.skip_vendor,
            vendor_prefix=self.config.vendor_prefix,
        )
        self._formatter = MessageFormatter(self.config.layout, self.stats, self.config.enable_time_by_name)
        self._csv = CsvExporter(self.writer, self.config.csv_encoding)

        self._hooks: Dict[str, Any] = dict(hooks or {})
        self._test_cases: Optional[TestCaseBook] = None
        self._memory_probe = memory_probe
        self._clock = clock
        self._start_time: Optional[float] = None
        self._step_time: Optional[float] = None
        self._permanently_disabled = False

        self.current_label: Optional[str] = None
        self.last_trace = ""
        self.step_count = 0

    # ---------------------------------------------------------------------- #
    # Guard
    # ---------------------------------------------------------------------- #

    @property
    def permanently_disabled(self) -> bool:
        return self._permanently_disabled

    def should_block(self) -> bool:
        """True when this call must be a silent no-op.

        A ``disable_uris`` match is a one-way switch for the engine's
        lifetime. The memory ceiling is re-checked on every call and recovers
        once usage drops.
        """
        if self.config.disabled or self._permanently_disabled:
            return True

        uri = self.context.uri
        for prefix in self.config.disable_uris:
            if prefix and uri.startswith(prefix):
                logger.debug("steplog disabled for %s (matches %r)", uri, prefix)
                self._permanently_disabled = True
                self.disable()
                return True

        return self._memory_probe() > self.config.memory_limit

    # ---------------------------------------------------------------------- #
    # Write pipeline
    # ---------------------------------------------------------------------- #

    def instrument(self, *values: Any, label: Optional[str] = None, depth: int = 0) -> Any:
        """Log ``values`` with the current stack and timing; return the last value.

        Args:
            *values: Anything; serialized under ``config.data_format``.
            label: Label for this step. Falls back to ``current_label``.
            depth: Extra wrapper frames between the real caller and this
                method (helpers such as ``info()`` pass their own depth).

        Returns:
            The last positional value, or None when called without values.

        Example:
            >>> total = engine.instrument("total=", price * qty)  # doctest: +SKIP
        """
        last = values[-1] if values else None
        if self.should_block():
            return last

        config = self.config
        self.last_trace = self._capturer.capture(
            skip_depth=1 + depth + config.stack_depth,
            max_frames=config.max_frames,
        )
        args_text = format_data(coerce_all(values), config.data_format, config.dump_budget)

        self.step_count += 1
        now = self._clock()
        if self._start_time is None:
            self._start_time = now
        if self._step_time is None:
            self._step_time = now
        step = now - self._step_time
        total = now - self._start_time

        label = label if label is not None else self.current_label
        if config.enable_time_by_name and label:
            self.stats.record_duration(label, step)

        line = self._formatter.format(args_text, self.last_trace, format_duration(step), format_duration(total), label)
        self.writer.write(line + "\n")

        self._step_time = now
        return last

    def log(self, level: str, message: str, **context: Any) -> None:
        """Write ``[level, message, context]`` under label ``level``."""
        self._log(level, message, context, depth=2)

    def info(self, message: str, **context: Any) -> None:
        self._log("info", message, context, depth=2)

    def debug(self, message: str, **context: Any) -> None:
        self._log("debug", message, context, depth=2)

    def error(self, message: str, **context: Any) -> None:
        self._log("error", message, context, depth=2)

    def _log(self, level: str, message: str, context: Dict[str, Any], depth: int) -> None:
        if self.delegate is not None:
            levelno = logging.getLevelName(level.upper())
            self.delegate.log(levelno if isinstance(levelno, int) else logging.INFO, message)
        self.instrument(level, message, context, label=level, depth=depth)

    @contextmanager
    def labelled(self, label: str) -> Iterator["Engine"]:
        """Use ``label`` as the default label inside the block.

        Example:
            >>> with engine.labelled("render"):  # doctest: +SKIP
            ...     engine.instrument("template=", name)
        """
        previous = self.current_label
        self.current_label = label
        try:
            yield self
        finally:
            self.current_label = previous

    # ---------------------------------------------------------------------- #
    # Sections and switches
    # ---------------------------------------------------------------------- #

    def section(self, name: str) -> "Engine":
        """Switch the active section (provisions the run directory once)."""
        if not self.should_block():
            self.sections.switch_section(name)
        return self

    switch_section = section

    def add_channel(self, name: str) -> "Engine":
        if not self.should_block():
            self.sections.register_channel(name)
        return self

    def remove_channel(self, name: str) -> "Engine":
        self.sections.unregister_channel(name)
        return self

    def disable(self) -> "Engine":
        """Stop buffering and echoing. Stack capture and stats keep running."""
        self.config.enable_write = False
        self.config.enable_output = False
        return self

    def enable_write(self, enabled: bool = True) -> "Engine":
        self.config.enable_write = enabled
        return self

    def enable_output(self, enabled: bool = True) -> "Engine":
        self.config.enable_output = enabled
        return self

    def flush(self) -> int:
        return self.writer.flush()

    def write_file(self, name: str, content: Content, suffix: str = "") -> None:
        """Append ``content`` to ``<run dir>/<name><suffix>`` right away."""
        if not self.should_block():
            self.writer.write_file(name, content, suffix)

    # ---------------------------------------------------------------------- #
    # Lifecycle
    # ---------------------------------------------------------------------- #

    def mark_start(self) -> None:
        """Start the step and total timers if no call has started them yet."""
        now = self._clock()
        if self._start_time is None:
            self._start_time = now
        if self._step_time is None:
            self._step_time = now

    def bootstrap(self) -> "Engine":
        """Start the request: timers, the public section, server info, test log."""
        if self.should_block():
            return self

        self.mark_start()
        if not self.config.defer_server_info:
            self.section(PUBLIC_SECTION)
            self.write_server_info()
            self.start_test_log()
        return self

    def write_server_info(self) -> None:
        context = self.context
        self.write_file("start_requestURI", context.discriminator + "\n")
        self.write_file("start_requests", format_block(coerce(context.params)) + "\n")
        self.write_file("start_server", format_block(coerce(context.environ)) + "\n")

    def on_lifecycle_end(self) -> None:
        """Flush, write the stats report, finish the test log, write ``end``.

        Raises:
            ValueError: If the summary record cannot be encoded as JSON.
        """
        if self.config.disabled or self._permanently_disabled:
            return

        self.writer.flush()
        self.write_stats()
        self.end_test_log()

        elapsed = 0.0 if self._start_time is None else self._clock() - self._start_time
        summary = {"time_all_sys": elapsed, "time_all_str": format_duration(elapsed)}
        self.write_file("end", json.dumps(summary, allow_nan=False) + "\n")
        logger.debug("steplog request finished in %s", summary["time_all_str"])

    shutdown = on_lifecycle_end

    def write_stats(self) -> None:
        """Write the stats report files into the run directory."""
        write = self.write_file
        stats = self.stats

        steps = [
            f"{{time:'{format_duration(seconds)}',step:`{_js_template_text(label)}`}},\n"
            for label, seconds in stats.sorted_time_steps()
        ]
        write("timeStepSave", "[\n" + "".join(steps) + "]\n", ".js")

        function_calls = stats.function_calls()
        if function_calls:
            write("stats1", "".join("%5d=%s\n" % (n, k) for k, n in function_calls.items()))
        file_calls = stats.file_calls()
        if file_calls:
            write("stats2", "".join("%5d=%s\n" % (n, k) for k, n in file_calls.items()))

        write("stats3", "".join(_nested_lines(stats.nested_stats(), "")) + "\n")
        write("allIncluded", "".join(f"{path}\n" for path in self.included_files()))

    def included_files(self) -> List[str]:
        """Cleaned paths of every loaded module file, in import order."""
        files = []
        for module in list(sys.modules.values()):
            path = getattr(module, "__file__", None)
            if not path:
                continue
            clean = self._capturer.clean_path(path)
            if self.config.skip_vendor and self._capturer.is_vendor(clean):
                continue
            files.append(clean)
        return files

    # ---------------------------------------------------------------------- #
    # Test cases
    # ---------------------------------------------------------------------- #

    @property
    def test_cases(self) -> TestCaseBook:
        """Definitions from ``config.test_cases_path``, loaded on first use."""
        if self._test_cases is None:
            self._test_cases = TestCaseBook.load(self.config.test_cases_path, self._hooks, sink=self._append_test_log)
        return self._test_cases

    def _append_test_log(self, text: str) -> None:
        self.writer.exporter.export(self.config.resolved_test_log_path(), text + "\n")

    def start_test_log(self) -> None:
        self.test_cases.start(self.context.uri)

    def end_test_log(self) -> None:
        self.test_cases.end()

    def test(self, code: str, message: Any = None) -> None:
        """Log the test-case template registered under ``code``."""
        if not self.should_block():
            self.test_cases.test(code, message)

    def set_test_var(self, name: str, value: Any) -> "Engine":
        self.test_cases.set_var(name, value)
        return self

    # ---------------------------------------------------------------------- #
    # Tables and queries
    # ---------------------------------------------------------------------- #

    def export_csv(self, channel: str, rows: Any) -> None:
        """Append ``rows`` as one CSV line to ``<channel>.csv``."""
        if not self.should_block():
            self._csv.export(channel, rows)

    @staticmethod
    def interpolate(template: str, params: Mapping[str, Any], kinds: Optional[Mapping[str, str]] = None) -> str:
        return interpolate(template, params, kinds)

    def __repr__(self) -> str:  # pragma: no cover
        return f"Engine(uri={self.context.uri!r}, steps={self.step_count})"
