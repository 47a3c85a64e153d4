"""steplog/__init__.py - Public API for the steplog package.

steplog is an in-process diagnostic instrumentation engine for request
handling. Each ``instrument()`` call records the values passed to it together
with an aligned call-stack excerpt and step/total timings; lines are buffered
per output channel and written to a per-request run directory when the
request ends, followed by a small stats report.

Quick start:
    from steplog import Config, Engine, RequestContext, trace

    # 1. One engine per request, owned by the host
    engine = Engine(Config(base_path="/var/log/app/steplog"), RequestContext.from_cli())
    engine.bootstrap()                      # public section, server info, test log

    # 2. Instrument anything; the last value is returned for chaining
    rows = engine.instrument("rows=", repo.fetch(), label="db.fetch")

    # 3. Optionally wrap functions for entry/return lines and per-name timing
    @trace(engine)
    def render(rows):
        ...

    # 4. Write everything out
    engine.on_lifecycle_end()

Exported names:
    Engine:            The write pipeline and lifecycle.
    Config:            Recognized options (dataclass; ``Config.from_yaml``).
    RequestContext:    The request being instrumented (``from_cli``/``from_wsgi``).
    LayoutMode:        Message layouts (verbose, minimal, profiling, default).
    DataFormat:        Value formats (concat, indented, dump, literal).
    trace:             Decorator writing >>, << and !! lines.
    FailureObserver:   Routes host failures to the transient error channels.
    FailureLogHandler: logging.Handler adapter for FailureObserver.
    Severity:          Failure severities understood by FailureObserver.
    FileExporter:      Locked appends to files on disk (the default).
    StreamExporter:    Writes section content to a stream instead.
    SectionExporter:   Base class for custom flush targets.
"""

from .config import Config
from .context import RequestContext
from .engine import Engine
from .exceptions import ConfigError, ObservedFailure, SectionProvisionError, SteplogError
from .exporter import FileExporter, SectionExporter, StreamExporter
from .formatter import LayoutMode, format_duration
from .handler import FailureLogHandler, FailureObserver, Severity
from .instrument import trace
from .serializer import DataFormat, interpolate

__all__ = [
    "Engine",
    "Config",
    "RequestContext",
    "LayoutMode",
    "DataFormat",
    "trace",
    "FailureObserver",
    "FailureLogHandler",
    "Severity",
    "FileExporter",
    "StreamExporter",
    "SectionExporter",
    "format_duration",
    "interpolate",
    "SteplogError",
    "ConfigError",
    "SectionProvisionError",
    "ObservedFailure",
]
__version__ = "0.1.0"
