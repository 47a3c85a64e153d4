"""handler.py - Route host failures into the engine's write pipeline.

FailureObserver is the integration point between the host's error reporting
and an Engine. Every observed failure is written through
``Engine.instrument()`` to a transient set of channels, so it lands next to
the request's regular output and in dedicated error files:

    error.log                every failure of the run
    error_<section>.log      failures seen while <section> was active
    error_wp.log             same as error.log, kept for the reporting tools
    error_wp_<section>.log   same as error_<section>.log

The channels exist only for the duration of one ``observe()`` call.

Typical usage:
    import logging
    from steplog import Engine
    from steplog.handler import FailureLogHandler, FailureObserver

    observer = FailureObserver(engine)
    logging.getLogger().addHandler(FailureLogHandler(observer))
    observer.capture_warnings()

    logging.getLogger("app").error("payment gateway timeout")   # -> error.log
"""

import logging
import warnings
from enum import IntEnum
from typing import Callable, List, Optional

from .engine import Engine
from .exceptions import ObservedFailure

DEFAULT_SECTION = "all"

# Frames from FailureLogHandler.emit up to the caller of Logger.error():
# emit, Handler.handle, Logger.callHandlers, Logger.handle, Logger._log, Logger.error
_LOGGING_CALL_DEPTH = 6


class Severity(IntEnum):
    NOTICE = 1
    WARNING = 2
    ERROR = 3
    FATAL = 4

    @classmethod
    def from_level(cls, levelno: int) -> "Severity":
        """Map a ``logging`` level number to a Severity.

        Example:
            >>> Severity.from_level(logging.CRITICAL)
            <Severity.FATAL: 4>
        """
        if levelno >= logging.CRITICAL:
            return cls.FATAL
        if levelno >= logging.ERROR:
            return cls.ERROR
        if levelno >= logging.WARNING:
            return cls.WARNING
        return cls.NOTICE


def format_failure(severity: Severity, message: str, path: str = "", line: int = 0) -> str:
    """Render one observed failure.

    Example:
        >>> format_failure(Severity.WARNING, "division by zero", "app/calc.py", 12)
        '[WARNING] division by zero in app/calc.py:12\\n'
    """
    where = f"{path}:{line}"
    if severity is Severity.FATAL:
        return f"[FATAL] {message}\n  Fatal error in {where}\n  Shutting down...\n"
    return f"[{severity.name}] {message} in {where}\n"


class FailureObserver:
    """Forward host failures into an Engine.

    Attributes:
        _engine (Engine): Receives every observed failure.
        _throw_errors (bool): Re-raise failures above NOTICE as ObservedFailure.
            Defaults to the engine's ``config.throw_errors``.
        _previous_showwarning: The ``warnings.showwarning`` replaced by
            ``capture_warnings()``, restored by ``release_warnings()``.
    """

    def __init__(self, engine: Engine, throw_errors: Optional[bool] = None) -> None:
        self._engine = engine
        self._throw_errors = engine.config.throw_errors if throw_errors is None else throw_errors
        self._previous_showwarning: Optional[Callable] = None

    @property
    def engine(self) -> Engine:
        return self._engine

    def channels(self) -> List[str]:
        """Transient channel names for the currently active section."""
        section = self._engine.sections.active or DEFAULT_SECTION
        return ["error", f"error_{section}", "error_wp", f"error_wp_{section}"]

    def observe(self, severity: Severity, message: str, path: str = "", line: int = 0, depth: int = 0) -> None:
        """Write one failure to the transient error channels.

        Args:
            severity: How bad it is. NOTICE is never re-raised.
            message: Failure text.
            path: Source file the failure was reported for.
            line: Source line the failure was reported for.
            depth: Extra frames between the real failure site and this call.

        Raises:
            ObservedFailure: When re-raising is enabled and ``severity`` is
                above NOTICE.
        """
        engine = self._engine
        severity = Severity(severity)
        engine.enable_write(True)

        added = [name for name in self.channels() if not engine.sections.is_registered(name)]
        for name in added:
            engine.add_channel(name)
        try:
            engine.instrument(format_failure(severity, message, path, line), depth=1 + depth)
        finally:
            # Channels the host registered itself stay registered.
            for name in added:
                engine.remove_channel(name)

        if self._throw_errors and severity > Severity.NOTICE:
            raise ObservedFailure(message, severity, path, line)

    # ---------------------------------------------------------------------- #
    # warnings integration
    # ---------------------------------------------------------------------- #

    def capture_warnings(self) -> None:
        """Route ``warnings.warn()`` through ``observe()`` at NOTICE."""
        if self._previous_showwarning is not None:
            return
        self._previous_showwarning = warnings.showwarning
        warnings.showwarning = self._showwarning

    def release_warnings(self) -> None:
        if self._previous_showwarning is None:
            return
        warnings.showwarning = self._previous_showwarning
        self._previous_showwarning = None

    def _showwarning(self, message, category, filename, lineno, file=None, line=None) -> None:
        self.observe(Severity.NOTICE, f"{category.__name__}: {message}", filename, lineno, depth=2)


class FailureLogHandler(logging.Handler):
    """A logging.Handler that feeds WARNING-and-above records to a FailureObserver.

    Records from steplog's own loggers are ignored so the engine never
    observes itself.

    Example:
        >>> logging.getLogger().addHandler(FailureLogHandler(FailureObserver(engine)))  # doctest: +SKIP
    """

    def __init__(self, observer: FailureObserver, level: int = logging.WARNING) -> None:
        super().__init__(level)
        self._observer = observer

    def emit(self, record: logging.LogRecord) -> None:
        if record.name.split(".", 1)[0] == "steplog":
            return

        message = record.getMessage()
        if record.exc_info and record.exc_info[1]:
            message = f"{type(record.exc_info[1]).__name__}: {message}"

        try:
            self._observer.observe(
                Severity.from_level(record.levelno),
                message,
                record.pathname,
                record.lineno,
                depth=_LOGGING_CALL_DEPTH,
            )
        except ObservedFailure:
            raise
        except Exception:
            self.handleError(record)
