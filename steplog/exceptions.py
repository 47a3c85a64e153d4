"""exceptions.py - Exception types raised by steplog."""


class SteplogError(Exception):
    """Base exception for steplog errors."""


class ConfigError(SteplogError):
    """Configuration file is missing, unreadable, or contains invalid options."""


class SectionProvisionError(SteplogError):
    """A section's target directory could not be created.

    Instrumentation cannot proceed without a writable target, so this is
    never swallowed by the engine.
    """


class ObservedFailure(SteplogError):
    """A host failure routed through FailureObserver and re-raised.

    Attributes:
        severity: The ``Severity`` the failure was observed with.
        path: Source file reported for the failure (may be empty).
        line: Source line reported for the failure (0 when unknown).
    """

    def __init__(self, message: str, severity, path: str = "", line: int = 0) -> None:
        super().__init__(message)
        self.severity = severity
        self.path = path
        self.line = line
