"""conftest.py - Shared fixtures: in-memory exporter, fake clock, engine factory."""

from datetime import datetime

import pytest

from steplog.config import Config
from steplog.engine import Engine
from steplog.exporter import SectionExporter

FIXED_NOW = datetime(2025, 10, 19, 9, 41, 18)


class MemoryExporter(SectionExporter):
    """Collects every export in a dict keyed by path string."""

    def __init__(self):
        self.files = {}
        self.calls = 0

    def export(self, path, content):
        data = content.encode("utf-8") if isinstance(content, str) else content
        key = str(path)
        self.files[key] = self.files.get(key, b"") + data
        self.calls += 1

    def text(self, path) -> str:
        return self.files.get(str(path), b"").decode("utf-8")


class FakeClock:
    """Monotonic clock advanced by hand."""

    def __init__(self, start: float = 100.0):
        self.now = start

    def advance(self, seconds: float) -> None:
        self.now += seconds

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def exporter():
    return MemoryExporter()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def make_engine(tmp_path, exporter, clock):
    """Build an Engine rooted in ``tmp_path`` with injected collaborators.

    Keyword arguments are Config options, plus ``context``, ``hooks``,
    ``memory_probe`` and ``echo_stream``.
    """

    def factory(**options):
        context = options.pop("context", None)
        hooks = options.pop("hooks", None)
        memory_probe = options.pop("memory_probe", lambda: 0)
        echo_stream = options.pop("echo_stream", None)
        options.setdefault("base_path", str(tmp_path))
        return Engine(
            Config(**options),
            context,
            exporter=exporter,
            hooks=hooks,
            memory_probe=memory_probe,
            clock=clock,
            now=lambda: FIXED_NOW,
            echo_stream=echo_stream,
        )

    return factory
