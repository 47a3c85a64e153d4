"""stats.py - Run-scoped profiling statistics.

StatsAggregator is pure bookkeeping: counters, cumulative durations, the
ordered list of timed steps, a flat nested-stats map and per-column field
widths for trace alignment. It never formats anything itself.

Every read accessor returns a copy so that callers cannot mutate aggregator
state through a snapshot.
"""

from typing import Any, Dict, List, NamedTuple, Sequence, Tuple

NESTED_KEY_SEPARATOR = " > "


class StatsSnapshot(NamedTuple):
    """Point-in-time copy of all aggregator state."""

    function_calls: Dict[str, int]
    file_calls: Dict[str, int]
    durations: Dict[str, float]
    time_steps: List[Tuple[str, float]]
    nested_stats: Dict[str, Dict[str, Any]]
    field_widths: Dict[str, int]


class StatsAggregator:
    """Mutable statistics for one run.

    Example:
        >>> stats = StatsAggregator()
        >>> stats.record_duration("render", 1.2)
        >>> stats.record_duration("render", 0.4)
        >>> round(stats.total_duration("render"), 6)
        1.6
        >>> stats.time_steps()
        [('render', 1.2), ('render', 0.4)]
    """

    def __init__(self) -> None:
        self._function_calls: Dict[str, int] = {}
        self._file_calls: Dict[str, int] = {}
        self._durations: Dict[str, float] = {}
        self._time_steps: List[Tuple[str, float]] = []
        self._nested_stats: Dict[str, Dict[str, Any]] = {}
        self._field_widths: Dict[str, int] = {}

    # ---------------------------------------------------------------------- #
    # Counters and timing
    # ---------------------------------------------------------------------- #

    def increment_function_call(self, label: str) -> None:
        self._function_calls[label] = self._function_calls.get(label, 0) + 1

    def increment_file_call(self, path: str) -> None:
        self._file_calls[path] = self._file_calls.get(path, 0) + 1

    def record_duration(self, label: str, seconds: float) -> None:
        """Add ``seconds`` to ``label``'s total and append one time step."""
        self._durations[label] = self._durations.get(label, 0.0) + seconds
        self._time_steps.append((label, seconds))

    def total_duration(self, label: str) -> float:
        return self._durations.get(label, 0.0)

    def extend_nested(self, path: Sequence[str], key: str, value: Any = None) -> None:
        """Store ``{key: value}`` under the composite key built from ``path``.

        This is a flat map keyed by joined path segments, not a tree.
        """
        self._nested_stats[NESTED_KEY_SEPARATOR.join(path)] = {key: value}

    # ---------------------------------------------------------------------- #
    # Field widths
    # ---------------------------------------------------------------------- #

    def field_width(self, column: str, value: str) -> int:
        """Return the widest ``value`` seen for ``column`` in this cycle.

        Width is measured in characters (``len`` of a ``str``), so multi-byte
        UTF-8 text is not over-counted.
        """
        length = len(value)
        if self._field_widths.get(column, -1) < length:
            self._field_widths[column] = length
        return self._field_widths[column]

    def clear_field_widths(self) -> None:
        """Start a new alignment cycle. Called once per trace capture."""
        self._field_widths.clear()

    # ---------------------------------------------------------------------- #
    # Read accessors (copies)
    # ---------------------------------------------------------------------- #

    def function_calls(self) -> Dict[str, int]:
        return dict(self._function_calls)

    def file_calls(self) -> Dict[str, int]:
        return dict(self._file_calls)

    def durations(self) -> Dict[str, float]:
        return dict(self._durations)

    def time_steps(self) -> List[Tuple[str, float]]:
        return list(self._time_steps)

    def sorted_time_steps(self) -> List[Tuple[str, float]]:
        """Time steps by duration, longest first; ties keep insertion order.

        The stored sequence itself is left untouched.
        """
        return sorted(self._time_steps, key=lambda step: step[1], reverse=True)

    def nested_stats(self) -> Dict[str, Dict[str, Any]]:
        return {k: dict(v) for k, v in self._nested_stats.items()}

    def field_widths(self) -> Dict[str, int]:
        return dict(self._field_widths)

    def snapshot(self) -> StatsSnapshot:
        return StatsSnapshot(
            function_calls=self.function_calls(),
            file_calls=self.file_calls(),
            durations=self.durations(),
            time_steps=self.time_steps(),
            nested_stats=self.nested_stats(),
            field_widths=self.field_widths(),
        )
