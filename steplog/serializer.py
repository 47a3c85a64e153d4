"""serializer.py - Value serialization strategies.

Two per-value renderings and four whole-request data formats:

    to_display_text(value)   human-oriented text (``null``, ``[1, 2]``, ISO stamps)
    to_literal_text(value)   Python-source literal that evaluates back to the scalar

    DataFormat.CONCAT    display texts joined with ", "
    DataFormat.INDENTED  ``array(...)`` block, one element per line
    DataFormat.DUMP      recursive ``{ key => ... }`` dump under a DumpBudget
    DataFormat.LITERAL   one bracketed literal list

``interpolate()`` is the debug-only query renderer built on top of the literal
form. It never executes anything.
"""

import json
import math
import re
from enum import Enum
from typing import Any, Iterable, List, Mapping, Optional, Sequence, Tuple

from .values import (
    Bool,
    Float,
    Int,
    Map,
    Null,
    Opaque,
    Seq,
    Str,
    Timestamp,
    Value,
    coerce,
    to_native,
)


class DataFormat(str, Enum):
    CONCAT = "concat"
    INDENTED = "indented"
    DUMP = "dump"
    LITERAL = "literal"


class DumpBudget:
    """Limits for ``DataFormat.DUMP``.

    Attributes:
        max_depth: Nesting levels expanded before falling back to raw inspection.
        max_elements: Children shown per container.
        max_total: Children shown across the whole dump.
    """

    __slots__ = ("max_depth", "max_elements", "max_total")

    def __init__(self, max_depth: int = 3, max_elements: int = 10, max_total: int = 100) -> None:
        self.max_depth = max_depth
        self.max_elements = max_elements
        self.max_total = max_total


def _timestamp_text(value: Timestamp) -> str:
    return value.value.isoformat(timespec="microseconds")


def _pairs(value: Value) -> List[Tuple[Optional[str], Value]]:
    if isinstance(value, Map):
        return list(value.items)
    return [(None, v) for v in value.items]


# ---------------------------------------------------------------------------
# Per-value renderings
# ---------------------------------------------------------------------------


def to_display_text(value: Value) -> str:
    """Render a value for humans.

    Example:
        >>> to_display_text(coerce([1, None, True, "x"]))
        '[1, null, true, x]'
    """
    if isinstance(value, Null):
        return "null"
    if isinstance(value, Bool):
        return "true" if value.value else "false"
    if isinstance(value, Int):
        return str(value.value)
    if isinstance(value, Float):
        return repr(value.value)
    if isinstance(value, Str):
        return value.value
    if isinstance(value, Seq):
        return "[" + ", ".join(to_display_text(v) for v in value.items) + "]"
    if isinstance(value, Map):
        return "[" + ", ".join(f"{k} => {to_display_text(v)}" for k, v in value.items) + "]"
    if isinstance(value, Timestamp):
        return _timestamp_text(value)
    if isinstance(value, Opaque):
        return f"object({value.type_name})"
    raise TypeError(f"not a Value: {value!r}")


_ESCAPES = {
    "\\": "\\\\",
    "'": "\\'",
    "\0": "\\x00",
    "\n": "\\n",
    "\r": "\\r",
    "\t": "\\t",
}
_ESCAPE_RE = re.compile("[\\\\'\0\n\r\t]")


def escape_literal(text: str) -> str:
    """Escape ``text`` for use inside a single-quoted literal."""
    return _ESCAPE_RE.sub(lambda m: _ESCAPES[m.group(0)], text)


def _float_literal(number: float) -> str:
    if math.isnan(number):
        return "float('nan')"
    if math.isinf(number):
        return "float('inf')" if number > 0 else "float('-inf')"
    # repr() never uses the locale's decimal separator
    return repr(number)


def to_literal_text(value: Value) -> str:
    """Render a value as a Python-source literal.

    Scalars round-trip through ``ast.literal_eval``. Timestamps become a
    ``datetime.fromisoformat(...)`` call. Opaque values render as
    ``<object(Type)>`` which deliberately does not evaluate.

    Example:
        >>> to_literal_text(coerce({"name": "O'Hara", "n": 1.5}))
        "{'name': 'O\\\\'Hara', 'n': 1.5}"
    """
    if isinstance(value, Null):
        return "None"
    if isinstance(value, Bool):
        return "True" if value.value else "False"
    if isinstance(value, Int):
        return str(value.value)
    if isinstance(value, Float):
        return _float_literal(value.value)
    if isinstance(value, Str):
        return "'" + escape_literal(value.value) + "'"
    if isinstance(value, Seq):
        return "[" + ", ".join(to_literal_text(v) for v in value.items) + "]"
    if isinstance(value, Map):
        return "{" + ", ".join(
            f"'{escape_literal(k)}': {to_literal_text(v)}" for k, v in value.items
        ) + "}"
    if isinstance(value, Timestamp):
        return f"datetime.fromisoformat('{_timestamp_text(value)}')"
    if isinstance(value, Opaque):
        return f"<object({value.type_name})>"
    raise TypeError(f"not a Value: {value!r}")


def inspect_raw(value: Value) -> str:
    """Type-tagged rendering used once a dump budget runs out."""
    if isinstance(value, Null):
        return "Null"
    if isinstance(value, Str):
        return f"Str({len(value.value)}) {to_literal_text(value)}"
    if isinstance(value, (Seq, Map)):
        return f"{type(value).__name__}({len(value.items)}) {to_display_text(value)}"
    return f"{type(value).__name__}({to_display_text(value)})"


# ---------------------------------------------------------------------------
# Whole-request formats
# ---------------------------------------------------------------------------


def format_concat(values: Sequence[Value]) -> str:
    return ", ".join(to_display_text(v) for v in values)


def _indented_value(value: Value, indent: str) -> str:
    if isinstance(value, (Seq, Map)):
        return _indented_block(_pairs(value), indent)
    return to_display_text(value)


def _indented_block(pairs: Iterable[Tuple[Optional[str], Value]], indent: str) -> str:
    parts = []
    for key, value in pairs:
        key_text = "" if key is None else f"{key} => "
        parts.append(f"{indent}    {key_text}{_indented_value(value, indent + '    ')}")
    tail = f"\n{indent}" if parts else ""
    return "array(\n" + ",\n".join(parts) + tail + ")"


def format_block(value: Value) -> str:
    """Indented block form of a single value (containers expand, scalars inline)."""
    return _indented_value(value, "")


def format_indented(values: Sequence[Value]) -> str:
    """Render a request as an ``array(...)`` block.

    Example:
        >>> print(format_indented([coerce("a"), coerce({"k": 1})]))
        array(
            a,
            array(
                k => 1
            )
        )
    """
    return _indented_block([(None, v) for v in values], "")


def _dump(value: Value, depth: int, level: int, budget: DumpBudget, remaining: List[int]) -> str:
    if depth <= 0 or remaining[0] <= 0 or not isinstance(value, (Seq, Map)):
        return inspect_raw(value)

    pad = "  " * (level + 1)
    pairs = _pairs(value)
    lines = ["{"]
    for index, (key, child) in enumerate(pairs):
        if index >= budget.max_elements or remaining[0] <= 0:
            lines.append(f"{pad}... ({len(pairs) - index} more)")
            break
        remaining[0] -= 1
        label = index if key is None else key
        lines.append(f"{pad}{label} => {_dump(child, depth - 1, level + 1, budget, remaining)}")
    lines.append("  " * level + "}")
    return "\n".join(lines)


def dump_value(value: Value, budget: Optional[DumpBudget] = None) -> str:
    """Verbose recursive dump of one value.

    Recursion stops as soon as any budget is exhausted; whatever is left is
    rendered by ``inspect_raw``.
    """
    budget = budget or DumpBudget()
    return _dump(value, budget.max_depth, 0, budget, [budget.max_total])


def format_dump(values: Sequence[Value], budget: Optional[DumpBudget] = None) -> str:
    return dump_value(Seq(values), budget)


def format_literal(values: Sequence[Value]) -> str:
    return "[" + ", ".join(to_literal_text(v) for v in values) + "]"


def format_data(
    values: Sequence[Value],
    data_format: DataFormat = DataFormat.CONCAT,
    budget: Optional[DumpBudget] = None,
) -> str:
    """Serialize a whole write request under ``data_format``."""
    data_format = DataFormat(data_format)
    if data_format is DataFormat.INDENTED:
        return format_indented(values)
    if data_format is DataFormat.DUMP:
        return format_dump(values, budget)
    if data_format is DataFormat.LITERAL:
        return format_literal(values)
    return format_concat(values)


# ---------------------------------------------------------------------------
# Parameterized-text interpolation
# ---------------------------------------------------------------------------

ARRAY_KINDS = frozenset({"text_array", "int_array"})
JSON_KIND = "json"
_RESERVED_RE = re.compile(r"(?<![\w.])regexp_escape\b")


def interpolate(
    template: str,
    params: Mapping[str, Any],
    kinds: Optional[Mapping[str, str]] = None,
) -> str:
    """Substitute ``:name`` placeholders with literal renderings of ``params``.

    For reading a query in a log, never for running one. Array kinds are
    prefixed with ``ARRAY``; the ``json`` kind is rendered with ``json.dumps``.
    Longer names are substituted first so ``:ids`` is not clobbered by ``:id``.

    Example:
        >>> interpolate("select * from t where id = :id and tag = any(:tags)",
        ...             {"id": 7, "tags": ["a", "b"]}, {"tags": "text_array"})
        "select * from t where id = 7 and tag = any(ARRAY['a', 'b'])"
    """
    kinds = kinds or {}
    if params:
        replacements = {}
        for name, raw in params.items():
            value = coerce(raw)
            kind = kinds.get(name)
            if kind in ARRAY_KINDS:
                replacements[name] = "ARRAY" + to_literal_text(value)
            elif kind == JSON_KIND:
                replacements[name] = json.dumps(to_native(value), ensure_ascii=False, default=str)
            else:
                replacements[name] = to_literal_text(value)

        names = sorted(replacements, key=len, reverse=True)
        pattern = re.compile(":(" + "|".join(re.escape(n) for n in names) + r")(?!\w)")
        template = pattern.sub(lambda m: replacements[m.group(1)], template)

    return _RESERVED_RE.sub("public.regexp_escape", template)
