"""values.py - Tagged value model shared by every serializer.

Instrumented call sites pass arbitrary Python objects. Before any formatting
happens they are converted once by ``coerce()`` into the closed set of Value
variants below, so the serializers only ever deal with:

    Null, Bool, Int, Float, Str, Seq, Map, Timestamp, Opaque

Anything the package does not understand becomes ``Opaque`` carrying only the
qualified type name. Nothing keeps a reference to the original object.
"""

from datetime import date, datetime, time as dt_time
from typing import Any, Dict, Iterable, List, Tuple, Union


class Value:
    """Base class of all value variants."""

    __slots__ = ()

    def __eq__(self, other: object) -> bool:
        if type(other) is not type(self):
            return NotImplemented
        return all(getattr(self, s) == getattr(other, s) for s in self.__slots__)

    def __hash__(self) -> int:  # pragma: no cover
        return hash((type(self).__name__,) + tuple(repr(getattr(self, s)) for s in self.__slots__))

    def __repr__(self) -> str:  # pragma: no cover
        fields = ", ".join(f"{getattr(self, s)!r}" for s in self.__slots__)
        return f"{type(self).__name__}({fields})"


class Null(Value):
    __slots__ = ()


class Bool(Value):
    __slots__ = ("value",)

    def __init__(self, value: bool) -> None:
        self.value = value


class Int(Value):
    __slots__ = ("value",)

    def __init__(self, value: int) -> None:
        self.value = value


class Float(Value):
    __slots__ = ("value",)

    def __init__(self, value: float) -> None:
        self.value = value


class Str(Value):
    __slots__ = ("value",)

    def __init__(self, value: str) -> None:
        self.value = value


class Seq(Value):
    """Ordered sequence of values."""

    __slots__ = ("items",)

    def __init__(self, items: Iterable[Value] = ()) -> None:
        self.items: Tuple[Value, ...] = tuple(items)


class Map(Value):
    """String-keyed mapping; insertion order is preserved."""

    __slots__ = ("items",)

    def __init__(self, items: Iterable[Tuple[str, Value]] = ()) -> None:
        self.items: Tuple[Tuple[str, Value], ...] = tuple(items)

    def get(self, key: str, default: Any = None) -> Any:
        for k, v in self.items:
            if k == key:
                return v
        return default


class Timestamp(Value):
    __slots__ = ("value",)

    def __init__(self, value: datetime) -> None:
        self.value = value


class Opaque(Value):
    """A host object the serializers cannot look inside."""

    __slots__ = ("type_name",)

    def __init__(self, type_name: str) -> None:
        self.type_name = type_name


NULL = Null()

Scalar = Union[Null, Bool, Int, Float, Str, Timestamp]


def _type_name(obj: Any) -> str:
    cls = type(obj)
    module = cls.__module__
    if module in ("builtins", "__main__"):
        return cls.__qualname__
    return f"{module}.{cls.__qualname__}"


def coerce(obj: Any) -> Value:
    """Convert a native Python object into a Value.

    ``bool`` is checked before ``int`` because it is an ``int`` subclass.
    ``date`` objects are widened to midnight timestamps. Mapping keys are
    stringified.

    Example:
        >>> coerce({"rows": [1, 2.5, None]})
        Map((('rows', Seq((Int(1), Float(2.5), Null()))),))
    """
    if isinstance(obj, Value):
        return obj
    if obj is None:
        return NULL
    if isinstance(obj, bool):
        return Bool(obj)
    if isinstance(obj, int):
        return Int(obj)
    if isinstance(obj, float):
        return Float(obj)
    if isinstance(obj, str):
        return Str(obj)
    if isinstance(obj, datetime):
        return Timestamp(obj)
    if isinstance(obj, date):
        return Timestamp(datetime.combine(obj, dt_time()))
    if isinstance(obj, dict):
        return Map((str(k), coerce(v)) for k, v in obj.items())
    if isinstance(obj, (list, tuple, set, frozenset)):
        return Seq(coerce(v) for v in obj)
    return Opaque(_type_name(obj))


def coerce_all(values: Iterable[Any]) -> List[Value]:
    """Coerce every element of a write request."""
    return [coerce(v) for v in values]


def to_native(value: Value) -> Any:
    """Inverse of ``coerce`` for everything except Opaque (returns its type name)."""
    if isinstance(value, Null):
        return None
    if isinstance(value, (Bool, Int, Float, Str, Timestamp)):
        return value.value
    if isinstance(value, Seq):
        return [to_native(v) for v in value.items]
    if isinstance(value, Map):
        out: Dict[str, Any] = {}
        for k, v in value.items:
            out[k] = to_native(v)
        return out
    if isinstance(value, Opaque):
        return value.type_name
    raise TypeError(f"not a Value: {value!r}")
