"""instrument.py - Optional @trace decorator for per-function steps.

The decorator writes up to three lines per call through ``Engine.instrument``:

    ``>>``  Function entry, with all bound argument values.
    ``<<``  Normal return, with the return value.
    ``!!``  Unhandled exception, with exception type and message.

The return and exception lines carry the function's qualified name as their
label, so with per-label timing enabled the time spent inside the function is
accumulated under that name and shows up in ``timeStepSave.js``.

Usage:
    from steplog import trace

    @trace(engine)
    def load_order(order_id: int) -> dict:
        ...

    @trace(engine, label="checkout.total")
    def total(order):
        ...
"""

import inspect
from functools import wraps
from typing import Callable, Optional

from .engine import Engine


def trace(engine: Engine, label: Optional[str] = None) -> Callable[[Callable], Callable]:
    """Decorator factory recording entry, return and exceptions of a function.

    Args:
        engine: Engine the lines are written to.
        label: Label for the return/exception lines. Defaults to the
            function's ``__qualname__``.

    Returns:
        A decorator producing a wrapper with the original's name and docstring.

    Raises:
        Any exception raised by the wrapped function is re-raised unchanged
        after the ``!!`` line is written.

    Example:
        >>> @trace(engine)  # doctest: +SKIP
        ... def divide(a, b):
        ...     return a / b
        >>> divide(10, 2)  # doctest: +SKIP
        5.0
    """

    def decorator(func: Callable) -> Callable:
        name = label or func.__qualname__

        @wraps(func)
        def wrapper(*args, **kwargs):
            # Bound arguments give keyword names even for positional calls.
            try:
                bound = inspect.signature(func).bind(*args, **kwargs)
                bound.apply_defaults()
                arguments = dict(bound.arguments)
            except (TypeError, ValueError):
                arguments = {"args": list(args), "kwargs": kwargs}

            engine.instrument(f">> {name}", arguments, depth=1)
            try:
                result = func(*args, **kwargs)
            except Exception as exc:
                engine.instrument(f"!! {type(exc).__name__}: {exc}", label=name, depth=1)
                raise
            engine.instrument("<<", result, label=name, depth=1)
            return result

        return wrapper

    return decorator
