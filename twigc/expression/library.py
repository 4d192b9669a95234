"""
Function and filter library for template expressions.

Generated modules bind one library instance as `lib` and call it with
`lib.call(name, *args)` and `lib.filter(name, value, *args)`; the evaluator
goes through the same instance so computed values and generated code agree.
"""

from __future__ import annotations

import json
import logging
import math
from collections.abc import Mapping
from typing import Any, Callable, Dict, Tuple

from ..errors import ExpressionError
from . import runtime as rt

logger = logging.getLogger(__name__)

TemplateCallable = Callable[..., Any]

_ARGUMENT_ERRORS = (TypeError, ValueError, KeyError, IndexError, AttributeError)


def _describe(values: Tuple[Any, ...]) -> str:
    names = ", ".join(type(v).__name__ for v in values)
    return f"({names})"


class FunctionLibrary:
    """
    Registry of template functions and filters.

    Filters receive the filtered value as their first argument.
    """

    def __init__(self):
        self.functions: Dict[str, TemplateCallable] = {}
        self.filters: Dict[str, TemplateCallable] = {}

    def register_function(self, name: str, func: TemplateCallable) -> None:
        """
        Register a template function.

        Raises:
            ValueError: If the function is already registered
        """
        if name in self.functions:
            raise ValueError(f"Function '{name}' already registered")
        self.functions[name] = func
        logger.debug(f"Registered function: {name}")

    def register_filter(self, name: str, func: TemplateCallable) -> None:
        """
        Register a template filter.

        Raises:
            ValueError: If the filter is already registered
        """
        if name in self.filters:
            raise ValueError(f"Filter '{name}' already registered")
        self.filters[name] = func
        logger.debug(f"Registered filter: {name}")

    def call(self, name: str, *args: Any) -> Any:
        """
        Call a template function.

        Raises:
            ExpressionError: For unknown functions and arguments the function rejects
        """
        func = self.functions.get(name)
        if func is None:
            raise ExpressionError(f"Unknown function '{name}'")
        try:
            return func(*args)
        except _ARGUMENT_ERRORS as e:
            raise ExpressionError(f"Function '{name}' failed on {_describe(args)}: {e}") from e

    def filter(self, name: str, value: Any, *args: Any) -> Any:
        """
        Apply a template filter.

        Raises:
            ExpressionError: For unknown filters and values the filter rejects
        """
        func = self.filters.get(name)
        if func is None:
            raise ExpressionError(f"Unknown filter '{name}'")
        try:
            return func(value, *args)
        except _ARGUMENT_ERRORS as e:
            raise ExpressionError(f"Filter '{name}' failed on {_describe((value,))}: {e}") from e

    def copy(self) -> "FunctionLibrary":
        """Independent copy for extending without touching the original."""
        clone = FunctionLibrary()
        clone.functions.update(self.functions)
        clone.filters.update(self.filters)
        return clone


# ---------------------------- built-in filters ---------------------------- #

def _length(value: Any) -> int:
    if value is None:
        return 0
    if isinstance(value, (str, list, tuple, dict, set)):
        return len(value)
    return len(rt.to_str(value))


def _default(value: Any, fallback: Any = "") -> Any:
    if value is None or value == "" or value == [] or value == {}:
        return fallback
    return value


def _join(value: Any, glue: Any = "") -> str:
    if value is None:
        return ""
    items = value.values() if isinstance(value, Mapping) else value
    return rt.to_str(glue).join(rt.to_str(item) for item in items)


def _keys(value: Any) -> list:
    if isinstance(value, Mapping):
        return list(value.keys())
    if isinstance(value, (list, tuple)):
        return list(range(len(value)))
    return []


def _first(value: Any) -> Any:
    if isinstance(value, Mapping):
        value = list(value.values())
    if not value:
        return None
    return value[0]


def _last(value: Any) -> Any:
    if isinstance(value, Mapping):
        value = list(value.values())
    if not value:
        return None
    return value[-1]


def _reverse(value: Any) -> Any:
    if isinstance(value, str):
        return value[::-1]
    if isinstance(value, Mapping):
        return dict(reversed(list(value.items())))
    if value is None:
        return None
    return list(reversed(list(value)))


def _sort(value: Any) -> Any:
    if isinstance(value, Mapping):
        return dict(sorted(value.items(), key=lambda kv: kv[1]))
    if value is None:
        return None
    return sorted(value)


def _abs(value: Any) -> Any:
    return abs(rt.to_number(value))


def _round(value: Any, precision: Any = 0, method: str = "common") -> Any:
    number = rt.to_number(value)
    digits = int(rt.to_number(precision))
    factor = 10 ** digits
    if method == "ceil":
        result = math.ceil(number * factor) / factor
    elif method == "floor":
        result = math.floor(number * factor) / factor
    else:
        # half away from zero
        result = math.floor(abs(number) * factor + 0.5) / factor
        result = math.copysign(result, number)
    return int(result) if digits <= 0 else result


def _capitalize(value: Any) -> str:
    text = rt.to_str(value)
    return text[:1].upper() + text[1:].lower()


def _json_encode(value: Any) -> str:
    return json.dumps(value, ensure_ascii=False, separators=(",", ":"), default=str)


def _trim(value: Any, chars: Any = None) -> str:
    return rt.to_str(value).strip(None if chars is None else rt.to_str(chars))


def _replace(value: Any, pairs: Any) -> str:
    text = rt.to_str(value)
    if isinstance(pairs, Mapping):
        for search, replacement in pairs.items():
            text = text.replace(rt.to_str(search), rt.to_str(replacement))
    return text


def _split(value: Any, delimiter: Any = "") -> list:
    text = rt.to_str(value)
    sep = rt.to_str(delimiter)
    if sep == "":
        return list(text)
    return text.split(sep)


# --------------------------- built-in functions --------------------------- #

def _range(low: Any, high: Any, step: Any = 1) -> list:
    return rt.range_inclusive(low, high, step)


def _cycle(values: Any, position: Any) -> Any:
    if not values:
        return None
    return values[int(rt.to_number(position)) % len(values)]


def _max(*values: Any) -> Any:
    if len(values) == 1 and isinstance(values[0], (list, tuple)):
        values = tuple(values[0])
    if not values:
        return None
    return max(values, key=rt.to_number)


def _min(*values: Any) -> Any:
    if len(values) == 1 and isinstance(values[0], (list, tuple)):
        values = tuple(values[0])
    if not values:
        return None
    return min(values, key=rt.to_number)


def build_default_library() -> FunctionLibrary:
    """Create a library with the built-in functions and filters."""
    library = FunctionLibrary()

    library.register_function("range", _range)
    library.register_function("cycle", _cycle)
    library.register_function("max", _max)
    library.register_function("min", _min)
    library.register_function("attribute", rt.attr)

    library.register_filter("upper", lambda v: rt.to_str(v).upper())
    library.register_filter("lower", lambda v: rt.to_str(v).lower())
    library.register_filter("capitalize", _capitalize)
    library.register_filter("title", lambda v: rt.to_str(v).title())
    library.register_filter("trim", _trim)
    library.register_filter("length", _length)
    library.register_filter("default", _default)
    library.register_filter("join", _join)
    library.register_filter("keys", _keys)
    library.register_filter("first", _first)
    library.register_filter("last", _last)
    library.register_filter("reverse", _reverse)
    library.register_filter("sort", _sort)
    library.register_filter("abs", _abs)
    library.register_filter("round", _round)
    library.register_filter("json_encode", _json_encode)
    library.register_filter("replace", _replace)
    library.register_filter("split", _split)
    library.register_filter("raw", lambda v: v)

    return library


default_library = build_default_library()


__all__ = ["FunctionLibrary", "TemplateCallable", "build_default_library", "default_library"]
