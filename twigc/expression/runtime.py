"""
Runtime helpers shared by the expression evaluator and generated modules.

Every Python source fragment produced by the evaluator refers to this module
as `rt`, so a computed value and its generated counterpart always go through
the same coercion rules.

Coercion rules:
- null coalesces to "" in string concatenation
- sequences coerce to their length in arithmetic and comparison
- numeric strings compare and compute as numbers
"""

from __future__ import annotations

import logging
import math
import re
from collections.abc import Mapping
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from ..errors import ExpressionError

logger = logging.getLogger(__name__)

_NUMBER_PREFIX = re.compile(r"\s*[-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?")
_REGEX_LITERAL = re.compile(r"^/(.*)/([a-z]*)$", re.DOTALL)
_REGEX_FLAGS = {"i": re.IGNORECASE, "m": re.MULTILINE, "s": re.DOTALL, "x": re.VERBOSE}


# ---------------------------- value coercion ---------------------------- #

def _is_sequence(value: Any) -> bool:
    return isinstance(value, (list, tuple))


def scalar(value: Any) -> Any:
    """Coerce sequences to their length; other values pass through."""
    if _is_sequence(value):
        return len(value)
    return value


def to_number(value: Any) -> Any:
    """
    Convert a value to a number.

    Strings are parsed by their leading numeric prefix; unparsable input
    yields NaN. Integers stay integers.
    """
    value = scalar(value)
    if value is None:
        return 0
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str):
        m = _NUMBER_PREFIX.match(value)
        if not m:
            return math.nan
        text = m.group(0).strip()
        if any(ch in text for ch in ".eE"):
            return float(text)
        return int(text)
    if isinstance(value, Mapping):
        return len(value)
    return math.nan


def to_str(value: Any) -> str:
    """Render a value as output text."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        if math.isnan(value):
            return "NaN"
        if math.isinf(value):
            return "Infinity" if value > 0 else "-Infinity"
        if value.is_integer():
            return str(int(value))
        return repr(value)
    if _is_sequence(value):
        return ",".join(to_str(item) for item in value)
    return str(value)


def boolval(value: Any) -> bool:
    """Template truthiness: None, false, 0, "", "0" and empty collections are false."""
    if value is None or value is False:
        return False
    if isinstance(value, (int, float)):
        return value != 0 and not (isinstance(value, float) and math.isnan(value))
    if isinstance(value, str):
        return value not in ("", "0")
    if isinstance(value, (list, tuple, dict, set)):
        return len(value) > 0
    return True


# ------------------------------ arithmetic ------------------------------ #

def add(a: Any, b: Any) -> Any:
    return to_number(a) + to_number(b)


def sub(a: Any, b: Any) -> Any:
    return to_number(a) - to_number(b)


def mul(a: Any, b: Any) -> Any:
    return to_number(a) * to_number(b)


def _divide_by_zero(numerator: Any) -> float:
    if numerator == 0 or (isinstance(numerator, float) and math.isnan(numerator)):
        return math.nan
    return math.inf if numerator > 0 else -math.inf


def div(a: Any, b: Any) -> Any:
    x, y = to_number(a), to_number(b)
    if y == 0:
        return _divide_by_zero(x)
    return x / y


def floordiv(a: Any, b: Any) -> Any:
    x, y = to_number(a), to_number(b)
    if y == 0:
        return _divide_by_zero(x)
    result = x / y
    if math.isnan(result) or math.isinf(result):
        return result
    return math.floor(result)


def mod(a: Any, b: Any) -> Any:
    x, y = to_number(a), to_number(b)
    if y == 0:
        return math.nan
    result = math.fmod(x, y)
    if isinstance(x, int) and isinstance(y, int):
        return int(result)
    return result


def power(a: Any, b: Any) -> Any:
    x, y = to_number(a), to_number(b)
    try:
        result = x ** y
    except ZeroDivisionError:
        return math.inf
    except OverflowError:
        return math.inf
    if isinstance(result, complex):
        return math.nan
    return result


def bit_or(a: Any, b: Any) -> int:
    return _to_int(a) | _to_int(b)


def bit_xor(a: Any, b: Any) -> int:
    return _to_int(a) ^ _to_int(b)


def bit_and(a: Any, b: Any) -> int:
    return _to_int(a) & _to_int(b)


def _to_int(value: Any) -> int:
    number = to_number(value)
    if isinstance(number, float) and (math.isnan(number) or math.isinf(number)):
        return 0
    return int(number)


# ------------------------------ comparison ------------------------------ #

def _comparable(a: Any, b: Any) -> Tuple[Any, Any]:
    a, b = scalar(a), scalar(b)
    if isinstance(a, str) and isinstance(b, str):
        return a, b
    return to_number(a), to_number(b)


def _loosely_empty(value: Any) -> bool:
    return value is None or (not isinstance(value, float) and value in ("", 0, False))


def eq(a: Any, b: Any) -> bool:
    a, b = scalar(a), scalar(b)
    if a is None or b is None:
        return _loosely_empty(a) and _loosely_empty(b)
    if isinstance(a, str) and isinstance(b, str):
        return a == b
    if isinstance(a, (int, float, bool)) or isinstance(b, (int, float, bool)):
        return to_number(a) == to_number(b)
    return a == b


def ne(a: Any, b: Any) -> bool:
    return not eq(a, b)


def lt(a: Any, b: Any) -> bool:
    x, y = _comparable(a, b)
    return x < y


def le(a: Any, b: Any) -> bool:
    x, y = _comparable(a, b)
    return x <= y


def gt(a: Any, b: Any) -> bool:
    x, y = _comparable(a, b)
    return x > y


def ge(a: Any, b: Any) -> bool:
    x, y = _comparable(a, b)
    return x >= y


# ------------------------------ membership ------------------------------ #

def _same(a: Any, b: Any) -> bool:
    return type(a) is type(b) and a == b


def contains(needle: Any, haystack: Any) -> bool:
    """Containment test: substring for strings, member for sequences, value for mappings."""
    if haystack is None:
        return False
    if isinstance(haystack, str):
        text = to_str(needle)
        return haystack == text or (text != "" and text in haystack)
    if isinstance(haystack, Mapping):
        return any(_same(needle, v) for v in haystack.values())
    if _is_sequence(haystack) or isinstance(haystack, (set, frozenset)):
        return any(_same(needle, v) for v in haystack)
    return False


def not_contains(needle: Any, haystack: Any) -> bool:
    return not contains(needle, haystack)


def starts_with(a: Any, b: Any) -> bool:
    if a is None:
        return False
    return to_str(a).startswith(to_str(b))


def ends_with(a: Any, b: Any) -> bool:
    if a is None:
        return False
    return to_str(a).endswith(to_str(b))


def compile_pattern(pattern: str) -> "re.Pattern[str]":
    """
    Compile a `/body/flags` pattern; a bare string is used as the body.

    Raises:
        ExpressionError: If the regular expression is invalid
    """
    body, flags = pattern, 0
    m = _REGEX_LITERAL.match(pattern)
    if m:
        body = m.group(1)
        for flag in m.group(2):
            flags |= _REGEX_FLAGS.get(flag, 0)
    try:
        return re.compile(body, flags)
    except re.error as e:
        raise ExpressionError(f"Invalid regular expression '{pattern}': {e}") from e


def matches(a: Any, pattern: Any) -> bool:
    return compile_pattern(to_str(pattern)).search(to_str(a)) is not None


def _is_char(value: Any) -> bool:
    return isinstance(value, str) and len(value) == 1 and not value.isdigit()


def range_inclusive(start: Any, end: Any, step: Any = 1) -> List[Any]:
    """
    Inclusive range, ascending or descending.

    Numeric strings count as numbers; other single characters produce a
    character range ('a'..'e').
    """
    if _is_char(start) and _is_char(end):
        return [chr(c) for c in range_inclusive(ord(start), ord(end), step)]
    first, last = _to_int(start), _to_int(end)
    stride = abs(_to_int(step)) or 1
    if first <= last:
        return list(range(first, last + 1, stride))
    return list(range(first, last - 1, -stride))


def coalesce(a: Any, fallback: Callable[[], Any]) -> Any:
    """`a ?? b`: the fallback runs only when a is null."""
    return fallback() if a is None else a


def elvis(a: Any, fallback: Callable[[], Any]) -> Any:
    """`a ?: b`: the fallback runs only when a is falsy."""
    return a if boolval(a) else fallback()


# ------------------------------ lookups ------------------------------ #

def lookup(p: Any, name: str, strict: bool = False) -> Any:
    """
    Resolve a variable in the render context.

    Raises:
        ExpressionError: If strict is set and the variable is not defined
    """
    if isinstance(p, Mapping):
        if name in p:
            return p[name]
    elif p is not None and hasattr(p, name):
        return getattr(p, name)
    if strict:
        raise ExpressionError(f"Variable '{name}' does not exist")
    return None


def attr(obj: Any, name: str) -> Any:
    """Resolve `obj.name` on mappings, sequences and plain objects."""
    if obj is None:
        return None
    if isinstance(obj, Mapping):
        return obj.get(name)
    if _is_sequence(obj):
        if name == "length":
            return len(obj)
        if name.isdigit():
            return item(obj, int(name))
        return None
    if isinstance(obj, str) and name == "length":
        return len(obj)
    return getattr(obj, name, None)


def item(obj: Any, key: Any) -> Any:
    """Resolve `obj[key]`; out-of-range or missing keys yield None."""
    if obj is None:
        return None
    if isinstance(obj, Mapping):
        return obj.get(key)
    if isinstance(obj, (list, tuple, str)):
        index = to_number(key)
        if isinstance(index, float):
            if not index.is_integer():
                return None
            index = int(index)
        if -len(obj) <= index < len(obj):
            return obj[index]
        return None
    return attr(obj, to_str(key))


def call_method(obj: Any, name: str, *args: Any) -> Any:
    """Call `obj.name(*args)`; mapping entries holding callables are supported."""
    if obj is None:
        return None
    target = obj.get(name) if isinstance(obj, Mapping) else getattr(obj, name, None)
    if not callable(target):
        return None
    return target(*args)


# --------------------------- template helpers --------------------------- #

Branch = Tuple[Callable[[Dict[str, Any]], Any], Callable[[Dict[str, Any]], Any]]
Producer = Callable[..., Any]


def child_context(p: Any, extra: Optional[Mapping] = None) -> Dict[str, Any]:
    """Copy the context so assignments never leak into the caller's mapping."""
    if p is None:
        ctx: Dict[str, Any] = {}
    elif isinstance(p, Mapping):
        ctx = dict(p)
    else:
        ctx = dict(vars(p))
    if extra:
        ctx.update(extra)
    return ctx


def assign(p: Dict[str, Any], name: str, value: Any) -> None:
    """`set` statement: bind a variable in the current context."""
    p[name] = value
    return None


def choose(p: Dict[str, Any], branches: Sequence[Branch]) -> Any:
    """Render the first branch whose condition holds."""
    for condition, body in branches:
        if boolval(condition(p)):
            return body(p)
    return None


def _item_key(value: Any, index: int) -> Any:
    if isinstance(value, Mapping) and value.get("key") is not None:
        return value["key"]
    key = getattr(value, "key", None) if not isinstance(value, (Mapping, str)) else None
    if key is not None and not callable(key):
        return key
    return index


def each(
    iterable: Any,
    p: Dict[str, Any],
    value_var: str,
    key_var: Optional[str] = None,
    condition: Optional[Callable[[Dict[str, Any]], Any]] = None,
) -> List[Tuple[Any, Dict[str, Any]]]:
    """
    Prepare loop iterations.

    Args:
        iterable: Sequence or mapping to iterate
        p: Enclosing context
        value_var: Name bound to the current value
        key_var: Name bound to the current key or index
        condition: Optional filter evaluated in each iteration's context

    Returns:
        List of (item key, iteration context) pairs; the context carries
        a `loop` mapping with index, index0, first, last and length
    """
    if iterable is None:
        return []
    if isinstance(iterable, Mapping):
        pairs = list(iterable.items())
    elif isinstance(iterable, str):
        pairs = [(0, iterable)]
    else:
        try:
            pairs = list(enumerate(iterable))
        except TypeError:
            logger.warning(f"Cannot iterate over value of type {type(iterable).__name__}")
            return []

    selected: List[Dict[str, Any]] = []
    for key, value in pairs:
        ctx = child_context(p)
        ctx[value_var] = value
        if key_var:
            ctx[key_var] = key
        if condition is not None and not boolval(condition(ctx)):
            continue
        selected.append(ctx)

    length = len(selected)
    result: List[Tuple[Any, Dict[str, Any]]] = []
    for index, ctx in enumerate(selected):
        ctx["loop"] = {
            "index": index + 1,
            "index0": index,
            "revindex": length - index,
            "revindex0": length - index - 1,
            "first": index == 0,
            "last": index == length - 1,
            "length": length,
            "parent": p,
        }
        result.append((_item_key(ctx[value_var], index), ctx))
    return result


def block(blocks: Optional[Mapping], name: str, p: Dict[str, Any], own: Producer) -> Any:
    """Render a named block: an override wins and can reach `own` through parent()."""
    override = blocks.get(name) if blocks else None
    if override is not None:
        return override(p, {name: own})
    return own(p)


def parent_block(parent_blocks: Optional[Mapping], name: str, p: Dict[str, Any]) -> Any:
    """Render the overridden content of the enclosing block."""
    target = parent_blocks.get(name) if parent_blocks else None
    if target is None:
        logger.warning(f"parent() called outside of an overriding block '{name}'")
        return None
    return target(p)


def merge_blocks(own: Mapping, blocks: Optional[Mapping]) -> Dict[str, Producer]:
    """Combine block overrides: the caller's blocks win over the template's own."""
    merged = dict(own)
    if blocks:
        merged.update(blocks)
    return merged


def extend(
    includes: Optional[Mapping],
    name: Any,
    p: Dict[str, Any],
    own_blocks: Mapping,
    blocks: Optional[Mapping] = None,
) -> Any:
    """Render the base template of a derived one with the derived blocks as overrides."""
    target = includes.get(to_str(name)) if includes else None
    if target is None:
        logger.warning(f"Base template '{to_str(name)}' is not available")
        return None
    return target(p, merge_blocks(own_blocks, blocks))


def include(
    includes: Optional[Mapping],
    name: Any,
    p: Dict[str, Any],
    extra: Optional[Mapping] = None,
    only: bool = False,
) -> Any:
    """Render an included template; a missing include yields nothing."""
    target = includes.get(to_str(name)) if includes else None
    if target is None:
        logger.warning(f"Included template '{to_str(name)}' is not available")
        return None
    if extra is not None and not isinstance(extra, Mapping):
        raise ExpressionError(f"Variables passed to include '{to_str(name)}' must be a mapping")
    ctx = child_context(None if only else p, extra)
    return target(ctx)


__all__ = [
    "scalar", "to_number", "to_str", "boolval",
    "add", "sub", "mul", "div", "floordiv", "mod", "power",
    "bit_or", "bit_xor", "bit_and",
    "eq", "ne", "lt", "le", "gt", "ge",
    "contains", "not_contains", "starts_with", "ends_with",
    "compile_pattern", "matches", "range_inclusive", "coalesce", "elvis",
    "lookup", "attr", "item", "call_method",
    "child_context", "assign", "choose", "each",
    "block", "parent_block", "merge_blocks", "extend", "include",
]
