"""
Operator table and operator application.

Rank is the binding strength of an operator: lower rank binds tighter.
Applying an operator to Evaluated operands yields a new Evaluated pair whose
source reproduces the computed value through the `rt` runtime module.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from ..errors import ExpressionError
from . import runtime as rt
from .model import Associativity, Evaluated, Instruction

L2R = Associativity.LEFT_TO_RIGHT
R2L = Associativity.RIGHT_TO_LEFT


@dataclass(frozen=True)
class OperatorInfo:
    """Static operator properties."""
    text: str
    rank: int
    associativity: Associativity
    unary: bool = False


def _table(*rows) -> Dict[str, OperatorInfo]:
    return {text: OperatorInfo(text, rank, assoc) for text, rank, assoc in rows}


OPERATORS: Dict[str, OperatorInfo] = _table(
    ("..", 20, L2R),
    (",", 18, L2R),
    ("?:", 16, R2L),
    ("?", 16, R2L),
    (":", 16, R2L),
    ("??", 15, R2L),
    ("or", 14, L2R),
    ("and", 13, L2R),
    ("b-or", 12, L2R),
    ("b-xor", 11, L2R),
    ("b-and", 10, L2R),
    ("==", 9, L2R),
    ("!=", 9, L2R),
    ("<", 8, L2R),
    ("<=", 8, L2R),
    (">", 8, L2R),
    (">=", 8, L2R),
    ("in", 8, L2R),
    ("not in", 8, L2R),
    ("matches", 8, L2R),
    ("starts with", 8, L2R),
    ("ends with", 8, L2R),
    ("~", 6, L2R),
    ("+", 6, L2R),
    ("-", 6, L2R),
    ("*", 5, L2R),
    ("/", 5, L2R),
    ("//", 5, L2R),
    ("%", 5, L2R),
    ("**", 5, L2R),
)

UNARY_OPERATORS: Dict[str, OperatorInfo] = {
    "not": OperatorInfo("not", 3, R2L, unary=True),
    "-": OperatorInfo("-", 3, R2L, unary=True),
    "+": OperatorInfo("+", 3, R2L, unary=True),
}

# Binary operators delegating to a runtime function of the same semantics
_RUNTIME_BINARY: Dict[str, str] = {
    "+": "add",
    "-": "sub",
    "*": "mul",
    "/": "div",
    "//": "floordiv",
    "%": "mod",
    "**": "power",
    "==": "eq",
    "!=": "ne",
    "<": "lt",
    "<=": "le",
    ">": "gt",
    ">=": "ge",
    "in": "contains",
    "not in": "not_contains",
    "matches": "matches",
    "starts with": "starts_with",
    "ends with": "ends_with",
    "..": "range_inclusive",
    "b-or": "bit_or",
    "b-xor": "bit_xor",
    "b-and": "bit_and",
    "??": "coalesce",
    "?:": "elvis",
}

# Runtime helpers taking their right operand as a callable
_FALLBACK_HELPERS = frozenset({"coalesce", "elvis"})


def lookup_operator(text: str, unary: bool = False) -> OperatorInfo:
    """
    Look up operator properties.

    Raises:
        ExpressionError: For unknown operators
    """
    table = UNARY_OPERATORS if unary else OPERATORS
    info = table.get(text)
    if info is None:
        raise ExpressionError(f"Failed to lookup operator: {text} is an unknown operator.")
    return info


def _deferred(live: bool, compute: Callable[[], Any]) -> Optional[Callable[[], Any]]:
    return compute if live else None


def apply_operator(instruction: Instruction, operands: List[Evaluated], live: bool = True) -> Evaluated:
    """
    Apply an operator instruction to its operands.

    In live mode operand values are zero-argument callables and so is the
    value of the result: nothing is computed until the caller forces it.
    `?`, `and`, `or`, `??` and `?:` force only the operands the generated
    source would evaluate, so an untaken branch never runs in either mode.

    Args:
        instruction: Operator instruction (unary, binary or ternary)
        operands: Operands in evaluation order (left to right)
        live: Defer the value computation; when False only the source is produced

    Returns:
        Evaluated pair of the result

    Raises:
        ExpressionError: For unknown operators or operand count mismatch
    """
    op = instruction.operator or ""
    if len(operands) != instruction.arity:
        raise ExpressionError(
            f"Operator '{op}' expects {instruction.arity} operands, got {len(operands)}"
        )

    if instruction.arity == 1:
        (x,) = operands
        if op == "not":
            return Evaluated(
                _deferred(live, lambda: not rt.boolval(x.value())),
                f"(not rt.boolval({x.source}))",
            )
        if op == "-":
            return Evaluated(
                _deferred(live, lambda: -rt.to_number(x.value())),
                f"(-rt.to_number({x.source}))",
            )
        if op == "+":
            return Evaluated(
                _deferred(live, lambda: rt.to_number(x.value())),
                f"rt.to_number({x.source})",
            )
        raise ExpressionError(f"Failed to lookup operator: {op} is an unknown operator.")

    if op == "?":
        a, b = operands[0], operands[1]
        c = operands[2] if instruction.arity == 3 else Evaluated(lambda: None, "None")
        return Evaluated(
            _deferred(live, lambda: b.value() if rt.boolval(a.value()) else c.value()),
            f"({b.source} if rt.boolval({a.source}) else {c.source})",
        )

    a, b = operands
    if op == "~":
        return Evaluated(
            _deferred(live, lambda: rt.to_str(a.value()) + rt.to_str(b.value())),
            f"(rt.to_str({a.source}) + rt.to_str({b.source}))",
        )
    if op == "and":
        return Evaluated(
            _deferred(live, lambda: rt.boolval(a.value()) and rt.boolval(b.value())),
            f"(rt.boolval({a.source}) and rt.boolval({b.source}))",
        )
    if op == "or":
        return Evaluated(
            _deferred(live, lambda: rt.boolval(a.value()) or rt.boolval(b.value())),
            f"(rt.boolval({a.source}) or rt.boolval({b.source}))",
        )

    name = _RUNTIME_BINARY.get(op)
    if name is None:
        raise ExpressionError(f"Failed to lookup operator: {op} is an unknown operator.")
    helper = getattr(rt, name)
    if name in _FALLBACK_HELPERS:
        return Evaluated(
            _deferred(live, lambda: helper(a.value(), b.value)),
            f"rt.{name}({a.source}, lambda: {b.source})",
        )
    return Evaluated(
        _deferred(live, lambda: helper(a.value(), b.value())),
        f"rt.{name}({a.source}, {b.source})",
    )


__all__ = [
    "OperatorInfo",
    "OPERATORS",
    "UNARY_OPERATORS",
    "lookup_operator",
    "apply_operator",
]
