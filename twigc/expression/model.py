"""
Data model for compiled expressions.

An expression is compiled into a postfix (RPN) list of instructions.
Evaluation replaces every instruction with an Evaluated pair carrying
the concrete value and an equivalent Python source fragment.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any, Optional, Tuple


class InstructionType(enum.Enum):
    """Types of postfix instructions."""
    NUMBER = "number"
    STRING = "string"
    BOOL = "bool"
    NULL = "null"
    VARIABLE = "variable"
    OPERATOR_BINARY = "operator.binary"
    OPERATOR_UNARY = "operator.unary"
    ATTRIBUTE = "key.period"          # .name
    INDEX = "key.brackets"            # [expr]
    FUNCTION = "function"             # name(args)
    METHOD = "method"                 # .name(args)
    FILTER = "filter"                 # |name or |name(args)
    ARRAY = "array"                   # [a, b]
    MAP = "map"                       # {k: v}


class Associativity(enum.Enum):
    LEFT_TO_RIGHT = "leftToRight"
    RIGHT_TO_LEFT = "rightToLeft"


OPERAND_TYPES = frozenset({
    InstructionType.NUMBER,
    InstructionType.STRING,
    InstructionType.BOOL,
    InstructionType.NULL,
    InstructionType.VARIABLE,
})


@dataclass(frozen=True)
class Instruction:
    """
    Single postfix instruction.

    Attributes:
        type: Instruction type
        value: Literal value (numbers, strings, bools) or identifier name
        operator: Operator text for operator instructions
        arity: Number of stack entries consumed by operators, calls and literals
        precedence: Operator rank (lower binds tighter)
        associativity: Operator associativity
    """
    type: InstructionType
    value: Any = None
    operator: Optional[str] = None
    arity: int = 0
    precedence: int = 0
    associativity: Optional[Associativity] = None

    def __repr__(self) -> str:
        if self.operator is not None:
            return f"Instruction({self.type.name}, {self.operator!r}/{self.arity})"
        if self.arity:
            return f"Instruction({self.type.name}, {self.value!r}/{self.arity})"
        return f"Instruction({self.type.name}, {self.value!r})"


@dataclass(frozen=True)
class Evaluated:
    """
    Result pair of one evaluation step.

    value is the concrete computed result; source is a Python expression
    that produces the same value at render time given `p` (context),
    `rt` (twigc.expression.runtime) and `lib` (function library). While the
    evaluator runs, live values are zero-argument callables producing the
    result on demand; `evaluate()` returns the forced value.
    """
    value: Any
    source: str


@dataclass(frozen=True)
class Expression:
    """Compiled expression together with the text it came from."""
    text: str
    stack: Tuple[Instruction, ...]

    def __repr__(self) -> str:
        return f"Expression({self.text!r})"


__all__ = [
    "InstructionType",
    "Associativity",
    "OPERAND_TYPES",
    "Instruction",
    "Evaluated",
    "Expression",
]
