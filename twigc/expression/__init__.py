"""
Template expression engine.

Expressions are compiled into postfix instructions and evaluated into
(value, source) pairs: the computed value and an equivalent Python fragment.
"""

from __future__ import annotations

from .compiler import ExpressionCompiler
from .evaluator import BlockScope, ExpressionEvaluator
from .library import FunctionLibrary, default_library
from .model import Associativity, Evaluated, Expression, Instruction, InstructionType
from .operators import OPERATORS, lookup_operator, apply_operator

__all__ = [
    "ExpressionCompiler",
    "ExpressionEvaluator",
    "BlockScope",
    "FunctionLibrary",
    "default_library",
    "Associativity",
    "Evaluated",
    "Expression",
    "Instruction",
    "InstructionType",
    "OPERATORS",
    "lookup_operator",
    "apply_operator",
]
