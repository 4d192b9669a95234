"""
Postfix expression evaluator and source generator.

One stack machine serves both modes: every instruction pushes an Evaluated
pair. With a context the values are deferred callables, forced once at the
end, so operands the generated code skips are skipped live too; without a
context only the Python source is produced, so the generated code cannot
drift from the evaluator.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, FrozenSet, List, Mapping, Optional, Sequence, Tuple

from ..errors import ExpressionError
from . import runtime as rt
from .library import FunctionLibrary, default_library
from .model import Evaluated, Instruction, InstructionType
from .operators import apply_operator

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BlockScope:
    """
    Enclosing block of an expression, enabling parent().

    Attributes:
        name: Block name
        parent_blocks: Producers of the overridden content (live mode only)
    """
    name: str
    parent_blocks: Optional[Mapping] = None


class ExpressionEvaluator:
    """
    Runs postfix instruction stacks.

    Args:
        library: Function library; must be the instance generated code binds as `lib`
        strict: Raise on undefined variables instead of yielding None
    """

    def __init__(self, library: Optional[FunctionLibrary] = None, strict: bool = False):
        self.library = library or default_library
        self.strict = strict

    def evaluate(
        self,
        stack: Sequence[Instruction],
        context: Any,
        block: Optional[BlockScope] = None,
    ) -> Evaluated:
        """
        Evaluate a compiled expression against a context.

        Args:
            stack: Postfix instructions
            context: Render context (mapping or object)
            block: Enclosing block, required for parent()

        Returns:
            Evaluated pair of the expression

        Raises:
            ExpressionError: On malformed stacks, unknown operators or functions
        """
        return self._run(stack, context, block, live=True)

    def generate(self, stack: Sequence[Instruction], block: Optional[BlockScope] = None) -> str:
        """Produce the Python source of a compiled expression without evaluating it."""
        return self._run(stack, None, block, live=False).source

    # ------------------------------------------------------------------ #

    def _run(
        self,
        stack: Sequence[Instruction],
        context: Any,
        block: Optional[BlockScope],
        live: bool,
    ) -> Evaluated:
        # In live mode every value on the stack is a zero-argument callable;
        # only the final result is forced, so operators decide what runs.
        values: List[Evaluated] = []
        lenient = _guarded_lookups(stack) if self.strict else frozenset()

        def pop(count: int) -> List[Evaluated]:
            if count > len(values):
                raise ExpressionError(
                    f"Expression stack underflow: need {count} operands, have {len(values)}"
                )
            if count == 0:
                return []
            taken = values[-count:]
            del values[-count:]
            return taken

        def push(compute: Callable[[], Any], source: str) -> None:
            values.append(Evaluated(compute if live else None, source))

        for position, instruction in enumerate(stack):
            t = instruction.type

            if t in (InstructionType.NUMBER, InstructionType.STRING, InstructionType.BOOL):
                push(_constant(instruction.value), repr(instruction.value))

            elif t == InstructionType.NULL:
                push(_constant(None), "None")

            elif t == InstructionType.VARIABLE:
                push(*self._variable(instruction.value, context, position not in lenient))

            elif t in (InstructionType.OPERATOR_BINARY, InstructionType.OPERATOR_UNARY):
                operands = pop(instruction.arity)
                values.append(apply_operator(instruction, operands, live))

            elif t == InstructionType.ATTRIBUTE:
                (obj,) = pop(1)
                name = instruction.value
                push(
                    lambda obj=obj, name=name: rt.attr(obj.value(), name),
                    f"rt.attr({obj.source}, {name!r})",
                )

            elif t == InstructionType.INDEX:
                obj, key = pop(2)
                push(
                    lambda obj=obj, key=key: rt.item(obj.value(), key.value()),
                    f"rt.item({obj.source}, {key.source})",
                )

            elif t == InstructionType.FUNCTION:
                args = pop(instruction.arity)
                push(*self._function(instruction.value, args, context, block))

            elif t == InstructionType.METHOD:
                args = pop(instruction.arity)
                (obj,) = pop(1)
                name = instruction.value
                push(
                    lambda obj=obj, name=name, args=args: rt.call_method(
                        obj.value(), name, *_force(args)
                    ),
                    f"rt.call_method({', '.join([obj.source, repr(name)] + [a.source for a in args])})",
                )

            elif t == InstructionType.FILTER:
                args = pop(instruction.arity)
                (subject,) = pop(1)
                name = instruction.value
                if name not in self.library.filters:
                    raise ExpressionError(f"Unknown filter '{name}'")
                push(
                    lambda name=name, subject=subject, args=args: self.library.filter(
                        name, subject.value(), *_force(args)
                    ),
                    f"lib.filter({', '.join([repr(name), subject.source] + [a.source for a in args])})",
                )

            elif t == InstructionType.ARRAY:
                items = pop(instruction.arity)
                push(
                    lambda items=items: _force(items),
                    "[" + ", ".join(i.source for i in items) + "]",
                )

            elif t == InstructionType.MAP:
                flat = pop(instruction.arity * 2)
                pairs = [(flat[k], flat[k + 1]) for k in range(0, len(flat), 2)]
                push(
                    lambda pairs=pairs: {k.value(): v.value() for k, v in pairs},
                    "{" + ", ".join(f"{k.source}: {v.source}" for k, v in pairs) + "}",
                )

            else:
                raise ExpressionError(f"Unsupported instruction {instruction!r}")

        if len(values) != 1:
            raise ExpressionError(f"Malformed expression: {len(values)} values left on the stack")
        result = values[0]
        return Evaluated(result.value() if live else None, result.source)

    def _variable(self, name: str, context: Any, strict: bool) -> Tuple[Callable[[], Any], str]:
        strict = self.strict and strict
        if strict:
            source = f"rt.lookup(p, {name!r}, True)"
        else:
            source = f"rt.lookup(p, {name!r})"
        return (lambda: rt.lookup(context, name, strict)), source

    def _function(
        self,
        name: str,
        args: List[Evaluated],
        context: Any,
        block: Optional[BlockScope],
    ) -> Tuple[Callable[[], Any], str]:
        if name == "parent":
            if block is None:
                raise ExpressionError("parent() can only be used inside a block")
            return (
                lambda: rt.parent_block(block.parent_blocks, block.name, context),
                f"rt.parent_block(parent_blocks, {block.name!r}, p)",
            )
        if name not in self.library.functions:
            raise ExpressionError(f"Unknown function '{name}'")
        return (
            lambda: self.library.call(name, *_force(args)),
            f"lib.call({', '.join([repr(name)] + [a.source for a in args])})",
        )


def _constant(value: Any) -> Callable[[], Any]:
    return lambda: value


def _force(items: Sequence[Evaluated]) -> List[Any]:
    return [item.value() for item in items]


# Stack entries consumed by each instruction type, besides the arity-driven ones
_CONSUMED = {
    InstructionType.ATTRIBUTE: lambda i: 1,
    InstructionType.INDEX: lambda i: 2,
    InstructionType.FUNCTION: lambda i: i.arity,
    InstructionType.METHOD: lambda i: i.arity + 1,
    InstructionType.FILTER: lambda i: i.arity + 1,
    InstructionType.ARRAY: lambda i: i.arity,
    InstructionType.MAP: lambda i: i.arity * 2,
    InstructionType.OPERATOR_BINARY: lambda i: i.arity,
    InstructionType.OPERATOR_UNARY: lambda i: i.arity,
}


def _guarded_lookups(stack: Sequence[Instruction]) -> FrozenSet[int]:
    """
    Positions of variable lookups guarded by `??`.

    The left operand of `??` may name an undefined variable, directly or
    through attribute and index access (`user.name ?? 'guest'`); those
    lookups never raise, even in strict mode.
    """
    # each entry: position of the variable at the root of an access chain, or None
    roots: List[Optional[int]] = []
    guarded = set()
    for position, instruction in enumerate(stack):
        t = instruction.type
        consumed = _CONSUMED.get(t, lambda i: 0)(instruction)
        taken = roots[len(roots) - consumed:] if consumed else []
        del roots[len(roots) - consumed:]

        if t == InstructionType.VARIABLE:
            roots.append(position)
        elif t in (InstructionType.ATTRIBUTE, InstructionType.INDEX) and taken:
            roots.append(taken[0])
        else:
            if t == InstructionType.OPERATOR_BINARY and instruction.operator == "??" and taken:
                if taken[0] is not None:
                    guarded.add(taken[0])
            roots.append(None)
    return frozenset(guarded)


__all__ = ["BlockScope", "ExpressionEvaluator"]
