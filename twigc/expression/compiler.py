"""
Expression compiler.

Converts expression text into a postfix instruction list with the
shunting-yard algorithm. Brackets of every kind (grouping, call arguments,
index access, array and map literals) are tracked as group markers on the
operator stack; commas close one group item.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Union

from ..errors import ExpressionError
from .lexer import ExpressionLexer, ExprToken
from .model import Associativity, Expression, Instruction, InstructionType
from .operators import OperatorInfo, lookup_operator

logger = logging.getLogger(__name__)

_CLOSERS = {")": ("paren", "call", "method", "filter"), "]": ("index", "array"), "}": ("map",)}


@dataclass
class _Group:
    """Open bracket marker on the operator stack."""
    kind: str                   # paren | call | method | filter | index | array | map
    item_mark: int              # output length when the current item started
    name: Optional[str] = None
    position: int = 0
    items: int = 0
    expect_key: bool = False


@dataclass
class _PendingOperator:
    info: OperatorInfo
    unary: bool = False
    has_else: bool = False

    def to_instruction(self) -> Instruction:
        if self.unary:
            return Instruction(
                InstructionType.OPERATOR_UNARY,
                operator=self.info.text,
                arity=1,
                precedence=self.info.rank,
                associativity=self.info.associativity,
            )
        arity = 2
        if self.info.text == "?" and self.has_else:
            arity = 3
        return Instruction(
            InstructionType.OPERATOR_BINARY,
            operator=self.info.text,
            arity=arity,
            precedence=self.info.rank,
            associativity=self.info.associativity,
        )


_StackEntry = Union[_Group, _PendingOperator]


def _is_member_name(token: ExprToken) -> bool:
    if token.type == "NAME":
        return True
    return token.type == "OPERATOR" and str(token.value).isalpha()


class ExpressionCompiler:
    """
    Compiles expression text into postfix instructions.

    Usage:
        stack = ExpressionCompiler().compile("a ~ b|upper")
    """

    def __init__(self):
        self.lexer = ExpressionLexer()

    def compile_expression(self, text: str) -> Expression:
        """Compile text into an Expression carrying its source text."""
        return Expression(text=text.strip(), stack=tuple(self.compile(text)))

    def compile(self, text: str) -> List[Instruction]:
        """
        Compile expression text.

        Args:
            text: Expression text

        Returns:
            Postfix instruction list

        Raises:
            ExpressionError: On syntax errors and unknown operators
        """
        tokens = self.lexer.tokenize(text)
        if tokens[0].type == "EOF":
            raise ExpressionError("Empty expression")

        output: List[Instruction] = []
        stack: List[_StackEntry] = []
        # operand | operator | open
        prev = "open"
        i = 0

        def peek(offset: int = 1) -> ExprToken:
            return tokens[min(i + offset, len(tokens) - 1)]

        while tokens[i].type != "EOF":
            token = tokens[i]
            group = self._top_group(stack)

            # Map keys: `name:` / `"str":` / `1:` directly inside {}
            if group is not None and group.kind == "map" and group.expect_key and prev == "open":
                if token.type in ("NAME", "STRING", "NUMBER") and peek().type == "OPERATOR" and peek().value == ":":
                    key_type = InstructionType.NUMBER if token.type == "NUMBER" else InstructionType.STRING
                    output.append(Instruction(key_type, value=token.value))
                    group.expect_key = False
                    i += 2
                    continue
                if token.type == "PUNCT" and token.value == "(":
                    # computed key `(expr): value`; the ':' is consumed when the group closes
                    pass
                elif not (token.type == "PUNCT" and token.value == "}"):
                    raise ExpressionError(f"Invalid map key near '{token.value}' in '{text}'", offset=token.position)

            if token.type == "NUMBER":
                self._expect_operand_position(prev, token, text)
                output.append(Instruction(InstructionType.NUMBER, value=token.value))
                prev = "operand"

            elif token.type == "STRING":
                self._expect_operand_position(prev, token, text)
                output.append(Instruction(InstructionType.STRING, value=token.value))
                prev = "operand"

            elif token.type == "NAME":
                self._expect_operand_position(prev, token, text)
                name = str(token.value)
                lowered = name.lower()
                if peek().type == "PUNCT" and peek().value == "(":
                    stack.append(_Group("call", len(output), name=name, position=token.position))
                    i += 1
                    prev = "open"
                elif lowered in ("true", "false"):
                    output.append(Instruction(InstructionType.BOOL, value=lowered == "true"))
                    prev = "operand"
                elif lowered in ("null", "none"):
                    output.append(Instruction(InstructionType.NULL))
                    prev = "operand"
                else:
                    output.append(Instruction(InstructionType.VARIABLE, value=name))
                    prev = "operand"

            elif token.type == "PUNCT":
                prev, i = self._punct(token, tokens, i, prev, output, stack, text)

            elif token.type == "OPERATOR":
                op = str(token.value)
                if prev in ("open", "operator") and op in ("-", "+", "not"):
                    if op in ("-", "+") and peek().type == "NUMBER":
                        number = peek().value
                        output.append(Instruction(InstructionType.NUMBER, value=-number if op == "-" else number))
                        i += 2
                        prev = "operand"
                        continue
                    stack.append(_PendingOperator(lookup_operator(op, unary=True), unary=True))
                    prev = "operator"
                elif op == ":":
                    self._ternary_else(token, output, stack, text)
                    prev = "operator"
                else:
                    if prev != "operand":
                        raise ExpressionError(f"Unexpected operator '{op}' in '{text}'", offset=token.position)
                    info = lookup_operator(op)
                    self._pop_operators(info, output, stack)
                    stack.append(_PendingOperator(info))
                    prev = "operator"
            else:
                raise ExpressionError(f"Unexpected token '{token.value}' in '{text}'", offset=token.position)

            i += 1

        if prev != "operand":
            raise ExpressionError(f"Unexpected end of expression '{text}'", offset=tokens[-1].position)

        while stack:
            entry = stack.pop()
            if isinstance(entry, _Group):
                raise ExpressionError(f"Unclosed bracket in expression '{text}'", offset=entry.position)
            output.append(entry.to_instruction())

        self._validate(output, text)
        logger.debug(f"Compiled expression '{text}' into {len(output)} instructions")
        return output

    # ------------------------------------------------------------------ #

    @staticmethod
    def _top_group(stack: List[_StackEntry]) -> Optional[_Group]:
        for entry in reversed(stack):
            if isinstance(entry, _Group):
                return entry
        return None

    @staticmethod
    def _expect_operand_position(prev: str, token: ExprToken, text: str) -> None:
        if prev == "operand":
            raise ExpressionError(f"Unexpected '{token.value}' in '{text}'", offset=token.position)

    @staticmethod
    def _pop_operators(info: OperatorInfo, output: List[Instruction], stack: List[_StackEntry]) -> None:
        """Pop operators that bind at least as tight as the incoming one."""
        left_assoc = info.associativity is Associativity.LEFT_TO_RIGHT
        while stack and isinstance(stack[-1], _PendingOperator):
            top = stack[-1]
            if (left_assoc and info.rank >= top.info.rank) or (not left_assoc and info.rank > top.info.rank):
                output.append(stack.pop().to_instruction())
            else:
                break

    @staticmethod
    def _ternary_else(token: ExprToken, output: List[Instruction], stack: List[_StackEntry], text: str) -> None:
        """Handle ':' of a ternary: close the then-branch of the nearest open '?'."""
        while stack and isinstance(stack[-1], _PendingOperator):
            top = stack[-1]
            if top.info.text == "?" and not top.has_else:
                top.has_else = True
                return
            output.append(stack.pop().to_instruction())
        raise ExpressionError(f"Unexpected ':' in '{text}'", offset=token.position)

    def _punct(
        self,
        token: ExprToken,
        tokens: List[ExprToken],
        i: int,
        prev: str,
        output: List[Instruction],
        stack: List[_StackEntry],
        text: str,
    ):
        value = token.value

        if value == "(":
            self._expect_operand_position(prev, token, text)
            stack.append(_Group("paren", len(output), position=token.position))
            return "open", i

        if value == "[":
            kind = "index" if prev == "operand" else "array"
            stack.append(_Group(kind, len(output), position=token.position))
            return "open", i

        if value == "{":
            self._expect_operand_position(prev, token, text)
            stack.append(_Group("map", len(output), position=token.position, expect_key=True))
            return "open", i

        if value == ",":
            lookup_operator(",")
            group = self._close_item(token, output, stack, text)
            if group.kind in ("paren", "index"):
                raise ExpressionError(f"Unexpected ',' in '{text}'", offset=token.position)
            if group.kind == "map":
                group.expect_key = True
            return "open", i

        if value in _CLOSERS:
            group = self._close_item(token, output, stack, text, closing=True)
            if group.kind not in _CLOSERS[value]:
                raise ExpressionError(f"Mismatched '{value}' in '{text}'", offset=token.position)
            stack.pop()
            self._emit_group(group, token, output, text)
            # computed map key `(expr):`
            outer = self._top_group(stack)
            nxt = tokens[min(i + 1, len(tokens) - 1)]
            if (
                group.kind == "paren"
                and outer is not None
                and outer.kind == "map"
                and outer.expect_key
                and nxt.type == "OPERATOR"
                and nxt.value == ":"
            ):
                outer.expect_key = False
                return "open", i + 1
            return "operand", i

        if value in (".", "|"):
            if prev != "operand":
                raise ExpressionError(f"Unexpected '{value}' in '{text}'", offset=token.position)
            name_token = tokens[i + 1]
            if name_token.type == "NUMBER" and value == "." and isinstance(name_token.value, int):
                output.append(Instruction(InstructionType.ATTRIBUTE, value=str(name_token.value)))
                return "operand", i + 1
            if not _is_member_name(name_token):
                raise ExpressionError(f"Expected a name after '{value}' in '{text}'", offset=token.position)
            name = str(name_token.value)
            after = tokens[i + 2]
            is_call = after.type == "PUNCT" and after.value == "("
            if value == ".":
                if is_call:
                    stack.append(_Group("method", len(output), name=name, position=name_token.position))
                    return "open", i + 2
                output.append(Instruction(InstructionType.ATTRIBUTE, value=name))
                return "operand", i + 1
            if is_call:
                stack.append(_Group("filter", len(output), name=name, position=name_token.position))
                return "open", i + 2
            output.append(Instruction(InstructionType.FILTER, value=name, arity=0))
            return "operand", i + 1

        raise ExpressionError(f"Unexpected '{value}' in '{text}'", offset=token.position)

    def _close_item(
        self,
        token: ExprToken,
        output: List[Instruction],
        stack: List[_StackEntry],
        text: str,
        closing: bool = False,
    ) -> _Group:
        """Pop operators down to the enclosing group and count the finished item."""
        while stack and isinstance(stack[-1], _PendingOperator):
            output.append(stack.pop().to_instruction())
        if not stack or not isinstance(stack[-1], _Group):
            raise ExpressionError(f"Unexpected '{token.value}' in '{text}'", offset=token.position)
        group = stack[-1]
        if len(output) > group.item_mark:
            group.items += 1
            if group.kind == "map" and group.expect_key:
                raise ExpressionError(f"Map entry without a value in '{text}'", offset=token.position)
        elif not closing:
            raise ExpressionError(f"Unexpected '{token.value}' in '{text}'", offset=token.position)
        group.item_mark = len(output)
        return group

    @staticmethod
    def _emit_group(group: _Group, token: ExprToken, output: List[Instruction], text: str) -> None:
        kind = group.kind
        if kind == "paren":
            if group.items != 1:
                raise ExpressionError(f"Empty parentheses in '{text}'", offset=token.position)
        elif kind == "index":
            if group.items != 1:
                raise ExpressionError(f"Index access expects one key in '{text}'", offset=token.position)
            output.append(Instruction(InstructionType.INDEX, arity=2))
        elif kind == "call":
            output.append(Instruction(InstructionType.FUNCTION, value=group.name, arity=group.items))
        elif kind == "method":
            output.append(Instruction(InstructionType.METHOD, value=group.name, arity=group.items))
        elif kind == "filter":
            output.append(Instruction(InstructionType.FILTER, value=group.name, arity=group.items))
        elif kind == "array":
            output.append(Instruction(InstructionType.ARRAY, arity=group.items))
        elif kind == "map":
            output.append(Instruction(InstructionType.MAP, arity=group.items))

    @staticmethod
    def _validate(output: List[Instruction], text: str) -> None:
        """Simulate stack depth so malformed expressions fail at compile time."""
        depth = 0
        for instruction in output:
            t = instruction.type
            if t in (InstructionType.NUMBER, InstructionType.STRING, InstructionType.BOOL,
                     InstructionType.NULL, InstructionType.VARIABLE):
                needed, produced = 0, 1
            elif t in (InstructionType.OPERATOR_BINARY, InstructionType.OPERATOR_UNARY):
                needed, produced = instruction.arity, 1
            elif t == InstructionType.ATTRIBUTE:
                needed, produced = 1, 1
            elif t == InstructionType.INDEX:
                needed, produced = 2, 1
            elif t == InstructionType.FUNCTION:
                needed, produced = instruction.arity, 1
            elif t in (InstructionType.METHOD, InstructionType.FILTER):
                needed, produced = instruction.arity + 1, 1
            elif t == InstructionType.ARRAY:
                needed, produced = instruction.arity, 1
            else:
                needed, produced = instruction.arity * 2, 1
            if depth < needed:
                raise ExpressionError(f"Invalid expression '{text}'")
            depth = depth - needed + produced
        if depth != 1:
            raise ExpressionError(f"Invalid expression '{text}'")


__all__ = ["ExpressionCompiler"]
