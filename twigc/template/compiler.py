"""
Structural compiler.

Turns the flat token list into nested compiled tokens: logic constructs
collect the tokens between their open and close statements, whitespace
control variants trim adjacent raw text, and comments are dropped.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import replace
from typing import Deque, List, Optional

from ..errors import ExpressionError, StructureError, TemplateError
from ..expression.compiler import ExpressionCompiler
from .logic import (
    CONSTRUCT_STATEMENTS,
    LOGIC_TABLE,
    CompiledToken,
    LogicParser,
    LogicToken,
    LogicType,
    OutputToken,
    RawToken,
)
from .tokens import LOGIC_TYPES, OUTPUT_TYPES, TRIM_AFTER, TRIM_BEFORE, Token, TokenType

logger = logging.getLogger(__name__)


class StructureCompiler:
    """
    Logic-stack compiler.

    Usage:
        compiled = StructureCompiler().compile(tokenize_template(source))
    """

    def __init__(self, expressions: Optional[ExpressionCompiler] = None):
        self.expressions = expressions or ExpressionCompiler()
        self.logic_parser = LogicParser(self.expressions)

        self._output: List[CompiledToken] = []
        self._stack: List[LogicToken] = []
        # construct (if, for, block) each stack entry belongs to
        self._constructs: List[LogicType] = []
        self._intermediate: List[CompiledToken] = []

    def compile(self, tokens: List[Token]) -> List[CompiledToken]:
        """
        Compile tokens into a nested structure.

        Args:
            tokens: Tokens from the template lexer

        Returns:
            Top-level compiled tokens

        Raises:
            StructureError: On unexpected, mismatched or unclosed constructs
            ExpressionError: On malformed expressions
        """
        self._output = []
        self._stack = []
        self._constructs = []
        self._intermediate = []

        pending: Deque[Token] = deque(tokens)
        while pending:
            token = pending.popleft()

            if token.type == TokenType.RAW:
                self._emit(RawToken(token.value, token.start, token.delimited))
                continue

            if token.type == TokenType.COMMENT:
                continue

            if token.type in TRIM_BEFORE:
                self._trim_previous()

            try:
                if token.type in OUTPUT_TYPES:
                    expression = self.expressions.compile_expression(token.value)
                    self._emit(OutputToken(expression, token.start))
                elif token.type in LOGIC_TYPES:
                    self._compile_logic(token)
            except ExpressionError as e:
                # expression positions are relative to the token content
                e.offset = token.start
                raise
            except TemplateError as e:
                if e.offset is None:
                    e.offset = token.start
                raise

            if (
                token.type in TRIM_AFTER
                and pending
                and pending[0].type == TokenType.RAW
                and not pending[0].delimited
            ):
                following = pending.popleft()
                trimmed = following.value.lstrip()
                if trimmed:
                    pending.appendleft(replace(following, value=trimmed))

        if self._stack:
            unclosed = self._stack.pop()
            allowed = CONSTRUCT_STATEMENTS[self._constructs.pop()]
            expecting = ", ".join(t.value for t in unclosed.definition.next if t in allowed)
            raise StructureError(
                f"Unable to find an end tag for {unclosed.type.value}, expecting one of {expecting}",
                offset=unclosed.start,
            )

        logger.debug(f"Compiled {len(tokens)} tokens into {len(self._output)} top-level nodes")
        return self._output

    # ------------------------------------------------------------------ #

    def _emit(self, compiled: CompiledToken) -> None:
        if self._stack:
            self._intermediate.append(compiled)
        else:
            self._output.append(compiled)

    def _trim_previous(self) -> None:
        buffer = self._intermediate if self._stack else self._output
        if buffer and isinstance(buffer[-1], RawToken) and not buffer[-1].verbatim:
            trimmed = buffer[-1].value.rstrip()
            if trimmed:
                buffer[-1].value = trimmed
            else:
                buffer.pop()

    def _compile_logic(self, token: Token) -> None:
        logic = self.logic_parser.parse(token)
        definition = LOGIC_TABLE[logic.type]
        construct = logic.type

        if not definition.opens:
            if not self._stack:
                raise StructureError(f"{logic.type.value} not expected outside of a block", offset=token.start)
            previous = self._stack.pop()
            construct = self._constructs.pop()
            if logic.type not in previous.definition.next:
                raise StructureError(
                    f"{logic.type.value} not expected after a {previous.type.value}",
                    offset=token.start,
                )
            if logic.type not in CONSTRUCT_STATEMENTS[construct]:
                raise StructureError(
                    f"{logic.type.value} not expected inside a {construct.value} construct",
                    offset=token.start,
                )
            if (
                logic.type == LogicType.ENDBLOCK
                and logic.name is not None
                and logic.name != previous.name
            ):
                raise StructureError(
                    f"endblock '{logic.name}' does not match block '{previous.name}'",
                    offset=token.start,
                )
            previous.output.extend(self._intermediate)
            self._intermediate = []
            self._emit(previous)

        if definition.next:
            if self._stack:
                # pending children belong to the construct being interrupted
                self._stack[-1].output.extend(self._intermediate)
                self._intermediate = []
            self._stack.append(logic)
            self._constructs.append(construct)
        elif definition.opens:
            self._emit(logic)


def compile_tokens(tokens: List[Token], expressions: Optional[ExpressionCompiler] = None) -> List[CompiledToken]:
    """Compile tokens with a fresh structural compiler."""
    return StructureCompiler(expressions).compile(tokens)


__all__ = ["StructureCompiler", "compile_tokens"]
