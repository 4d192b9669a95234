"""
Logic statements (`{% ... %}`) and compiled token types.

Every logic statement is parsed into a LogicToken whose expressions are
already compiled. The logic table declares, per statement type, whether it
opens a construct and which statements may continue or close it.
"""

from __future__ import annotations

import enum
import re
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, List, Optional, Tuple, Union

from ..errors import StructureError
from ..expression.compiler import ExpressionCompiler
from ..expression.model import Expression
from .tokens import Token


class LogicType(enum.Enum):
    """Logic statement types."""
    IF = "if"
    ELSEIF = "elseif"
    ELSE = "else"
    ENDIF = "endif"
    FOR = "for"
    ENDFOR = "endfor"
    BLOCK = "block"
    ENDBLOCK = "endblock"
    SET = "set"
    INCLUDE = "include"
    EXTENDS = "extends"


@dataclass(frozen=True)
class LogicDefinition:
    """
    Logic table row.

    Attributes:
        opens: Starts a construct (or is a standalone statement)
        next: Statement types allowed to follow while the construct is open
    """
    opens: bool
    next: Tuple[LogicType, ...] = ()


LOGIC_TABLE: Dict[LogicType, LogicDefinition] = {
    LogicType.IF: LogicDefinition(True, (LogicType.ELSEIF, LogicType.ELSE, LogicType.ENDIF)),
    LogicType.ELSEIF: LogicDefinition(False, (LogicType.ELSE, LogicType.ELSEIF, LogicType.ENDIF)),
    LogicType.ELSE: LogicDefinition(False, (LogicType.ENDIF, LogicType.ENDFOR)),
    LogicType.ENDIF: LogicDefinition(False),
    LogicType.FOR: LogicDefinition(True, (LogicType.ELSE, LogicType.ENDFOR)),
    LogicType.ENDFOR: LogicDefinition(False),
    LogicType.BLOCK: LogicDefinition(True, (LogicType.ENDBLOCK,)),
    LogicType.ENDBLOCK: LogicDefinition(False),
    LogicType.SET: LogicDefinition(True),
    LogicType.INCLUDE: LogicDefinition(True),
    LogicType.EXTENDS: LogicDefinition(True),
}

CONDITIONAL_TYPES = frozenset({LogicType.IF, LogicType.ELSEIF, LogicType.ELSE})

# Statements allowed while each construct is open
CONSTRUCT_STATEMENTS: Dict[LogicType, FrozenSet[LogicType]] = {
    LogicType.IF: frozenset({LogicType.ELSEIF, LogicType.ELSE, LogicType.ENDIF}),
    LogicType.FOR: frozenset({LogicType.ELSE, LogicType.ENDFOR}),
    LogicType.BLOCK: frozenset({LogicType.ENDBLOCK}),
}


@dataclass
class RawToken:
    """Raw markup text; verbatim text from raw blocks is never trimmed."""
    value: str
    start: int = 0
    verbatim: bool = False


@dataclass
class OutputToken:
    """Compiled `{{ expression }}`."""
    expression: Expression
    start: int = 0


@dataclass
class LogicToken:
    """
    Compiled logic statement.

    Attributes:
        type: Statement type
        expression: Condition (if/elseif), iterable (for), value (set),
            template name (include/extends)
        value_var: Loop value variable (for) or assigned name (set)
        key_var: Loop key variable (for)
        condition: Loop filter condition (`for x in xs if cond`)
        name: Block name (block/endblock)
        with_expression: Extra variables for include
        only: Include without the enclosing context
        output: Compiled children collected while the construct was open
        start: Offset of the statement in the template
    """
    type: LogicType
    expression: Optional[Expression] = None
    value_var: Optional[str] = None
    key_var: Optional[str] = None
    condition: Optional[Expression] = None
    name: Optional[str] = None
    with_expression: Optional[Expression] = None
    only: bool = False
    output: List["CompiledToken"] = field(default_factory=list)
    start: int = 0

    @property
    def definition(self) -> LogicDefinition:
        return LOGIC_TABLE[self.type]

    def __repr__(self) -> str:
        return f"LogicToken({self.type.value}, children={len(self.output)})"


CompiledToken = Union[RawToken, OutputToken, LogicToken]


_NAME = r"[A-Za-z_][A-Za-z0-9_]*"

# (type, pattern); first match wins
_STATEMENTS: List[Tuple[LogicType, "re.Pattern[str]"]] = [
    (LogicType.IF, re.compile(r"^if\s+(?P<expr>.+)$", re.DOTALL)),
    (LogicType.ELSEIF, re.compile(r"^else\s*if\s+(?P<expr>.+)$", re.DOTALL)),
    (LogicType.ELSE, re.compile(r"^else$")),
    (LogicType.ENDIF, re.compile(r"^endif$")),
    (LogicType.FOR, re.compile(
        rf"^for\s+(?:(?P<key>{_NAME})\s*,\s*)?(?P<value>{_NAME})\s+in\s+(?P<expr>.+?)"
        r"(?:\s+if\s+(?P<cond>.+))?$",
        re.DOTALL,
    )),
    (LogicType.ENDFOR, re.compile(r"^endfor$")),
    (LogicType.BLOCK, re.compile(rf"^block\s+(?P<name>{_NAME})$")),
    (LogicType.ENDBLOCK, re.compile(rf"^endblock(?:\s+(?P<name>{_NAME}))?$")),
    (LogicType.SET, re.compile(rf"^set\s+(?P<name>{_NAME})\s*=\s*(?P<expr>.+)$", re.DOTALL)),
    (LogicType.INCLUDE, re.compile(
        r"^include\s+(?P<expr>.+?)(?:\s+with\s+(?P<with>.+?))?(?P<only>\s+only)?$",
        re.DOTALL,
    )),
    (LogicType.EXTENDS, re.compile(r"^extends\s+(?P<expr>.+)$", re.DOTALL)),
]


class LogicParser:
    """Parses the content of logic tokens into LogicTokens."""

    def __init__(self, expressions: Optional[ExpressionCompiler] = None):
        self.expressions = expressions or ExpressionCompiler()

    def parse(self, token: Token) -> LogicToken:
        """
        Parse a logic token.

        Args:
            token: Logic token (any whitespace variant)

        Returns:
            Typed logic token with compiled expressions

        Raises:
            StructureError: For unknown statements
            ExpressionError: For malformed expressions
        """
        text = token.value
        for logic_type, pattern in _STATEMENTS:
            m = pattern.match(text)
            if m:
                return self._build(logic_type, m, token.start)
        raise StructureError(f"Unable to parse '{text}'", offset=token.start)

    def _expr(self, text: Optional[str]) -> Optional[Expression]:
        if text is None:
            return None
        return self.expressions.compile_expression(text)

    def _build(self, logic_type: LogicType, m: "re.Match[str]", start: int) -> LogicToken:
        groups = m.groupdict()
        if logic_type == LogicType.FOR:
            return LogicToken(
                logic_type,
                expression=self._expr(groups["expr"]),
                value_var=groups["value"],
                key_var=groups.get("key"),
                condition=self._expr(groups.get("cond")),
                start=start,
            )
        if logic_type in (LogicType.BLOCK, LogicType.ENDBLOCK):
            return LogicToken(logic_type, name=groups.get("name"), start=start)
        if logic_type == LogicType.SET:
            return LogicToken(
                logic_type,
                expression=self._expr(groups["expr"]),
                value_var=groups["name"],
                start=start,
            )
        if logic_type == LogicType.INCLUDE:
            return LogicToken(
                logic_type,
                expression=self._expr(groups["expr"]),
                with_expression=self._expr(groups.get("with")),
                only=bool(groups.get("only")),
                start=start,
            )
        return LogicToken(logic_type, expression=self._expr(groups.get("expr")), start=start)


__all__ = [
    "LogicType",
    "LogicDefinition",
    "LOGIC_TABLE",
    "CONDITIONAL_TYPES",
    "CONSTRUCT_STATEMENTS",
    "RawToken",
    "OutputToken",
    "LogicToken",
    "CompiledToken",
    "LogicParser",
]
