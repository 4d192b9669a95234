"""
Token types and delimiter definitions for template source.

A template is split into raw text and delimited tokens: output `{{ }}`,
logic `{% %}`, comments `{# #}` and the whitespace-trimming variants
`{{- -}}` / `{%- -%}`.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import List


class TokenType(enum.Enum):
    """Template token types."""

    RAW = "raw"
    OUTPUT = "output"
    LOGIC = "logic"
    COMMENT = "comment"

    # Whitespace control: pre trims before the token, post after it
    OUTPUT_WHITESPACE_PRE = "output_whitespace_pre"
    OUTPUT_WHITESPACE_POST = "output_whitespace_post"
    OUTPUT_WHITESPACE_BOTH = "output_whitespace_both"
    LOGIC_WHITESPACE_PRE = "logic_whitespace_pre"
    LOGIC_WHITESPACE_POST = "logic_whitespace_post"
    LOGIC_WHITESPACE_BOTH = "logic_whitespace_both"


OUTPUT_TYPES = frozenset({
    TokenType.OUTPUT,
    TokenType.OUTPUT_WHITESPACE_PRE,
    TokenType.OUTPUT_WHITESPACE_POST,
    TokenType.OUTPUT_WHITESPACE_BOTH,
})

LOGIC_TYPES = frozenset({
    TokenType.LOGIC,
    TokenType.LOGIC_WHITESPACE_PRE,
    TokenType.LOGIC_WHITESPACE_POST,
    TokenType.LOGIC_WHITESPACE_BOTH,
})

TRIM_BEFORE = frozenset({
    TokenType.OUTPUT_WHITESPACE_PRE,
    TokenType.OUTPUT_WHITESPACE_BOTH,
    TokenType.LOGIC_WHITESPACE_PRE,
    TokenType.LOGIC_WHITESPACE_BOTH,
})

TRIM_AFTER = frozenset({
    TokenType.OUTPUT_WHITESPACE_POST,
    TokenType.OUTPUT_WHITESPACE_BOTH,
    TokenType.LOGIC_WHITESPACE_POST,
    TokenType.LOGIC_WHITESPACE_BOTH,
})


@dataclass(frozen=True)
class Token:
    """
    Template token.

    Attributes:
        type: Token type
        value: Inner content, stripped for delimited tokens, verbatim for raw text
        start: Offset of the first character of the token span
        end: Offset past the token span (closing delimiter and swallowed newline included)
    """
    type: TokenType
    value: str
    start: int = 0
    end: int = 0

    @property
    def delimited(self) -> bool:
        """Raw text written inside `{% raw %}` or `{% verbatim %}` delimiters."""
        return self.type == TokenType.RAW and self.end - self.start > len(self.value)

    def __repr__(self) -> str:
        return f"Token({self.type.name}, {self.value!r}, {self.start}:{self.end})"


@dataclass(frozen=True)
class TokenDefinition:
    """Delimiter pair producing one token type."""
    type: TokenType
    open: str
    close: str


# Order matters: ties are broken by specificity, then by catalogue order.
DEFINITIONS: List[TokenDefinition] = [
    TokenDefinition(TokenType.RAW, "{% raw %}", "{% endraw %}"),
    TokenDefinition(TokenType.RAW, "{% verbatim %}", "{% endverbatim %}"),
    TokenDefinition(TokenType.OUTPUT_WHITESPACE_PRE, "{{-", "}}"),
    TokenDefinition(TokenType.OUTPUT_WHITESPACE_POST, "{{", "-}}"),
    TokenDefinition(TokenType.OUTPUT_WHITESPACE_BOTH, "{{-", "-}}"),
    TokenDefinition(TokenType.LOGIC_WHITESPACE_PRE, "{%-", "%}"),
    TokenDefinition(TokenType.LOGIC_WHITESPACE_POST, "{%", "-%}"),
    TokenDefinition(TokenType.LOGIC_WHITESPACE_BOTH, "{%-", "-%}"),
    TokenDefinition(TokenType.OUTPUT, "{{", "}}"),
    TokenDefinition(TokenType.LOGIC, "{%", "%}"),
    TokenDefinition(TokenType.COMMENT, "{#", "#}"),
]

STRING_QUOTES = ('"', "'")


__all__ = [
    "TokenType",
    "OUTPUT_TYPES",
    "LOGIC_TYPES",
    "TRIM_BEFORE",
    "TRIM_AFTER",
    "Token",
    "TokenDefinition",
    "DEFINITIONS",
    "STRING_QUOTES",
]
