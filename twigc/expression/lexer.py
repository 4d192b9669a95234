"""
Lexer for template expressions.

Splits expression text into tokens:
- Numbers and quoted strings
- Names (variables, functions, filters, keywords true/false/null)
- Operators, including the word operators (and, or, not in, starts with, ...)
- Punctuation: ( ) [ ] { } , . |
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import List

from ..errors import ExpressionError


@dataclass
class ExprToken:
    """
    Expression token.

    Attributes:
        type: Token type (NUMBER, STRING, NAME, OPERATOR, PUNCT, EOF)
        value: Token value; decoded for strings and numbers
        position: Position in the expression text
    """
    type: str
    value: object
    position: int

    def __repr__(self):
        return f"ExprToken({self.type}, {self.value!r}, pos={self.position})"


_ESCAPES = {"n": "\n", "t": "\t", "r": "\r", "0": "\0"}


def _unescape(body: str) -> str:
    return re.sub(r"\\(.)", lambda m: _ESCAPES.get(m.group(1), m.group(1)), body, flags=re.DOTALL)


class ExpressionLexer:
    """
    Splits an expression into tokens.

    Word operators are matched before names so that `not in` and `b-or`
    are single tokens.
    """

    # (regex_pattern, token_type, ignore_flag)
    TOKEN_SPECS = [
        (r"\s+", "WHITESPACE", True),
        (r"\d+(?:\.\d+)?(?:[eE][-+]?\d+)?", "NUMBER", False),
        (r'"(?:[^"\\]|\\.)*"', "STRING", False),
        (r"'(?:[^'\\]|\\.)*'", "STRING", False),
        (r"not\s+in\b|starts\s+with\b|ends\s+with\b", "OPERATOR", False),
        (r"b-(?:or|xor|and)\b", "OPERATOR", False),
        (r"(?:and|or|not|in|matches)\b", "OPERATOR", False),
        (r"\.\.|\?\?|\?:|==|!=|<=|>=|//|\*\*|[<>+\-*/%~?:]", "OPERATOR", False),
        (r"[()\[\]{},.|]", "PUNCT", False),
        (r"[A-Za-z_][A-Za-z0-9_]*", "NAME", False),
        (r".", "UNKNOWN", False),
    ]

    def __init__(self):
        self._compiled_patterns = [
            (re.compile(pattern, re.DOTALL), token_type, ignore)
            for pattern, token_type, ignore in self.TOKEN_SPECS
        ]

    def tokenize(self, text: str) -> List[ExprToken]:
        """
        Tokenize an expression.

        Args:
            text: Expression text

        Returns:
            List of tokens ending with EOF

        Raises:
            ExpressionError: On unexpected characters or unclosed strings
        """
        tokens: List[ExprToken] = []
        position = 0

        while position < len(text):
            for pattern, token_type, ignore in self._compiled_patterns:
                match = pattern.match(text, position)
                if not match:
                    continue
                value = match.group(0)
                if not ignore:
                    if token_type == "UNKNOWN":
                        if value in "\"'":
                            raise ExpressionError(f"Unclosed string in expression '{text}'", offset=position)
                        raise ExpressionError(f"Unexpected character '{value}' in expression '{text}'", offset=position)
                    tokens.append(ExprToken(token_type, self._decode(token_type, value), position))
                position = match.end()
                break

        tokens.append(ExprToken("EOF", "", position))
        return tokens

    @staticmethod
    def _decode(token_type: str, value: str) -> object:
        if token_type == "NUMBER":
            if any(ch in value for ch in ".eE"):
                return float(value)
            return int(value)
        if token_type == "STRING":
            return _unescape(value[1:-1])
        if token_type == "OPERATOR":
            # "not   in" -> "not in"
            return " ".join(value.split())
        return value


__all__ = ["ExprToken", "ExpressionLexer"]
