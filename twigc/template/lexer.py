"""
Template lexer.

Splits template source into raw text runs and delimited tokens. Token spans
are contiguous: concatenating source[start:end] of every token reproduces
the input.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

from ..errors import TemplateLexerError
from .tokens import DEFINITIONS, LOGIC_TYPES, STRING_QUOTES, Token, TokenDefinition, TokenType

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TokenMatch:
    """Opening delimiter found in the source."""
    position: int
    definition: TokenDefinition
    close_position: int


class TemplateLexer:
    """
    Delimiter-driven template lexer.

    Usage:
        tokens = TemplateLexer().tokenize("<p>{{ name }}</p>")
    """

    def __init__(self, definitions: Optional[Sequence[TokenDefinition]] = None):
        self.definitions = list(definitions or DEFINITIONS)

    def tokenize(self, text: str) -> List[Token]:
        """
        Tokenize template source.

        Args:
            text: Template source

        Returns:
            Ordered tokens; empty input gives an empty list

        Raises:
            TemplateLexerError: On unclosed tokens or unclosed strings
        """
        tokens: List[Token] = []
        position = 0
        length = len(text)

        while position < length:
            found = self.find_start(text, position)
            if found is None:
                tokens.append(Token(TokenType.RAW, text[position:], position, length))
                break

            if found.position > position:
                tokens.append(Token(TokenType.RAW, text[position:found.position], position, found.position))

            definition = found.definition
            inner_start = found.position + len(definition.open)
            end = self.find_end(text, definition, inner_start, found.position)

            value = text[inner_start:end]
            if definition.type != TokenType.RAW:
                value = value.strip()

            span_end = end + len(definition.close)
            if definition.type in LOGIC_TYPES and text[span_end:span_end + 1] == "\n":
                span_end += 1

            tokens.append(Token(definition.type, value, found.position, span_end))
            position = span_end

        logger.debug(f"Tokenized template into {len(tokens)} tokens")
        return tokens

    def find_start(self, text: str, position: int = 0) -> Optional[TokenMatch]:
        """
        Find the earliest, most specific opening delimiter.

        On equal positions the longer open wins; with equal opens a longer
        close wins if it occurs earlier, otherwise the earliest close wins.
        """
        best: Optional[TokenMatch] = None

        for definition in self.definitions:
            open_pos = text.find(definition.open, position)
            if open_pos < 0:
                continue
            close_pos = text.find(definition.close, open_pos + len(definition.open))
            if len(definition.open) != len(definition.close) and close_pos < 0:
                continue

            if best is None or open_pos < best.position:
                best = TokenMatch(open_pos, definition, close_pos)
                continue
            if open_pos != best.position:
                continue

            if len(definition.open) > len(best.definition.open):
                best = TokenMatch(open_pos, definition, close_pos)
            elif len(definition.open) == len(best.definition.open):
                if 0 <= close_pos and (best.close_position < 0 or close_pos < best.close_position):
                    best = TokenMatch(open_pos, definition, close_pos)

        return best

    def find_end(self, text: str, definition: TokenDefinition, start: int, open_position: int) -> int:
        """
        Find the closing delimiter of a token.

        Quoted strings inside output and logic tokens are skipped; a quote
        preceded by a backslash does not terminate a string. Comments and raw
        blocks end at the first closing delimiter.

        Raises:
            TemplateLexerError: If the close or a string end is missing
        """
        offset = start
        while True:
            pos = text.find(definition.close, offset)
            if pos < 0:
                raise TemplateLexerError(
                    f"Unable to find closing bracket '{definition.close}' "
                    f"opened near template position {open_position}",
                    offset=open_position,
                )

            if definition.type in (TokenType.COMMENT, TokenType.RAW):
                return pos

            quote_pos = -1
            quote = ""
            for candidate in STRING_QUOTES:
                candidate_pos = text.find(candidate, offset, pos)
                if candidate_pos >= 0 and (quote_pos < 0 or candidate_pos < quote_pos):
                    quote_pos, quote = candidate_pos, candidate

            if quote_pos < 0:
                return pos

            search = quote_pos + 1
            while True:
                string_end = text.find(quote, search)
                if string_end < 0:
                    raise TemplateLexerError(
                        f"Unclosed string in template near position {quote_pos}",
                        offset=quote_pos,
                    )
                if text[string_end - 1] != "\\":
                    offset = string_end + 1
                    break
                search = string_end + 1


def tokenize_template(text: str) -> List[Token]:
    """Tokenize template source with the default delimiters."""
    return TemplateLexer().tokenize(text)


__all__ = ["TokenMatch", "TemplateLexer", "tokenize_template"]
