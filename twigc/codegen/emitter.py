"""
Code emission buffer.

Fragments are collected in order and joined once, with line and
indentation helpers for assembling generated modules.
"""

from __future__ import annotations

from contextlib import contextmanager
from typing import Iterable, Iterator, List


class CodeBuffer:
    """
    Ordered list of source fragments.

    Usage:
        buf = CodeBuffer()
        buf.line("def render(p):")
        with buf.indented():
            buf.line("return None")
        source = buf.getvalue()
    """

    INDENT = "    "

    def __init__(self):
        self._parts: List[str] = []
        self._level = 0

    def write(self, *fragments: str) -> "CodeBuffer":
        self._parts.extend(fragments)
        return self

    def line(self, text: str = "") -> "CodeBuffer":
        if text:
            self._parts.append(self.INDENT * self._level + text)
        self._parts.append("\n")
        return self

    def lines(self, texts: Iterable[str]) -> "CodeBuffer":
        for text in texts:
            self.line(text)
        return self

    @contextmanager
    def indented(self) -> Iterator["CodeBuffer"]:
        self._level += 1
        try:
            yield self
        finally:
            self._level -= 1

    def getvalue(self) -> str:
        return "".join(self._parts)

    def __len__(self) -> int:
        return len(self._parts)


def join_call(func: str, args: Iterable[str]) -> str:
    """Render `func(arg, ...)` from argument sources."""
    buf = CodeBuffer().write(func, "(")
    first = True
    for arg in args:
        if not first:
            buf.write(", ")
        buf.write(arg)
        first = False
    return buf.write(")").getvalue()


__all__ = ["CodeBuffer", "join_call"]
