"""
Directive comments embedded in markup.

Recognized forms:
- <!--@include["name", {"extra": 1}]-->
- <!--@require["./button", "./icon"]-->

Arguments are a JSON array. Malformed directives are reported as warnings
and skipped by the builder.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from typing import Any, List, Optional, Tuple

KNOWN_DIRECTIVES = frozenset({"include", "require"})


@dataclass(frozen=True)
class Directive:
    """
    Parsed directive.

    Attributes:
        name: Directive name without '@'
        args: Decoded JSON arguments
    """
    name: str
    args: List[Any] = field(default_factory=list)


class DirectiveParser:
    """Finds HTML comments in raw markup and decodes directive comments."""

    COMMENT_PATTERN = re.compile(r"<!--(.*?)-->", re.DOTALL)
    DIRECTIVE_PATTERN = re.compile(r"^\s*@([A-Za-z_][\w-]*)\s*(\[.*\])?\s*$", re.DOTALL)

    def split(self, text: str) -> List[Tuple[str, Optional[str]]]:
        """
        Split raw markup around complete HTML comments.

        Returns:
            List of (markup, comment_body) pairs; comment_body is None for the
            trailing markup after the last comment
        """
        parts: List[Tuple[str, Optional[str]]] = []
        position = 0
        for match in self.COMMENT_PATTERN.finditer(text):
            parts.append((text[position:match.start()], match.group(1)))
            position = match.end()
        parts.append((text[position:], None))
        return parts

    def parse(self, body: str) -> Optional[Directive]:
        """
        Decode a comment body.

        Args:
            body: Text between `<!--` and `-->`

        Returns:
            Directive, or None for ordinary comments

        Raises:
            ValueError: For unknown directives or malformed argument lists
        """
        m = self.DIRECTIVE_PATTERN.match(body)
        if not m:
            return None

        name = m.group(1)
        if name not in KNOWN_DIRECTIVES:
            raise ValueError(f"Unknown directive '@{name}'")

        raw_args = m.group(2)
        if raw_args is None:
            raise ValueError(f"Directive '@{name}' requires an argument list")
        try:
            args = json.loads(raw_args)
        except json.JSONDecodeError as e:
            raise ValueError(f"Malformed arguments for '@{name}': {e.msg}") from e
        if not isinstance(args, list):
            raise ValueError(f"Arguments for '@{name}' must be a JSON array")

        if name == "include":
            if not args or not isinstance(args[0], str):
                raise ValueError("'@include' expects a template name as first argument")
            if len(args) > 1 and not isinstance(args[1], dict):
                raise ValueError("'@include' extra variables must be a JSON object")
        if name == "require" and not all(isinstance(a, str) for a in args):
            raise ValueError("'@require' expects string arguments")

        return Directive(name, args)


__all__ = ["KNOWN_DIRECTIVES", "Directive", "DirectiveParser"]
