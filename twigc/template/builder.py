"""
Markup tree builder.

Walks compiled tokens and builds a NodeTree mirroring the HTML element
structure. Raw chunks are scanned with a small state machine so that a tag
or a quoted attribute value may span several chunks separated by
`{{ ... }}` expressions; such values become AttrFragment objects.

Recoverable markup problems (stray closing tags, malformed directives,
unterminated attribute values) are collected as warnings.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from ..config.model import CompilerOptions, DEFAULT_OPTIONS
from .directives import DirectiveParser
from .logic import CompiledToken, LogicToken, OutputToken, RawToken
from .nodes import (
    ROOT,
    AttrFragment,
    ElementNode,
    ExprNode,
    IncludeNode,
    LogicNode,
    NodeTree,
    TextNode,
)

logger = logging.getLogger(__name__)

ATTRIBUTE_ALIASES = {"class": "className", "for": "htmlFor"}

VOID_ELEMENTS = frozenset({
    "area", "base", "br", "col", "embed", "hr", "img", "input",
    "link", "meta", "source", "track", "wbr",
})

# Elements whose body is collected verbatim instead of becoming nodes
EXTRACTED_ELEMENTS = frozenset({"style", "script"})

_MARKUP = re.compile(r"<!--|</\s*([A-Za-z][\w:.-]*)\s*>|<([A-Za-z][\w:.-]*)")
_ATTR_NAME = re.compile(r"[^\s=/>\"']+")
_UNQUOTED_VALUE = re.compile(r"[^\s>\"']+?(?=\s|/?>|$)")
_UNQUOTED_END = re.compile(r"\s|/?>")
_LEADING_BREAKS = re.compile(r"^[\r\n]+\s*")
_TRAILING_BREAKS = re.compile(r"\s*[\r\n]+\s*$")
_LINE_BREAKS = re.compile(r"[\r\n]+")


def normalize_text(text: str) -> str:
    """Trim leading/trailing line breaks and collapse CR/LF runs to a single newline."""
    text = _LEADING_BREAKS.sub("", text)
    text = _TRAILING_BREAKS.sub("", text)
    return _LINE_BREAKS.sub("\n", text)


@dataclass
class BuildResult:
    """
    Output of one build.

    Attributes:
        tree: Markup node tree
        styles: Bodies of <style> elements
        scripts: Bodies of inline <script> elements
        requires: Dependencies from @require directives and <script src>
        includes: Template names referenced by @include directives
        warnings: Recoverable markup problems
    """
    tree: NodeTree
    styles: List[str] = field(default_factory=list)
    scripts: List[str] = field(default_factory=list)
    requires: List[str] = field(default_factory=list)
    includes: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


@dataclass
class _PendingTag:
    """Start tag whose closing '>' has not been seen yet."""
    element: ElementNode
    start: int


@dataclass
class _PendingAttr:
    """Attribute value spanning several chunks."""
    name: str
    quote: Optional[str]
    fragment: AttrFragment = field(default_factory=AttrFragment)
    start: int = 0


@dataclass
class _Extracted:
    """Body of a <style>/<script> element being collected."""
    tag: str
    element: ElementNode
    parts: List[str] = field(default_factory=list)


class MarkupTreeBuilder:
    """
    Builds markup trees from compiled tokens.

    Usage:
        result = MarkupTreeBuilder().build(compiled_tokens)
        print(result.tree.dump())
    """

    def __init__(self, options: Optional[CompilerOptions] = None):
        self.options = options or DEFAULT_OPTIONS
        self.directives = DirectiveParser()
        self._reset()

    def _reset(self) -> None:
        self.tree = NodeTree()
        self.focus = ROOT
        self.open_tags: List[Tuple[str, int]] = []
        self.pending_tag: Optional[_PendingTag] = None
        self.pending_attr: Optional[_PendingAttr] = None
        self.pending_comment: Optional[List[str]] = None
        self.extracted: Optional[_Extracted] = None
        self.result = BuildResult(self.tree)

    # ------------------------------------------------------------------ #

    def build(self, compiled: List[CompiledToken]) -> BuildResult:
        """
        Build a markup tree.

        Args:
            compiled: Output of the structural compiler

        Returns:
            Build result with a fresh tree and accumulators
        """
        self._reset()
        self._build_sequence(compiled)
        self._finish()
        logger.debug(
            f"Built markup tree: {len(self.tree)} nodes, "
            f"{len(self.result.warnings)} warnings"
        )
        return self.result

    def _build_sequence(self, compiled: List[CompiledToken]) -> None:
        for item in compiled:
            if isinstance(item, RawToken):
                self._feed(item.value, item.start)
            elif isinstance(item, OutputToken):
                self._expression(item)
            elif isinstance(item, LogicToken):
                self._logic(item)

    def _warn(self, message: str) -> None:
        logger.warning(message)
        self.result.warnings.append(message)

    def _finish(self) -> None:
        if self.pending_attr is not None:
            self._warn(f"Unterminated value of attribute '{self.pending_attr.name}' at offset {self.pending_attr.start}")
            self._close_attr()
        if self.pending_tag is not None:
            self._warn(f"Unterminated start tag <{self.pending_tag.element.tag}> at offset {self.pending_tag.start}")
            self._open_element(self.pending_tag.element)
            self.pending_tag = None
        if self.extracted is not None:
            self._warn(f"Unclosed <{self.extracted.tag}> element")
            self._store_extracted()
        if self.pending_comment is not None:
            self._warn("Unterminated HTML comment")
            self.pending_comment = None
        for tag, _ in reversed(self.open_tags):
            self._warn(f"Unclosed tag <{tag}>")
        self.open_tags = []
        self.focus = ROOT

    # ------------------------------ tokens ------------------------------ #

    def _expression(self, token: OutputToken) -> None:
        if self.pending_attr is not None:
            self.pending_attr.fragment.append_expression(token.expression)
        elif self.pending_tag is not None:
            self._warn(f"Expression '{token.expression.text}' inside <{self.pending_tag.element.tag}> tag ignored")
        elif self.extracted is not None:
            self._warn(f"Expression '{token.expression.text}' inside <{self.extracted.tag}> ignored")
        elif self.pending_comment is not None:
            pass
        else:
            self.tree.add(self.focus, ExprNode(token.expression))

    def _logic(self, token: LogicToken) -> None:
        if self.pending_attr is not None or self.pending_tag is not None or self.extracted is not None:
            self._warn(f"Logic statement '{token.type.value}' inside a tag is not supported; skipped")
            return

        handle = self.tree.add(self.focus, LogicNode(token))
        saved_focus, saved_tags = self.focus, self.open_tags
        self.focus, self.open_tags = handle, []

        self._build_sequence(token.output)

        if self.pending_attr is not None or self.pending_tag is not None:
            self._warn(f"Tag left open at the end of '{token.type.value}' body")
            if self.pending_attr is not None:
                self._close_attr()
            if self.pending_tag is not None:
                self._open_element(self.pending_tag.element)
                self.pending_tag = None
        for tag, _ in reversed(self.open_tags):
            self._warn(f"Unclosed tag <{tag}> inside '{token.type.value}' body")

        self.focus, self.open_tags = saved_focus, saved_tags

    # ----------------------------- raw text ----------------------------- #

    def _feed(self, text: str, offset: int) -> None:
        i = 0
        length = len(text)
        while i < length:
            if self.pending_comment is not None:
                end = text.find("-->", i)
                if end < 0:
                    self.pending_comment.append(text[i:])
                    return
                self.pending_comment.append(text[i:end])
                self._comment("".join(self.pending_comment))
                self.pending_comment = None
                i = end + 3
            elif self.pending_attr is not None:
                i = self._continue_attr(text, i)
            elif self.pending_tag is not None:
                i = self._scan_attributes(text, i, offset)
            elif self.extracted is not None:
                i = self._continue_extracted(text, i)
            else:
                i = self._scan_text(text, i, offset)

    def _scan_text(self, text: str, i: int, offset: int) -> int:
        m = _MARKUP.search(text, i)
        if m is None:
            self._text(text[i:])
            return len(text)

        self._text(text[i:m.start()])

        if m.group(0) == "<!--":
            self.pending_comment = []
            return m.end()

        if m.group(1) is not None:
            self._close_tag(m.group(1))
            return m.end()

        self.pending_tag = _PendingTag(ElementNode(m.group(2)), offset + m.start())
        return m.end()

    def _text(self, text: str) -> None:
        if not text.strip():
            return
        normalized = normalize_text(text)
        if normalized.strip():
            self.tree.add(self.focus, TextNode(normalized))

    def _close_tag(self, tag: str) -> None:
        if not self.open_tags:
            self._warn(f"Unexpected closing tag </{tag}>")
            return
        name, handle = self.open_tags[-1]
        if name != tag:
            self._warn(f"Closing tag </{tag}> ignored while <{name}> is open")
            return
        self.open_tags.pop()
        self.focus = self.tree.parent(handle)

    # ---------------------------- attributes ---------------------------- #

    def _scan_attributes(self, text: str, i: int, offset: int) -> int:
        pending = self.pending_tag
        length = len(text)
        while i < length:
            ch = text[i]
            if ch.isspace():
                i += 1
                continue
            if text.startswith("/>", i):
                self._open_element(pending.element, self_closing=True)
                self.pending_tag = None
                return i + 2
            if ch == ">":
                self._open_element(pending.element)
                self.pending_tag = None
                return i + 1

            m = _ATTR_NAME.match(text, i)
            if m is None:
                # stray quote or '=' inside the tag
                i += 1
                continue
            name = m.group(0)
            j = m.end()
            while j < length and text[j].isspace():
                j += 1
            if j >= length or text[j] != "=":
                self._set_attr(pending.element, name, True)
                i = j
                continue

            j += 1
            while j < length and text[j].isspace():
                j += 1
            if j >= length:
                # value starts in the next chunk (unquoted expression)
                self.pending_attr = _PendingAttr(name, None, start=offset + i)
                return length

            quote = text[j]
            if quote in ("'", '"'):
                end = text.find(quote, j + 1)
                if end < 0:
                    self.pending_attr = _PendingAttr(name, quote, start=offset + i)
                    self.pending_attr.fragment.append_text(text[j + 1:])
                    return length
                self._set_attr(pending.element, name, text[j + 1:end])
                i = end + 1
                continue

            value = _UNQUOTED_VALUE.match(text, j)
            if value is None:
                self._set_attr(pending.element, name, "")
                i = j
                continue
            self._set_attr(pending.element, name, value.group(0))
            i = value.end()
        return i

    def _continue_attr(self, text: str, i: int) -> int:
        pending = self.pending_attr
        if pending.quote is None:
            m = _UNQUOTED_END.search(text, i)
            end = m.start() if m else len(text)
            pending.fragment.append_text(text[i:end])
            if m is None:
                return len(text)
            self._close_attr()
            return end

        end = text.find(pending.quote, i)
        if end < 0:
            pending.fragment.append_text(text[i:])
            return len(text)
        pending.fragment.append_text(text[i:end])
        self._close_attr()
        return end + 1

    def _close_attr(self) -> None:
        pending = self.pending_attr
        self.pending_attr = None
        if self.pending_tag is None:
            return
        fragment = pending.fragment
        if fragment.has_expressions:
            value = fragment
        else:
            value = "".join(s.value for s in fragment.segments)
        self._set_attr(self.pending_tag.element, pending.name, value)

    def _set_attr(self, element: ElementNode, name: str, value) -> None:
        if self.options.attribute_aliases:
            name = ATTRIBUTE_ALIASES.get(name, name)
        element.attrs[name] = value

    # ----------------------------- elements ----------------------------- #

    def _open_element(self, element: ElementNode, self_closing: bool = False) -> None:
        tag = element.tag.lower()
        if tag in EXTRACTED_ELEMENTS:
            src = element.attrs.get("src")
            if tag == "script" and isinstance(src, str):
                self.result.requires.append(src)
            if not self_closing:
                self.extracted = _Extracted(tag, element)
            return

        handle = self.tree.add(self.focus, element)
        if self_closing or tag in VOID_ELEMENTS:
            return
        self.open_tags.append((element.tag, handle))
        self.focus = handle

    def _continue_extracted(self, text: str, i: int) -> int:
        extracted = self.extracted
        m = re.compile(rf"</\s*{extracted.tag}\s*>", re.IGNORECASE).search(text, i)
        if m is None:
            extracted.parts.append(text[i:])
            return len(text)
        extracted.parts.append(text[i:m.start()])
        self._store_extracted()
        return m.end()

    def _store_extracted(self) -> None:
        extracted = self.extracted
        self.extracted = None
        body = "".join(extracted.parts).strip()
        if not body:
            return
        if extracted.tag == "style":
            self.result.styles.append(body)
        else:
            self.result.scripts.append(body)

    # ----------------------------- comments ----------------------------- #

    def _comment(self, body: str) -> None:
        try:
            directive = self.directives.parse(body)
        except ValueError as e:
            self._warn(f"Skipping directive: {e}")
            return
        if directive is None:
            return

        if directive.name == "include":
            name = directive.args[0]
            extra = directive.args[1] if len(directive.args) > 1 else None
            self.tree.add(self.focus, IncludeNode(name, extra))
            if name not in self.result.includes:
                self.result.includes.append(name)
        elif directive.name == "require":
            for dependency in directive.args:
                if dependency not in self.result.requires:
                    self.result.requires.append(dependency)


def build_tree(compiled: List[CompiledToken], options: Optional[CompilerOptions] = None) -> BuildResult:
    """Build a markup tree with a fresh builder."""
    return MarkupTreeBuilder(options).build(compiled)


__all__ = [
    "ATTRIBUTE_ALIASES",
    "VOID_ELEMENTS",
    "normalize_text",
    "BuildResult",
    "MarkupTreeBuilder",
    "build_tree",
]
