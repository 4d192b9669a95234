"""
Markup node tree.

Nodes live in an arena and are addressed by integer handles. The tree keeps
parent handles, ordered child lists, depth and a diagnostic path per node.
The root (handle 0) is its own parent.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, ClassVar, Dict, Iterator, List, Optional, Union

from ..expression.model import Expression
from .logic import LogicToken

ROOT = 0


class NodeKind(enum.Enum):
    """Node kinds of the markup tree."""
    ROOT = "root"
    TEXT = "text"
    ELEMENT = "element"
    LOGIC = "logic"
    EXPR = "expr"
    INCLUDE = "include"


# ---------------------------- attribute values ---------------------------- #

@dataclass
class TextSegment:
    value: str


@dataclass
class ExprSegment:
    expression: Expression


Segment = Union[TextSegment, ExprSegment]


@dataclass
class AttrFragment:
    """
    Attribute value assembled from several chunks.

    Built when a quoted attribute value is interrupted by `{{ ... }}`;
    text and expression segments are kept in source order.
    """
    segments: List[Segment] = field(default_factory=list)

    def append_text(self, text: str) -> None:
        if not text:
            return
        if self.segments and isinstance(self.segments[-1], TextSegment):
            self.segments[-1] = TextSegment(self.segments[-1].value + text)
        else:
            self.segments.append(TextSegment(text))

    def append_expression(self, expression: Expression) -> None:
        self.segments.append(ExprSegment(expression))

    @property
    def has_expressions(self) -> bool:
        return any(isinstance(s, ExprSegment) for s in self.segments)


AttrValue = Union[str, bool, AttrFragment]


# ---------------------------------- nodes --------------------------------- #

@dataclass
class RootNode:
    kind: ClassVar[NodeKind] = NodeKind.ROOT

    def label(self) -> str:
        return "root"


@dataclass
class TextNode:
    text: str
    kind: ClassVar[NodeKind] = NodeKind.TEXT

    def label(self) -> str:
        return "#text"


@dataclass
class ElementNode:
    """
    HTML element.

    Attributes:
        tag: Tag name as written
        attrs: Attribute values in source order; fragment values included
    """
    tag: str
    attrs: Dict[str, AttrValue] = field(default_factory=dict)
    kind: ClassVar[NodeKind] = NodeKind.ELEMENT

    @property
    def attrs_with_expr(self) -> Dict[str, AttrFragment]:
        """Attributes whose value contains expressions."""
        return {k: v for k, v in self.attrs.items() if isinstance(v, AttrFragment)}

    def label(self) -> str:
        return self.tag


@dataclass
class LogicNode:
    logic: LogicToken
    kind: ClassVar[NodeKind] = NodeKind.LOGIC

    def label(self) -> str:
        return f"%{self.logic.type.value}"


@dataclass
class ExprNode:
    expression: Expression
    kind: ClassVar[NodeKind] = NodeKind.EXPR

    def label(self) -> str:
        return "{{}}"


@dataclass
class IncludeNode:
    """Include placeholder from an `@include[...]` directive."""
    name: str
    args: Optional[Dict[str, Any]] = None
    kind: ClassVar[NodeKind] = NodeKind.INCLUDE

    def label(self) -> str:
        return f"@include:{self.name}"


Node = Union[RootNode, TextNode, ElementNode, LogicNode, ExprNode, IncludeNode]


class NodeTree:
    """
    Arena of markup nodes.

    Handles are indices into the arena; the root is created on construction.
    """

    def __init__(self):
        self._nodes: List[Node] = []
        self._parents: List[int] = []
        self._children: List[List[int]] = []
        self._depths: List[int] = []
        self._paths: List[str] = []
        self.reset()

    def reset(self) -> None:
        """Drop every node except a fresh root."""
        self._nodes = [RootNode()]
        self._parents = [ROOT]
        self._children = [[]]
        self._depths = [0]
        self._paths = ["root"]

    def add(self, parent: int, node: Node) -> int:
        """
        Append a node as the last child of parent.

        Returns:
            Handle of the new node
        """
        self._check(parent)
        handle = len(self._nodes)
        index = len(self._children[parent])
        self._nodes.append(node)
        self._parents.append(parent)
        self._children.append([])
        self._depths.append(self._depths[parent] + 1)
        self._paths.append(f"{self._paths[parent]}/{node.label()}[{index}]")
        self._children[parent].append(handle)
        return handle

    def node(self, handle: int) -> Node:
        self._check(handle)
        return self._nodes[handle]

    def parent(self, handle: int) -> int:
        self._check(handle)
        return self._parents[handle]

    def children(self, handle: int = ROOT) -> List[int]:
        self._check(handle)
        return list(self._children[handle])

    def depth(self, handle: int) -> int:
        self._check(handle)
        return self._depths[handle]

    def path(self, handle: int) -> str:
        self._check(handle)
        return self._paths[handle]

    def is_root(self, handle: int) -> bool:
        return self.parent(handle) == handle

    def walk(self, handle: int = ROOT) -> Iterator[int]:
        """Depth-first pre-order traversal of handles."""
        yield handle
        for child in self._children[handle]:
            yield from self.walk(child)

    def __len__(self) -> int:
        return len(self._nodes)

    def _check(self, handle: int) -> None:
        if not 0 <= handle < len(self._nodes):
            raise IndexError(f"Invalid node handle {handle}")

    def dump(self, handle: int = ROOT, indent: int = 0) -> str:
        """Readable outline of the subtree, one node per line."""
        node = self._nodes[handle]
        line = "  " * indent + node.label()
        if isinstance(node, TextNode):
            line += f" {node.text!r}"
        elif isinstance(node, ElementNode) and node.attrs:
            line += " " + " ".join(sorted(node.attrs))
        elif isinstance(node, ExprNode):
            line += f" {node.expression.text}"
        lines = [line]
        for child in self._children[handle]:
            lines.append(self.dump(child, indent + 1))
        return "\n".join(lines)


__all__ = [
    "ROOT",
    "NodeKind",
    "TextSegment",
    "ExprSegment",
    "Segment",
    "AttrFragment",
    "AttrValue",
    "RootNode",
    "TextNode",
    "ElementNode",
    "LogicNode",
    "ExprNode",
    "IncludeNode",
    "Node",
    "NodeTree",
]
