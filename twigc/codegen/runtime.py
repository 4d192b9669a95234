"""
Host UI runtime.

Generated modules bind a runtime as `R` and build output with
`R.create(type, props, *children)` and `R.Fragment`. The default runtime
produces immutable VElement trees that compare by value.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol, Tuple


class _FragmentType:
    """Sentinel type grouping children without a wrapping element."""

    def __repr__(self) -> str:
        return "Fragment"


Fragment = _FragmentType()


class UIRuntime(Protocol):
    """Element factory used by the code generator and generated modules."""

    Fragment: Any

    def create(self, type: Any, props: Optional[Dict[str, Any]] = None, *children: Any) -> Any:
        ...


@dataclass(frozen=True)
class VElement:
    """
    Virtual element.

    Attributes:
        type: Tag name or Fragment
        props: Element properties (None when the element has none)
        children: Flattened children; None values are dropped
    """
    type: Any
    props: Optional[Dict[str, Any]]
    children: Tuple[Any, ...] = ()

    @property
    def key(self) -> Any:
        return (self.props or {}).get("key")

    def to_dict(self) -> Dict[str, Any]:
        """JSON-friendly representation."""
        return {
            "type": "Fragment" if self.type is Fragment else self.type,
            "props": dict(self.props) if self.props else None,
            "children": [c.to_dict() if isinstance(c, VElement) else c for c in self.children],
        }

    def text(self) -> str:
        """Concatenated text content."""
        parts = []
        for child in self.children:
            if isinstance(child, VElement):
                parts.append(child.text())
            else:
                parts.append(str(child))
        return "".join(parts)


def _flatten(children, out: list) -> None:
    for child in children:
        if child is None or isinstance(child, bool):
            continue
        if isinstance(child, (list, tuple)):
            _flatten(child, out)
        else:
            out.append(child)


class ElementRuntime:
    """Default runtime building VElement trees."""

    Fragment = Fragment

    def create(self, type: Any, props: Optional[Dict[str, Any]] = None, *children: Any) -> VElement:
        flat: list = []
        _flatten(children, flat)
        return VElement(type, dict(props) if props else None, tuple(flat))


default_runtime = ElementRuntime()


def to_data(value: Any) -> Any:
    """Convert a rendered value (elements, lists, scalars) to plain data."""
    if isinstance(value, VElement):
        return value.to_dict()
    if isinstance(value, (list, tuple)):
        return [to_data(v) for v in value]
    return value


__all__ = ["Fragment", "UIRuntime", "VElement", "ElementRuntime", "default_runtime", "to_data"]
