"""
Dual-mode code generator.

One traversal of the markup tree yields, for every node, an Evaluated pair:
the live value rendered against the context and the Python source that
renders the same value at call time. The sources of the whole tree are
assembled into a module defining `render(p, blocks=None, includes=None)`.

Names available to generated code:
    p               render context
    rt              twigc.expression.runtime
    lib             function library
    R               host UI runtime
    blocks          block overrides supplied by the caller
    includes        renderers of included/base templates
    parent_blocks   overridden block content (inside block producers)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional

from ..config.model import CompilerOptions, DEFAULT_OPTIONS
from ..expression import runtime as rt
from ..expression.evaluator import BlockScope, ExpressionEvaluator
from ..expression.model import Evaluated, Expression
from ..template.builder import BuildResult
from ..template.logic import LogicType
from ..template.nodes import (
    ROOT,
    AttrFragment,
    ElementNode,
    ExprNode,
    ExprSegment,
    IncludeNode,
    LogicNode,
    NodeTree,
    TextNode,
)
from ..version import tool_version
from .emitter import CodeBuffer, join_call
from .runtime import UIRuntime, default_runtime

logger = logging.getLogger(__name__)

_NONE = Evaluated(None, "None")


@dataclass
class GeneratedSource:
    """
    Generated rendering code of one template.

    Attributes:
        body: Expression rendering the template (uses p, blocks, includes)
        blocks: Block producers by name, as lambda sources
        extends: True when body delegates to a base template
        requires: Dependencies collected from directives
        includes: Template names referenced by @include directives
        styles: Extracted <style> bodies
        scripts: Extracted inline <script> bodies
        template_id: Identifier of the source template
    """
    body: str
    blocks: Dict[str, str] = field(default_factory=dict)
    extends: bool = False
    requires: List[str] = field(default_factory=list)
    includes: List[str] = field(default_factory=list)
    styles: List[str] = field(default_factory=list)
    scripts: List[str] = field(default_factory=list)
    template_id: Optional[str] = None
    runtime_import: str = DEFAULT_OPTIONS.runtime_import
    library_import: str = DEFAULT_OPTIONS.library_import

    def to_module(self) -> str:
        """Render a complete Python module."""
        buf = CodeBuffer()
        buf.line(f"# Generated by twigc {tool_version()} from {self.template_id or '<string>'}")
        buf.line("from twigc.expression import runtime as rt")
        buf.line(self.runtime_import)
        buf.line(self.library_import)
        buf.line()
        buf.line(f"REQUIRES = {self.requires!r}")
        buf.line(f"INCLUDES = {self.includes!r}")
        buf.line(f"STYLES = {self.styles!r}")
        buf.line(f"SCRIPTS = {self.scripts!r}")
        buf.line()
        buf.line()
        buf.line("def blocks_map(blocks=None, includes=None):")
        with buf.indented():
            if not self.blocks:
                buf.line("return {}")
            else:
                buf.line("return {")
                with buf.indented():
                    for name, producer in self.blocks.items():
                        buf.line(f"{name!r}: {producer},")
                buf.line("}")
        buf.line()
        buf.line()
        buf.line("BLOCKS = blocks_map()")
        buf.line()
        buf.line()
        buf.line("def render(p, blocks=None, includes=None):")
        with buf.indented():
            buf.line("p = rt.child_context(p)")
            buf.line(f"return {self.body}")
        return buf.getvalue()

    def load(self) -> Callable[..., Any]:
        """Execute the generated module and return its render function."""
        namespace: Dict[str, Any] = {}
        filename = f"<twigc:{self.template_id or 'string'}>"
        exec(compile(self.to_module(), filename, "exec"), namespace)
        return namespace["render"]


@dataclass
class RenderResult:
    """
    Live value and generated source of one render.

    Attributes:
        value: Rendered element tree (or None)
        source: Generated code reproducing value for any context
        tree: Markup tree the render walked
        warnings: Markup and generation warnings
    """
    value: Any
    source: GeneratedSource
    tree: NodeTree
    warnings: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class _Env:
    blocks: Optional[Mapping] = None
    includes: Optional[Mapping] = None
    block: Optional[BlockScope] = None

    def in_block(self, name: str, parent_blocks: Optional[Mapping] = None) -> "_Env":
        return _Env(self.blocks, self.includes, BlockScope(name, parent_blocks))


class CodeGenerator:
    """
    Renders markup trees and generates equivalent source.

    Args:
        evaluator: Expression evaluator; its library is the one generated code binds as `lib`
        runtime: Host UI runtime; generated code binds the same runtime as `R`
        options: Compiler options
    """

    def __init__(
        self,
        evaluator: Optional[ExpressionEvaluator] = None,
        runtime: Optional[UIRuntime] = None,
        options: Optional[CompilerOptions] = None,
    ):
        self.options = options or DEFAULT_OPTIONS
        self.evaluator = evaluator or ExpressionEvaluator(strict=self.options.strict_variables)
        self.runtime = runtime or default_runtime
        self.tree = NodeTree()
        self._blocks: Dict[str, str] = {}
        self._warnings: List[str] = []

    # ------------------------------------------------------------------ #

    def render(
        self,
        tree: NodeTree,
        context: Any,
        blocks: Optional[Mapping] = None,
        includes: Optional[Mapping] = None,
        accumulators: Optional[BuildResult] = None,
        template_id: Optional[str] = None,
        live: bool = True,
    ) -> RenderResult:
        """
        Render a tree against a context and generate its source.

        Args:
            tree: Markup tree
            context: Render context
            blocks: Block overrides, name -> callable(p, parent_blocks)
            includes: Template renderers, name -> callable(p, blocks=None)
            accumulators: Build result carrying styles, scripts and requires
            template_id: Identifier recorded in the generated module
            live: Compute the value; when False only source is generated

        Returns:
            Render result
        """
        self.tree = tree
        self._blocks = {}
        self._warnings = []

        p = rt.child_context(context) if live else None
        env = _Env(blocks, includes)

        top = tree.children(ROOT)
        extends = self._find_extends(top)
        if extends is not None:
            result = self._extends(extends, p, live, env)
        else:
            result = self._body(top, p, live, env)

        source = GeneratedSource(
            body=result.source,
            blocks=dict(self._blocks),
            extends=extends is not None,
            template_id=template_id,
            runtime_import=self.options.runtime_import,
            library_import=self.options.library_import,
        )
        warnings = list(self._warnings)
        if accumulators is not None:
            source.requires = list(accumulators.requires)
            source.includes = list(accumulators.includes)
            source.styles = list(accumulators.styles)
            source.scripts = list(accumulators.scripts)
            warnings = list(accumulators.warnings) + warnings

        logger.debug(f"Generated {len(result.source)} characters of source for {template_id or '<string>'}")
        return RenderResult(result.value if live else None, source, tree, warnings)

    def generate(
        self,
        tree: NodeTree,
        accumulators: Optional[BuildResult] = None,
        template_id: Optional[str] = None,
    ) -> GeneratedSource:
        """Generate source only, without a context."""
        return self.render(tree, None, accumulators=accumulators, template_id=template_id, live=False).source

    # ------------------------------------------------------------------ #

    def _warn(self, message: str) -> None:
        logger.warning(message)
        self._warnings.append(message)

    def _expr(self, expression: Optional[Expression], p: Any, live: bool, env: _Env) -> Evaluated:
        if expression is None:
            return _NONE
        if live:
            return self.evaluator.evaluate(expression.stack, p, env.block)
        return Evaluated(None, self.evaluator.generate(expression.stack, env.block))

    def _create(self, type_value: Any, type_source: str, props: Evaluated,
                children: List[Evaluated], live: bool) -> Evaluated:
        value = None
        if live:
            value = self.runtime.create(type_value, props.value, *[c.value for c in children])
        source = join_call("R.create", [type_source, props.source] + [c.source for c in children])
        return Evaluated(value, source)

    def _body(self, handles: List[int], p: Any, live: bool, env: _Env) -> Evaluated:
        items = self._children(handles, p, live, env)
        if not items:
            return _NONE
        if len(items) == 1:
            return items[0]
        return self._create(self.runtime.Fragment, "R.Fragment", _NONE, items, live)

    def _children(self, handles: List[int], p: Any, live: bool, env: _Env) -> List[Evaluated]:
        items: List[Evaluated] = []
        i = 0
        while i < len(handles):
            handle = handles[i]
            node = self.tree.node(handle)
            if isinstance(node, LogicNode):
                logic_type = node.logic.type
                if logic_type == LogicType.IF:
                    chain = [handle]
                    i += 1
                    while i < len(handles) and self._is_logic(handles[i], LogicType.ELSEIF, LogicType.ELSE):
                        chain.append(handles[i])
                        i += 1
                        if self._is_logic(chain[-1], LogicType.ELSE):
                            break
                    items.append(self._conditional(chain, p, live, env))
                    continue
                if logic_type == LogicType.FOR:
                    otherwise = None
                    if i + 1 < len(handles) and self._is_logic(handles[i + 1], LogicType.ELSE):
                        otherwise = handles[i + 1]
                        i += 1
                    items.append(self._loop(handle, otherwise, p, live, env))
                    i += 1
                    continue
                if logic_type in (LogicType.ELSEIF, LogicType.ELSE):
                    self._warn(f"Orphan '{logic_type.value}' at {self.tree.path(handle)} skipped")
                    i += 1
                    continue
            items.append(self._node(handle, p, live, env))
            i += 1
        return items

    def _is_logic(self, handle: int, *types: LogicType) -> bool:
        node = self.tree.node(handle)
        return isinstance(node, LogicNode) and node.logic.type in types

    # ------------------------------- nodes ------------------------------- #

    def _node(self, handle: int, p: Any, live: bool, env: _Env) -> Evaluated:
        node = self.tree.node(handle)

        if isinstance(node, TextNode):
            return Evaluated(node.text, repr(node.text))

        if isinstance(node, ExprNode):
            return self._expr(node.expression, p, live, env)

        if isinstance(node, ElementNode):
            props = self._props(node, p, live, env)
            children = self._children(self.tree.children(handle), p, live, env)
            return self._create(node.tag, repr(node.tag), props, children, live)

        if isinstance(node, IncludeNode):
            extra = repr(node.args) if node.args is not None else "None"
            value = rt.include(env.includes, node.name, p, node.args) if live else None
            return Evaluated(value, f"rt.include(includes, {node.name!r}, p, {extra})")

        if isinstance(node, LogicNode):
            logic_type = node.logic.type
            if logic_type == LogicType.BLOCK:
                return self._block(handle, p, live, env)
            if logic_type == LogicType.SET:
                return self._set(node, p, live, env)
            if logic_type == LogicType.INCLUDE:
                return self._include(node, p, live, env)
            if logic_type == LogicType.EXTENDS:
                self._warn(f"'extends' must be a top-level statement ({self.tree.path(handle)})")
                return _NONE

        self._warn(f"Unsupported node at {self.tree.path(handle)}")
        return _NONE

    def _props(self, node: ElementNode, p: Any, live: bool, env: _Env) -> Evaluated:
        if not node.attrs:
            return _NONE
        values: Dict[str, Any] = {}
        sources: List[str] = []
        for name, attr in node.attrs.items():
            if isinstance(attr, AttrFragment):
                value = self._fragment(attr, p, live, env)
            else:
                value = Evaluated(attr, repr(attr))
            values[name] = value.value
            sources.append(f"{name!r}: {value.source}")
        return Evaluated(values if live else None, "{" + ", ".join(sources) + "}")

    def _fragment(self, fragment: AttrFragment, p: Any, live: bool, env: _Env) -> Evaluated:
        parts: List[str] = []
        pieces: List[str] = []
        for segment in fragment.segments:
            if isinstance(segment, ExprSegment):
                evaluated = self._expr(segment.expression, p, live, env)
                if live:
                    parts.append(rt.to_str(evaluated.value))
                pieces.append(f"rt.to_str({evaluated.source})")
            else:
                parts.append(segment.value)
                pieces.append(repr(segment.value))
        source = pieces[0] if len(pieces) == 1 else "(" + " + ".join(pieces) + ")"
        return Evaluated("".join(parts) if live else None, source)

    # ------------------------------- logic ------------------------------- #

    def _conditional(self, chain: List[int], p: Any, live: bool, env: _Env) -> Evaluated:
        branches: List[str] = []
        selected: Optional[Evaluated] = None
        for handle in chain:
            logic = self.tree.node(handle).logic
            pending = live and selected is None
            if logic.type == LogicType.ELSE:
                condition = Evaluated(True, "True")
            else:
                condition = self._expr(logic.expression, p, pending, env)
            take = pending and rt.boolval(condition.value)
            body = self._body(self.tree.children(handle), p, take, env)
            if take:
                selected = body
            branches.append(f"(lambda p: {condition.source}, lambda p: {body.source})")
        branches.append("(lambda p: True, lambda p: None)")
        source = f"rt.choose(p, ({', '.join(branches)}))"
        return Evaluated(selected.value if selected is not None else None, source)

    def _loop(self, handle: int, otherwise: Optional[int], p: Any, live: bool, env: _Env) -> Evaluated:
        logic = self.tree.node(handle).logic
        children = self.tree.children(handle)
        iterable = self._expr(logic.expression, p, live, env)

        condition_source = "None"
        if logic.condition is not None:
            condition_source = f"(lambda p: {self._expr(logic.condition, None, False, env).source})"
        key_source = repr(logic.key_var) if logic.key_var else "None"

        template = self._children(children, None, False, env)
        keyed = join_call("R.create", ["R.Fragment", "{'key': k}"] + [c.source for c in template])

        value = None
        rows: list = []
        if live:
            condition = None
            if logic.condition is not None:
                def condition(ctx, _expression=logic.condition):
                    return self.evaluator.evaluate(_expression.stack, ctx, env.block).value
            rows = rt.each(iterable.value, p, logic.value_var, logic.key_var, condition)
            value = [
                self.runtime.create(
                    self.runtime.Fragment,
                    {"key": key},
                    *[c.value for c in self._children(children, ctx, True, env)],
                )
                for key, ctx in rows
            ]

        fallback = _NONE
        if otherwise is not None:
            fallback = self._body(self.tree.children(otherwise), p, live and not rows, env)
        if live and not value:
            value = fallback.value

        source = (
            f"([{keyed} for k, p in rt.each({iterable.source}, p, {logic.value_var!r}, "
            f"{key_source}, {condition_source})] or {fallback.source})"
        )
        return Evaluated(value, source)

    def _block(self, handle: int, p: Any, live: bool, env: _Env) -> Evaluated:
        name = self.tree.node(handle).logic.name
        producer_source = self._block_producer(handle, env)

        value = None
        if live:
            value = rt.block(env.blocks, name, p, self._live_producer(handle, env))
        return Evaluated(value, f"rt.block(blocks, {name!r}, p, {producer_source})")

    def _block_producer(self, handle: int, env: _Env) -> str:
        name = self.tree.node(handle).logic.name
        own = self._body(self.tree.children(handle), None, False, env.in_block(name))
        producer = f"lambda p, parent_blocks=None: {own.source}"
        if name in self._blocks and self._blocks[name] != producer:
            self._warn(f"Block '{name}' is defined more than once")
        self._blocks[name] = producer
        return producer

    def _live_producer(self, handle: int, env: _Env) -> Callable[..., Any]:
        name = self.tree.node(handle).logic.name
        children = self.tree.children(handle)

        def produce(ctx, parent_blocks=None):
            return self._body(children, ctx, True, env.in_block(name, parent_blocks)).value

        return produce

    def _set(self, node: LogicNode, p: Any, live: bool, env: _Env) -> Evaluated:
        logic = node.logic
        value = self._expr(logic.expression, p, live, env)
        if live:
            rt.assign(p, logic.value_var, value.value)
        return Evaluated(None, f"rt.assign(p, {logic.value_var!r}, {value.source})")

    def _include(self, node: LogicNode, p: Any, live: bool, env: _Env) -> Evaluated:
        logic = node.logic
        name = self._expr(logic.expression, p, live, env)
        extra = self._expr(logic.with_expression, p, live, env)
        value = None
        if live:
            value = rt.include(env.includes, name.value, p, extra.value, logic.only)
        return Evaluated(value, f"rt.include(includes, {name.source}, p, {extra.source}, {logic.only!r})")

    def _find_extends(self, top: List[int]) -> Optional[int]:
        for handle in top:
            if self._is_logic(handle, LogicType.EXTENDS):
                return handle
        return None

    def _extends(self, handle: int, p: Any, live: bool, env: _Env) -> Evaluated:
        base = self._expr(self.tree.node(handle).logic.expression, p, live, env)

        own_live: Dict[str, Callable[..., Any]] = {}
        for block in self.tree.walk():
            if self._is_logic(block, LogicType.BLOCK):
                self._block_producer(block, env)
                own_live[self.tree.node(block).logic.name] = self._live_producer(block, env)

        value = None
        if live:
            value = rt.extend(env.includes, base.value, p, own_live, env.blocks)
        source = f"rt.extend(includes, {base.source}, p, blocks_map(blocks, includes), blocks)"
        return Evaluated(value, source)


__all__ = ["GeneratedSource", "RenderResult", "CodeGenerator"]
