"""
Template processor.

Public API tying the pipeline together: tokenize, compile structure, build
the markup tree and render it through the code generator. A Template keeps
its compiled tokens; the node tree and accumulators are rebuilt on every
render.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable, List, Mapping, Optional

from ..codegen.generator import CodeGenerator, GeneratedSource, RenderResult
from ..codegen.runtime import UIRuntime, default_runtime
from ..config.model import CompilerOptions, DEFAULT_OPTIONS
from ..errors import TemplateError
from ..expression.compiler import ExpressionCompiler
from ..expression.evaluator import ExpressionEvaluator
from ..expression.library import FunctionLibrary
from .builder import BuildResult, MarkupTreeBuilder
from .compiler import StructureCompiler
from .lexer import tokenize_template
from .logic import CompiledToken

if TYPE_CHECKING:
    from .store import TemplateStore

logger = logging.getLogger(__name__)


@dataclass
class CompileResult:
    """
    Outcome of compiling template text.

    Exactly one of output and error is set.
    """
    output: Optional[List[CompiledToken]] = None
    error: Optional[TemplateError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> List[CompiledToken]:
        """Compiled tokens, or the compile error raised."""
        if self.error is not None:
            raise self.error
        return self.output or []


def prepare(
    text: str,
    expressions: Optional[ExpressionCompiler] = None,
    template_id: Optional[str] = None,
) -> CompileResult:
    """
    Tokenize and structurally compile template text.

    Args:
        text: Template source
        expressions: Expression compiler to reuse
        template_id: Identifier attached to errors

    Returns:
        CompileResult with compiled tokens or the first error
    """
    try:
        tokens = tokenize_template(text)
        compiled = StructureCompiler(expressions).compile(tokens)
    except TemplateError as e:
        if e.template_id is None:
            e.template_id = template_id
        return CompileResult(error=e)
    return CompileResult(output=compiled)


class Template:
    """
    Compiled template.

    Args:
        source: Template text
        template_id: Identifier used in errors, stores and generated modules
        options: Compiler options
        store: Template store resolving include/extends targets
        library: Function library (generated modules must import the same one)
        runtime: Host UI runtime for live rendering

    Raises:
        TemplateError: On compile errors when options.rethrow is set
    """

    def __init__(
        self,
        source: str,
        template_id: Optional[str] = None,
        options: Optional[CompilerOptions] = None,
        store: Optional["TemplateStore"] = None,
        library: Optional[FunctionLibrary] = None,
        runtime: Optional[UIRuntime] = None,
    ):
        self.source = source
        self.template_id = template_id
        self.options = options or DEFAULT_OPTIONS
        self.store = store
        self.runtime = runtime or default_runtime
        self.evaluator = ExpressionEvaluator(library, strict=self.options.strict_variables)
        self.expressions = ExpressionCompiler()

        self.compiled = prepare(source, self.expressions, template_id)
        self.last_result: Optional[RenderResult] = None
        if not self.compiled.ok:
            self._fail(self.compiled.error)

    @property
    def ok(self) -> bool:
        return self.compiled.ok

    @property
    def error(self) -> Optional[TemplateError]:
        return self.compiled.error

    def __repr__(self) -> str:
        return f"Template({self.template_id or '<string>'!s})"

    # ------------------------------------------------------------------ #

    def build(self) -> Optional[BuildResult]:
        """Build a fresh markup tree from the compiled tokens."""
        if not self.compiled.ok:
            return None
        return MarkupTreeBuilder(self.options).build(self.compiled.unwrap())

    def render(
        self,
        context: Any = None,
        blocks: Optional[Mapping] = None,
        includes: Optional[Mapping] = None,
    ) -> Optional[RenderResult]:
        """
        Render against a context.

        Args:
            context: Render context
            blocks: Block overrides, name -> callable(p, parent_blocks=None)
            includes: Template renderers; defaults to the store's templates

        Returns:
            Render result, or None when the template failed and rethrow is off

        Raises:
            TemplateError: On compile or evaluation errors when options.rethrow is set
        """
        build = self.build()
        if build is None:
            return None
        if includes is None and self.store is not None:
            includes = self.store.live_includes()

        generator = CodeGenerator(self.evaluator, self.runtime, self.options)
        try:
            result = generator.render(
                build.tree,
                context,
                blocks=blocks,
                includes=includes,
                accumulators=build,
                template_id=self.template_id,
            )
        except TemplateError as e:
            self._fail(e)
            return None
        self.last_result = result
        return result

    def render_value(self, context: Any = None, blocks: Optional[Mapping] = None) -> Any:
        """Rendered element tree only."""
        result = self.render(context, blocks)
        return result.value if result is not None else None

    @property
    def component(self) -> Callable[..., Any]:
        """Callable `(context, blocks=None)` returning the rendered element tree."""
        def component(context: Any = None, blocks: Optional[Mapping] = None) -> Any:
            return self.render_value(context, blocks)
        return component

    def generate(self) -> Optional[GeneratedSource]:
        """
        Generate source without a context.

        Returns:
            Generated source, or None when the template failed and rethrow is off
        """
        build = self.build()
        if build is None:
            return None
        generator = CodeGenerator(self.evaluator, self.runtime, self.options)
        try:
            result = generator.render(
                build.tree,
                None,
                accumulators=build,
                template_id=self.template_id,
                live=False,
            )
        except TemplateError as e:
            self._fail(e)
            return None
        self.last_result = result
        return result.source

    def to_module(self) -> str:
        """Python module source; empty when the template failed and rethrow is off."""
        source = self.generate()
        return source.to_module() if source is not None else ""

    def _fail(self, error: TemplateError) -> None:
        if error.template_id is None:
            error.template_id = self.template_id
        if self.options.rethrow:
            raise error
        logger.error(f"Template {self.template_id or '<string>'} failed: {error}")


def compile_template(
    source: str,
    template_id: Optional[str] = None,
    options: Optional[CompilerOptions] = None,
    store: Optional["TemplateStore"] = None,
) -> Template:
    """Compile a template and register it in the store when one is given."""
    template = Template(source, template_id, options, store)
    if store is not None and template_id is not None:
        store.register(template)
    return template


__all__ = ["CompileResult", "prepare", "Template", "compile_template"]
