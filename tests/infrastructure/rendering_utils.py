"""
Utilities for rendering templates in tests.

Every template can be rendered two ways: live through the code generator,
and by loading the generated module and calling its render function.
"""

from __future__ import annotations

from typing import Any, Dict, Mapping, Optional, Tuple

from twigc.codegen.generator import RenderResult
from twigc.config.model import CompilerOptions
from twigc.template.processor import Template
from twigc.template.store import TemplateStore


def make_store(templates: Optional[Dict[str, str]] = None,
               options: Optional[CompilerOptions] = None) -> TemplateStore:
    """Store with the given templates registered by id."""
    store = TemplateStore(options)
    for name, source in (templates or {}).items():
        store.add(name, source)
    return store


def render_live(source: str, context: Any = None, store: Optional[TemplateStore] = None,
                blocks: Optional[Mapping] = None,
                options: Optional[CompilerOptions] = None) -> RenderResult:
    """Render a template with the code generator."""
    result = Template(source, options=options, store=store).render(context, blocks)
    assert result is not None
    return result


def render_module(source: str, context: Any = None, store: Optional[TemplateStore] = None,
                  blocks: Optional[Mapping] = None,
                  options: Optional[CompilerOptions] = None) -> Any:
    """Render a template by executing its generated module."""
    generated = Template(source, options=options, store=store).generate()
    assert generated is not None
    includes = store.module_includes() if store is not None else None
    return generated.load()(context, blocks, includes)


def render_both(source: str, context: Any = None, store: Optional[TemplateStore] = None,
                blocks: Optional[Mapping] = None,
                options: Optional[CompilerOptions] = None) -> Tuple[Any, Any]:
    """Live value and generated-module value of the same render."""
    live = render_live(source, context, store, blocks, options).value
    module = render_module(source, context, store, blocks, options)
    return live, module
