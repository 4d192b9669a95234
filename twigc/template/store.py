"""
Template store.

Keeps compiled templates by id and exposes them as include targets, both
for live rendering and for loaded generated modules.
"""

from __future__ import annotations

import logging
from functools import partial
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional

from ..config.model import CompilerOptions, DEFAULT_OPTIONS
from ..errors import DuplicateTemplateError, TemplateNotFoundError
from .processor import Template

logger = logging.getLogger(__name__)


class TemplateStore:
    """
    Registry of templates by id.

    With options.cache set, registering an id twice raises
    DuplicateTemplateError; otherwise the newer template replaces the old one.
    """

    def __init__(self, options: Optional[CompilerOptions] = None):
        self.options = options or DEFAULT_OPTIONS
        self._templates: Dict[str, Template] = {}

    def register(self, template: Template) -> Template:
        """
        Add a template under its id.

        Raises:
            ValueError: If the template has no id
            DuplicateTemplateError: If the id exists and caching is on
        """
        if not template.template_id:
            raise ValueError("Only templates with an id can be stored")
        name = template.template_id
        if name in self._templates:
            if self.options.cache:
                raise DuplicateTemplateError(name)
            logger.debug(f"Replacing template {name}")
        self._templates[name] = template
        if template.store is None:
            template.store = self
        logger.debug(f"Registered template {name}")
        return template

    def add(self, name: str, source: str) -> Template:
        """Compile source and register it under name."""
        return self.register(Template(source, name, self.options, self))

    def get(self, name: str) -> Template:
        """
        Look up a template.

        Raises:
            TemplateNotFoundError: If no template has this id
        """
        template = self._templates.get(name)
        if template is None:
            raise TemplateNotFoundError(name)
        return template

    def load(self, name: str) -> Optional[Template]:
        """Look up a template; None when missing."""
        return self._templates.get(name)

    def contains(self, name: str) -> bool:
        return name in self._templates

    __contains__ = contains

    def remove(self, name: str) -> bool:
        """Drop a template; returns whether it was present."""
        return self._templates.pop(name, None) is not None

    def clear(self) -> None:
        self._templates.clear()

    def names(self) -> List[str]:
        return sorted(self._templates)

    def __len__(self) -> int:
        return len(self._templates)

    # ------------------------------------------------------------------ #

    def live_includes(self) -> "LiveIncludes":
        """Include targets rendering stored templates directly."""
        return LiveIncludes(self)

    def module_includes(self) -> "ModuleIncludes":
        """Include targets running the generated module of each stored template."""
        return ModuleIncludes(self)


class LiveIncludes(Mapping):
    """Mapping id -> callable(p, blocks=None) rendering the stored template."""

    def __init__(self, store: TemplateStore):
        self._store = store

    def __getitem__(self, name: str) -> Callable[..., Any]:
        template = self._store.load(name)
        if template is None:
            raise KeyError(name)

        def target(p: Any, blocks: Optional[Mapping] = None) -> Any:
            return template.render_value(p, blocks)

        return target

    def __iter__(self) -> Iterator[str]:
        return iter(self._store.names())

    def __len__(self) -> int:
        return len(self._store)


class ModuleIncludes(Mapping):
    """
    Mapping id -> generated `render` with these includes bound.

    Modules are generated and loaded on first use and kept until the
    template is replaced in the store.
    """

    def __init__(self, store: TemplateStore):
        self._store = store
        self._loaded: Dict[str, tuple] = {}

    def __getitem__(self, name: str) -> Callable[..., Any]:
        template = self._store.load(name)
        if template is None:
            raise KeyError(name)
        cached = self._loaded.get(name)
        if cached is None or cached[0] is not template:
            source = template.generate()
            if source is None:
                raise KeyError(name)
            cached = (template, source.load())
            self._loaded[name] = cached
            logger.debug(f"Loaded generated module for {name}")
        return partial(cached[1], includes=self)

    def __iter__(self) -> Iterator[str]:
        return iter(self._store.names())

    def __len__(self) -> int:
        return len(self._store)


__all__ = ["TemplateStore", "LiveIncludes", "ModuleIncludes"]
