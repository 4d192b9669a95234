"""
Filesystem template loader.

Discovers template files under a root directory using gitignore-style
patterns and registers them in a store. Template ids are paths relative
to the root in POSIX form (e.g. "partials/item.twig").
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

import pathspec

from ..config.model import CompilerOptions, DEFAULT_OPTIONS
from .processor import Template
from .store import TemplateStore

logger = logging.getLogger(__name__)


class FilesystemLoader:
    """
    Loads templates from a directory tree.

    Args:
        root: Directory to search
        options: Compiler options; template_patterns and ignore_patterns select files
    """

    def __init__(self, root: Path, options: Optional[CompilerOptions] = None):
        self.root = Path(root)
        self.options = options or DEFAULT_OPTIONS
        self.template_spec = pathspec.PathSpec.from_lines("gitwildmatch", self.options.template_patterns)
        self.ignore_spec = (
            pathspec.PathSpec.from_lines("gitwildmatch", self.options.ignore_patterns)
            if self.options.ignore_patterns else None
        )

    def template_id(self, path: Path) -> str:
        return path.resolve().relative_to(self.root.resolve()).as_posix()

    def matches(self, rel_posix: str) -> bool:
        if not self.template_spec.match_file(rel_posix):
            return False
        if self.ignore_spec is not None and self.ignore_spec.match_file(rel_posix):
            return False
        return True

    def discover(self) -> List[Path]:
        """Template files under the root, sorted by id."""
        if not self.root.is_dir():
            return []
        found: List[Path] = []
        for path in self.root.rglob("*"):
            if path.is_file() and self.matches(self.template_id(path)):
                found.append(path)
        found.sort(key=self.template_id)
        logger.debug(f"Discovered {len(found)} templates under {self.root}")
        return found

    def load_file(self, path: Path, store: Optional[TemplateStore] = None) -> Template:
        """Compile one template file; it is registered when a store is given."""
        path = Path(path)
        text = path.read_text(encoding="utf-8")
        try:
            name = self.template_id(path)
        except ValueError:
            name = path.name
        template = Template(text, name, self.options, store)
        if store is not None:
            store.register(template)
        return template

    def load_into(self, store: TemplateStore) -> List[Template]:
        """Compile and register every discovered template."""
        return [self.load_file(path, store) for path in self.discover()]


__all__ = ["FilesystemLoader"]
