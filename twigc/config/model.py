"""
Compiler options model.

Options are loaded from twigc.yaml or built in code; every component of the
pipeline receives the same frozen instance.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import Any, Dict, List

from ..errors import ConfigError

DEFAULT_RUNTIME_IMPORT = "from twigc.codegen.runtime import default_runtime as R"
DEFAULT_LIBRARY_IMPORT = "from twigc.expression.library import default_library as lib"


@dataclass(frozen=True)
class CompilerOptions:
    """
    Options controlling compilation, rendering and code generation.

    Attributes:
        rethrow: Re-raise structured errors to the caller; when False errors
            are logged and an empty result is returned
        cache: Reject re-registering an existing template id in the store
        attribute_aliases: Rename HTML attributes to host runtime props
            (class -> className, for -> htmlFor)
        strict_variables: Raise on unknown variables instead of yielding None
        runtime_import: Import line binding the host runtime as `R` in generated modules
        library_import: Import line binding the function library as `lib`
        template_patterns: Gitignore-style patterns selecting template files
        ignore_patterns: Gitignore-style patterns excluding template files
    """
    rethrow: bool = True
    cache: bool = True
    attribute_aliases: bool = True
    strict_variables: bool = False
    runtime_import: str = DEFAULT_RUNTIME_IMPORT
    library_import: str = DEFAULT_LIBRARY_IMPORT
    template_patterns: List[str] = field(default_factory=lambda: ["*.twig", "*.html.twig"])
    ignore_patterns: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CompilerOptions":
        """Create options from a mapping (from YAML)."""
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ConfigError(f"Unknown compiler options: {', '.join(unknown)}")

        kwargs: Dict[str, Any] = {}
        for name in ("rethrow", "cache", "attribute_aliases", "strict_variables"):
            if name in data:
                if not isinstance(data[name], bool):
                    raise ConfigError(f"Option '{name}' must be a boolean")
                kwargs[name] = data[name]
        for name in ("runtime_import", "library_import"):
            if name in data:
                kwargs[name] = str(data[name])
        for name in ("template_patterns", "ignore_patterns"):
            if name in data:
                value = data[name]
                if isinstance(value, str):
                    value = [value]
                if not isinstance(value, list):
                    raise ConfigError(f"Option '{name}' must be a list of patterns")
                kwargs[name] = [str(v) for v in value]
        return cls(**kwargs)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to a mapping for YAML."""
        return {f.name: getattr(self, f.name) for f in fields(self)}


DEFAULT_OPTIONS = CompilerOptions()

__all__ = ["CompilerOptions", "DEFAULT_OPTIONS", "DEFAULT_RUNTIME_IMPORT", "DEFAULT_LIBRARY_IMPORT"]
