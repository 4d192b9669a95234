from __future__ import annotations

from importlib import metadata


def tool_version() -> str:
    """Installed twigc version; 0.0.0 when running from a source tree."""
    try:
        return metadata.version("twig-component-compiler")
    except metadata.PackageNotFoundError:
        return "0.0.0"


__all__ = ["tool_version"]
