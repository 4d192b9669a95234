from __future__ import annotations

from .load import CONFIG_FILE, find_config, load_options
from .model import CompilerOptions, DEFAULT_OPTIONS

__all__ = [
    "CONFIG_FILE",
    "CompilerOptions",
    "DEFAULT_OPTIONS",
    "find_config",
    "load_options",
]
