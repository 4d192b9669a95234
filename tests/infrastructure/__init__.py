"""
Shared test infrastructure for twigc.

Modules:
- file_utils: Creating template files and directories
- rendering_utils: Rendering templates live and through generated modules
"""

from .file_utils import write, write_templates
from .rendering_utils import render_live, render_module, render_both, make_store

__all__ = [
    "write",
    "write_templates",
    "render_live",
    "render_module",
    "render_both",
    "make_store",
]
