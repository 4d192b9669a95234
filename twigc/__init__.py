"""
twigc: compiles Twig-like templates into UI element trees and equivalent
Python render modules.
"""

from __future__ import annotations

from .errors import TemplateError, TwigcUserError
from .config import CompilerOptions, load_options
from .template import FilesystemLoader, Template, TemplateStore, compile_template
from .codegen import CodeGenerator, GeneratedSource, RenderResult, VElement
from .version import tool_version

__version__ = tool_version()

__all__ = [
    "TemplateError",
    "TwigcUserError",
    "CompilerOptions",
    "load_options",
    "FilesystemLoader",
    "Template",
    "TemplateStore",
    "compile_template",
    "CodeGenerator",
    "GeneratedSource",
    "RenderResult",
    "VElement",
    "tool_version",
]
