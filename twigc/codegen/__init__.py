"""
Code generation: live element trees plus equivalent Python modules.
"""

from __future__ import annotations

from .emitter import CodeBuffer, join_call
from .generator import CodeGenerator, GeneratedSource, RenderResult
from .runtime import Fragment, ElementRuntime, UIRuntime, VElement, default_runtime, to_data

__all__ = [
    "CodeBuffer",
    "join_call",
    "CodeGenerator",
    "GeneratedSource",
    "RenderResult",
    "Fragment",
    "ElementRuntime",
    "UIRuntime",
    "VElement",
    "default_runtime",
    "to_data",
]
