"""
Template pipeline: tokenizer, structural compiler, markup tree builder,
processor, store and filesystem loader.
"""

from __future__ import annotations

from .builder import BuildResult, MarkupTreeBuilder, build_tree
from .compiler import StructureCompiler, compile_tokens
from .lexer import TemplateLexer, tokenize_template
from .logic import LogicToken, LogicType, OutputToken, RawToken
from .nodes import ROOT, AttrFragment, NodeKind, NodeTree
from .processor import CompileResult, Template, compile_template, prepare
from .store import TemplateStore
from .loader import FilesystemLoader
from .tokens import Token, TokenType

__all__ = [
    "BuildResult",
    "MarkupTreeBuilder",
    "build_tree",
    "StructureCompiler",
    "compile_tokens",
    "TemplateLexer",
    "tokenize_template",
    "LogicToken",
    "LogicType",
    "OutputToken",
    "RawToken",
    "ROOT",
    "AttrFragment",
    "NodeKind",
    "NodeTree",
    "CompileResult",
    "Template",
    "compile_template",
    "prepare",
    "TemplateStore",
    "FilesystemLoader",
    "Token",
    "TokenType",
]
