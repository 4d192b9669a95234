"""
Base exceptions for user-facing errors.

All expected errors that should be displayed to the user
as clean messages (without stack traces) must inherit from TwigcUserError.

Programming errors and bugs should NOT inherit from TwigcUserError;
they will propagate with full tracebacks.
"""

from __future__ import annotations

from typing import Optional


class TwigcUserError(Exception):
    """
    Base class for all user-facing errors in twigc.

    These errors indicate problems that the template author can fix:
    malformed templates, invalid configuration, missing templates, etc.
    """
    pass


class TemplateError(TwigcUserError):
    """
    Structured template error.

    Carries the message, the identifier of the template being processed
    and, when available, the offset in the template source.
    """

    def __init__(self, message: str, template_id: Optional[str] = None, offset: Optional[int] = None):
        self.message = message
        self.template_id = template_id
        self.offset = offset
        super().__init__(message)

    def __str__(self) -> str:
        parts = [self.message]
        if self.template_id:
            parts.append(f"template: {self.template_id}")
        if self.offset is not None:
            parts.append(f"offset: {self.offset}")
        return " | ".join(parts)


class TemplateLexerError(TemplateError):
    """Lexical error: unclosed token or unclosed string."""
    pass


class StructureError(TemplateError):
    """Structural error: unexpected or unclosed logic construct."""
    pass


class ExpressionError(TemplateError):
    """Expression error: unknown operator, arity mismatch, unknown filter."""
    pass


class TemplateNotFoundError(TemplateError):
    """Raised when a template id cannot be found in the store."""

    def __init__(self, name: str, template_id: Optional[str] = None):
        self.name = name
        super().__init__(f"Unable to find the template '{name}'", template_id)


class DuplicateTemplateError(TemplateError):
    """Raised when a template id is already registered and caching is on."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"There is already a template with the ID '{name}'", name)


class ConfigError(TwigcUserError):
    """Invalid compiler configuration."""
    pass


__all__ = [
    "TwigcUserError",
    "TemplateError",
    "TemplateLexerError",
    "StructureError",
    "ExpressionError",
    "TemplateNotFoundError",
    "DuplicateTemplateError",
    "ConfigError",
]
