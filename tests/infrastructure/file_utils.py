"""
Utilities for creating files and directories in tests.
"""

from __future__ import annotations

from pathlib import Path
from typing import Dict, List


def write(p: Path, text: str) -> Path:
    """
    Write text to a file, creating parent directories when needed.

    Args:
        p: File path
        text: Content to write

    Returns:
        Path of the written file
    """
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(text, encoding="utf-8")
    return p


def write_templates(root: Path, templates: Dict[str, str]) -> List[Path]:
    """Write several templates below root; keys are relative POSIX paths."""
    return [write(root / name, text) for name, text in templates.items()]
