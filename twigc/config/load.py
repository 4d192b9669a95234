from __future__ import annotations

from pathlib import Path
from typing import Optional

from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from ..errors import ConfigError
from .model import CompilerOptions, DEFAULT_OPTIONS

CONFIG_FILE = "twigc.yaml"

_yaml = YAML(typ="safe")


def _read_yaml_map(path: Path) -> dict:
    """Reads a YAML file and returns a mapping."""
    if not path.is_file():
        return {}
    try:
        raw = _yaml.load(path.read_text(encoding="utf-8")) or {}
    except YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e
    if not isinstance(raw, dict):
        raise ConfigError(f"YAML must be a mapping: {path}")
    return raw


def find_config(start: Path) -> Optional[Path]:
    """Finds twigc.yaml in `start` or any of its parents."""
    current = start.resolve()
    if current.is_file():
        current = current.parent
    for directory in (current, *current.parents):
        candidate = directory / CONFIG_FILE
        if candidate.is_file():
            return candidate
    return None


def load_options(path: Optional[Path] = None) -> CompilerOptions:
    """
    Load compiler options.

    Args:
        path: Path to a twigc.yaml file; when None defaults are returned

    Returns:
        Compiler options

    Raises:
        ConfigError: If the file is not a mapping or contains unknown keys
    """
    if path is None:
        return DEFAULT_OPTIONS
    return CompilerOptions.from_dict(_read_yaml_map(path))


__all__ = ["CONFIG_FILE", "find_config", "load_options"]
