"""
UPLANG - parser and composition engine for the UP configuration language.

Parses UP source into a typed document model, composes documents through
base, include, overlay and patch directives, resolves ``$vars`` references
and projects the result to a canonical JSON/YAML tree.
"""

from __future__ import annotations

import re
from importlib.metadata import version as _metadata_version
from pathlib import Path as _Path

# Re-export commonly used entry points for convenience
from .core import ir
from .core.errors import MergeError, ParseError, ResolutionError, UpError
from .core.parser import parse_document, parse_file
from .core.pipeline import load_document
from .core.projector import project


def _get_version() -> str:
    """Get version from pyproject.toml (editable) or importlib.metadata (installed)."""
    pyproject = _Path(__file__).parent.parent.parent / "pyproject.toml"
    if pyproject.exists():
        content = pyproject.read_text()
        if match := re.search(r'^version\s*=\s*["\']([^"\']+)["\']', content, re.MULTILINE):
            return match.group(1)

    try:
        return _metadata_version("uplang")
    except Exception:
        return "0.0.0"


__version__ = _get_version()

__all__ = [
    "__version__",
    "ir",
    "UpError",
    "ParseError",
    "MergeError",
    "ResolutionError",
    "parse_document",
    "parse_file",
    "load_document",
    "project",
]
