"""
Canonical projection of UP documents to a generic tree.

Ordering rules:
- key-ordered blocks: keys sorted by code point
- insertion-ordered blocks: declaration order
- lists and table rows: original order

Scalars project to ``str`` unless their annotation names a recognized
primitive family (integer, float, boolean, null), in which case the text is
parsed strictly into that primitive.
"""

from __future__ import annotations

import json
import math
import re
from typing import Any

import yaml

from . import annotations, ir
from .annotations import TypeFamily
from .errors import ErrorContext, ProjectionError

_INTEGER = re.compile(r"[-+]?[0-9]+")
_FLOAT = re.compile(r"[-+]?(?:[0-9]+\.?[0-9]*|\.[0-9]+)(?:[eE][-+]?[0-9]+)?")


def project(document: ir.Document) -> dict[str, Any]:
    """
    Project a document to a generic, deterministically ordered tree.

    Raises:
        ProjectionError: If a typed scalar cannot be parsed
    """
    return _project_block(document.root, "", document)


def project_value(value: ir.Value, type_annotation: str | None = None, path: str = "") -> Any:
    """Project a single value (with its owning entry's annotation)."""
    return _project(value, type_annotation, path, None)


def _project(
    value: ir.Value, type_annotation: str | None, path: str, document: ir.Document | None
) -> Any:
    if isinstance(value, (ir.Scalar, ir.Multiline)):
        return _project_text(value.text, type_annotation, path, document)
    if isinstance(value, ir.Block):
        return _project_block(value, path, document)
    if isinstance(value, ir.ListValue):
        return [
            _project(item, None, f"{path}[{index}]", document)
            for index, item in enumerate(value.items)
        ]
    return {
        "columns": list(value.columns),
        "rows": [[cell.text for cell in row] for row in value.rows],
    }


def _project_block(block: ir.Block, path: str, document: ir.Document | None) -> dict[str, Any]:
    return {
        entry.key: _project(
            entry.value, entry.type, f"{path}.{entry.key}" if path else entry.key, document
        )
        for entry in block.iter_entries()
    }


def _project_text(
    text: str, type_annotation: str | None, path: str, document: ir.Document | None
) -> Any:
    family = annotations.type_family(type_annotation)
    if family is None:
        return text

    if family == TypeFamily.INTEGER and _INTEGER.fullmatch(text):
        return int(text)
    if family == TypeFamily.FLOAT and _FLOAT.fullmatch(text) and math.isfinite(float(text)):
        return float(text)
    if family == TypeFamily.BOOLEAN and text.lower() in ("true", "false"):
        return text.lower() == "true"
    if family == TypeFamily.NULL and text.lower() in ("", "null"):
        return None

    raise ProjectionError(
        f"Cannot project {text!r} as {family.value} (annotation '!{type_annotation}')",
        ErrorContext(file=document.source if document else None, path=path or None),
    )


def to_json(tree: Any) -> str:
    """Render a projected tree as canonical JSON (newline terminated)."""
    return json.dumps(tree, ensure_ascii=False, indent=2, allow_nan=False) + "\n"


def to_yaml(tree: Any) -> str:
    """Render a projected tree as YAML, preserving projection order."""
    return yaml.safe_dump(tree, sort_keys=False, allow_unicode=True, default_flow_style=False)


RENDERERS = {
    "json": to_json,
    "yaml": to_yaml,
}


def render(tree: Any, fmt: str = "json") -> str:
    try:
        renderer = RENDERERS[fmt.lower()]
    except KeyError:
        raise ValueError(f"Unknown output format '{fmt}' (expected one of: json, yaml)") from None
    return renderer(tree)
