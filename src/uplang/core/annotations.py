"""
Recognized type annotations.

Annotations are free-form strings. A small closed set of names is recognized
by equivalence class; anything else passes through as opaque metadata.
"""

from __future__ import annotations

from enum import StrEnum


class TypeFamily(StrEnum):
    """Primitive families a scalar annotation can project to."""

    INTEGER = "integer"
    FLOAT = "float"
    BOOLEAN = "boolean"
    NULL = "null"


INTEGER_TYPES = frozenset({"int", "integer", "long"})
FLOAT_TYPES = frozenset({"float", "double", "number"})
BOOLEAN_TYPES = frozenset({"bool", "boolean"})
NULL_TYPES = frozenset({"null", "nil", "none"})

ORDERED_BLOCK_TYPES = frozenset({"list", "ordered", "seq"})
TABLE_TYPES = frozenset({"table"})

# Composition directives (top-level entries only)
BASE = "base"
INCLUDE = "include"
OVERLAY = "overlay"
PATCH = "patch"
MERGE = "merge"
DIRECTIVE_TYPES = frozenset({BASE, INCLUDE, OVERLAY, PATCH, MERGE})

_FAMILIES: dict[str, TypeFamily] = {
    **{name: TypeFamily.INTEGER for name in INTEGER_TYPES},
    **{name: TypeFamily.FLOAT for name in FLOAT_TYPES},
    **{name: TypeFamily.BOOLEAN for name in BOOLEAN_TYPES},
    **{name: TypeFamily.NULL for name in NULL_TYPES},
}


def _normalize(annotation: str | None) -> str | None:
    return annotation.lower() if annotation else None


def type_family(annotation: str | None) -> TypeFamily | None:
    """Return the primitive family of an annotation, if it has one."""
    name = _normalize(annotation)
    if name is None:
        return None
    return _FAMILIES.get(name)


def is_ordered_block(annotation: str | None) -> bool:
    return _normalize(annotation) in ORDERED_BLOCK_TYPES


def is_table(annotation: str | None) -> bool:
    return _normalize(annotation) in TABLE_TYPES


def directive_name(annotation: str | None) -> str | None:
    """Return the directive an annotation names, or None."""
    name = _normalize(annotation)
    return name if name in DIRECTIVE_TYPES else None


def dedent_count(annotation: str | None) -> int | None:
    """Return the dedent column count if the annotation is a non-negative integer."""
    if annotation and annotation.isascii() and annotation.isdigit():
        return int(annotation)
    return None
