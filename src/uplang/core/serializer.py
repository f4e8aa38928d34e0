"""
Write UP text.

Two writers:
- ``dumps`` turns a generic (projected) tree back into UP source such that
  parsing and projecting it again yields the same tree.
- ``dump_document`` re-emits a parsed Document with its annotations, quoting
  and multiline hints intact, in declaration order (used by ``uplang fmt``).
"""

from __future__ import annotations

import math
import re
from collections.abc import Mapping, Sequence
from typing import Any

from . import annotations, ir
from .errors import SerializationError
from .lexer import FENCE
from .parser import parse_document
from .projector import project

INDENT = "  "

_KEY = re.compile(r"[A-Za-z_](?:[A-Za-z0-9_.-]|\[\*\])*")
_ALWAYS_QUOTE = frozenset('{}[]#,')
_EDGE_WHITESPACE = " \t\r"


def needs_quotes(text: str) -> bool:
    """Would this text change meaning (or fail to lex) if written unquoted?"""
    return (
        not text
        or text != text.strip(_EDGE_WHITESPACE)
        or text[0] in "\"'"
        or FENCE in text
        or "\n" in text
        or "\r" in text
        or any(ch in _ALWAYS_QUOTE for ch in text)
    )


def quote(text: str) -> str:
    escaped = (
        text.replace("\\", "\\\\")
        .replace('"', '\\"')
        .replace("\t", "\\t")
        .replace("\n", "\\n")
    )
    return f'"{escaped}"'


def format_scalar(text: str) -> str:
    return quote(text) if needs_quotes(text) else text


def _check_key(key: object) -> str:
    if not isinstance(key, str) or not _KEY.fullmatch(key):
        raise SerializationError(f"Key {key!r} cannot be written as a UP key")
    return key


def _fits_fence(text: str) -> bool:
    """Can this text be captured by a fence and read back unchanged?"""
    return not any(
        line.lstrip(" \t").startswith(FENCE) or line.endswith("\r") for line in text.split("\n")
    )


def _check_multiline(text: str) -> list[str]:
    lines = text.split("\n")
    for line in lines:
        if line.lstrip(" \t").startswith(FENCE):
            raise SerializationError(
                "Multiline text contains a line starting with a triple backtick"
            )
    return lines


# ----------------------------------------------------------------------
# Generic trees
# ----------------------------------------------------------------------


def dumps(tree: Mapping[str, Any]) -> str:
    """
    Serialize a generic tree (as produced by ``project``) to UP text.

    Raises:
        SerializationError: If a key or value has no UP representation
    """
    lines: list[str] = []
    for key, value in tree.items():
        _tree_entry(_check_key(key), value, 0, lines)
    return "\n".join(lines) + "\n" if lines else ""


def _is_table(value: Mapping[str, Any]) -> bool:
    if list(value) != ["columns", "rows"]:
        return False
    columns, rows = value["columns"], value["rows"]
    if not isinstance(columns, list) or not all(isinstance(c, str) for c in columns):
        return False
    if not isinstance(rows, list):
        return False
    return all(
        isinstance(row, list)
        and len(row) == len(columns)
        and all(isinstance(cell, str) and "\n" not in cell for cell in row)
        for row in rows
    ) and all("\n" not in c for c in columns)


def _inline(items: Sequence[str]) -> str:
    return "[" + ", ".join(format_scalar(item) for item in items) + "]"


def _tree_entry(key: str, value: Any, depth: int, lines: list[str]) -> None:
    pad = INDENT * depth

    if value is None:
        lines.append(f"{pad}{key}!null")
    elif isinstance(value, bool):
        lines.append(f"{pad}{key}!bool {'true' if value else 'false'}")
    elif isinstance(value, int):
        lines.append(f"{pad}{key}!int {value}")
    elif isinstance(value, float):
        if not math.isfinite(value):
            raise SerializationError(f"Float value for '{key}' is not finite")
        lines.append(f"{pad}{key}!float {value!r}")
    elif isinstance(value, str):
        if "\n" in value and _fits_fence(value):
            lines.append(f"{pad}{key} {FENCE}")
            lines.extend(value.split("\n"))
            lines.append(f"{pad}{FENCE}")
        else:
            lines.append(f"{pad}{key} {format_scalar(value)}")
    elif isinstance(value, Mapping):
        if _is_table(value):
            lines.append(f"{pad}{key}!table {{")
            lines.append(f"{pad}{INDENT}columns {_inline(value['columns'])}")
            lines.append(f"{pad}{INDENT}rows {{")
            for row in value["rows"]:
                lines.append(f"{pad}{INDENT * 2}{_inline(row)}")
            lines.append(f"{pad}{INDENT}}}")
            lines.append(f"{pad}}}")
            return
        keys = list(value)
        annotation = "" if keys == sorted(keys) else "!ordered"
        if not keys:
            lines.append(f"{pad}{key}{annotation} {{}}")
            return
        lines.append(f"{pad}{key}{annotation} {{")
        for child_key, child in value.items():
            _tree_entry(_check_key(child_key), child, depth + 1, lines)
        lines.append(f"{pad}}}")
    elif isinstance(value, (list, tuple)):
        if not value:
            lines.append(f"{pad}{key} []")
            return
        lines.append(f"{pad}{key} [")
        for item in value:
            _tree_item(item, depth + 1, lines)
        lines.append(f"{pad}]")
    else:
        raise SerializationError(
            f"Value of type {type(value).__name__} for '{key}' cannot be written as UP"
        )


def _tree_item(item: Any, depth: int, lines: list[str]) -> None:
    pad = INDENT * depth

    if isinstance(item, str):
        if "\n" in item and _fits_fence(item):
            lines.append(f"{pad}{FENCE}")
            lines.extend(item.split("\n"))
            lines.append(f"{pad}{FENCE}")
        else:
            lines.append(f"{pad}{format_scalar(item)}")
    elif isinstance(item, Mapping):
        if not item:
            lines.append(f"{pad}{{}}")
            return
        lines.append(f"{pad}{{")
        for child_key, child in item.items():
            _tree_entry(_check_key(child_key), child, depth + 1, lines)
        lines.append(f"{pad}}}")
    elif isinstance(item, (list, tuple)):
        if not item:
            lines.append(f"{pad}[]")
            return
        lines.append(f"{pad}[")
        for child in item:
            _tree_item(child, depth + 1, lines)
        lines.append(f"{pad}]")
    elif item is None or isinstance(item, (bool, int, float)):
        # List items carry no annotation, so primitives become their text
        if isinstance(item, bool):
            lines.append(f"{pad}{'true' if item else 'false'}")
        else:
            lines.append(f"{pad}{'null' if item is None else item!r}")
    else:
        raise SerializationError(
            f"List item of type {type(item).__name__} cannot be written as UP"
        )


# ----------------------------------------------------------------------
# Documents
# ----------------------------------------------------------------------


def dump_document(document: ir.Document) -> str:
    """Re-emit a Document as UP source, keeping declaration order and annotations."""
    lines: list[str] = []
    for entry in document.root.iter_declared():
        _document_entry(entry, 0, lines, top_level=True)
    return "\n".join(lines) + "\n" if lines else ""


def _head(entry: ir.Entry, top_level: bool) -> str:
    if entry.type is None:
        return entry.key
    if top_level and entry.key == entry.type and annotations.directive_name(entry.type):
        return f"!{entry.type}"
    return f"{entry.key}!{entry.type}"


def _scalar_text(value: ir.Scalar) -> str:
    if not value.text and not value.quoted:
        return ""
    if value.quoted or needs_quotes(value.text):
        return quote(value.text)
    return value.text


def _multiline(value: ir.Multiline, pad: str, opening: str, lines: list[str]) -> None:
    lines.append(f"{opening}{FENCE}{value.language or ''}")
    prefix = " " * (value.dedent or 0)
    for line in _check_multiline(value.text):
        lines.append(prefix + line if line else line)
    lines.append(f"{pad}{FENCE}")


def _document_entry(entry: ir.Entry, depth: int, lines: list[str], top_level: bool = False) -> None:
    pad = INDENT * depth
    head = f"{pad}{_head(entry, top_level)}"
    value = entry.value

    if isinstance(value, ir.Scalar):
        text = _scalar_text(value)
        lines.append(f"{head} {text}" if text else head)
    elif isinstance(value, ir.Multiline):
        _multiline(value, pad, f"{head} ", lines)
    else:
        _document_compound(value, depth, head + " ", lines)


def _document_compound(value: ir.Value, depth: int, opening: str, lines: list[str]) -> None:
    pad = INDENT * depth

    if isinstance(value, ir.Block):
        if not len(value):
            lines.append(f"{opening}{{}}")
            return
        lines.append(f"{opening}{{")
        for child in value.iter_declared():
            _document_entry(child, depth + 1, lines)
        lines.append(f"{pad}}}")
    elif isinstance(value, ir.Table):
        lines.append(f"{opening}{{")
        lines.append(f"{pad}{INDENT}columns {_inline(value.columns)}")
        lines.append(f"{pad}{INDENT}rows {{")
        for row in value.rows:
            lines.append(f"{pad}{INDENT * 2}{_inline([cell.text for cell in row])}")
        lines.append(f"{pad}{INDENT}}}")
        lines.append(f"{pad}}}")
    elif isinstance(value, ir.ListValue):
        if all(isinstance(item, ir.Scalar) for item in value.items):
            lines.append(
                opening
                + "["
                + ", ".join(_scalar_text(item) for item in value.items)
                + "]"
            )
            return
        lines.append(f"{opening}[")
        item_pad = INDENT * (depth + 1)
        for item in value.items:
            if isinstance(item, ir.Scalar):
                lines.append(f"{item_pad}{_scalar_text(item)}")
            elif isinstance(item, ir.Multiline):
                _multiline(item, item_pad, item_pad, lines)
            else:
                _document_compound(item, depth + 1, item_pad, lines)
        lines.append(f"{pad}]")
    else:
        raise SerializationError(f"Cannot write value of kind {value.kind!r}")


def format_source(text: str) -> str:
    """Canonical source formatting of UP text (parse, then re-emit)."""
    return dump_document(parse_document(text))


def canonical_source(text: str) -> str:
    """UP text of the canonical projection of ``text``."""
    return dumps(project(parse_document(text)))
