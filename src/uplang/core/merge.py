"""
Merge engine for UP documents.

Composes a document with its base chain and includes, then applies the
document's own entries, overlays and patches, in exactly that order:

    base chain (root first) -> includes (listed order) -> direct entries
    -> overlays -> patches

Directives are only recognized on top-level entries.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from enum import StrEnum

from . import annotations, ir
from .errors import CircularBaseError, CircularIncludeError, ErrorContext, make_merge_error
from .lexer import WILDCARD
from .loader import DocumentLoader

logger = logging.getLogger(__name__)

ROOT_IDENTITY = "<document>"


class MergeStrategy(StrEnum):
    """How top-level values from a later document combine with earlier ones."""

    DEEP = "deep"
    REPLACE = "replace"


class ListStrategy(StrEnum):
    """How two lists under the same key combine during a deep merge."""

    APPEND = "append"
    REPLACE = "replace"
    UNIQUE = "unique"


@dataclass(frozen=True)
class MergeOptions:
    strategy: MergeStrategy = MergeStrategy.DEEP
    list_strategy: ListStrategy = ListStrategy.APPEND


@dataclass
class Directives:
    """
    A document's top-level entries, split by directive.

    Attributes:
        base: Reference of the document's base, if any
        includes: Include references in listed order
        entries: Plain (non-directive) entries in declaration order
        overlays: ``!overlay`` entries in declaration order
        patches: ``!patch`` entries in declaration order
        options: Merge options from a ``!merge`` block, if present
    """

    base: ir.Entry | None = None
    includes: list[tuple[ir.Entry, str]] = field(default_factory=list)
    entries: list[ir.Entry] = field(default_factory=list)
    overlays: list[ir.Entry] = field(default_factory=list)
    patches: list[ir.Entry] = field(default_factory=list)
    options: MergeOptions | None = None


def _reference_text(value: ir.Value) -> str | None:
    if isinstance(value, (ir.Scalar, ir.Multiline)):
        return value.text.strip() or None
    return None


def _context_for(document: ir.Document, entry: ir.Entry, path: str | None = None) -> ErrorContext:
    return ErrorContext(file=document.source, line=entry.line or None, path=path or entry.key)


def collect_directives(document: ir.Document) -> Directives:
    """Split a document's top-level entries into directives and plain entries."""
    found = Directives()
    for entry in document.root.iter_declared():
        directive = annotations.directive_name(entry.type)

        if directive == annotations.BASE:
            if found.base is not None:
                raise make_merge_error(
                    f"Document declares more than one base ('{found.base.key}' and '{entry.key}')",
                    path=entry.key,
                    file=document.source,
                    line=entry.line,
                )
            if _reference_text(entry.value) is None:
                raise make_merge_error(
                    "!base expects a document reference", entry.key, document.source, entry.line
                )
            found.base = entry
        elif directive == annotations.INCLUDE:
            found.includes.extend((entry, ref) for ref in _include_references(document, entry))
        elif directive == annotations.OVERLAY:
            found.overlays.append(entry)
        elif directive == annotations.PATCH:
            if not isinstance(entry.value, ir.Block):
                raise make_merge_error(
                    "!patch expects a block of path assignments",
                    entry.key,
                    document.source,
                    entry.line,
                )
            found.patches.append(entry)
        elif directive == annotations.MERGE:
            found.options = parse_merge_options(document, entry)
        else:
            found.entries.append(entry)
    return found


def _include_references(document: ir.Document, entry: ir.Entry) -> list[str]:
    value = entry.value
    items = value.items if isinstance(value, ir.ListValue) else [value]
    references = []
    for item in items:
        ref = _reference_text(item)
        if ref is None:
            raise make_merge_error(
                "!include expects a list of document references",
                entry.key,
                document.source,
                entry.line,
            )
        references.append(ref)
    return references


def parse_merge_options(document: ir.Document, entry: ir.Entry) -> MergeOptions:
    """Read ``strategy`` / ``list_strategy`` from a ``!merge`` block."""
    if not isinstance(entry.value, ir.Block):
        raise make_merge_error(
            "!merge expects a block", entry.key, document.source, entry.line
        )

    options = MergeOptions()
    for setting in entry.value.iter_declared():
        text = _reference_text(setting.value) or ""
        path = f"{entry.key}.{setting.key}"
        try:
            if setting.key == "strategy":
                options = replace(options, strategy=MergeStrategy(text))
            elif setting.key == "list_strategy":
                options = replace(options, list_strategy=ListStrategy(text))
            else:
                raise make_merge_error(
                    f"Unknown merge option '{setting.key}'", path, document.source, setting.line
                )
        except ValueError:
            raise make_merge_error(
                f"Invalid value '{text}' for merge option '{setting.key}'",
                path,
                document.source,
                setting.line,
            ) from None
    return options


# ----------------------------------------------------------------------
# Key-wise merging
# ----------------------------------------------------------------------


def merge_blocks(
    target: ir.Block, incoming: ir.Block, options: MergeOptions, path: str = ""
) -> None:
    """
    Merge ``incoming`` into ``target`` in place.

    ``incoming`` is never mutated; everything taken from it is copied.
    """
    for entry in incoming.iter_declared():
        existing = target.get(entry.key)
        entry_path = f"{path}.{entry.key}" if path else entry.key

        if existing is None or options.strategy == MergeStrategy.REPLACE:
            target.set(ir.copy_entry(entry))
            continue

        if isinstance(existing.value, ir.Block) and isinstance(entry.value, ir.Block):
            # Both blocks: recurse, keeping the earlier block (and its ordering)
            merge_blocks(existing.value, entry.value, options, entry_path)
        elif isinstance(existing.value, ir.ListValue) and isinstance(entry.value, ir.ListValue):
            merged = merge_lists(existing.value, entry.value, options.list_strategy)
            target.set(existing.model_copy(update={"value": merged, "type": entry.type}))
        else:
            target.set(ir.copy_entry(entry))


def merge_lists(earlier: ir.ListValue, later: ir.ListValue, strategy: ListStrategy) -> ir.ListValue:
    if strategy == ListStrategy.REPLACE:
        return ir.copy_value(later)

    items = list(earlier.items) + [ir.copy_value(item) for item in later.items]
    if strategy == ListStrategy.UNIQUE:
        seen: set[str] = set()
        unique = []
        for item in items:
            key = ir.fingerprint(item)
            if key not in seen:
                seen.add(key)
                unique.append(item)
        items = unique
    return ir.ListValue(items=items)


def apply_overlay(
    result: ir.Block, overlay: ir.Entry, options: MergeOptions, document: ir.Document
) -> None:
    """Deep-merge an ``!overlay`` block into the same-named block of ``result``."""
    if not isinstance(overlay.value, ir.Block):
        raise make_merge_error(
            "!overlay expects a block", overlay.key, document.source, overlay.line
        )

    target = result.get(overlay.key)
    if target is None:
        logger.debug("Overlay '%s' has no target; adding it", overlay.key)
        result.set(
            ir.Entry(
                key=overlay.key,
                value=ir.copy_value(overlay.value),
                line=overlay.line,
                column=overlay.column,
            )
        )
        return
    if not isinstance(target.value, ir.Block):
        raise make_merge_error(
            f"Overlay target '{overlay.key}' is not a block",
            overlay.key,
            document.source,
            overlay.line,
        )
    merge_blocks(
        target.value, overlay.value, replace(options, strategy=MergeStrategy.DEEP), overlay.key
    )


def _split_segment(segment: str) -> tuple[str, bool]:
    if segment.endswith(WILDCARD):
        return segment[: -len(WILDCARD)], True
    return segment, False


def apply_patch(result: ir.Block, patch: ir.Entry, document: ir.Document) -> None:
    """Apply every dotted-path assignment of a ``!patch`` block to ``result``."""
    if not isinstance(patch.value, ir.Block):
        raise make_merge_error(
            "!patch expects a block of path assignments", patch.key, document.source, patch.line
        )
    for assignment in patch.value.iter_declared():
        segments = assignment.key.split(".")
        if not all(_split_segment(s)[0] for s in segments):
            raise make_merge_error(
                f"Invalid patch path '{assignment.key}'",
                f"{patch.key}.{assignment.key}",
                document.source,
                assignment.line,
            )
        logger.debug("Patching %s", assignment.key)
        _assign(result, segments, assignment, [], document)


def _assign(
    block: ir.Block,
    segments: list[str],
    assignment: ir.Entry,
    trail: list[str],
    document: ir.Document,
) -> None:
    head, rest = segments[0], segments[1:]
    name, wildcard = _split_segment(head)
    trail = [*trail, head]
    here = ".".join(trail)

    def fail(message: str) -> Exception:
        return make_merge_error(
            f"Patch '{assignment.key}': {message}", here, document.source, assignment.line
        )

    target = block.get(name)

    if not rest and not wildcard:
        block.set(
            ir.Entry(
                key=name,
                type=assignment.type,
                value=ir.copy_value(assignment.value),
                line=assignment.line,
                column=assignment.column,
            )
        )
        return

    if target is None:
        raise fail(f"'{here}' does not exist")

    if wildcard:
        if not isinstance(target.value, ir.ListValue):
            raise fail(f"'{name}' is not a list")
        items = target.value.items
        if not rest:
            for index in range(len(items)):
                items[index] = ir.copy_value(assignment.value)
            return
        for item in items:
            if not isinstance(item, ir.Block):
                raise fail(f"element of '{name}' is not a block")
            _assign(item, rest, assignment, trail, document)
        return

    if not isinstance(target.value, ir.Block):
        raise fail(f"'{here}' is not a block")
    _assign(target.value, rest, assignment, trail, document)


# ----------------------------------------------------------------------
# Composition
# ----------------------------------------------------------------------


class Composer:
    """
    Compose a document with its bases and includes into a single Document.

    Cycle detection uses an explicit stack of the identities of documents
    currently being composed (``Document.source``), checked before any
    merging of the offending document starts.
    """

    def __init__(self, loader: DocumentLoader, options: MergeOptions | None = None):
        self.loader = loader
        self.options = options or MergeOptions()

    def compose(self, document: ir.Document) -> ir.Document:
        """
        Compose ``document``.

        Returns:
            A new Document with all directives applied and removed

        Raises:
            CircularBaseError: If the base chain revisits a document
            CircularIncludeError: If an include revisits a document
            MergeError: If a directive cannot be applied
        """
        root = self._compose(document, [])
        return ir.Document(root=root, source=document.source)

    def _compose(self, document: ir.Document, stack: list[str]) -> ir.Block:
        stack = [*stack, document.source or ROOT_IDENTITY]
        directives = collect_directives(document)
        options = directives.options or self.options

        result = ir.Block()
        if directives.base is not None:
            reference = _reference_text(directives.base.value)
            base = self._load(reference, "!base", document, directives.base)
            self._check_cycle(base, stack, reference, document, directives.base, is_base=True)
            logger.debug("Composing base %s of %s", reference, stack[-1])
            result = self._compose(base, stack)

        for entry, reference in directives.includes:
            included = self._load(reference, "!include", document, entry)
            self._check_cycle(included, stack, reference, document, entry, is_base=False)
            logger.debug("Merging include %s into %s", reference, stack[-1])
            merge_blocks(result, self._compose(included, stack), options)

        merge_blocks(result, ir.Block(entries={e.key: e for e in directives.entries}), options)

        for overlay in directives.overlays:
            apply_overlay(result, overlay, options, document)
        for patch in directives.patches:
            apply_patch(result, patch, document)
        return result

    def _load(
        self, reference: str, directive: str, document: ir.Document, entry: ir.Entry
    ) -> ir.Document:
        try:
            return self.loader.load(reference, document.source)
        except Exception as exc:
            location = f" ({document.source}:{entry.line})" if document.source else ""
            exc.add_note(f"while loading {directive} {reference}{location}")
            raise

    def _check_cycle(
        self,
        loaded: ir.Document,
        stack: list[str],
        reference: str,
        document: ir.Document,
        entry: ir.Entry,
        is_base: bool,
    ) -> None:
        identity = loaded.source or reference
        if identity not in stack:
            return
        chain = " -> ".join([*stack, identity])
        context = _context_for(document, entry)
        if is_base:
            raise CircularBaseError(f"Circular base chain: {chain}", context)
        raise CircularIncludeError(f"Circular include: {chain}", context)


def compose_document(
    document: ir.Document, loader: DocumentLoader, options: MergeOptions | None = None
) -> ir.Document:
    """Convenience wrapper around Composer.compose."""
    return Composer(loader, options).compose(document)
