"""
Document loaders used to resolve ``!base`` and ``!include`` references.

The merge engine only depends on the DocumentLoader protocol; how a
reference is turned into text (files, memory, network) is up to the loader.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Protocol, runtime_checkable

from . import ir
from .errors import DocumentNotFoundError
from .parser import parse_document

logger = logging.getLogger(__name__)

DEFAULT_SUFFIX = ".up"


@runtime_checkable
class DocumentLoader(Protocol):
    """
    Loads a complete Document for a base/include reference.

    ``referrer`` is the ``source`` of the document that declared the
    reference, when it has one; loaders may use it to resolve relative
    references.
    """

    def load(self, reference: str, referrer: str | None = None) -> ir.Document: ...


class FileLoader:
    """
    Load documents from the filesystem.

    A relative reference is tried next to the referring file first, then
    against each search path in order. References without a suffix also try
    ``<reference>.up``. The loaded document's ``source`` is its resolved
    absolute path, which the merge engine uses as the document's identity
    for cycle detection.
    """

    def __init__(self, search_paths: Iterable[Path] = ()):
        self.search_paths = [Path(p) for p in search_paths] or [Path.cwd()]

    def candidates(self, reference: str, referrer: str | None = None) -> list[Path]:
        ref = Path(reference).expanduser()
        names = [ref]
        if not ref.suffix:
            names.append(ref.with_suffix(DEFAULT_SUFFIX))
        if ref.is_absolute():
            return names

        bases = list(self.search_paths)
        if referrer:
            referrer_dir = Path(referrer).parent
            if referrer_dir not in bases:
                bases.insert(0, referrer_dir)
        return [base / name for base in bases for name in names]

    def resolve(self, reference: str, referrer: str | None = None) -> Path:
        for candidate in self.candidates(reference, referrer):
            if candidate.is_file():
                return candidate.resolve()
        searched = ", ".join(str(p) for p in self.search_paths)
        raise DocumentNotFoundError(f"Document '{reference}' not found (searched: {searched})")

    def load(self, reference: str, referrer: str | None = None) -> ir.Document:
        path = self.resolve(reference, referrer)
        logger.debug("Loading %s from %s", reference, path)
        return parse_document(path.read_text(encoding="utf-8"), path, str(path))


class MemoryLoader:
    """Serve documents from an in-memory mapping of reference to source text."""

    def __init__(self, sources: Mapping[str, str]):
        self.sources = dict(sources)

    def load(self, reference: str, referrer: str | None = None) -> ir.Document:
        try:
            text = self.sources[reference]
        except KeyError:
            raise DocumentNotFoundError(f"Document '{reference}' not found") from None
        logger.debug("Loading %s from memory", reference)
        return parse_document(text, Path(reference), reference)
