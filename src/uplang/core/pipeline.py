"""Canonical document pipeline.

Single implementation of parse → compose → resolve → project. All code that
needs a fully composed document should go through here.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from . import ir
from .loader import DocumentLoader, FileLoader
from .manifest import EngineConfig, discover_config
from .merge import Composer
from .parser import parse_document, parse_file
from .projector import project, render
from .resolver import NamespaceResolver, VariableResolver

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Violation:
    """A schema violation reported by a SchemaValidator."""

    path: str
    message: str


@runtime_checkable
class SchemaValidator(Protocol):
    """
    Checks a composed document against a schema.

    Schema retrieval and constraint enforcement live outside the engine;
    this is the seam they plug into.
    """

    def validate(self, document: ir.Document, schema: Any) -> list[Violation]: ...


def compose_and_resolve(
    document: ir.Document,
    loader: DocumentLoader,
    config: EngineConfig | None = None,
    namespace_resolver: NamespaceResolver | None = None,
) -> ir.Document:
    """Compose a parsed document and resolve its variables."""
    config = config or EngineConfig()
    composed = Composer(loader, config.compose.merge_options()).compose(document)
    passes = VariableResolver(namespace_resolver, config.resolve.max_passes).resolve(composed)
    logger.debug("Composed %s (%d resolver passes)", composed.source or "<input>", passes)
    return composed


def load_document(
    path: Path,
    config: EngineConfig | None = None,
    namespace_resolver: NamespaceResolver | None = None,
) -> ir.Document:
    """Load a UP file and return it fully composed and resolved.

    Args:
        path: The UP file to load
        config: Engine configuration (discovered next to ``path`` if omitted)
        namespace_resolver: Collaborator for non-``vars`` references

    Returns:
        The composed Document
    """
    config = config or discover_config(path)
    document = parse_file(path)
    loader = FileLoader([path.resolve().parent, *config.compose.search_paths])
    return compose_and_resolve(document, loader, config, namespace_resolver)


def compose_text(
    text: str,
    loader: DocumentLoader,
    config: EngineConfig | None = None,
    namespace_resolver: NamespaceResolver | None = None,
) -> dict[str, Any]:
    """Parse, compose, resolve and project UP source text."""
    document = parse_document(text)
    return project(compose_and_resolve(document, loader, config, namespace_resolver))


def render_document(document: ir.Document, fmt: str = "json") -> str:
    """Project a document and render it as JSON or YAML."""
    return render(project(document), fmt)


def validate_document(
    document: ir.Document, validator: SchemaValidator, schema: Any
) -> list[Violation]:
    """Run an optional schema validator over a composed document."""
    violations = list(validator.validate(document, schema))
    for violation in violations:
        logger.debug("Schema violation at %s: %s", violation.path, violation.message)
    return violations
