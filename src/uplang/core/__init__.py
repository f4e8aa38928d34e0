"""Core UP functionality: lexer, parser, document model, merge engine, resolver, projector."""

from . import ir
from .errors import (
    CircularBaseError,
    CircularIncludeError,
    CircularReferenceError,
    ConfigError,
    Diagnostic,
    DocumentNotFoundError,
    ErrorContext,
    LexError,
    MergeError,
    ParseError,
    ProjectionError,
    ResolutionError,
    SerializationError,
    UnresolvedReferenceError,
    UpError,
)
from .loader import DocumentLoader, FileLoader, MemoryLoader
from .manifest import EngineConfig, discover_config, load_config
from .merge import Composer, ListStrategy, MergeOptions, MergeStrategy, compose_document
from .parser import parse_document, parse_file
from .pipeline import SchemaValidator, Violation, load_document, validate_document
from .projector import project, render
from .resolver import FunctionTable, NamespaceResolver, VariableResolver, resolve_variables
from .serializer import dump_document, dumps, format_source

__all__ = [
    "ir",
    # Errors
    "UpError",
    "ErrorContext",
    "Diagnostic",
    "LexError",
    "ParseError",
    "CircularBaseError",
    "MergeError",
    "CircularIncludeError",
    "ResolutionError",
    "CircularReferenceError",
    "UnresolvedReferenceError",
    "ProjectionError",
    "SerializationError",
    "DocumentNotFoundError",
    "ConfigError",
    # Parsing
    "parse_document",
    "parse_file",
    # Composition
    "DocumentLoader",
    "FileLoader",
    "MemoryLoader",
    "Composer",
    "MergeOptions",
    "MergeStrategy",
    "ListStrategy",
    "compose_document",
    # Resolution
    "NamespaceResolver",
    "FunctionTable",
    "VariableResolver",
    "resolve_variables",
    # Output
    "project",
    "render",
    "dumps",
    "dump_document",
    "format_source",
    # Configuration and pipeline
    "EngineConfig",
    "load_config",
    "discover_config",
    "SchemaValidator",
    "Violation",
    "load_document",
    "validate_document",
]
