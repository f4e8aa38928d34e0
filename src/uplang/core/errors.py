"""
Error types for UP parsing, composition, resolution, and projection.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional


class UpError(Exception):
    """Base exception for all UP errors."""

    def __init__(self, message: str, context: Optional["ErrorContext"] = None):
        self.message = message
        self.context = context
        super().__init__(self._format_message())

    def _format_message(self) -> str:
        """Format error message with context if available."""
        if self.context:
            return f"{self.context.format()}\n{self.message}"
        return self.message

    @property
    def kind(self) -> str:
        return type(self).__name__

    def diagnostic(self) -> "Diagnostic":
        """Return this error as a single structured diagnostic."""
        ctx = self.context
        return Diagnostic(
            kind=self.kind,
            message=self.message,
            file=str(ctx.file) if ctx and ctx.file else None,
            line=ctx.line if ctx else None,
            column=ctx.column if ctx else None,
            path=ctx.path if ctx else None,
        )


class LexError(UpError):
    """
    Raised when source text cannot be tokenized.

    Examples:
    - Unterminated multiline capture
    - A `!` with no annotation name after it
    - Unterminated quoted string
    """

    pass


class ParseError(UpError):
    """
    Raised when the token stream does not form a valid document.

    Examples:
    - Unexpected token
    - Unclosed block, list or table
    - Duplicate key in a block
    - Table row/column arity mismatch
    - Dedent count larger than the captured indentation
    """

    pass


class CircularBaseError(UpError):
    """Raised when a document's base chain revisits a document."""

    pass


class MergeError(UpError):
    """
    Raised when documents cannot be composed.

    Examples:
    - Patch path through a missing or non-block intermediate
    - Overlay onto a non-block value
    - Invalid merge options
    """

    pass


class CircularIncludeError(MergeError):
    """Raised when an include refers back to a document still being composed."""

    pass


class ResolutionError(UpError):
    """Raised when variable references cannot be resolved."""

    pass


class CircularReferenceError(ResolutionError):
    """Resolution did not converge within the pass ceiling."""

    pass


class UnresolvedReferenceError(ResolutionError):
    """A reference names a path that does not exist."""

    pass


class ProjectionError(UpError):
    """Raised when a typed scalar cannot be parsed into its primitive."""

    pass


class SerializationError(UpError):
    """Raised when a generic tree cannot be written back as UP text."""

    pass


class DocumentNotFoundError(UpError):
    """Raised by document loaders when a reference cannot be found."""

    pass


class ConfigError(UpError):
    """Raised when uplang.toml holds invalid settings."""

    pass


@dataclass
class ErrorContext:
    """
    Context information for an error, including source location.

    Attributes:
        file: Path to the source file where error occurred
        line: Line number (1-indexed)
        column: Column number (1-indexed)
        snippet: Optional source line showing the error location
        path: Optional dotted key path (merge and resolution errors)
    """

    file: Path | str | None = None
    line: int | None = None
    column: int | None = None
    snippet: str | None = None
    path: str | None = None

    def format(self) -> str:
        """
        Format error context as a human-readable string.

        Returns:
            Formatted string like: "config.up:10:5" or "config.up at vars.name"
        """
        location = str(self.file) if self.file else "<input>"
        if self.line is not None:
            location += f":{self.line}"
            if self.column is not None:
                location += f":{self.column}"
        if self.path:
            location += f" at {self.path}"

        if self.snippet is not None and self.line is not None:
            return f"{location}\n{self._format_snippet()}"
        return location

    def _format_snippet(self) -> str:
        """Format the source line with its line number and an error marker."""
        prefix = f"{self.line:4d} | "
        formatted = [prefix + (self.snippet or "")]
        if self.column:
            formatted.append(" " * (len(prefix) + self.column - 1) + "^")
        return "\n".join(formatted)


@dataclass(frozen=True)
class Diagnostic:
    """A single structured diagnostic (kind, message, location)."""

    kind: str
    message: str
    file: str | None = None
    line: int | None = None
    column: int | None = None
    path: str | None = None


def make_lex_error(
    message: str,
    file: Path | str | None,
    line: int,
    column: int,
    snippet: str | None = None,
) -> LexError:
    """Helper to create a LexError with context."""
    return LexError(message, ErrorContext(file=file, line=line, column=column, snippet=snippet))


def make_parse_error(
    message: str,
    file: Path | str | None,
    line: int,
    column: int,
    snippet: str | None = None,
) -> ParseError:
    """
    Helper to create a ParseError with context.

    Args:
        message: Error description
        file: Source file path
        line: Line number (1-indexed)
        column: Column number (1-indexed)
        snippet: Optional source line

    Returns:
        ParseError with context attached
    """
    context = ErrorContext(file=file, line=line, column=column, snippet=snippet)
    return ParseError(message, context)


def make_merge_error(
    message: str,
    path: str | None = None,
    file: Path | str | None = None,
    line: int | None = None,
) -> MergeError:
    """
    Helper to create a MergeError with optional context.

    Args:
        message: Error description
        path: Optional dotted key path of the offending target
        file: Optional source file of the directive
        line: Optional line of the directive

    Returns:
        MergeError with context if any location is provided
    """
    if path or file or line:
        return MergeError(message, ErrorContext(file=file, line=line, path=path))
    return MergeError(message)
