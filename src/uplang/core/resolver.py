"""
Variable resolution for composed UP documents.

Scalars may contain reference tokens:

    $vars.path.to.value        looked up in the document's top-level ``vars`` block
    $ns.function(p1, p2)       delegated to an injected NamespaceResolver

Resolution is a full-sweep fixed-point iteration. Every pass computes all
substitutions from the same snapshot of the document and applies them
together, so the result does not depend on declaration order. It stops when
a pass makes no substitution, or fails when the pass ceiling is reached.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from . import ir
from .errors import (
    CircularReferenceError,
    ErrorContext,
    UnresolvedReferenceError,
)

logger = logging.getLogger(__name__)

VARS_NAMESPACE = "vars"
DEFAULT_MAX_PASSES = 100
MAX_TEXT_LENGTH = 1_000_000

REFERENCE_PATTERN = re.compile(
    r"\$(?P<namespace>[A-Za-z_][A-Za-z0-9_]*)"
    r"\.(?P<path>[A-Za-z0-9_-]+(?:\.[A-Za-z0-9_-]+)*)"
    r"(?:\((?P<params>[^()]*)\))?"
)


@runtime_checkable
class NamespaceResolver(Protocol):
    """Resolves ``$namespace.function(params)`` tokens outside ``vars``."""

    def resolve(self, namespace: str, function_name: str, params: list[str]) -> str: ...


class FunctionTable:
    """
    A NamespaceResolver backed by plain callables.

    Example:
        table = FunctionTable()
        table.register("env", "get", lambda name: os.environ.get(name, ""))
    """

    def __init__(self) -> None:
        self._functions: dict[tuple[str, str], Callable[..., object]] = {}

    def register(self, namespace: str, function_name: str, fn: Callable[..., object]) -> None:
        self._functions[(namespace, function_name)] = fn

    def __contains__(self, key: object) -> bool:
        return key in self._functions

    def resolve(self, namespace: str, function_name: str, params: list[str]) -> str:
        try:
            fn = self._functions[(namespace, function_name)]
        except KeyError:
            raise UnresolvedReferenceError(
                f"Unknown function '{function_name}' in namespace '{namespace}'"
            ) from None
        return str(fn(*params))


@dataclass
class _Site:
    """A resolvable text value and the key path that owns it."""

    value: ir.Scalar | ir.Multiline
    path: str


def _iter_sites(value: ir.Value, path: str) -> Iterator[_Site]:
    if isinstance(value, (ir.Scalar, ir.Multiline)):
        yield _Site(value, path)
    elif isinstance(value, ir.Block):
        for entry in value.iter_declared():
            yield from _iter_sites(entry.value, f"{path}.{entry.key}" if path else entry.key)
    elif isinstance(value, ir.ListValue):
        for index, item in enumerate(value.items):
            yield from _iter_sites(item, f"{path}[{index}]")
    elif isinstance(value, ir.Table):
        for row_index, row in enumerate(value.rows):
            for column, cell in zip(value.columns, row):
                yield _Site(cell, f"{path}.rows[{row_index}].{column}")


class VariableResolver:
    """
    Substitute reference tokens in a composed document, in place.

    Args:
        namespace_resolver: Collaborator for namespaces other than ``vars``
        max_passes: Pass ceiling; reaching it is a circular-dependency error
    """

    def __init__(
        self,
        namespace_resolver: NamespaceResolver | None = None,
        max_passes: int = DEFAULT_MAX_PASSES,
    ):
        if max_passes < 1:
            raise ValueError("max_passes must be at least 1")
        self.namespace_resolver = namespace_resolver
        self.max_passes = max_passes

    def resolve(self, document: ir.Document) -> int:
        """
        Resolve every reference in ``document``.

        Returns:
            Number of passes run, including the final pass that confirmed
            convergence

        Raises:
            CircularReferenceError: No convergence within ``max_passes``
            UnresolvedReferenceError: A reference names a missing path
        """
        sites = list(_iter_sites(document.root, ""))

        for pass_no in range(1, self.max_passes + 1):
            updates: list[tuple[_Site, str]] = []
            for site in sites:
                text, substituted = self._substitute(site, document)
                if substituted:
                    self._check_growth(site, text, substituted, document)
                    updates.append((site, text))

            if not updates:
                logger.debug("Variables converged after %d pass(es)", pass_no)
                self._check_unresolved(sites, document)
                return pass_no

            for site, text in updates:
                site.value.text = text
            logger.debug("Pass %d: %d substitution(s)", pass_no, len(updates))

        remaining = [s for s in sites if REFERENCE_PATTERN.search(s.value.text)]
        if not remaining:
            return self.max_passes
        site = remaining[0]
        token = REFERENCE_PATTERN.search(site.value.text).group(0)
        raise CircularReferenceError(
            f"Circular reference: '{token}' did not resolve within {self.max_passes} passes",
            ErrorContext(file=document.source, path=site.path),
        )

    def _substitute(self, site: _Site, document: ir.Document) -> tuple[str, dict[str, str]]:
        """Substitute one pass worth of references; return each token replaced and its value."""
        substituted: dict[str, str] = {}

        def replace(match: re.Match[str]) -> str:
            value = self._lookup(match, document, site)
            if value is None:
                return match.group(0)
            substituted[match.group(0)] = value
            return value

        text = REFERENCE_PATTERN.sub(replace, site.value.text)
        return text, substituted

    def _check_growth(
        self, site: _Site, text: str, substituted: dict[str, str], document: ir.Document
    ) -> None:
        """
        Fail fast on substitutions that can never converge.

        A `$vars` token whose value contains that same token names a variable
        that refers to itself, directly or through other variables.
        """
        for token, value in substituted.items():
            if not token.startswith(f"${VARS_NAMESPACE}."):
                continue
            if any(m.group(0) == token for m in REFERENCE_PATTERN.finditer(value)):
                raise CircularReferenceError(
                    f"Circular reference: '{token}' expands to text containing itself",
                    ErrorContext(file=document.source, path=site.path),
                )
        if len(text) > MAX_TEXT_LENGTH:
            raise CircularReferenceError(
                f"Circular reference: value at '{site.path}' grew beyond "
                f"{MAX_TEXT_LENGTH} characters",
                ErrorContext(file=document.source, path=site.path),
            )

    def _lookup(self, match: re.Match[str], document: ir.Document, site: _Site) -> str | None:
        namespace = match.group("namespace")
        path = match.group("path")

        if namespace == VARS_NAMESPACE:
            return self._lookup_var(path, match.group(0), document, site)

        if self.namespace_resolver is None:
            return None
        raw_params = match.group("params")
        params = [p.strip() for p in raw_params.split(",")] if raw_params else []
        try:
            return str(self.namespace_resolver.resolve(namespace, path, params))
        except Exception as exc:
            exc.add_note(f"while resolving {match.group(0)} at {site.path}")
            raise

    def _lookup_var(
        self, path: str, token: str, document: ir.Document, site: _Site
    ) -> str | None:
        entry = document.get(VARS_NAMESPACE)
        value: ir.Value | None = entry.value if entry is not None else None

        for segment in path.split("."):
            if isinstance(value, ir.Block):
                child = value.get(segment)
                value = child.value if child is not None else None
            elif isinstance(value, ir.ListValue) and segment.isascii() and segment.isdigit():
                index = int(segment)
                value = value.items[index] if index < len(value.items) else None
            else:
                value = None
            if value is None:
                return None

        if isinstance(value, (ir.Scalar, ir.Multiline)):
            return value.text
        raise UnresolvedReferenceError(
            f"Reference '{token}' names a {value.kind}, not a scalar",
            ErrorContext(file=document.source, path=site.path),
        )

    def _check_unresolved(self, sites: list[_Site], document: ir.Document) -> None:
        for site in sites:
            match = REFERENCE_PATTERN.search(site.value.text)
            if match is not None:
                raise UnresolvedReferenceError(
                    f"Unresolved reference '{match.group(0)}' in '{site.path}'",
                    ErrorContext(file=document.source, path=site.path),
                )


def resolve_variables(
    document: ir.Document,
    namespace_resolver: NamespaceResolver | None = None,
    max_passes: int = DEFAULT_MAX_PASSES,
) -> int:
    """Convenience wrapper around VariableResolver.resolve."""
    return VariableResolver(namespace_resolver, max_passes).resolve(document)
