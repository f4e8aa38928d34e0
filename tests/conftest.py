"""Shared pytest fixtures for UPLANG tests."""

from collections.abc import Callable
from pathlib import Path

import pytest

from uplang.core import ir
from uplang.core.loader import MemoryLoader
from uplang.core.merge import Composer, MergeOptions
from uplang.core.parser import parse_document


@pytest.fixture
def write_up(tmp_path: Path) -> Callable[[str, str], Path]:
    """Return a helper that writes a file under tmp_path and returns its path."""

    def _write(name: str, text: str) -> Path:
        path = tmp_path / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
        return path

    return _write


@pytest.fixture
def compose_up() -> Callable[..., ir.Document]:
    """Return a helper that composes source text against in-memory documents."""

    def _compose(
        text: str,
        sources: dict[str, str] | None = None,
        options: MergeOptions | None = None,
    ) -> ir.Document:
        document = parse_document(text)
        return Composer(MemoryLoader(sources or {}), options).compose(document)

    return _compose


@pytest.fixture
def server_doc() -> ir.Document:
    """The canonical two-entry server document."""
    return parse_document("server {\n  port!int 8080\n  host localhost\n}\n")
