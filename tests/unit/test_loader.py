"""Tests for document loaders."""

from pathlib import Path

import pytest

from uplang.core.errors import DocumentNotFoundError
from uplang.core.loader import DocumentLoader, FileLoader, MemoryLoader


def test_loaders_satisfy_protocol() -> None:
    assert isinstance(FileLoader([]), DocumentLoader)
    assert isinstance(MemoryLoader({}), DocumentLoader)


class TestFileLoader:
    def test_suffix_is_optional(self, write_up, tmp_path: Path) -> None:
        path = write_up("common.up", "a 1\n")
        document = FileLoader([tmp_path]).load("common")
        assert document.source == str(path.resolve())
        assert document.get("a").value.text == "1"

    def test_referrer_directory_is_tried_first(self, write_up, tmp_path: Path) -> None:
        write_up("shared/base.up", "who search-path\n")
        sibling = write_up("app/base.up", "who sibling\n")
        referrer = write_up("app/main.up", "!base base\n")

        loader = FileLoader([tmp_path / "shared"])
        document = loader.load("base", str(referrer.resolve()))
        assert document.source == str(sibling.resolve())
        assert loader.load("base").get("who").value.text == "search-path"

    def test_search_paths_in_order(self, write_up, tmp_path: Path) -> None:
        write_up("one/x.up", "v 1\n")
        write_up("two/x.up", "v 2\n")
        loader = FileLoader([tmp_path / "two", tmp_path / "one"])
        assert loader.load("x.up").get("v").value.text == "2"

    def test_missing_document(self, tmp_path: Path) -> None:
        with pytest.raises(DocumentNotFoundError, match="'nowhere' not found"):
            FileLoader([tmp_path]).load("nowhere")


class TestMemoryLoader:
    def test_load(self) -> None:
        document = MemoryLoader({"a": "x 1\n"}).load("a")
        assert document.source == "a"

    def test_missing(self) -> None:
        with pytest.raises(DocumentNotFoundError):
            MemoryLoader({}).load("a")
