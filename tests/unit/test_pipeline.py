"""Tests for the parse → compose → resolve → project pipeline."""

from pathlib import Path

import pytest

from uplang.core import ir
from uplang.core.errors import CircularReferenceError
from uplang.core.loader import MemoryLoader
from uplang.core.manifest import parse_config
from uplang.core.pipeline import (
    SchemaValidator,
    Violation,
    compose_text,
    load_document,
    render_document,
    validate_document,
)
from uplang.core.projector import project


@pytest.fixture
def project_dir(write_up, tmp_path: Path) -> Path:
    write_up("uplang.toml", '[compose]\nsearch_paths = ["shared"]\n')
    write_up(
        "shared/defaults.up",
        "vars {\n  env dev\n}\nserver {\n  host localhost\n  port!int 8000\n}\n",
    )
    write_up("overrides.up", "vars {\n  env prod\n}\n")
    write_up(
        "app.up",
        "!base defaults\n"
        "extra!include [overrides]\n"
        "name api-$vars.env\n"
        "server!overlay {\n"
        "  port!int 9000\n"
        "}\n",
    )
    return tmp_path


def test_load_document(project_dir: Path) -> None:
    document = load_document(project_dir / "app.up")
    assert project(document) == {
        "name": "api-prod",
        "server": {"host": "localhost", "port": 9000},
        "vars": {"env": "prod"},
    }


def test_render_document_yaml(project_dir: Path) -> None:
    output = render_document(load_document(project_dir / "app.up"), "yaml")
    assert output.startswith("name: api-prod\n")


def test_config_pass_ceiling_is_used(project_dir: Path, write_up) -> None:
    path = write_up(
        "chain.up", "vars {\n  a $vars.b\n  b $vars.c\n  c $vars.d\n  d end\n}\n"
    )
    config = parse_config({"resolve": {"max_passes": 2}})
    with pytest.raises(CircularReferenceError, match="within 2 passes"):
        load_document(path, config)


def test_compose_text() -> None:
    loader = MemoryLoader({"base": "a 1\nb 1\n"})
    assert compose_text("!base base\nb 2\n", loader) == {"a": "1", "b": "2"}


class RequiredKeys:
    """Minimal validator: every listed top-level key must be present."""

    def validate(self, document: ir.Document, schema: list[str]) -> list[Violation]:
        return [Violation(path=key, message="required") for key in schema if key not in document]


def test_validate_document() -> None:
    validator = RequiredKeys()
    assert isinstance(validator, SchemaValidator)

    document = ir.Document()
    document.root.set(ir.Entry(key="name", value=ir.Scalar(text="x")))
    assert validate_document(document, validator, ["name"]) == []
    assert validate_document(document, validator, ["name", "port"]) == [
        Violation(path="port", message="required")
    ]
