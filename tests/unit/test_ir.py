"""Tests for the document model, annotations and error types."""

import pytest
from pydantic import ValidationError

from uplang.core import annotations, ir
from uplang.core.annotations import TypeFamily
from uplang.core.errors import ErrorContext, ParseError, make_merge_error
from uplang.core.parser import parse_document


class TestBlock:
    def test_set_keeps_position_of_replaced_key(self) -> None:
        block = ir.Block(ordering=ir.BlockOrdering.INSERTION)
        for key in ("c", "a", "b"):
            block.set(ir.Entry(key=key, value=ir.Scalar(text=key)))
        block.set(ir.Entry(key="a", value=ir.Scalar(text="new")))
        block.set(ir.Entry(key="d"))

        assert block.keys() == ["c", "a", "b", "d"]
        assert block.get("a").value.text == "new"
        assert [e.key for e in block.iter_entries()] == ["c", "a", "b", "d"]

    def test_keyed_iteration_is_sorted(self) -> None:
        block = ir.Block()
        for key in ("c", "a", "b"):
            block.set(ir.Entry(key=key))
        assert [e.key for e in block.iter_entries()] == ["a", "b", "c"]
        assert [e.key for e in block.iter_declared()] == ["c", "a", "b"]

    def test_remove(self) -> None:
        block = ir.Block()
        block.set(ir.Entry(key="a"))
        assert block.remove("a").key == "a"
        assert block.remove("a") is None
        assert "a" not in block

    def test_ordering_is_frozen(self) -> None:
        block = ir.Block()
        with pytest.raises(ValidationError):
            block.ordering = ir.BlockOrdering.INSERTION


class TestTable:
    def test_arity_is_validated(self) -> None:
        with pytest.raises(ValidationError):
            ir.Table(columns=["a", "b"], rows=[[ir.Scalar(text="1")]])

    def test_valid_table(self) -> None:
        table = ir.Table(columns=["a"], rows=[[ir.Scalar(text="1")]])
        assert table.rows[0][0].text == "1"


class TestFingerprint:
    def test_ignores_locations_and_keyed_order(self) -> None:
        first = parse_document("b {\n  x 1\n  y 2\n}\n").get("b").value
        second = parse_document("\n\nb {\n  y 2\n  x 1\n}\n").get("b").value
        assert ir.fingerprint(first) == ir.fingerprint(second)

    def test_respects_insertion_order(self) -> None:
        first = parse_document("b!ordered {\n  x 1\n  y 2\n}\n").get("b").value
        second = parse_document("b!ordered {\n  y 2\n  x 1\n}\n").get("b").value
        assert ir.fingerprint(first) != ir.fingerprint(second)

    def test_distinguishes_kinds(self) -> None:
        assert ir.fingerprint(ir.Scalar(text="a")) != ir.fingerprint(ir.Multiline(text="a"))


def test_value_discriminator_round_trip() -> None:
    doc = parse_document("a {\n  b [x]\n}\n")
    data = doc.model_dump()
    assert "line" not in data["root"]["entries"]["a"]
    assert ir.Document.model_validate(data).model_dump() == data


def test_copy_value_is_independent() -> None:
    original = ir.ListValue(items=[ir.Scalar(text="a")])
    copy = ir.copy_value(original)
    copy.items[0].text = "b"
    assert original.items[0].text == "a"


class TestAnnotations:
    @pytest.mark.parametrize(
        ("name", "family"),
        [
            ("int", TypeFamily.INTEGER),
            ("Integer", TypeFamily.INTEGER),
            ("double", TypeFamily.FLOAT),
            ("boolean", TypeFamily.BOOLEAN),
            ("none", TypeFamily.NULL),
            ("timestamp", None),
            (None, None),
        ],
    )
    def test_type_family(self, name, family) -> None:
        assert annotations.type_family(name) == family

    def test_directives(self) -> None:
        assert annotations.directive_name("Base") == "base"
        assert annotations.directive_name("ordered") is None

    def test_dedent_count(self) -> None:
        assert annotations.dedent_count("4") == 4
        assert annotations.dedent_count("int") is None
        assert annotations.dedent_count("²") is None


class TestErrors:
    def test_context_format(self) -> None:
        context = ErrorContext(file="a.up", line=3, column=5)
        assert context.format() == "a.up:3:5"
        assert ErrorContext(path="vars.x").format() == "<input> at vars.x"

    def test_diagnostic(self) -> None:
        error = ParseError("boom", ErrorContext(file="a.up", line=1, column=2))
        diagnostic = error.diagnostic()
        assert diagnostic.kind == "ParseError"
        assert (diagnostic.file, diagnostic.line, diagnostic.column) == ("a.up", 1, 2)
        assert str(error) == "a.up:1:2\nboom"

    def test_merge_error_without_location(self) -> None:
        error = make_merge_error("bad")
        assert error.context is None
        assert str(error) == "bad"
