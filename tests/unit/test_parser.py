"""Tests for the UP parser."""

import pytest

from uplang.core import ir
from uplang.core.errors import LexError, ParseError
from uplang.core.parser import parse_document
from uplang.core.projector import project


class TestBasicParsing:
    def test_server_scenario(self, server_doc: ir.Document) -> None:
        server = server_doc.get("server")
        assert isinstance(server.value, ir.Block)
        assert len(server.value) == 2

        port = server.value.get("port")
        assert port.type == "int"
        assert port.value == ir.Scalar(text="8080")

        host = server.value.get("host")
        assert host.type is None
        assert host.value.text == "localhost"

        tree = project(server_doc)
        assert tree == {"server": {"host": "localhost", "port": 8080}}
        assert list(tree["server"]) == ["host", "port"]

    def test_key_without_value(self) -> None:
        doc = parse_document("flag\n")
        assert doc.get("flag").value == ir.Scalar(text="")

    def test_empty_block(self) -> None:
        doc = parse_document("x {}\n")
        assert isinstance(doc.get("x").value, ir.Block)
        assert len(doc.get("x").value) == 0

    def test_comments_and_blank_lines(self) -> None:
        doc = parse_document("# header\na 1 # trailing\n\n   \nb 2\n")
        assert [e.key for e in doc.entries] == ["a", "b"]
        assert doc.get("a").value.text == "1"

    def test_quoted_scalar(self) -> None:
        doc = parse_document('title "Hello, world"\n')
        assert doc.get("title").value == ir.Scalar(text="Hello, world", quoted=True)

    def test_entry_location(self) -> None:
        doc = parse_document("a 1\n  b 2\n")
        entry = doc.get("b")
        assert (entry.line, entry.column) == (2, 3)

    def test_source_is_recorded(self) -> None:
        assert parse_document("a 1", source="mem://a").source == "mem://a"
        assert parse_document("a 1").source is None


class TestBlocks:
    def test_default_block_is_key_ordered(self) -> None:
        doc = parse_document("steps {\n  zeta 1\n  alpha 2\n}\n")
        assert doc.get("steps").value.ordering == ir.BlockOrdering.KEYED
        assert list(project(doc)["steps"]) == ["alpha", "zeta"]

    @pytest.mark.parametrize("annotation", ["ordered", "list", "seq"])
    def test_insertion_ordered_block(self, annotation: str) -> None:
        doc = parse_document(f"steps!{annotation} {{\n  zeta 1\n  alpha 2\n}}\n")
        assert doc.get("steps").value.ordering == ir.BlockOrdering.INSERTION
        assert list(project(doc)["steps"]) == ["zeta", "alpha"]

    def test_nested_blocks(self) -> None:
        doc = parse_document("a {\n  b {\n    c deep\n  }\n}\n")
        assert project(doc) == {"a": {"b": {"c": "deep"}}}

    def test_duplicate_key(self) -> None:
        with pytest.raises(ParseError, match="Duplicate key 'a'") as exc:
            parse_document("a 1\na 2\n")
        assert exc.value.context.line == 2
        assert exc.value.context.column == 1

    def test_duplicate_key_in_nested_block(self) -> None:
        with pytest.raises(ParseError, match="Duplicate key 'x'"):
            parse_document("b {\n  x 1\n  x 2\n}\n")

    def test_same_key_in_different_blocks_is_fine(self) -> None:
        doc = parse_document("a {\n  x 1\n}\nb {\n  x 2\n}\n")
        assert project(doc) == {"a": {"x": "1"}, "b": {"x": "2"}}


class TestLists:
    def test_inline_list(self) -> None:
        doc = parse_document("tags [web, api]\n")
        assert project(doc) == {"tags": ["web", "api"]}

    def test_empty_list(self) -> None:
        assert project(parse_document("tags []\n")) == {"tags": []}

    def test_nested_inline_lists(self) -> None:
        doc = parse_document("m [[1, 2], [3]]\n")
        assert project(doc) == {"m": [["1", "2"], ["3"]]}

    def test_multiline_list(self) -> None:
        text = (
            "hosts [\n"
            "  alpha\n"
            '  "beta, gamma"\n'
            "  {\n"
            "    name x\n"
            "  }\n"
            "  [1, 2]\n"
            "]\n"
        )
        doc = parse_document(text)
        items = doc.get("hosts").value.items
        assert [item.kind for item in items] == ["scalar", "scalar", "block", "list"]
        assert project(doc) == {"hosts": ["alpha", "beta, gamma", {"name": "x"}, ["1", "2"]]}

    def test_multiline_list_with_fence_item(self) -> None:
        doc = parse_document("docs [\n  ```\n  line one\n  ```\n]\n")
        assert project(doc) == {"docs": ["  line one"]}


class TestTables:
    TABLE = (
        "users!table {\n"
        "  columns [id, name]\n"
        "  rows {\n"
        "    [1, alice]\n"
        "    [2, bob]\n"
        "  }\n"
        "}\n"
    )

    def test_annotated_table(self) -> None:
        doc = parse_document(self.TABLE)
        table = doc.get("users").value
        assert isinstance(table, ir.Table)
        assert table.columns == ["id", "name"]
        assert [[c.text for c in row] for row in table.rows] == [["1", "alice"], ["2", "bob"]]

    def test_table_detected_without_annotation(self) -> None:
        doc = parse_document(self.TABLE.replace("users!table", "users"))
        assert isinstance(doc.get("users").value, ir.Table)

    def test_table_projection(self) -> None:
        assert project(parse_document(self.TABLE)) == {
            "users": {"columns": ["id", "name"], "rows": [["1", "alice"], ["2", "bob"]]}
        }

    def test_row_arity_mismatch(self) -> None:
        text = "t!table {\n  columns [a, b]\n  rows {\n    [1, 2]\n    [3]\n  }\n}\n"
        with pytest.raises(ParseError, match="1 values but 2 columns") as exc:
            parse_document(text)
        assert exc.value.context.line == 5

    @pytest.mark.parametrize(
        "rows",
        [
            "rows [\n    [1, alice]\n    [2, bob]\n  ]",
            "rows [[1, alice], [2, bob]]",
        ],
    )
    def test_rows_as_list(self, rows: str) -> None:
        text = f"users!table {{\n  columns [id, name]\n  {rows}\n}}\n"
        assert project(parse_document(text)) == project(parse_document(self.TABLE))

    def test_list_rows_arity_mismatch(self) -> None:
        text = "t!table {\n  columns [a, b]\n  rows [[1, 2], [3]]\n}\n"
        with pytest.raises(ParseError, match="1 values but 2 columns"):
            parse_document(text)

    def test_rows_need_a_container(self) -> None:
        text = "t!table {\n  columns [a]\n  rows 1\n}\n"
        with pytest.raises(ParseError, match="open table rows"):
            parse_document(text)

    def test_block_with_multiline_columns_list_is_not_a_table(self) -> None:
        doc = parse_document("x {\n  columns [\n    a\n  ]\n}\n")
        assert isinstance(doc.get("x").value, ir.Block)


class TestMultiline:
    def test_verbatim_capture(self) -> None:
        doc = parse_document("script ```bash\necho hi\n  echo there\n```\n")
        value = doc.get("script").value
        assert isinstance(value, ir.Multiline)
        assert value.text == "echo hi\n  echo there"
        assert value.language == "bash"
        assert value.dedent is None

    def test_dedent(self) -> None:
        doc = parse_document("code!2 ```python\n  line one\n\n    nested\n```\n")
        value = doc.get("code").value
        assert value.text == "line one\n\n  nested"
        assert value.dedent == 2

    def test_dedent_exceeding_indentation(self) -> None:
        with pytest.raises(ParseError, match="exceeds indentation") as exc:
            parse_document("code!4 ```\n    ok\n  short\n```\n")
        assert exc.value.context.line == 3

    def test_unterminated(self) -> None:
        with pytest.raises(LexError, match="Unterminated multiline"):
            parse_document("a ```\nnever closed\n")


class TestStructuralErrors:
    def test_unclosed_block(self) -> None:
        with pytest.raises(ParseError, match="Expected `}` to close block opened at line 1"):
            parse_document("server {\n  port 1\n")

    def test_unclosed_list(self) -> None:
        with pytest.raises(ParseError, match="Expected `]` to close list opened at line 2"):
            parse_document("a 1\nitems [\n  x\n")

    def test_close_with_nothing_open(self) -> None:
        with pytest.raises(ParseError, match="nothing is open"):
            parse_document("a 1\n}\n")

    def test_mismatched_close(self) -> None:
        with pytest.raises(ParseError, match="expected `]` to close list opened at line 1"):
            parse_document("x [\n  a\n}\n")

    def test_block_needs_newline_after_brace(self) -> None:
        with pytest.raises(ParseError, match="Expected end of line"):
            parse_document("server { port 1 }\n")

    def test_error_has_snippet(self) -> None:
        with pytest.raises(ParseError) as exc:
            parse_document("a 1\na 2\n")
        assert exc.value.context.snippet == "a 2"
        assert "   2 | a 2" in str(exc.value)
