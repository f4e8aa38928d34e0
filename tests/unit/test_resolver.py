"""Tests for variable resolution."""

import pytest

from uplang.core.errors import CircularReferenceError, UnresolvedReferenceError
from uplang.core.parser import parse_document
from uplang.core.projector import project
from uplang.core.resolver import FunctionTable, NamespaceResolver, VariableResolver


def resolve(text: str, **kwargs) -> tuple[dict, int]:
    document = parse_document(text)
    passes = VariableResolver(**kwargs).resolve(document)
    return project(document), passes


class TestVars:
    def test_substitution_inside_text(self) -> None:
        tree, _ = resolve("vars {\n  host example.com\n}\nurl https://$vars.host/api\n")
        assert tree["url"] == "https://example.com/api"

    def test_nested_path(self) -> None:
        tree, _ = resolve("vars {\n  db {\n    port 5432\n  }\n}\nport!int $vars.db.port\n")
        assert tree["port"] == 5432

    def test_list_index(self) -> None:
        tree, _ = resolve("vars {\n  hosts [a, b]\n}\nx $vars.hosts.1\n")
        assert tree["x"] == "b"

    def test_no_references_takes_one_pass(self) -> None:
        _, passes = resolve("a 1\n")
        assert passes == 1

    def test_chain_converges_in_three_passes(self) -> None:
        tree, passes = resolve("vars {\n  a $vars.b\n  b $vars.c\n  c done\n}\n")
        assert tree["vars"] == {"a": "done", "b": "done", "c": "done"}
        assert passes == 3

    def test_result_independent_of_declaration_order(self) -> None:
        forward, forward_passes = resolve("vars {\n  a $vars.b\n  b $vars.c\n  c done\n}\n")
        backward, backward_passes = resolve("vars {\n  c done\n  b $vars.c\n  a $vars.b\n}\n")
        assert forward == backward
        assert forward_passes == backward_passes

    def test_list_items_table_cells_and_multiline(self) -> None:
        text = (
            "vars {\n"
            "  env prod\n"
            "}\n"
            "tags [$vars.env, static]\n"
            "t!table {\n"
            "  columns [name]\n"
            "  rows {\n"
            "    [$vars.env]\n"
            "  }\n"
            "}\n"
            "doc ```\n"
            "running in $vars.env\n"
            "```\n"
        )
        tree, _ = resolve(text)
        assert tree["tags"] == ["prod", "static"]
        assert tree["t"]["rows"] == [["prod"]]
        assert tree["doc"] == "running in prod"


class TestFailures:
    def test_mutual_reference(self) -> None:
        with pytest.raises(CircularReferenceError, match="containing itself") as exc:
            resolve("vars {\n  a $vars.b\n  b $vars.a\n}\n")
        assert exc.value.context.path in ("vars.a", "vars.b")

    def test_self_reference(self) -> None:
        with pytest.raises(CircularReferenceError):
            resolve("vars {\n  a x$vars.a\n}\n")

    def test_doubling_self_reference_fails_on_first_pass(self) -> None:
        with pytest.raises(CircularReferenceError, match=r"'\$vars\.a'") as exc:
            resolve("vars {\n  a $vars.a$vars.a\n}\n", max_passes=100)
        assert exc.value.context.path == "vars.a"

    def test_chain_sharing_a_token_still_converges(self) -> None:
        text = "vars {\n  a $vars.c\n  b $vars.a\n  c z\n}\nx $vars.a$vars.b\n"
        tree, _ = resolve(text)
        assert tree["x"] == "zz"

    def test_pass_ceiling(self) -> None:
        table = FunctionTable()
        table.register("loop", "again", lambda: "$loop.again")
        with pytest.raises(CircularReferenceError, match="within 5 passes") as exc:
            resolve("x $loop.again\n", namespace_resolver=table, max_passes=5)
        assert exc.value.context.path == "x"

    def test_runaway_growth_from_namespace(self) -> None:
        table = FunctionTable()
        table.register("grow", "twice", lambda: "$grow.twice" * 2)
        with pytest.raises(CircularReferenceError, match="grew beyond"):
            resolve("x $grow.twice\n", namespace_resolver=table)

    def test_unresolved_reference(self) -> None:
        document = parse_document("x $vars.missing\n", source="app.up")
        with pytest.raises(UnresolvedReferenceError, match=r"\$vars\.missing") as exc:
            VariableResolver().resolve(document)
        assert exc.value.context.path == "x"
        assert exc.value.context.file == "app.up"

    def test_reference_to_block(self) -> None:
        with pytest.raises(UnresolvedReferenceError, match="names a block"):
            resolve("vars {\n  db {\n    host a\n  }\n}\nx $vars.db\n")

    def test_other_namespace_without_resolver(self) -> None:
        with pytest.raises(UnresolvedReferenceError):
            resolve("x $env.get(HOME)\n")

    def test_invalid_ceiling(self) -> None:
        with pytest.raises(ValueError):
            VariableResolver(max_passes=0)


class TestNamespaceResolver:
    def test_function_table(self) -> None:
        table = FunctionTable()
        table.register("env", "get", lambda name: f"/home/{name.lower()}")
        table.register("math", "add", lambda a, b: int(a) + int(b))
        assert isinstance(table, NamespaceResolver)

        tree, _ = resolve(
            "home $env.get(USER)\nsum!int $math.add(1, 2)\n", namespace_resolver=table
        )
        assert tree == {"home": "/home/user", "sum": 3}

    def test_unknown_function(self) -> None:
        table = FunctionTable()
        with pytest.raises(UnresolvedReferenceError, match="Unknown function 'get'"):
            resolve("x $env.get(HOME)\n", namespace_resolver=table)

    def test_resolver_failure_propagates_with_note(self) -> None:
        class Failing:
            def resolve(self, namespace: str, function_name: str, params: list[str]) -> str:
                raise RuntimeError("backend down")

        with pytest.raises(RuntimeError, match="backend down") as exc:
            resolve("x $svc.call()\n", namespace_resolver=Failing())
        assert any("while resolving $svc.call() at x" in n for n in exc.value.__notes__)

    def test_namespace_value_can_contain_vars(self) -> None:
        table = FunctionTable()
        table.register("ref", "name", lambda: "$vars.name")
        tree, passes = resolve(
            "vars {\n  name demo\n}\nx $ref.name\n", namespace_resolver=table
        )
        assert tree["x"] == "demo"
        assert passes == 3
