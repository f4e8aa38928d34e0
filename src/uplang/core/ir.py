"""
Internal Representation (IR) for UP documents.

The parser produces these models; the merge engine composes them and the
variable resolver rewrites scalar text in place. Values form a tagged union
discriminated on ``kind``.
"""

from __future__ import annotations

import json
from collections.abc import Iterator
from enum import StrEnum
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator


class BlockOrdering(StrEnum):
    """How a block orders its entries in canonical projection."""

    KEYED = "keyed"  # sorted by key
    INSERTION = "insertion"  # declaration order


class Scalar(BaseModel):
    """
    A plain string value.

    Numeric/boolean/null interpretation is deferred to the owning entry's
    type annotation; the text is never coerced here.
    """

    kind: Literal["scalar"] = "scalar"
    text: str = ""
    quoted: bool = False


class Multiline(BaseModel):
    """
    A value captured verbatim between triple-backtick fences.

    Attributes:
        text: Captured content (after dedent, if any)
        language: Language hint written after the opening fence (metadata only)
        dedent: Number of leading columns stripped from every line
    """

    kind: Literal["multiline"] = "multiline"
    text: str = ""
    language: str | None = None
    dedent: int | None = None


class ListValue(BaseModel):
    """An ordered, possibly heterogeneous sequence of values."""

    kind: Literal["list"] = "list"
    items: list[Value] = Field(default_factory=list)


class Table(BaseModel):
    """
    A fixed-column table.

    Every row must hold exactly one scalar per column.
    """

    kind: Literal["table"] = "table"
    columns: list[str] = Field(default_factory=list)
    rows: list[list[Scalar]] = Field(default_factory=list)

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def _check_arity(self) -> Table:
        for index, row in enumerate(self.rows):
            if len(row) != len(self.columns):
                raise ValueError(
                    f"row {index} has {len(row)} cells, expected {len(self.columns)}"
                )
        return self


class Block(BaseModel):
    """
    A mapping from key to Entry.

    The ordering mode is fixed when the block is created (the model is
    frozen); only the entry mapping itself may change. Dict insertion order
    is the declaration position of each key.
    """

    kind: Literal["block"] = "block"
    ordering: BlockOrdering = BlockOrdering.KEYED
    entries: dict[str, Entry] = Field(default_factory=dict)

    model_config = ConfigDict(frozen=True)

    def get(self, key: str) -> Entry | None:
        return self.entries.get(key)

    def __contains__(self, key: object) -> bool:
        return key in self.entries

    def __len__(self) -> int:
        return len(self.entries)

    def keys(self) -> list[str]:
        return list(self.entries)

    def set(self, entry: Entry) -> None:
        """Insert or replace an entry; a replaced key keeps its position."""
        self.entries[entry.key] = entry

    def remove(self, key: str) -> Entry | None:
        return self.entries.pop(key, None)

    def iter_declared(self) -> Iterator[Entry]:
        """Iterate entries in declaration order."""
        yield from list(self.entries.values())

    def iter_entries(self) -> Iterator[Entry]:
        """Iterate entries in projection order for this block's ordering mode."""
        if self.ordering == BlockOrdering.INSERTION:
            yield from self.iter_declared()
        else:
            for key in sorted(self.entries):
                yield self.entries[key]


Value = Annotated[
    Union[Scalar, Multiline, ListValue, Table, Block],
    Field(discriminator="kind"),
]


class Entry(BaseModel):
    """
    A single ``key [!type] value`` statement.

    Attributes:
        key: Entry key
        type: Free-form type annotation (without the leading ``!``)
        value: The entry's value
        line: Source line (diagnostics only)
        column: Source column (diagnostics only)
    """

    key: str
    type: str | None = None
    value: Value = Field(default_factory=Scalar)
    line: int = Field(default=0, exclude=True)
    column: int = Field(default=0, exclude=True)


class Document(BaseModel):
    """
    A parsed or composed UP document.

    Attributes:
        root: Top-level entries (always key-ordered)
        source: Identifier the document was loaded from, if any
    """

    root: Block = Field(default_factory=Block)
    source: str | None = None

    def get(self, key: str) -> Entry | None:
        return self.root.get(key)

    def __contains__(self, key: object) -> bool:
        return key in self.root

    @property
    def entries(self) -> list[Entry]:
        """Top-level entries in declaration order."""
        return list(self.root.iter_declared())


ListValue.model_rebuild()
Block.model_rebuild()
Entry.model_rebuild()
Document.model_rebuild()


def copy_value(value: Value) -> Value:
    """Deep copy a value so the copy can be mutated independently."""
    return value.model_copy(deep=True)


def copy_entry(entry: Entry) -> Entry:
    return entry.model_copy(deep=True)


def fingerprint(value: Value) -> str:
    """
    Structural identity of a value.

    Source locations are ignored and key-ordered blocks compare equal
    regardless of declaration order.
    """
    return json.dumps(_shape(value), separators=(",", ":"), ensure_ascii=False)


def _shape(value: Value) -> Any:
    if isinstance(value, Scalar):
        return ["s", value.text]
    if isinstance(value, Multiline):
        return ["m", value.text, value.language]
    if isinstance(value, ListValue):
        return ["l", [_shape(item) for item in value.items]]
    if isinstance(value, Table):
        return ["t", value.columns, [[cell.text for cell in row] for row in value.rows]]
    return [
        "b",
        value.ordering.value,
        [[e.key, e.type, _shape(e.value)] for e in value.iter_entries()],
    ]
