"""
Recursive descent parser for UP documents.

Consumes the lexer's token stream one statement per line and builds the
ordered document model. The parser does not recover: the first structural
error aborts with a single ParseError.
"""

from __future__ import annotations

import logging
from pathlib import Path

from . import annotations, ir
from .errors import ParseError, make_parse_error
from .lexer import Token, TokenType, tokenize

logger = logging.getLogger(__name__)

_CLOSERS = {TokenType.LBRACE: "}", TokenType.LBRACKET: "]"}


class Parser:
    """
    Recursive descent parser for UP.

    Open delimiters are tracked on an explicit stack so that unclosed and
    unexpected-close errors can point back at the opening line.
    """

    def __init__(self, tokens: list[Token], file: Path | None = None, text: str = ""):
        """
        Initialize parser.

        Args:
            tokens: List of tokens from lexer
            file: Source file path (for error reporting)
            text: Source text (for error snippets)
        """
        self.tokens = tokens
        self.file = file
        self.pos = 0
        self.lines = text.split("\n") if text else []
        self.open_stack: list[tuple[Token, str]] = []

    # ------------------------------------------------------------------
    # Token navigation
    # ------------------------------------------------------------------

    def current_token(self) -> Token:
        """Get current token."""
        if self.pos >= len(self.tokens):
            return self.tokens[-1]  # Return EOF
        return self.tokens[self.pos]

    def peek_token(self, offset: int = 1) -> Token:
        """Peek ahead at token."""
        pos = self.pos + offset
        if pos >= len(self.tokens):
            return self.tokens[-1]
        return self.tokens[pos]

    def advance(self) -> Token:
        """Consume and return current token."""
        token = self.current_token()
        if token.type != TokenType.EOF:
            self.pos += 1
        return token

    def match(self, *token_types: TokenType) -> bool:
        return self.current_token().type in token_types

    def expect(self, token_type: TokenType, expectation: str | None = None) -> Token:
        """
        Expect a specific token type and consume it.

        Raises:
            ParseError: If token doesn't match
        """
        token = self.current_token()
        if token.type != token_type:
            raise self.error(
                f"Expected {expectation or token_type.value}, got {self.describe(token)}",
                token,
            )
        return self.advance()

    def skip_blank_lines(self) -> None:
        """Skip newlines and whole-line comments."""
        while self.match(TokenType.NEWLINE, TokenType.COMMENT):
            self.advance()

    def end_statement(self) -> None:
        """Consume an optional trailing comment and the end of the line."""
        if self.match(TokenType.COMMENT):
            self.advance()
        if self.match(TokenType.EOF):
            return
        self.expect(TokenType.NEWLINE, "end of line")

    # ------------------------------------------------------------------
    # Diagnostics
    # ------------------------------------------------------------------

    def describe(self, token: Token) -> str:
        if token.type in (TokenType.VALUE, TokenType.IDENTIFIER, TokenType.STRING):
            return f"{token.type.value} {token.value!r}"
        if token.type in (TokenType.NEWLINE, TokenType.EOF, TokenType.MULTILINE):
            return token.type.value
        return f"'{token.type.value}'"

    def snippet(self, line: int) -> str | None:
        if 1 <= line <= len(self.lines):
            return self.lines[line - 1].rstrip("\r")
        return None

    def error(self, message: str, token: Token) -> ParseError:
        return make_parse_error(
            message, self.file, token.line, token.column, self.snippet(token.line)
        )

    def open_delimiter(self, token: Token, what: str) -> None:
        self.open_stack.append((token, what))

    def close_delimiter(self, closer: TokenType) -> Token:
        """Consume the closing token for the innermost open delimiter."""
        opener, what = self.open_stack[-1]
        token = self.current_token()
        expected = _CLOSERS[opener.type]
        if token.type != closer:
            if token.type == TokenType.EOF:
                message = f"Expected `{expected}` to close {what} opened at line {opener.line}"
            else:
                message = (
                    f"Expected `{expected}` to close {what} opened at line {opener.line}, "
                    f"got {self.describe(token)}"
                )
            raise self.error(message, token)
        self.open_stack.pop()
        return self.advance()

    def unexpected_close(self, token: Token) -> ParseError:
        if self.open_stack:
            opener, what = self.open_stack[-1]
            return self.error(
                f"Unexpected `{token.value}`: expected `{_CLOSERS[opener.type]}` "
                f"to close {what} opened at line {opener.line}",
                token,
            )
        return self.error(f"Unexpected close `{token.value}`: nothing is open", token)

    # ------------------------------------------------------------------
    # Statements
    # ------------------------------------------------------------------

    def parse_document(self) -> ir.Document:
        """Parse the whole token stream as a document."""
        root = ir.Block()
        self.parse_statements(root, closer=None)
        return ir.Document(root=root)

    def parse_statements(self, block: ir.Block, closer: TokenType | None) -> None:
        """Parse statements into ``block`` until ``closer`` (or EOF at top level)."""
        while True:
            self.skip_blank_lines()
            token = self.current_token()

            if token.type == TokenType.EOF:
                if closer is not None:
                    self.close_delimiter(closer)  # raises the unclosed error
                return
            if token.type in (TokenType.RBRACE, TokenType.RBRACKET):
                if closer is not None and token.type == closer:
                    return
                raise self.unexpected_close(token)

            entry = self.parse_statement()
            if entry.key in block:
                previous = block.get(entry.key)
                raise make_parse_error(
                    f"Duplicate key '{entry.key}' (first defined at line {previous.line})",
                    self.file,
                    entry.line,
                    entry.column,
                    self.snippet(entry.line),
                )
            block.set(entry)

    def parse_statement(self) -> ir.Entry:
        """Parse ``key [!type] [value]`` up to and including the end of line."""
        token = self.current_token()
        key: str | None = None
        if token.type == TokenType.IDENTIFIER:
            key = self.advance().value
        elif token.type != TokenType.BANG:
            raise self.error(f"Expected key, got {self.describe(token)}", token)

        type_annotation: str | None = None
        if self.match(TokenType.BANG):
            self.advance()
            type_annotation = self.expect(TokenType.IDENTIFIER, "type annotation").value

        if key is None:
            # Key-less directive line such as ``!base other.up``
            key = type_annotation

        value = self.parse_value(type_annotation)
        self.end_statement()
        return ir.Entry(
            key=key, type=type_annotation, value=value, line=token.line, column=token.column
        )

    # ------------------------------------------------------------------
    # Values
    # ------------------------------------------------------------------

    def parse_value(self, type_annotation: str | None) -> ir.Value:
        token = self.current_token()

        if token.type in (TokenType.NEWLINE, TokenType.EOF, TokenType.COMMENT):
            return ir.Scalar(text="")
        if token.type == TokenType.LBRACE:
            if annotations.is_table(type_annotation) or self.looks_like_table():
                return self.parse_table()
            ordering = (
                ir.BlockOrdering.INSERTION
                if annotations.is_ordered_block(type_annotation)
                else ir.BlockOrdering.KEYED
            )
            return self.parse_block(ordering)
        if token.type == TokenType.LBRACKET:
            return self.parse_list()
        if token.type == TokenType.FENCE:
            return self.parse_multiline(annotations.dedent_count(type_annotation))
        if token.type == TokenType.STRING:
            return ir.Scalar(text=self.advance().value, quoted=True)
        if token.type == TokenType.VALUE:
            return ir.Scalar(text=self.advance().value)
        if token.type in (TokenType.RBRACE, TokenType.RBRACKET):
            raise self.unexpected_close(token)
        raise self.error(f"Expected value, got {self.describe(token)}", token)

    def parse_block(self, ordering: ir.BlockOrdering) -> ir.Block:
        """Parse ``{`` NEWLINE statements ``}`` (or the empty ``{}``)."""
        opener = self.expect(TokenType.LBRACE)
        self.open_delimiter(opener, "block")
        block = ir.Block(ordering=ordering)

        if self.match(TokenType.RBRACE):
            self.close_delimiter(TokenType.RBRACE)
            return block

        self.end_statement()
        self.parse_statements(block, closer=TokenType.RBRACE)
        self.close_delimiter(TokenType.RBRACE)
        return block

    def parse_list(self) -> ir.ListValue:
        """Parse an inline ``[a, b]`` or multiline ``[`` ... ``]`` list."""
        opener = self.expect(TokenType.LBRACKET)
        self.open_delimiter(opener, "list")

        if self.match(TokenType.NEWLINE, TokenType.COMMENT):
            items = self.parse_multiline_list_items()
        else:
            items = self.parse_inline_items()

        self.close_delimiter(TokenType.RBRACKET)
        return ir.ListValue(items=items)

    def parse_inline_items(self) -> list[ir.Value]:
        items: list[ir.Value] = []
        if self.match(TokenType.RBRACKET):
            return items

        while True:
            token = self.current_token()
            if token.type == TokenType.STRING:
                items.append(ir.Scalar(text=self.advance().value, quoted=True))
            elif token.type == TokenType.VALUE:
                items.append(ir.Scalar(text=self.advance().value))
            elif token.type == TokenType.LBRACKET:
                items.append(self.parse_list())
            elif token.type == TokenType.EOF:
                self.close_delimiter(TokenType.RBRACKET)  # raises the unclosed error
            else:
                raise self.error(f"Expected list item, got {self.describe(token)}", token)

            if self.match(TokenType.COMMA):
                self.advance()
                continue
            return items

    def parse_multiline_list_items(self) -> list[ir.Value]:
        items: list[ir.Value] = []
        while True:
            self.skip_blank_lines()
            token = self.current_token()
            if token.type in (TokenType.RBRACKET, TokenType.EOF):
                return items
            if token.type == TokenType.RBRACE:
                raise self.unexpected_close(token)

            if token.type == TokenType.LBRACE:
                items.append(self.parse_block(ir.BlockOrdering.KEYED))
            elif token.type == TokenType.LBRACKET:
                items.append(self.parse_list())
            elif token.type == TokenType.FENCE:
                items.append(self.parse_multiline(None))
            elif token.type == TokenType.STRING:
                items.append(ir.Scalar(text=self.advance().value, quoted=True))
            elif token.type == TokenType.VALUE:
                items.append(ir.Scalar(text=self.advance().value))
            else:
                raise self.error(f"Expected list item, got {self.describe(token)}", token)
            self.end_statement()

    def parse_multiline(self, dedent: int | None) -> ir.Multiline:
        fence = self.expect(TokenType.FENCE)
        content = self.expect(TokenType.MULTILINE)
        text = content.value
        if dedent:
            text = self.dedent(content, dedent)
        return ir.Multiline(text=text, language=fence.value or None, dedent=dedent)

    def dedent(self, content: Token, count: int) -> str:
        """Strip exactly ``count`` leading columns from every captured line."""
        result = []
        for offset, line in enumerate(content.value.split("\n")):
            if not line.strip():
                result.append(line[count:])
                continue
            indent = len(line) - len(line.lstrip(" \t"))
            if indent < count:
                line_no = content.line + offset
                raise make_parse_error(
                    f"Dedent count {count} exceeds indentation ({indent}) of line {line_no}",
                    self.file,
                    line_no,
                    indent + 1,
                    self.snippet(line_no),
                )
            result.append(line[count:])
        return "\n".join(result)

    # ------------------------------------------------------------------
    # Tables
    # ------------------------------------------------------------------

    def looks_like_table(self) -> bool:
        """
        Lookahead after ``{``: is the first inner statement ``columns [...]``
        immediately followed by a ``rows`` statement?
        """
        pos = self.pos + 1
        tokens = self.tokens

        def skip_blank(p: int) -> int:
            while p < len(tokens) and tokens[p].type in (TokenType.NEWLINE, TokenType.COMMENT):
                p += 1
            return p

        pos = skip_blank(pos)
        if pos + 1 >= len(tokens):
            return False
        if not (
            tokens[pos].type == TokenType.IDENTIFIER
            and tokens[pos].value == "columns"
            and tokens[pos + 1].type == TokenType.LBRACKET
        ):
            return False

        depth = 0
        pos += 1
        while pos < len(tokens):
            token_type = tokens[pos].type
            if token_type == TokenType.LBRACKET:
                depth += 1
            elif token_type == TokenType.RBRACKET:
                depth -= 1
                if depth == 0:
                    break
            elif token_type in (TokenType.NEWLINE, TokenType.EOF):
                return False
            pos += 1

        pos = skip_blank(pos + 1)
        return (
            pos < len(tokens)
            and tokens[pos].type == TokenType.IDENTIFIER
            and tokens[pos].value == "rows"
        )

    def parse_table(self) -> ir.Table:
        """
        Parse a table::

            {
              columns [id, name]
              rows {
                [1, alice]
                [2, bob]
              }
            }

        `rows` may also be a list of rows, multiline or inline.
        """
        opener = self.expect(TokenType.LBRACE)
        self.open_delimiter(opener, "table")
        self.end_statement()

        self.skip_blank_lines()
        self.expect_table_key("columns")
        columns_token = self.current_token()
        if columns_token.type != TokenType.LBRACKET:
            raise self.error(
                f"Expected inline list of column names, got {self.describe(columns_token)}",
                columns_token,
            )
        columns = self.parse_row()
        self.end_statement()

        self.skip_blank_lines()
        self.expect_table_key("rows")
        rows_opener = self.current_token()
        closers = {TokenType.LBRACE: TokenType.RBRACE, TokenType.LBRACKET: TokenType.RBRACKET}
        if rows_opener.type not in closers:
            raise self.error(
                f"Expected `{{` or `[` to open table rows, got {self.describe(rows_opener)}",
                rows_opener,
            )
        closer = closers[rows_opener.type]
        self.advance()
        self.open_delimiter(rows_opener, "table rows")
        # `rows [[1, a], [2, b]]` keeps its rows on one line
        inline = closer == TokenType.RBRACKET and not self.match(
            TokenType.NEWLINE, TokenType.COMMENT
        )
        if not inline:
            self.end_statement()

        rows: list[list[ir.Scalar]] = []
        while True:
            if not inline:
                self.skip_blank_lines()
            token = self.current_token()
            if token.type in (TokenType.RBRACE, TokenType.RBRACKET, TokenType.EOF):
                break
            if token.type != TokenType.LBRACKET:
                raise self.error(f"Expected table row `[...]`, got {self.describe(token)}", token)
            row = self.parse_row()
            if len(row) != len(columns):
                raise self.error(
                    f"Table row has {len(row)} values but {len(columns)} columns are declared",
                    token,
                )
            rows.append([ir.Scalar(text=cell) for cell in row])
            if not inline:
                self.end_statement()
            elif self.match(TokenType.COMMA):
                self.advance()
            else:
                break

        self.close_delimiter(closer)
        self.end_statement()
        self.skip_blank_lines()
        self.close_delimiter(TokenType.RBRACE)
        return ir.Table(columns=columns, rows=rows)

    def expect_table_key(self, name: str) -> None:
        token = self.current_token()
        if token.type != TokenType.IDENTIFIER or token.value != name:
            raise self.error(
                f"Expected `{name}` in table, got {self.describe(token)}",
                token,
            )
        self.advance()

    def parse_row(self) -> list[str]:
        """Parse an inline ``[a, b, c]`` of scalar cells."""
        opener = self.expect(TokenType.LBRACKET)
        self.open_delimiter(opener, "row")
        cells: list[str] = []
        if not self.match(TokenType.RBRACKET):
            while True:
                token = self.current_token()
                if token.type not in (TokenType.VALUE, TokenType.STRING):
                    if token.type == TokenType.EOF:
                        self.close_delimiter(TokenType.RBRACKET)
                    raise self.error(f"Expected table cell, got {self.describe(token)}", token)
                cells.append(self.advance().value)
                if not self.match(TokenType.COMMA):
                    break
                self.advance()
        self.close_delimiter(TokenType.RBRACKET)
        return cells


def parse_document(
    text: str, file: Path | None = None, source: str | None = None
) -> ir.Document:
    """
    Parse UP source text into a Document.

    Args:
        text: Source text
        file: Source file path (for error reporting)
        source: Loader identifier recorded on the document

    Returns:
        The parsed Document

    Raises:
        LexError: If the text cannot be tokenized
        ParseError: On the first structural error
    """
    tokens = tokenize(text, file)
    parser = Parser(tokens, file, text)
    document = parser.parse_document()
    if source is None and file is not None:
        source = str(file)
    logger.debug("Parsed %s: %d top-level entries", source or "<input>", len(document.root))
    return document.model_copy(update={"source": source})


def parse_file(path: Path) -> ir.Document:
    """Read and parse a UP file."""
    text = path.read_text(encoding="utf-8")
    return parse_document(text, path, str(path.resolve()))
