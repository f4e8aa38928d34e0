"""
Lexer/Tokenizer for the UP document language.

Converts raw text into a stream of line-scoped tokens with source location
tracking. Triple-backtick fences switch the lexer into a raw-capture mode
that emits the enclosed text verbatim as a single token.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from .errors import make_lex_error


class TokenType(Enum):
    """Token types in the UP language."""

    IDENTIFIER = "identifier"
    VALUE = "value"
    STRING = "string"

    BANG = "!"
    LBRACE = "{"
    RBRACE = "}"
    LBRACKET = "["
    RBRACKET = "]"
    COMMA = ","

    COMMENT = "comment"
    FENCE = "```"
    MULTILINE = "multiline"

    NEWLINE = "newline"
    EOF = "end of input"


FENCE = "```"
WILDCARD = "[*]"

# Characters that end an unquoted value in any context
_VALUE_STOP = frozenset("\n#{}[]")

_DELIMITERS = {
    "{": TokenType.LBRACE,
    "}": TokenType.RBRACE,
    "[": TokenType.LBRACKET,
    "]": TokenType.RBRACKET,
}


def _is_key_start(ch: str) -> bool:
    return ch.isascii() and (ch.isalpha() or ch == "_")


def _is_key_char(ch: str) -> bool:
    return ch.isascii() and (ch.isalnum() or ch in "_.-")


def _is_annotation_char(ch: str) -> bool:
    return ch.isascii() and (ch.isalnum() or ch in "_-")


@dataclass
class Token:
    """
    A single token from the lexer.

    Attributes:
        type: Token type
        value: String value of the token
        line: Line number (1-indexed)
        column: Column number (1-indexed)
    """

    type: TokenType
    value: str
    line: int
    column: int

    def __repr__(self) -> str:
        return f"Token({self.type.name}, {self.value!r}, {self.line}:{self.column})"


class Lexer:
    """
    Lexer for UP documents.

    Lines inside a ``{`` (or at top level) begin with a key; lines inside a
    ``[`` hold only values. The lexer tracks which delimiter is innermost so
    it can tell the two apart in a single forward pass.
    """

    def __init__(self, text: str, file: Path | None = None):
        """
        Initialize lexer.

        Args:
            text: Source text to tokenize
            file: Source file path (for error reporting)
        """
        self.text = text
        self.file = file
        self.pos = 0
        self.line = 1
        self.column = 1
        self.tokens: list[Token] = []
        self.context: list[str] = []  # innermost open delimiter last
        self.lines = text.split("\n")

    def current_char(self) -> str | None:
        """Get current character or None if at end."""
        if self.pos >= len(self.text):
            return None
        return self.text[self.pos]

    def peek_char(self, offset: int = 1) -> str | None:
        """Peek ahead at character."""
        pos = self.pos + offset
        if pos >= len(self.text):
            return None
        return self.text[pos]

    def at_fence(self) -> bool:
        return self.text.startswith(FENCE, self.pos)

    def advance(self, count: int = 1) -> None:
        """Move forward, updating line/column."""
        for _ in range(count):
            if self.pos >= len(self.text):
                return
            if self.text[self.pos] == "\n":
                self.line += 1
                self.column = 1
            else:
                self.column += 1
            self.pos += 1

    def emit(self, token_type: TokenType, value: str, line: int, column: int) -> None:
        self.tokens.append(Token(token_type, value, line, column))

    def in_list(self) -> bool:
        return bool(self.context) and self.context[-1] == "["

    def snippet(self, line: int) -> str | None:
        if 1 <= line <= len(self.lines):
            return self.lines[line - 1].rstrip("\r")
        return None

    def skip_whitespace(self) -> None:
        """Skip whitespace characters (not newlines)."""
        while self.current_char() in (" ", "\t", "\r"):
            self.advance()

    def read_comment(self) -> str:
        """Read a comment from # to end of line."""
        chars = []
        self.advance()  # skip '#'
        while self.current_char() not in (None, "\n"):
            chars.append(self.current_char())
            self.advance()
        return "".join(chars).strip()

    def read_key(self) -> str:
        """Read a key; ``[*]`` may appear inside it (patch paths)."""
        chars = []
        while True:
            current = self.current_char()
            if current is not None and _is_key_char(current):
                chars.append(current)
                self.advance()
            elif self.text.startswith(WILDCARD, self.pos):
                chars.append(WILDCARD)
                self.advance(len(WILDCARD))
            else:
                break
        return "".join(chars)

    def read_annotation(self) -> None:
        """Read ``!name`` and emit BANG + IDENTIFIER."""
        line, column = self.line, self.column
        self.emit(TokenType.BANG, "!", line, column)
        self.advance()  # skip '!'

        chars = []
        while (current := self.current_char()) is not None and _is_annotation_char(current):
            chars.append(current)
            self.advance()
        if not chars:
            raise make_lex_error(
                "Expected a type annotation name after '!'",
                self.file,
                line,
                column,
                self.snippet(line),
            )
        self.emit(TokenType.IDENTIFIER, "".join(chars), line, column + 1)

    def read_string(self) -> str:
        """Read a quoted string."""
        start_line = self.line
        start_col = self.column
        quote = self.current_char()  # " or '
        self.advance()  # skip opening quote

        chars = []
        while True:
            current = self.current_char()
            if current is None or current == quote or current == "\n":
                break
            if current == "\\":
                self.advance()
                escape_char = self.current_char()
                if escape_char == "n":
                    chars.append("\n")
                elif escape_char == "t":
                    chars.append("\t")
                elif escape_char == "\\":
                    chars.append("\\")
                elif escape_char and escape_char == quote:
                    chars.append(quote)
                elif escape_char and escape_char != "\n":
                    chars.append("\\" + escape_char)
                else:
                    break
                self.advance()
            else:
                chars.append(current)
                self.advance()

        if self.current_char() != quote:
            raise make_lex_error(
                "Unterminated string literal",
                self.file,
                start_line,
                start_col,
                self.snippet(start_line),
            )

        self.advance()  # skip closing quote
        return "".join(chars)

    def read_value(self) -> str:
        """Read an unquoted value up to a structural character or end of line."""
        chars = []
        while (current := self.current_char()) is not None:
            if current in _VALUE_STOP or self.at_fence():
                break
            if current == "," and self.in_list():
                break
            chars.append(current)
            self.advance()
        return "".join(chars).rstrip(" \t\r")

    def read_multiline(self) -> None:
        """
        Capture a fenced block verbatim.

        Emits FENCE (value = language hint) followed by MULTILINE (content).
        The closing fence is the first later line whose first non-blank text
        is a triple backtick.
        """
        open_line, open_col = self.line, self.column
        self.advance(len(FENCE))

        hint_chars = []
        while (current := self.current_char()) is not None and current != "\n":
            hint_chars.append(current)
            self.advance()
        hint = "".join(hint_chars).strip()
        self.emit(TokenType.FENCE, hint, open_line, open_col)

        if self.current_char() is None:
            raise self._unterminated(open_line, open_col)
        self.advance()  # newline after the opening fence

        content_line = self.line
        captured: list[str] = []
        while True:
            if self.pos >= len(self.text):
                raise self._unterminated(open_line, open_col)
            end = self.text.find("\n", self.pos)
            raw = self.text[self.pos :] if end == -1 else self.text[self.pos : end]
            stripped = raw.lstrip(" \t")
            if stripped.startswith(FENCE):
                self.advance(len(raw) - len(stripped) + len(FENCE))
                break
            captured.append(raw[:-1] if raw.endswith("\r") else raw)
            self.advance(len(raw) + (0 if end == -1 else 1))

        self.emit(TokenType.MULTILINE, "\n".join(captured), content_line, 1)

    def _unterminated(self, line: int, column: int):
        return make_lex_error(
            f"Unterminated multiline block opened at line {line}",
            self.file,
            line,
            column,
            self.snippet(line),
        )

    def tokenize(self) -> list[Token]:
        """
        Tokenize the entire source text.

        Returns:
            List of tokens ending with EOF

        Raises:
            LexError: If the text cannot be tokenized
        """
        line_head = True

        while self.pos < len(self.text):
            self.skip_whitespace()
            ch = self.current_char()
            if ch is None:
                break

            token_line = self.line
            token_col = self.column

            if ch == "\n":
                self.emit(TokenType.NEWLINE, "\\n", token_line, token_col)
                self.advance()
                line_head = True
                continue

            if ch == "#":
                self.emit(TokenType.COMMENT, self.read_comment(), token_line, token_col)
                continue

            if self.at_fence():
                self.read_multiline()
                line_head = False
                continue

            # Keys and directives start lines in keyed context
            if line_head and not self.in_list():
                line_head = False
                if _is_key_start(ch):
                    self.emit(TokenType.IDENTIFIER, self.read_key(), token_line, token_col)
                    if self.current_char() == "!":
                        self.read_annotation()
                    continue
                if ch == "!":
                    self.read_annotation()
                    continue

            line_head = False

            if ch in _DELIMITERS:
                self.emit(_DELIMITERS[ch], ch, token_line, token_col)
                self.advance()
                if ch in "{[":
                    self.context.append(ch)
                elif self.context:
                    self.context.pop()
            elif ch == "," and self.in_list():
                self.emit(TokenType.COMMA, ",", token_line, token_col)
                self.advance()
            elif ch in ('"', "'"):
                self.emit(TokenType.STRING, self.read_string(), token_line, token_col)
            else:
                self.emit(TokenType.VALUE, self.read_value(), token_line, token_col)

        self.emit(TokenType.EOF, "", self.line, self.column)
        return self.tokens


def tokenize(text: str, file: Path | None = None) -> list[Token]:
    """
    Convenience function to tokenize source text.

    Args:
        text: Source text
        file: Source file path

    Returns:
        List of tokens
    """
    lexer = Lexer(text, file)
    return lexer.tokenize()
