"""Tokenizer for condition text."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum

from aiflow_runtime.exceptions import ConditionParseError


class TokenType(str, Enum):
    IDENT = "IDENT"
    STRING = "STRING"
    NUMBER = "NUMBER"
    OP = "OP"
    LPAREN = "LPAREN"
    RPAREN = "RPAREN"
    COMMA = "COMMA"
    EOF = "EOF"


@dataclass(frozen=True, slots=True)
class Token:
    type: TokenType
    value: str = ""
    position: int = 0


_PUNCTUATION: dict[str, TokenType] = {
    "(": TokenType.LPAREN,
    ")": TokenType.RPAREN,
    ",": TokenType.COMMA,
}

_OPERATOR_START = "=!<>"


def _is_ident_start(ch: str) -> bool:
    return ch.isascii() and (ch.isalpha() or ch == "_")


def _is_ident_char(ch: str) -> bool:
    # Dots are part of identifiers so that `output.score` lexes as one path.
    return ch.isascii() and (ch.isalnum() or ch in "_.")


def _is_digit(ch: str) -> bool:
    return "0" <= ch <= "9"


class Lexer:
    """Produces tokens one at a time; `EOF` is returned repeatedly at the end."""

    def __init__(self, text: str) -> None:
        self._text = text
        self._pos = 0

    def _peek(self, offset: int = 0) -> str:
        idx = self._pos + offset
        return self._text[idx] if idx < len(self._text) else ""

    def _read_while(self, predicate: Callable[[str], bool]) -> str:
        start = self._pos
        while self._pos < len(self._text) and predicate(self._text[self._pos]):
            self._pos += 1
        return self._text[start : self._pos]

    def _read_string(self, quote: str) -> str:
        start = self._pos
        self._pos += 1
        chars: list[str] = []
        while self._pos < len(self._text):
            ch = self._text[self._pos]
            if ch == "\\" and self._pos + 1 < len(self._text):
                chars.append(self._text[self._pos + 1])
                self._pos += 2
                continue
            if ch == quote:
                self._pos += 1
                return "".join(chars)
            chars.append(ch)
            self._pos += 1
        raise ConditionParseError(
            f"Unterminated string literal starting at position {start}",
            expression=self._text,
            position=start,
        )

    def next_token(self) -> Token:
        self._read_while(str.isspace)
        start = self._pos
        ch = self._peek()

        if not ch:
            return Token(TokenType.EOF, position=start)

        if ch in _PUNCTUATION:
            self._pos += 1
            return Token(_PUNCTUATION[ch], ch, start)

        if ch in _OPERATOR_START:
            self._pos += 1
            op = ch
            if self._peek() == "=":
                self._pos += 1
                op += "="
            return Token(TokenType.OP, op, start)

        if ch in "'\"":
            return Token(TokenType.STRING, self._read_string(ch), start)

        if _is_digit(ch) or (ch == "-" and _is_digit(self._peek(1))):
            self._pos += 1
            number = ch + self._read_while(lambda c: _is_digit(c) or c == ".")
            return Token(TokenType.NUMBER, number, start)

        if _is_ident_start(ch):
            return Token(TokenType.IDENT, self._read_while(_is_ident_char), start)

        raise ConditionParseError(
            f"Unexpected character in condition: '{ch}' at position {start}",
            expression=self._text,
            position=start,
        )


def tokenize(text: str) -> list[Token]:
    """Tokenize a whole condition string, including the trailing EOF token."""

    lexer = Lexer(text)
    tokens: list[Token] = []
    while True:
        token = lexer.next_token()
        tokens.append(token)
        if token.type is TokenType.EOF:
            return tokens
