"""Recursive-descent parser for the condition language.

Grammar, lowest to highest precedence::

    Or      := And ("OR" And)*
    And     := Not ("AND" Not)*
    Not     := "NOT" Not | Primary
    Primary := "(" Or ")"
             | "contains" "(" Or ("," Or)* ")"
             | ("always" | "true" | "false") [OP Primary]
             | IDENT [OP Primary]
             | (STRING | NUMBER) [OP Primary]

Keywords are case-insensitive. Anything else is a `ConditionParseError`.
"""

from __future__ import annotations

from functools import lru_cache

from aiflow_runtime.conditions.lexer import Lexer, Token, TokenType
from aiflow_runtime.conditions.nodes import (
    Call,
    Comparison,
    ComparisonOp,
    ConditionAst,
    Literal,
    Logical,
    LogicalOp,
    Not,
    Path,
)
from aiflow_runtime.exceptions import ConditionParseError

_KEYWORD_LITERALS: dict[str, bool] = {"always": True, "true": True, "false": False}
_COMPARISON_OPS = {op.value: op for op in ComparisonOp}
_CONTAINS_ARITY = 2


class Parser:
    def __init__(self, text: str) -> None:
        self._text = text
        self._lexer = Lexer(text)
        self._current: Token = self._lexer.next_token()

    def _error(self, message: str, token: Token | None = None) -> ConditionParseError:
        token = token or self._current
        return ConditionParseError(
            f"{message} at position {token.position}",
            expression=self._text,
            position=token.position,
        )

    def _advance(self) -> Token:
        token = self._current
        self._current = self._lexer.next_token()
        return token

    def _consume(self, expected: TokenType) -> Token:
        if self._current.type is not expected:
            raise self._error(f"Expected {expected.value}, got {self._current.type.value}")
        return self._advance()

    def _match_keyword(self, keyword: str) -> bool:
        if self._current.type is TokenType.IDENT and self._current.value.upper() == keyword:
            self._advance()
            return True
        return False

    def parse(self) -> ConditionAst:
        expr = self._parse_or()
        self._consume(TokenType.EOF)
        return expr

    def _parse_or(self) -> ConditionAst:
        left = self._parse_and()
        while self._match_keyword(LogicalOp.OR.value):
            left = Logical(LogicalOp.OR, left, self._parse_and())
        return left

    def _parse_and(self) -> ConditionAst:
        left = self._parse_not()
        while self._match_keyword(LogicalOp.AND.value):
            left = Logical(LogicalOp.AND, left, self._parse_not())
        return left

    def _parse_not(self) -> ConditionAst:
        if self._match_keyword("NOT"):
            return Not(self._parse_not())
        return self._parse_primary()

    def _parse_primary(self) -> ConditionAst:
        token = self._current

        if token.type is TokenType.LPAREN:
            self._advance()
            expr = self._parse_or()
            self._consume(TokenType.RPAREN)
            return expr

        if token.type is TokenType.IDENT:
            keyword = token.value.lower()
            if keyword in _KEYWORD_LITERALS:
                self._advance()
                return self._maybe_comparison(Literal(_KEYWORD_LITERALS[keyword]))
            if token.value == "contains":
                return self._parse_contains()
            self._advance()
            return self._maybe_comparison(Path(tuple(token.value.split("."))))

        if token.type is TokenType.STRING:
            self._advance()
            return self._maybe_comparison(Literal(token.value))

        if token.type is TokenType.NUMBER:
            self._advance()
            return self._maybe_comparison(Literal(self._number(token)))

        raise self._error(f"Unexpected token {token.type.value}")

    def _parse_contains(self) -> ConditionAst:
        name = self._advance()
        self._consume(TokenType.LPAREN)
        args: list[ConditionAst] = []
        if self._current.type is not TokenType.RPAREN:
            args.append(self._parse_or())
            while self._current.type is TokenType.COMMA:
                self._advance()
                args.append(self._parse_or())
        self._consume(TokenType.RPAREN)
        if len(args) != _CONTAINS_ARITY:
            raise self._error(f"contains() expects {_CONTAINS_ARITY} arguments, got {len(args)}", name)
        return Call("contains", tuple(args))

    def _maybe_comparison(self, left: ConditionAst) -> ConditionAst:
        if self._current.type is not TokenType.OP:
            return left
        op_token = self._advance()
        op = _COMPARISON_OPS.get(op_token.value)
        if op is None:
            raise self._error(f"Unknown comparison operator '{op_token.value}'", op_token)
        return Comparison(op, left, self._parse_primary())

    def _number(self, token: Token) -> int | float:
        text = token.value
        try:
            return float(text) if "." in text else int(text)
        except ValueError:
            raise self._error(f"Invalid number literal '{text}'", token) from None


@lru_cache(maxsize=512)
def parse_condition(text: str) -> ConditionAst:
    """Parse condition text into an AST.

    Raises:
        ConditionParseError: If the text is not valid in the strict grammar.
    """

    return Parser(text).parse()
