"""Condition AST.

The node set is closed: `ConditionAst` is the union of the six node types
below and every consumer matches on it exhaustively.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from enum import Enum
from typing import assert_never


class ComparisonOp(str, Enum):
    EQ = "=="
    NE = "!="
    GT = ">"
    LT = "<"
    GE = ">="
    LE = "<="


class LogicalOp(str, Enum):
    AND = "AND"
    OR = "OR"


@dataclass(frozen=True, slots=True)
class Literal:
    value: object


@dataclass(frozen=True, slots=True)
class Path:
    segments: tuple[str, ...]

    @property
    def dotted(self) -> str:
        return ".".join(self.segments)


@dataclass(frozen=True, slots=True)
class Comparison:
    op: ComparisonOp
    left: ConditionAst
    right: ConditionAst


@dataclass(frozen=True, slots=True)
class Logical:
    op: LogicalOp
    left: ConditionAst
    right: ConditionAst


@dataclass(frozen=True, slots=True)
class Not:
    expr: ConditionAst


@dataclass(frozen=True, slots=True)
class Call:
    fn: str
    args: tuple[ConditionAst, ...]


ConditionAst = Literal | Path | Comparison | Logical | Not | Call


def render(node: ConditionAst) -> str:
    """Render a node back to canonical condition text."""

    match node:
        case Literal(value=value):
            if isinstance(value, bool):
                return "true" if value else "false"
            if isinstance(value, str):
                return json.dumps(value, ensure_ascii=False)
            return repr(value)
        case Path():
            return node.dotted
        case Comparison(op=op, left=left, right=right):
            return f"{render(left)} {op.value} {render(right)}"
        case Logical(op=op, left=left, right=right):
            return f"({render(left)} {op.value} {render(right)})"
        case Not(expr=expr):
            return f"NOT {render(expr)}"
        case Call(fn=fn, args=args):
            return f"{fn}({', '.join(render(a) for a in args)})"
    assert_never(node)
