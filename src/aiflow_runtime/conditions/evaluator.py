"""Tree-walking evaluator for parsed conditions.

Evaluation is pure. Both operands of AND/OR are always evaluated (left,
then right) so the explanation can record every referenced field; the
explanation also records which side decided the result.

Value semantics:

* A path is walked segment by segment through mappings (and lists, for
  integer segments). Walking through null or a missing key yields
  `MISSING`, which is falsy and fails every numeric comparison.
* Truthiness follows JSON-runtime rules: `MISSING`, null, false, 0, NaN and
  the empty string are falsy; every list and object is truthy.
* Comparisons: when both sides are numbers or numeric-like strings they are
  compared as numbers. Otherwise `==`/`!=` use structural equality (null
  and `MISSING` are equal to each other) and ordering operators are false.
"""

from __future__ import annotations

import json
import math
import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, assert_never

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
    render,
)
from aiflow_runtime.conditions.parser import parse_condition


class _Missing:
    """Marker for a path that does not resolve."""

    _instance: _Missing | None = None

    def __new__(cls) -> _Missing:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "MISSING"


MISSING: Any = _Missing()

_NUMERIC_RE = re.compile(r"^[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?$")


def resolve_path(scope: object, segments: Sequence[str]) -> Any:
    current: Any = scope
    for segment in segments:
        if current is None or current is MISSING:
            return MISSING
        if isinstance(current, Mapping):
            current = current.get(segment, MISSING)
        elif isinstance(current, list | tuple) and segment.isdigit():
            idx = int(segment)
            current = current[idx] if idx < len(current) else MISSING
        else:
            return MISSING
    return current


def truthy(value: object) -> bool:
    if value is MISSING or value is None or value is False:
        return False
    if isinstance(value, int | float) and not isinstance(value, bool):
        return value != 0 and not math.isnan(value)
    if isinstance(value, str):
        return value != ""
    return True


def as_number(value: object) -> int | float | None:
    """Return the numeric view of a number or numeric-like string, else None.

    Integers stay integers so that values beyond float range still compare exactly.
    """

    if isinstance(value, bool):
        return None
    if isinstance(value, int | float):
        return value
    if isinstance(value, str) and _NUMERIC_RE.match(value.strip()):
        text = value.strip()
        try:
            return int(text)
        except ValueError:
            return float(text)
    return None


def _loose_equal(left: object, right: object) -> bool:
    left_absent = left is None or left is MISSING
    right_absent = right is None or right is MISSING
    if left_absent or right_absent:
        return left_absent and right_absent
    return left == right


def compare_values(op: ComparisonOp, left: object, right: object) -> bool:
    lnum, rnum = as_number(left), as_number(right)
    if lnum is not None and rnum is not None:
        match op:
            case ComparisonOp.EQ:
                return lnum == rnum
            case ComparisonOp.NE:
                return lnum != rnum
            case ComparisonOp.GT:
                return lnum > rnum
            case ComparisonOp.LT:
                return lnum < rnum
            case ComparisonOp.GE:
                return lnum >= rnum
            case ComparisonOp.LE:
                return lnum <= rnum
        assert_never(op)

    if op is ComparisonOp.EQ:
        return _loose_equal(left, right)
    if op is ComparisonOp.NE:
        return not _loose_equal(left, right)
    return False


def stringify(value: object) -> str:
    """String form used by `contains` for a non-string needle."""

    if value is MISSING:
        return "undefined"
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, Mapping | list | tuple):
        return json.dumps(value, ensure_ascii=False, default=str)
    return str(value)


def _same_element(item: object, needle: object) -> bool:
    # Booleans never match numbers: [1] does not contain true.
    if isinstance(item, bool) is not isinstance(needle, bool):
        return False
    return item == needle


def contains(haystack: object, needle: object) -> bool:
    if isinstance(haystack, list | tuple):
        return any(_same_element(item, needle) for item in haystack)
    if isinstance(haystack, str):
        return stringify(needle) in haystack
    return False


def json_safe(value: object) -> Any:
    return None if value is MISSING else value


@dataclass(frozen=True, slots=True)
class ExplanationNode:
    """One evaluated sub-expression.

    `value` is the resolved runtime value for FIELD and LITERAL nodes and the
    boolean outcome for every other kind.
    """

    kind: str
    raw: str
    result: bool
    value: Any = None
    operator: str | None = None
    decided_by: str | None = None
    children: tuple[ExplanationNode, ...] = ()

    def to_json(self) -> dict[str, object]:
        out: dict[str, object] = {
            "kind": self.kind,
            "raw": self.raw,
            "result": self.result,
            "value": json_safe(self.value),
        }
        if self.kind == "FIELD":
            out["resolved"] = self.value is not MISSING
        if self.operator is not None:
            out["operator"] = self.operator
        if self.decided_by is not None:
            out["decided_by"] = self.decided_by
        if self.children:
            out["children"] = [c.to_json() for c in self.children]
        return out


@dataclass(frozen=True, slots=True)
class ReferencedField:
    path: str
    value: Any

    def to_json(self) -> dict[str, object]:
        return {"path": self.path, "value": json_safe(self.value), "resolved": self.value is not MISSING}


@dataclass(frozen=True, slots=True)
class ConditionExplanation:
    expression: str
    result: bool
    root: ExplanationNode
    referenced_fields: tuple[ReferencedField, ...] = field(default_factory=tuple)

    def to_json(self) -> dict[str, object]:
        return {
            "expression": self.expression,
            "result": self.result,
            "root": self.root.to_json(),
            "referenced_fields": [f.to_json() for f in self.referenced_fields],
        }


def _walk(node: ConditionAst, scope: Mapping[str, Any], fields: list[ReferencedField]) -> ExplanationNode:
    match node:
        case Literal(value=value):
            return ExplanationNode("LITERAL", render(node), truthy(value), value=value)
        case Path(segments=segments):
            resolved = resolve_path(scope, segments)
            fields.append(ReferencedField(node.dotted, resolved))
            return ExplanationNode("FIELD", node.dotted, truthy(resolved), value=resolved)
        case Comparison(op=op, left=left, right=right):
            lnode = _walk(left, scope, fields)
            rnode = _walk(right, scope, fields)
            result = compare_values(op, _operand(lnode), _operand(rnode))
            return ExplanationNode(
                "COMPARE", render(node), result, value=result, operator=op.value, children=(lnode, rnode)
            )
        case Logical(op=op, left=left, right=right):
            lnode = _walk(left, scope, fields)
            rnode = _walk(right, scope, fields)
            if op is LogicalOp.AND:
                result = lnode.result and rnode.result
                decided_by = "right" if lnode.result else "left"
            else:
                result = lnode.result or rnode.result
                decided_by = "left" if lnode.result else "right"
            return ExplanationNode(
                op.value,
                render(node),
                result,
                value=result,
                operator=op.value,
                decided_by=decided_by,
                children=(lnode, rnode),
            )
        case Not(expr=expr):
            inner = _walk(expr, scope, fields)
            return ExplanationNode("NOT", render(node), not inner.result, value=not inner.result, children=(inner,))
        case Call(fn=fn, args=args):
            arg_nodes = tuple(_walk(arg, scope, fields) for arg in args)
            if fn != "contains":
                raise ValueError(f"Unknown function: {fn}")
            result = contains(_operand(arg_nodes[0]), _operand(arg_nodes[1]))
            return ExplanationNode("CALL", render(node), result, value=result, operator=fn, children=arg_nodes)
    assert_never(node)


def _operand(node: ExplanationNode) -> Any:
    # Fields and literals contribute their raw value; composite nodes their boolean.
    if node.kind in ("FIELD", "LITERAL"):
        return node.value
    return node.result


def explain_ast(ast: ConditionAst, scope: Mapping[str, Any], expression: str = "") -> ConditionExplanation:
    fields: list[ReferencedField] = []
    root = _walk(ast, scope, fields)
    return ConditionExplanation(
        expression=expression or render(ast),
        result=root.result,
        root=root,
        referenced_fields=tuple(fields),
    )


def evaluate_ast(ast: ConditionAst, scope: Mapping[str, Any]) -> bool:
    return _walk(ast, scope, []).result


def _normalise(expression: str) -> str:
    text = expression.strip()
    return text or "always"


def explain_condition(expression: str, scope: Mapping[str, Any]) -> ConditionExplanation:
    """Parse and evaluate `expression`, returning the full explanation.

    A blank expression is treated as `always`.

    Raises:
        ConditionParseError: If the expression is malformed.
    """

    text = _normalise(expression)
    return explain_ast(parse_condition(text), scope, expression=text)


def evaluate_condition(expression: str, scope: Mapping[str, Any]) -> bool:
    """Evaluate condition text against `scope`. Blank text is `always`."""

    return evaluate_ast(parse_condition(_normalise(expression)), scope)
