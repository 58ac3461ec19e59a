"""Condition language used to guard workflow transitions.

Module structure:

- lexer.py: tokenizer
- nodes.py: the closed set of AST node types
- parser.py: recursive-descent parser (`parse_condition`)
- evaluator.py: evaluation and explanation against a scope mapping
- legacy.py: deprecated single-pattern matcher and migration check
"""

from __future__ import annotations

from aiflow_runtime.conditions.evaluator import (
    MISSING,
    ConditionExplanation,
    ExplanationNode,
    ReferencedField,
    evaluate_ast,
    evaluate_condition,
    explain_ast,
    explain_condition,
)
from aiflow_runtime.conditions.legacy import (
    LegacyCompatibility,
    check_legacy_compatibility,
    evaluate_legacy_condition,
)
from aiflow_runtime.conditions.lexer import Token, TokenType, tokenize
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

__all__: list[str] = [
    "MISSING",
    "Call",
    "Comparison",
    "ComparisonOp",
    "ConditionAst",
    "ConditionExplanation",
    "ExplanationNode",
    "LegacyCompatibility",
    "Literal",
    "Logical",
    "LogicalOp",
    "Not",
    "Path",
    "ReferencedField",
    "Token",
    "TokenType",
    "check_legacy_compatibility",
    "evaluate_ast",
    "evaluate_condition",
    "evaluate_legacy_condition",
    "explain_ast",
    "explain_condition",
    "parse_condition",
    "render",
    "tokenize",
]
