"""Unit tests for the deprecated legacy condition matcher."""

from __future__ import annotations

import pytest

from aiflow_runtime.conditions.legacy import (
    check_legacy_compatibility,
    evaluate_legacy_condition,
    is_legacy_recognised,
)
from aiflow_runtime.engine.context import build_scope


def _scope(output: object, **context: object) -> dict[str, object]:
    return build_scope(dict(context), output, "agent")


@pytest.mark.parametrize(
    ("expr", "expected"),
    [
        ("", True),
        ("always", True),
        ("TRUE", True),
        ("false", False),
        ("category == 'billing'", True),
        ("category != billing", False),
        ("score > 3", True),
        ("score <= 3", False),
        ("contains(summary, 'wifi')", True),
        ("contains(summary, 'printer')", False),
        ("escalate", True),
    ],
)
def test_single_pattern_forms(expr: str, expected: bool) -> None:
    scope = _scope({"category": "billing", "score": 4, "summary": "wifi down", "escalate": True})
    assert evaluate_legacy_condition(expr, scope) is expected


def test_output_fields_shadow_context_variables() -> None:
    scope = _scope({"status": ""}, status="open")
    assert evaluate_legacy_condition("status", scope) is False


def test_falls_back_to_context_when_output_lacks_key() -> None:
    scope = _scope({"category": "billing"}, priority="high")
    assert evaluate_legacy_condition("priority == 'high'", scope) is True


def test_unrecognised_syntax_is_silently_false() -> None:
    scope = _scope({"a": 1})

    assert is_legacy_recognised("(a == 1)") is False
    assert evaluate_legacy_condition("(a == 1)", scope) is False
    assert evaluate_legacy_condition("a = 1", scope) is False


def test_compatibility_for_strict_valid_text() -> None:
    compat = check_legacy_compatibility("category == 'billing'")

    assert compat.strict_ok is True
    assert compat.needs_migration is False
    assert compat.warning() is None


def test_compatibility_flags_text_only_legacy_accepts() -> None:
    compat = check_legacy_compatibility("name == hello world")

    assert compat.strict_ok is False
    assert compat.legacy_recognised is True
    assert compat.needs_migration is True
    warning = compat.warning()
    assert warning is not None
    assert "legacy matcher accepts it" in warning


def test_compatibility_flags_silent_false_text() -> None:
    compat = check_legacy_compatibility("a = 1")

    assert compat.strict_ok is False
    assert compat.legacy_recognised is False
    warning = compat.warning()
    assert warning is not None
    assert "silently evaluates it to false" in warning
