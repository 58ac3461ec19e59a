"""Single-pattern condition matcher kept for rule text written before the
strict grammar existed.

Deprecated. Only used when a run opts into legacy conditions. It
understands exactly one of:

* `always` / `true` / `false` / blank
* `contains(key, 'needle')`
* `key OP value` with OP one of `== != > < >= <=`
* a bare `key` (truthiness)

A bare key is looked up in the agent output first, then in the execution
context. Text matching none of these patterns evaluates to False instead of
raising; `check_legacy_compatibility` reports such text so it can be
migrated.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from aiflow_runtime.conditions.evaluator import (
    MISSING,
    as_number,
    compare_values,
    contains,
    resolve_path,
    truthy,
)
from aiflow_runtime.conditions.nodes import ComparisonOp
from aiflow_runtime.conditions.parser import parse_condition
from aiflow_runtime.exceptions import ConditionParseError

logger = logging.getLogger(__name__)

_KEY = r"[A-Za-z_][\w.]*"
_CONTAINS_RE = re.compile(rf"^contains\(\s*({_KEY})\s*,\s*(['\"])(.*)\2\s*\)$", re.DOTALL)
_COMPARE_RE = re.compile(rf"^({_KEY})\s*(==|!=|>=|<=|>|<)\s*(.+)$", re.DOTALL)
_BARE_KEY_RE = re.compile(rf"^{_KEY}$")


def _lookup(scope: Mapping[str, Any], key: str) -> Any:
    segments = key.split(".")
    output = scope.get("output")
    context = scope.get("context")
    if isinstance(output, Mapping) or isinstance(context, Mapping):
        value = resolve_path(output, segments)
        if value is MISSING:
            value = resolve_path(context, segments)
        if value is MISSING:
            value = resolve_path(scope, segments)
        return value
    return resolve_path(scope, segments)


def _coerce(raw: str) -> Any:
    text = raw.strip()
    if len(text) >= 2 and text[0] == text[-1] and text[0] in "'\"":
        return text[1:-1]
    if text in ("true", "True"):
        return True
    if text in ("false", "False"):
        return False
    number = as_number(text)
    if number is not None:
        return number
    return text


def evaluate_legacy_condition(expression: str, scope: Mapping[str, Any]) -> bool:
    text = expression.strip()
    lowered = text.lower()
    if lowered in ("", "always", "true"):
        return True
    if lowered == "false":
        return False

    m = _CONTAINS_RE.match(text)
    if m:
        return contains(_lookup(scope, m.group(1)), m.group(3))

    m = _COMPARE_RE.match(text)
    if m:
        key, op, raw_value = m.groups()
        return compare_values(ComparisonOp(op), _lookup(scope, key), _coerce(raw_value))

    if _BARE_KEY_RE.match(text):
        return truthy(_lookup(scope, text))

    logger.debug("Unrecognised legacy condition evaluates to false", extra={"condition": text})
    return False


def is_legacy_recognised(expression: str) -> bool:
    text = expression.strip()
    if text.lower() in ("", "always", "true", "false"):
        return True
    return any(p.match(text) for p in (_CONTAINS_RE, _COMPARE_RE, _BARE_KEY_RE))


@dataclass(frozen=True, slots=True)
class LegacyCompatibility:
    expression: str
    strict_ok: bool
    legacy_recognised: bool
    strict_error: str | None = None

    @property
    def needs_migration(self) -> bool:
        return not self.strict_ok

    def warning(self) -> str | None:
        if self.strict_ok:
            return None
        fallback = (
            "legacy matcher accepts it"
            if self.legacy_recognised
            else "legacy matcher silently evaluates it to false"
        )
        return (
            f"Condition {self.expression!r} is rejected by the strict grammar "
            f"({self.strict_error}); {fallback}"
        )


def check_legacy_compatibility(expression: str) -> LegacyCompatibility:
    """Report whether rule text survives a move from legacy to strict conditions."""

    text = expression.strip() or "always"
    try:
        parse_condition(text)
    except ConditionParseError as e:
        return LegacyCompatibility(
            expression=text,
            strict_ok=False,
            legacy_recognised=is_legacy_recognised(text),
            strict_error=str(e),
        )
    return LegacyCompatibility(expression=text, strict_ok=True, legacy_recognised=is_legacy_recognised(text))
