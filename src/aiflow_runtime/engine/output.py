"""Lenient parsing of raw agent output."""

from __future__ import annotations

import json
import re
from typing import Any

_FENCE_RE = re.compile(r"^```(?:json)?\s*\n?(.*?)\n?```$", re.DOTALL | re.IGNORECASE)


def strip_code_fence(text: str) -> str:
    stripped = text.strip()
    m = _FENCE_RE.match(stripped)
    return m.group(1).strip() if m else stripped


def try_parse_json(text: str) -> Any:
    """Parse JSON output, tolerating ```json fences.

    Empty or non-JSON text is returned unchanged.
    """

    if not text or not text.strip():
        return text
    candidate = strip_code_fence(text)
    try:
        return json.loads(candidate)
    except json.JSONDecodeError:
        return text
