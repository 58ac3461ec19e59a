"""Extraction of tool-invocation directives from agent output.

Two shapes are recognised in a parsed (mapping) output, checked in order:

* explicit: `tool_name` / `toolName` / `tool` naming the tool, with its
  arguments under `parameters` / `params` / `input`;
* embedded: a `tool_code` field holding pseudo-call statements such as
  `print(search(query="wifi, help", limit=3))`, as a string or a list of
  strings, split into statements on newlines and semicolons.

Directives are deduplicated per output by tool name and serialized input.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)

_NAME_KEYS = ("tool_name", "toolName", "tool")
_INPUT_KEYS = ("parameters", "params", "input")
_TOOL_CODE_KEY = "tool_code"

_CALL_RE = re.compile(r"([A-Za-z_][\w.]*)\s*\(")
_ARG_RE = re.compile(r"^\s*([A-Za-z_]\w*)\s*=\s*(.*?)\s*$", re.DOTALL)
_NUMBER_RE = re.compile(r"^-?\d+(\.\d+)?$")
_WRAPPER_CALLS = {"print"}
_OPEN = "([{"
_CLOSE = ")]}"


class DirectiveSource(str, Enum):
    EXPLICIT = "explicit"
    EMBEDDED = "embedded"


@dataclass(frozen=True, slots=True)
class ToolDirective:
    tool_name: str
    input: Mapping[str, Any] = field(default_factory=dict)
    source: DirectiveSource = DirectiveSource.EXPLICIT
    raw: str | None = None

    @property
    def identity(self) -> tuple[str, str]:
        return self.tool_name, json.dumps(self.input, sort_keys=True, ensure_ascii=False, default=str)

    def to_json(self) -> dict[str, object]:
        out: dict[str, object] = {
            "tool_name": self.tool_name,
            "input": dict(self.input),
            "source": self.source.value,
        }
        if self.raw is not None:
            out["raw"] = self.raw
        return out


def _scan_quoted(text: str, start: int) -> int:
    """Return the index just past the string literal opening at `start`."""

    quote = text[start]
    i = start + 1
    while i < len(text):
        ch = text[i]
        if ch == "\\":
            i += 2
            continue
        if ch == quote:
            return i + 1
        i += 1
    return len(text)


def _split_top_level(text: str, separators: str) -> list[str]:
    """Split on separator characters outside quotes and brackets."""

    parts: list[str] = []
    depth = 0
    start = 0
    i = 0
    while i < len(text):
        ch = text[i]
        if ch in "'\"":
            i = _scan_quoted(text, i)
            continue
        if ch in _OPEN:
            depth += 1
        elif ch in _CLOSE:
            depth = max(depth - 1, 0)
        elif ch in separators and depth == 0:
            parts.append(text[start:i])
            start = i + 1
        i += 1
    parts.append(text[start:])
    return parts


def _matching_paren(text: str, open_idx: int) -> int | None:
    depth = 0
    i = open_idx
    while i < len(text):
        ch = text[i]
        if ch in "'\"":
            i = _scan_quoted(text, i)
            continue
        if ch == "(":
            depth += 1
        elif ch == ")":
            depth -= 1
            if depth == 0:
                return i
        i += 1
    return None


def _unescape(body: str) -> str:
    return re.sub(r"\\(['\"\\])", r"\1", body)


def coerce_value(raw: str) -> Any:
    text = raw.strip()
    if len(text) >= 2 and text[0] == text[-1] and text[0] in "'\"":
        return _unescape(text[1:-1])
    if text in ("true", "True"):
        return True
    if text in ("false", "False"):
        return False
    if _NUMBER_RE.match(text):
        return float(text) if "." in text else int(text)
    return text


def _find_call(statement: str) -> tuple[str, str] | None:
    """Locate the first non-wrapper call and return (name, argument text)."""

    pos = 0
    while True:
        m = _CALL_RE.search(statement, pos)
        if m is None:
            return None
        name = m.group(1)
        open_idx = m.end() - 1
        if name in _WRAPPER_CALLS:
            pos = open_idx + 1
            continue
        close_idx = _matching_paren(statement, open_idx)
        if close_idx is None:
            logger.debug("Unbalanced tool_code call", extra={"statement": statement})
            return None
        return name, statement[open_idx + 1 : close_idx]


def parse_tool_statement(statement: str) -> ToolDirective | None:
    """Parse a single `name(key=value, ...)` statement, optionally wrapped in print()."""

    found = _find_call(statement)
    if found is None:
        return None
    name, arg_text = found

    args: dict[str, Any] = {}
    if arg_text.strip():
        for arg in _split_top_level(arg_text, ","):
            m = _ARG_RE.match(arg)
            if m is None:
                logger.debug("Ignoring positional tool argument", extra={"argument": arg.strip()})
                continue
            args[m.group(1)] = coerce_value(m.group(2))

    # `default_api.search(...)` names the `search` tool.
    tool_name = name.rsplit(".", 1)[-1]
    return ToolDirective(tool_name=tool_name, input=args, source=DirectiveSource.EMBEDDED, raw=statement.strip())


def _statements(tool_code: Any) -> Iterable[str]:
    if isinstance(tool_code, str):
        for stmt in _split_top_level(tool_code, "\n;"):
            if stmt.strip():
                yield stmt.strip()
    elif isinstance(tool_code, list | tuple):
        for item in tool_code:
            yield from _statements(item)


def _explicit_directive(output: Mapping[str, Any]) -> ToolDirective | None:
    name = next((output[k] for k in _NAME_KEYS if isinstance(output.get(k), str) and output[k]), None)
    if name is None:
        return None
    params = next((output[k] for k in _INPUT_KEYS if isinstance(output.get(k), Mapping)), {})
    return ToolDirective(tool_name=name, input=dict(params), source=DirectiveSource.EXPLICIT)


def extract_tool_directives(output: Any) -> list[ToolDirective]:
    """Return the tool directives found in a parsed agent output, deduplicated."""

    if not isinstance(output, Mapping):
        return []

    candidates: list[ToolDirective] = []
    explicit = _explicit_directive(output)
    if explicit is not None:
        candidates.append(explicit)
    for stmt in _statements(output.get(_TOOL_CODE_KEY)):
        directive = parse_tool_statement(stmt)
        if directive is not None:
            candidates.append(directive)

    seen: set[tuple[str, str]] = set()
    directives: list[ToolDirective] = []
    for d in candidates:
        if d.identity in seen:
            continue
        seen.add(d.identity)
        directives.append(d)
    return directives
