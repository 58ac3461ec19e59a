"""Unit tests for the execution context, condition scope and output parsing."""

from __future__ import annotations

from aiflow_runtime.engine.context import ExecutionContext, build_scope, output_key
from aiflow_runtime.engine.output import strip_code_fence, try_parse_json


def test_context_copies_its_seed() -> None:
    initial = {"nested": {"n": 1}}
    ctx = ExecutionContext(initial)

    initial["nested"]["n"] = 2

    assert ctx["nested"] == {"n": 1}


def test_snapshot_is_unaffected_by_later_writes() -> None:
    ctx = ExecutionContext({"items": [1]})
    snapshot = ctx.snapshot()

    ctx.merge({"items": [1, 2], "extra": True})
    ctx.set_agent_output("a", {"x": 1})

    assert snapshot == {"items": [1]}
    assert ctx.to_json() == {"items": [1, 2], "extra": True, "output_a": {"x": 1}}


def test_stored_output_is_a_copy() -> None:
    ctx = ExecutionContext()
    output = {"x": [1]}

    key = ctx.set_agent_output("agent", output)
    output["x"].append(2)

    assert key == output_key("agent") == "output_agent"
    assert ctx.get(key) == {"x": [1]}


def test_merge_returns_written_keys() -> None:
    assert ExecutionContext().merge({"a": 1, "b": 2}) == ["a", "b"]


def test_scope_prefers_output_fields_over_context() -> None:
    scope = build_scope({"category": "old", "region": "EU"}, {"category": "billing"}, "triage")

    assert scope["category"] == "billing"
    assert scope["region"] == "EU"
    assert scope["output"] == {"category": "billing"}
    assert scope["context"] == {"category": "old", "region": "EU"}
    assert scope["agentId"] == "triage"


def test_scope_with_text_output() -> None:
    scope = build_scope({"a": 1}, "plain text", "writer")

    assert scope["output"] == "plain text"
    assert scope["a"] == 1


def test_try_parse_json() -> None:
    assert try_parse_json('{"a": 1}') == {"a": 1}
    assert try_parse_json('```json\n{"a": 1}\n```') == {"a": 1}
    assert try_parse_json("```\n[1, 2]\n```") == [1, 2]
    assert try_parse_json("not json") == "not json"
    assert try_parse_json("") == ""
    assert try_parse_json("   ") == "   "


def test_strip_code_fence_leaves_plain_text() -> None:
    assert strip_code_fence("  hello ") == "hello"
