"""Unit tests for tool directive extraction."""

from __future__ import annotations

from aiflow_runtime.engine.tools import (
    DirectiveSource,
    coerce_value,
    extract_tool_directives,
    parse_tool_statement,
)


def test_print_wrapped_call_keeps_quoted_commas() -> None:
    directive = parse_tool_statement('print(search(query="wifi, help", limit=3))')

    assert directive is not None
    assert directive.tool_name == "search"
    assert dict(directive.input) == {"query": "wifi, help", "limit": 3}
    assert directive.source is DirectiveSource.EMBEDDED


def test_parentheses_inside_strings_do_not_close_the_call() -> None:
    directive = parse_tool_statement("lookup(text='see (note)', strict=True)")

    assert directive is not None
    assert dict(directive.input) == {"text": "see (note)", "strict": True}


def test_escaped_quotes_are_unescaped() -> None:
    directive = parse_tool_statement(r'note(body="say \"hi\"", draft=false)')

    assert directive is not None
    assert dict(directive.input) == {"body": 'say "hi"', "draft": False}


def test_dotted_call_names_use_the_last_segment() -> None:
    directive = parse_tool_statement("default_api.search(query='x')")

    assert directive is not None
    assert directive.tool_name == "search"


def test_positional_arguments_are_ignored() -> None:
    directive = parse_tool_statement("search('x', limit=2)")

    assert directive is not None
    assert dict(directive.input) == {"limit": 2}


def test_statement_without_call_yields_nothing() -> None:
    assert parse_tool_statement("just some text") is None
    assert parse_tool_statement("search(query='x'") is None


def test_coerce_value() -> None:
    assert coerce_value("'x'") == "x"
    assert coerce_value("True") is True
    assert coerce_value("false") is False
    assert coerce_value("42") == 42
    assert coerce_value("-1.5") == -1.5
    assert coerce_value("some_name") == "some_name"


def test_explicit_directive_shapes() -> None:
    [a] = extract_tool_directives({"tool_name": "search", "parameters": {"q": "x"}})
    [b] = extract_tool_directives({"toolName": "search", "params": {"q": "x"}})
    [c] = extract_tool_directives({"tool": "search", "input": {"q": "x"}})

    for d in (a, b, c):
        assert d.tool_name == "search"
        assert dict(d.input) == {"q": "x"}
        assert d.source is DirectiveSource.EXPLICIT


def test_tool_code_splits_on_newlines_and_semicolons() -> None:
    output = {"tool_code": "search(query='a; b')\nfetch(id=1); fetch(id=2)"}

    directives = extract_tool_directives(output)

    assert [(d.tool_name, dict(d.input)) for d in directives] == [
        ("search", {"query": "a; b"}),
        ("fetch", {"id": 1}),
        ("fetch", {"id": 2}),
    ]


def test_tool_code_list_and_dedupe() -> None:
    output = {
        "tool_name": "search",
        "parameters": {"query": "wifi"},
        "tool_code": ["search(query='wifi')", "search(query='wifi')", "search(query='lan')"],
    }

    directives = extract_tool_directives(output)

    assert [(d.tool_name, dict(d.input), d.source) for d in directives] == [
        ("search", {"query": "wifi"}, DirectiveSource.EXPLICIT),
        ("search", {"query": "lan"}, DirectiveSource.EMBEDDED),
    ]


def test_non_mapping_output_has_no_directives() -> None:
    assert extract_tool_directives("search(query='x')") == []
    assert extract_tool_directives(None) == []
