"""Unit tests for structured logging."""

from __future__ import annotations

import io
import json
import logging

from aiflow_runtime.orchestrator.logging import JsonFormatter, configure_logging


def test_json_formatter_nests_extra_fields() -> None:
    record = logging.LogRecord("aiflow.test", logging.WARNING, __file__, 1, "Agent call failed", None, None)
    record.agent_id = "triage"
    record.attempt = 2

    payload = json.loads(JsonFormatter().format(record))

    assert payload["level"] == "WARNING"
    assert payload["logger"] == "aiflow.test"
    assert payload["message"] == "Agent call failed"
    assert payload["extra"] == {"agent_id": "triage", "attempt": 2}


def test_configure_logging_replaces_handlers() -> None:
    stream = io.StringIO()

    configure_logging("debug", stream=stream)
    configure_logging("info", stream=stream)
    logging.getLogger("aiflow.test").info("Routing to next agent", extra={"next_agent_id": "billing"})

    root = logging.getLogger()
    assert len(root.handlers) == 1
    assert root.level == logging.INFO
    lines = [json.loads(line) for line in stream.getvalue().splitlines()]
    assert lines[-1]["extra"] == {"next_agent_id": "billing"}
