"""Test configuration and fixtures."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterator
from pathlib import Path
from typing import Any

import pytest

from aiflow_runtime.engine.models import WorkflowDefinition
from aiflow_runtime.orchestrator.logging import JsonFormatter

_ENV_VARS = (
    "AIFLOW_MODE",
    "AIFLOW_MOCK_LLM",
    "MOCK_LLM",
    "AIFLOW_SEED",
    "AIFLOW_MAX_STEPS",
    "AIFLOW_MAX_ATTEMPTS",
    "AIFLOW_RETRY_ON",
    "AIFLOW_BACKOFF_CAP_MS",
    "AIFLOW_SLEEP",
    "AIFLOW_CONDITION_MODE",
    "AIFLOW_PROVIDER",
    "AIFLOW_OPENAI_API_KEY",
    "AIFLOW_OPENAI_MODEL",
    "AIFLOW_OPENAI_TEMPERATURE",
    "LOG_LEVEL",
)


@pytest.fixture(autouse=True)
def _restore_root_logging() -> Iterator[None]:
    """Undo `configure_logging` calls made by the code under test."""
    root = logging.getLogger()
    level = root.level
    yield
    for handler in list(root.handlers):
        if isinstance(handler.formatter, JsonFormatter):
            root.removeHandler(handler)
    root.setLevel(level)


@pytest.fixture
def clean_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Isolate settings from the developer's environment and `.env` file."""
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)
    return tmp_path


@pytest.fixture
def triage_project() -> dict[str, Any]:
    """Provide a two-way triage project: billing first, general as fallback."""
    return {
        "metadata": {"name": "Support triage"},
        "agents": [
            {
                "id": "triage",
                "name": "Triage",
                "role": "Ticket classifier",
                "prompt": "triage_prompt",
                "output_format": "json",
            },
            {"id": "billing_agent", "name": "Billing", "role": "Billing specialist"},
            {"id": "general_agent", "name": "General", "role": "General support"},
        ],
        "prompts": {"triage_prompt": "Classify this ticket: {{ticket_text}}"},
        "flow": {
            "entry_agent": "triage",
            "variables": {"ticket_text": "Please refund my last invoice"},
            "logic": [
                {"id": "to_billing", "from": "triage", "to": "billing_agent", "condition": "category == 'billing'"},
                {"id": "fallback", "from": "triage", "to": "general_agent", "condition": "always"},
            ],
        },
    }


@pytest.fixture
def triage_definition(triage_project: dict[str, Any]) -> WorkflowDefinition:
    return WorkflowDefinition.from_json(triage_project)


@pytest.fixture
def project_file(tmp_path: Path, triage_project: dict[str, Any]) -> Path:
    """Write the triage project to a `.aiflow` file."""
    path = tmp_path / "triage.aiflow"
    path.write_text(json.dumps(triage_project), encoding="utf-8")
    return path
