#!/usr/bin/env python3
"""Programmatic workflow run example (simulation mode).

This demonstrates using the engine components directly:

* load settings from the environment / `.env`
* build a small support-triage workflow in code
* run it with the deterministic simulator and print the chosen path

No model is called, so this runs offline.
"""

from __future__ import annotations

import argparse
import json
from typing import Sequence

from aiflow_runtime.engine.executor import WorkflowExecutor
from aiflow_runtime.engine.models import WorkflowDefinition
from aiflow_runtime.orchestrator.config import RunSettings
from aiflow_runtime.orchestrator.logging import configure_logging

PROJECT = {
    "metadata": {"name": "Support triage"},
    "agents": [
        {"id": "triage", "name": "Triage", "role": "Ticket classifier", "output_format": "json"},
        {"id": "billing", "name": "Billing", "role": "Billing specialist"},
        {"id": "support", "name": "Support", "role": "Technical support"},
    ],
    "flow": {
        "entry_agent": "triage",
        "variables": {"ticket_text": "I was charged twice on my last invoice"},
        "logic": [
            {"id": "to_billing", "from": "triage", "to": "billing", "condition": "category == 'billing'"},
            {"id": "to_support", "from": "triage", "to": "support", "condition": "always"},
        ],
    },
}


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the support-triage workflow in simulation mode.")
    parser.add_argument("--ticket", default=None, help="Ticket text to triage")
    parser.add_argument("--seed", type=int, default=42, help="Simulation seed")
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)

    settings = RunSettings(mode="sim", seed=args.seed, sleep=False)
    configure_logging(settings.log_level)

    definition = WorkflowDefinition.from_json(PROJECT)
    executor = WorkflowExecutor.from_settings(definition, settings)

    inputs = {"ticket_text": args.ticket} if args.ticket else None
    result = executor.run(inputs)

    print(f"Path: {' -> '.join(result.path)}")
    print(f"Halted: {result.halt_reason.value if result.halt_reason else 'n/a'}")
    print(json.dumps(result.context, indent=2, ensure_ascii=False))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
