"""CLI entrypoint for running AIFlow projects.

Commands:
- `run`: execute a project file and emit the JSON trace
- `eval-condition`: parse and evaluate one transition condition
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from aiflow_runtime import __version__
from aiflow_runtime.conditions.evaluator import explain_condition
from aiflow_runtime.conditions.legacy import check_legacy_compatibility, evaluate_legacy_condition
from aiflow_runtime.engine.executor import WorkflowExecutor
from aiflow_runtime.engine.models import load_workflow
from aiflow_runtime.engine.simulator import SimOverrides
from aiflow_runtime.exceptions import ConditionParseError, WorkflowAbortedError, WorkflowStructureError
from aiflow_runtime.orchestrator.config import RunSettings
from aiflow_runtime.orchestrator.logging import configure_logging

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_ABORTED = 1
EXIT_USAGE = 2


def _parse_input(value: str) -> tuple[str, Any]:
    key, sep, raw = value.partition("=")
    key = key.strip()
    if not sep or not key:
        raise argparse.ArgumentTypeError(f"expected KEY=VALUE, got {value!r}")
    try:
        parsed: Any = json.loads(raw)
    except json.JSONDecodeError:
        parsed = raw
    return key, parsed


def _parse_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in {"1", "true", "yes"}:
        return True
    if lowered in {"0", "false", "no"}:
        return False
    raise argparse.ArgumentTypeError(f"expected true or false, got {value!r}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="aiflow",
        description="Run AIFlow multi-agent workflow projects",
    )
    parser.add_argument("--version", action="version", version=f"aiflow-runtime {__version__}")

    subparsers = parser.add_subparsers(dest="command", required=True)

    run = subparsers.add_parser("run", help="Execute a .aiflow project and print its trace")
    run.add_argument("project", type=Path, help="Path to the .aiflow project file")
    run.add_argument(
        "--mode",
        choices=["real", "sim"],
        default=None,
        help="Run mode (defaults to AIFLOW_MODE, then MOCK_LLM, then real)",
    )
    run.add_argument("--seed", type=int, default=None, help="Simulation seed")
    run.add_argument("--max-steps", type=int, default=None, help="Hard cap on executed steps")
    run.add_argument(
        "--input",
        dest="inputs",
        type=_parse_input,
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Runtime input merged over flow.variables (VALUE is parsed as JSON when possible)",
    )
    run.add_argument(
        "--legacy-conditions",
        action="store_true",
        help="Evaluate conditions with the deprecated single-pattern matcher",
    )
    run.add_argument(
        "--no-sleep",
        action="store_true",
        help="Record retry backoff without waiting",
    )
    run.add_argument("--sim-ticket-type", default=None, help="Force the simulated ticket category")
    run.add_argument(
        "--sim-solution-found",
        type=_parse_bool,
        default=None,
        help="Force solution_found in simulated JSON output (true|false)",
    )
    run.add_argument("--output", type=Path, default=None, help="Write the trace here instead of stdout")

    evaluate = subparsers.add_parser("eval-condition", help="Evaluate a condition and print its explanation")
    evaluate.add_argument("expression", help="Condition text, e.g. \"category == 'billing'\"")
    evaluate.add_argument("--context", default="{}", help="JSON object used as the evaluation scope")
    evaluate.add_argument("--legacy", action="store_true", help="Use the deprecated legacy matcher")

    return parser


def _load_settings(overrides: dict[str, Any]) -> RunSettings | None:
    try:
        return RunSettings(**overrides)
    except ValidationError as e:
        # Logging isn't configured yet; keep it simple and actionable.
        print("Configuration error (check your environment and .env):", file=sys.stderr)
        print(e, file=sys.stderr)
        return None


def _emit(payload: dict[str, Any], output: Path | None) -> None:
    text = json.dumps(payload, indent=2, ensure_ascii=False, default=str)
    if output is None:
        print(text)
        return
    output.write_text(text + "\n", encoding="utf-8")
    logger.info("Trace written", extra={"path": str(output)})


def _run(args: argparse.Namespace) -> int:
    overrides: dict[str, Any] = {}
    if args.mode is not None:
        overrides["mode"] = args.mode
    if args.seed is not None:
        overrides["seed"] = args.seed
    if args.max_steps is not None:
        overrides["max_steps"] = args.max_steps
    if args.legacy_conditions:
        overrides["condition_mode"] = "legacy"
    if args.no_sleep:
        overrides["sleep"] = False

    settings = _load_settings(overrides)
    if settings is None:
        return EXIT_USAGE

    configure_logging(settings.log_level)

    try:
        definition = load_workflow(args.project)
    except (OSError, json.JSONDecodeError, WorkflowStructureError) as e:
        logger.error("Could not load project", extra={"path": str(args.project), "error": str(e)})
        print(f"Could not load project {args.project}: {e}", file=sys.stderr)
        return EXIT_USAGE

    overrides_sim = SimOverrides(ticket_type=args.sim_ticket_type, solution_found=args.sim_solution_found)
    try:
        executor = WorkflowExecutor.from_settings(definition, settings, sim_overrides=overrides_sim)
    except ValueError as e:
        logger.error("Invalid run configuration", extra={"error": str(e)})
        print(f"Configuration error: {e}", file=sys.stderr)
        return EXIT_USAGE

    try:
        result = executor.run(dict(args.inputs))
    except WorkflowAbortedError as e:
        # The partial trace is still emitted.
        _emit(e.result.to_json(), args.output)
        print(str(e), file=sys.stderr)
        return EXIT_ABORTED
    except Exception:
        logger.exception("Run failed")
        return EXIT_ABORTED

    _emit(result.to_json(), args.output)
    return EXIT_OK


def _eval_condition(args: argparse.Namespace) -> int:
    settings = _load_settings({})
    if settings is None:
        return EXIT_USAGE
    configure_logging(settings.log_level)

    try:
        scope = json.loads(args.context)
    except json.JSONDecodeError as e:
        print(f"--context is not valid JSON: {e}", file=sys.stderr)
        return EXIT_USAGE
    if not isinstance(scope, dict):
        print("--context must be a JSON object", file=sys.stderr)
        return EXIT_USAGE

    if args.legacy:
        compat = check_legacy_compatibility(args.expression)
        payload: dict[str, Any] = {
            "expression": args.expression,
            "mode": "legacy",
            "result": evaluate_legacy_condition(args.expression, scope),
            "strict_ok": compat.strict_ok,
        }
        warning = compat.warning()
        if warning is not None:
            payload["warning"] = warning
        _emit(payload, None)
        return EXIT_OK

    try:
        explanation = explain_condition(args.expression, scope)
    except ConditionParseError as e:
        print(f"Invalid condition: {e}", file=sys.stderr)
        return EXIT_USAGE

    _emit(explanation.to_json(), None)
    return EXIT_OK


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == "run":
        return _run(args)
    if args.command == "eval-condition":
        return _eval_condition(args)

    logger.error("Unknown command", extra={"command": args.command})
    return EXIT_USAGE


if __name__ == "__main__":
    raise SystemExit(main())
