"""Append-only run trace.

The trace is the artifact external tooling consumes (coverage, replay,
workflow regeneration), so every step records every rule evaluated for the
current agent, not only the one selected.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from aiflow_runtime.conditions.evaluator import ConditionExplanation
from aiflow_runtime.engine.retry import AttemptRecord
from aiflow_runtime.engine.tools import ToolDirective


class StepStatus(str, Enum):
    SUCCESS = "success"
    ERROR = "error"


class HaltReason(str, Enum):
    NO_MATCHING_RULE = "no_matching_rule"
    MAX_STEPS_REACHED = "max_steps_reached"
    ABORTED = "aborted"


@dataclass(frozen=True, slots=True)
class RuleEvaluation:
    rule_id: str
    from_agent: str
    to_agent: str
    condition: str
    result: bool
    selected: bool = False
    explanation: ConditionExplanation | None = None
    warnings: tuple[str, ...] = ()

    def to_json(self) -> dict[str, object]:
        out: dict[str, object] = {
            "rule_id": self.rule_id,
            "from": self.from_agent,
            "to": self.to_agent,
            "condition": self.condition,
            "result": self.result,
            "selected": self.selected,
        }
        if self.explanation is not None:
            out["explanation"] = self.explanation.to_json()
        if self.warnings:
            out["warnings"] = list(self.warnings)
        return out


@dataclass(frozen=True, slots=True)
class ToolCallRecord:
    directive: ToolDirective
    ok: bool
    invoked: bool = True
    result: Any = None
    error: str | None = None
    context_keys_updated: tuple[str, ...] = ()

    def to_json(self) -> dict[str, object]:
        out: dict[str, object] = {
            "directive": self.directive.to_json(),
            "ok": self.ok,
            "invoked": self.invoked,
        }
        if self.ok:
            out["result"] = self.result
            out["context_keys_updated"] = list(self.context_keys_updated)
        else:
            out["error"] = self.error
        return out


@dataclass(frozen=True, slots=True)
class TraceStep:
    index: int
    agent_id: str
    agent_name: str
    agent_role: str
    input_context: dict[str, Any]
    attempts: tuple[AttemptRecord, ...]
    status: StepStatus
    output: Any
    tool_calls: tuple[ToolCallRecord, ...] = ()
    rule_evaluations: tuple[RuleEvaluation, ...] = ()
    selected_rule_id: str | None = None
    next_agent_id: str | None = None

    @property
    def directives(self) -> tuple[ToolDirective, ...]:
        return tuple(c.directive for c in self.tool_calls)

    def to_json(self) -> dict[str, object]:
        return {
            "index": self.index,
            "agent_id": self.agent_id,
            "agent_name": self.agent_name,
            "agent_role": self.agent_role,
            "input_context": self.input_context,
            "attempts": [a.to_json() for a in self.attempts],
            "status": self.status.value,
            "output": self.output,
            "tool_calls": [c.to_json() for c in self.tool_calls],
            "rule_evaluations": [r.to_json() for r in self.rule_evaluations],
            "selected_rule_id": self.selected_rule_id,
            "next_agent_id": self.next_agent_id,
        }


@dataclass(slots=True)
class RunResult:
    """Final (or partial, on abort) result of a run. Owned by the caller once returned."""

    steps: list[TraceStep] = field(default_factory=list)
    context: dict[str, Any] = field(default_factory=dict)
    halt_reason: HaltReason | None = None
    mode: str = "sim"
    seed: int | None = None
    warnings: list[str] = field(default_factory=list)

    @property
    def path(self) -> list[str]:
        """Agent ids in execution order."""

        return [s.agent_id for s in self.steps]

    def to_json(self) -> dict[str, object]:
        return {
            "mode": self.mode,
            "seed": self.seed,
            "halt_reason": self.halt_reason.value if self.halt_reason else None,
            "steps": [s.to_json() for s in self.steps],
            "context": self.context,
            "warnings": list(self.warnings),
        }
