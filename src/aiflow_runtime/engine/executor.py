"""The workflow step loop.

State is the current agent id plus a step counter. Each iteration:

1. look up the agent (missing agent aborts the run);
2. snapshot the context;
3. call the agent under its retry policy;
4. store the output under `output_<agent id>`;
5. run whitelisted tool directives found in the output, merging their
   context updates;
6. evaluate every rule leaving the agent, in definition order, selecting
   the first that holds;
7. append the trace step;
8. halt when no rule matched, otherwise move to the selected agent.

The run also halts when the step counter reaches `max_steps`. That is a hard
ceiling, not cycle detection: a satisfiable cycle always runs to the cap.
"""

from __future__ import annotations

import copy
import logging
import time
from collections.abc import Callable, Mapping
from typing import Any

from aiflow_runtime.conditions.evaluator import explain_ast
from aiflow_runtime.conditions.legacy import check_legacy_compatibility, evaluate_legacy_condition
from aiflow_runtime.conditions.parser import parse_condition
from aiflow_runtime.engine.context import ExecutionContext, build_scope
from aiflow_runtime.engine.invokers import (
    AgentInvoker,
    AgentRequest,
    AgentResponse,
    LLMAgentInvoker,
    ToolInvoker,
    fill_prompt,
)
from aiflow_runtime.engine.models import AgentSpec, WorkflowDefinition
from aiflow_runtime.engine.retry import (
    DEFAULT_BACKOFF_CAP_MS,
    RetryOutcome,
    RetryPolicy,
    RetryState,
    run_with_retry,
)
from aiflow_runtime.engine.simulator import DeterministicSimulator, SimOverrides
from aiflow_runtime.engine.tools import extract_tool_directives
from aiflow_runtime.engine.trace import (
    HaltReason,
    RuleEvaluation,
    RunResult,
    StepStatus,
    ToolCallRecord,
    TraceStep,
)
from aiflow_runtime.exceptions import (
    AgentNotFoundError,
    ConditionParseError,
    WorkflowAbortedError,
    WorkflowStructureError,
)
from aiflow_runtime.llm.factory import LLMFactory
from aiflow_runtime.orchestrator.config import DEFAULT_MAX_STEPS, ConditionMode, RunSettings

logger = logging.getLogger(__name__)


def error_output(outcome: RetryOutcome[AgentResponse]) -> dict[str, Any]:
    """Structured payload standing in for the output of a failed agent call."""

    last = outcome.last_attempt
    detail = last.error if last else None
    return {
        "error": True,
        "error_class": last.error_class.value if last and last.error_class else None,
        "error_code": last.error_code.value if last and last.error_code else None,
        "message": detail.message if detail else "agent call failed",
        "status": detail.status if detail else None,
        "attempts": len(outcome.attempts),
        "retry_reason": last.retry_reason if last else None,
    }


class WorkflowExecutor:
    """Runs one workflow definition, single-threaded, producing a `RunResult`."""

    def __init__(
        self,
        definition: WorkflowDefinition,
        agent_invoker: AgentInvoker,
        *,
        tool_invoker: ToolInvoker | None = None,
        max_steps: int = DEFAULT_MAX_STEPS,
        retry_policy: RetryPolicy | None = None,
        backoff_cap_ms: int = DEFAULT_BACKOFF_CAP_MS,
        sleep: Callable[[float], None] | None = time.sleep,
        condition_mode: ConditionMode = "strict",
        mode: str = "sim",
        seed: int | None = None,
    ) -> None:
        if max_steps < 1:
            raise ValueError(f"max_steps must be >= 1, got {max_steps}")
        self.definition = definition
        self.agent_invoker = agent_invoker
        self.tool_invoker = tool_invoker
        self.max_steps = max_steps
        self.retry_policy = retry_policy or RetryPolicy()
        self.backoff_cap_ms = backoff_cap_ms
        self.sleep = sleep
        self.condition_mode = condition_mode
        self.mode = mode
        self.seed = seed

    @classmethod
    def from_settings(
        cls,
        definition: WorkflowDefinition,
        settings: RunSettings,
        *,
        agent_invoker: AgentInvoker | None = None,
        tool_invoker: ToolInvoker | None = None,
        sim_overrides: SimOverrides | None = None,
    ) -> WorkflowExecutor:
        """Build an executor from run settings.

        Without an explicit `agent_invoker`, sim mode uses the deterministic
        simulator and real mode the configured LLM provider.

        Raises:
            ValueError: If real mode is selected without provider credentials.
        """

        resolved = settings.resolved_mode
        if agent_invoker is None:
            if resolved.mode == "sim":
                agent_invoker = DeterministicSimulator(seed=settings.seed, overrides=sim_overrides)
            else:
                agent_invoker = LLMAgentInvoker(LLMFactory.create(settings.llm))
        logger.info(f"Run mode: {resolved.mode} (source: {resolved.source})")

        return cls(
            definition,
            agent_invoker,
            tool_invoker=tool_invoker,
            max_steps=settings.max_steps,
            retry_policy=settings.retry_policy(),
            backoff_cap_ms=settings.backoff_cap_ms,
            sleep=time.sleep if settings.sleep else None,
            condition_mode=settings.condition_mode,
            mode=resolved.mode,
            seed=settings.seed if resolved.mode == "sim" else None,
        )

    def run(self, inputs: Mapping[str, Any] | None = None) -> RunResult:
        """Execute the workflow from its entry agent.

        Raises:
            WorkflowAbortedError: On a missing agent or malformed condition. The
                partial result is attached and the cause is chained.
        """

        context = ExecutionContext({**self.definition.initial_variables, **(inputs or {})})
        result = RunResult(mode=self.mode, seed=self.seed)
        current_id = self.definition.entry_agent_id
        step = 0

        logger.info(
            "Starting workflow execution",
            extra={"workflow": self.definition.name, "entry_agent": current_id, "mode": self.mode, "seed": self.seed},
        )

        while True:
            if step >= self.max_steps:
                result.halt_reason = HaltReason.MAX_STEPS_REACHED
                logger.warning("Execution stopped: max steps reached", extra={"max_steps": self.max_steps})
                break

            try:
                trace_step = self._execute_step(step, current_id, context, result)
            except (WorkflowStructureError, ConditionParseError) as e:
                result.halt_reason = HaltReason.ABORTED
                result.context = context.to_json()
                logger.error("Workflow aborted", extra={"agent_id": current_id, "step": step, "error": str(e)})
                raise WorkflowAbortedError(f"Workflow aborted at step {step}: {e}", result=result) from e

            result.steps.append(trace_step)

            if trace_step.next_agent_id is None:
                result.halt_reason = HaltReason.NO_MATCHING_RULE
                logger.info("No matching rule; execution finished", extra={"agent_id": current_id, "step": step})
                break

            logger.info(
                "Routing to next agent",
                extra={"agent_id": current_id, "next_agent_id": trace_step.next_agent_id, "rule_id": trace_step.selected_rule_id},
            )
            current_id = trace_step.next_agent_id
            step += 1

        result.context = context.to_json()
        logger.info(
            "Workflow execution finished",
            extra={"steps": len(result.steps), "halt_reason": result.halt_reason.value if result.halt_reason else None},
        )
        return result

    def _execute_step(self, index: int, agent_id: str, context: ExecutionContext, result: RunResult) -> TraceStep:
        agent = self.definition.agent(agent_id)
        if agent is None:
            raise AgentNotFoundError(agent_id)

        snapshot = context.snapshot()
        logger.info("Executing agent", extra={"agent_id": agent.id, "agent_name": agent.name, "step": index})

        outcome = self._call_agent(agent, snapshot, index)
        if outcome.state is RetryState.SUCCESS and outcome.value is not None:
            status = StepStatus.SUCCESS
            output = outcome.value.parsed_output
        else:
            status = StepStatus.ERROR
            output = error_output(outcome)

        context.set_agent_output(agent.id, output)
        tool_calls = self._run_tools(agent, output, context)
        evaluations = self._evaluate_rules(agent.id, output, context, result)
        selected = next((e for e in evaluations if e.selected), None)

        return TraceStep(
            index=index,
            agent_id=agent.id,
            agent_name=agent.name,
            agent_role=agent.role,
            input_context=snapshot,
            attempts=tuple(outcome.attempts),
            status=status,
            output=output,
            tool_calls=tuple(tool_calls),
            rule_evaluations=tuple(evaluations),
            selected_rule_id=selected.rule_id if selected else None,
            next_agent_id=selected.to_agent if selected else None,
        )

    def _call_agent(self, agent: AgentSpec, snapshot: dict[str, Any], index: int) -> RetryOutcome[AgentResponse]:
        prompt = fill_prompt(agent, self.definition.prompts, snapshot)
        try:
            policy = agent.retry_policy(self.retry_policy)
        except ValueError as e:
            raise WorkflowStructureError(f"Agent {agent.id!r} has an invalid retry block: {e}") from e

        def _attempt(attempt: int) -> AgentResponse:
            # Each attempt gets its own copy; the recorded snapshot stays untouched.
            request = AgentRequest(agent=agent, prompt=prompt, context=copy.deepcopy(snapshot), attempt=attempt)
            return self.agent_invoker.invoke(request)

        return run_with_retry(
            _attempt,
            policy,
            raw_output=lambda r: r.raw_output,
            sleep=self.sleep,
            backoff_cap_ms=self.backoff_cap_ms,
            log_extra={"agent_id": agent.id, "step": index},
        )

    def _run_tools(self, agent: AgentSpec, output: Any, context: ExecutionContext) -> list[ToolCallRecord]:
        records: list[ToolCallRecord] = []
        for directive in extract_tool_directives(output):
            if directive.tool_name not in agent.tool_whitelist:
                records.append(
                    ToolCallRecord(directive, ok=False, invoked=False, error="tool not in agent whitelist")
                )
                continue
            if self.tool_invoker is None:
                records.append(ToolCallRecord(directive, ok=False, invoked=False, error="no tool runtime configured"))
                continue
            try:
                res = self.tool_invoker.invoke_tool(
                    agent.id, directive.tool_name, dict(directive.input), context.snapshot()
                )
            except Exception as e:  # tool failures are recorded, never fatal to the step
                logger.warning(
                    "Tool invocation failed",
                    extra={"agent_id": agent.id, "tool_name": directive.tool_name, "error": str(e)},
                )
                records.append(ToolCallRecord(directive, ok=False, error=str(e) or type(e).__name__))
                continue
            updates = res.context_updates
            if updates is not None and not isinstance(updates, Mapping):
                logger.warning(
                    "Tool returned malformed context updates",
                    extra={"agent_id": agent.id, "tool_name": directive.tool_name, "type": type(updates).__name__},
                )
                records.append(
                    ToolCallRecord(
                        directive,
                        ok=False,
                        result=res.tool_result,
                        error=f"context_updates must be a mapping, got {type(updates).__name__}",
                    )
                )
                continue
            keys = context.merge(updates) if updates else []
            records.append(
                ToolCallRecord(directive, ok=True, result=res.tool_result, context_keys_updated=tuple(keys))
            )
        return records

    def _evaluate_rules(
        self, agent_id: str, output: Any, context: ExecutionContext, result: RunResult
    ) -> list[RuleEvaluation]:
        scope = build_scope(context.snapshot(), output, agent_id)
        evaluations: list[RuleEvaluation] = []
        matched = False

        for rule in self.definition.rules_from(agent_id):
            condition = rule.effective_condition
            warnings: tuple[str, ...] = ()
            explanation = None

            if self.condition_mode == "legacy":
                compat = check_legacy_compatibility(condition)
                warning = compat.warning()
                if warning is not None:
                    warnings = (warning,)
                    if warning not in result.warnings:
                        result.warnings.append(warning)
                        logger.warning("Legacy condition needs migration", extra={"rule_id": rule.id, "condition": condition})
                outcome = evaluate_legacy_condition(condition, scope)
            else:
                explanation = explain_ast(parse_condition(condition), scope, expression=condition)
                outcome = explanation.result

            selected = outcome and not matched
            matched = matched or outcome
            evaluations.append(
                RuleEvaluation(
                    rule_id=rule.id,
                    from_agent=rule.from_agent,
                    to_agent=rule.to_agent,
                    condition=condition,
                    result=outcome,
                    selected=selected,
                    explanation=explanation,
                    warnings=warnings,
                )
            )
        return evaluations
