"""Contracts for the collaborators the executor drives.

Agent invokers turn a filled prompt into output; tool invokers perform a
resolved tool directive. Both are supplied by the caller. Tool invokers
receive a copy of the context and return an explicit diff, never a handle
on the live context.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Protocol

from aiflow_runtime.engine.models import OUTPUT_FORMAT_JSON, AgentSpec
from aiflow_runtime.engine.output import try_parse_json
from aiflow_runtime.llm.provider import LLMProvider

logger = logging.getLogger(__name__)

_PLACEHOLDER_RE = re.compile(r"\{\{(\w+)\}\}")


@dataclass(frozen=True, slots=True)
class AgentRequest:
    agent: AgentSpec
    prompt: str
    context: Mapping[str, Any]
    attempt: int = 1

    @property
    def agent_id(self) -> str:
        return self.agent.id

    @property
    def output_format(self) -> str:
        return self.agent.output_format


@dataclass(frozen=True, slots=True)
class AgentResponse:
    raw_output: str
    parsed_output: Any = None

    @staticmethod
    def from_raw(raw: str, output_format: str) -> AgentResponse:
        if output_format.strip().lower() == OUTPUT_FORMAT_JSON:
            return AgentResponse(raw_output=raw, parsed_output=try_parse_json(raw))
        return AgentResponse(raw_output=raw, parsed_output=raw)


class AgentInvoker(Protocol):
    """Produces one agent's output. Failures are raised, exposing `message`,
    and optionally `code` and `status`, for retry classification."""

    def invoke(self, request: AgentRequest) -> AgentResponse: ...


@dataclass(frozen=True, slots=True)
class ToolInvocationResult:
    tool_result: Any = None
    context_updates: Mapping[str, Any] = field(default_factory=dict)


class ToolInvoker(Protocol):
    def invoke_tool(
        self,
        agent_id: str,
        tool_name: str,
        tool_input: Mapping[str, Any],
        context: dict[str, Any],
    ) -> ToolInvocationResult: ...


def fill_prompt(agent: AgentSpec, prompts: Mapping[str, str], context: Mapping[str, Any]) -> str:
    """Resolve the agent's prompt template against the context.

    `{{key}}` placeholders are replaced by context values; unknown keys are
    left in place. The rendered context is appended for the model.
    """

    template = prompts.get(agent.prompt_ref) or f"You are a helpful AI assistant acting as {agent.role}."

    def _sub(m: re.Match[str]) -> str:
        key = m.group(1)
        if key not in context:
            return m.group(0)
        value = context[key]
        return value if isinstance(value, str) else json.dumps(value, ensure_ascii=False, default=str)

    prompt_text = _PLACEHOLDER_RE.sub(_sub, template)
    context_text = json.dumps(dict(context), indent=2, ensure_ascii=False, default=str)
    return (
        f"{prompt_text}\n\n[Current Context Variables]:\n{context_text}\n\n"
        "Instructions: Perform your task based on the context."
    )


class LLMAgentInvoker:
    """Real-mode agent invoker backed by an LLM provider."""

    def __init__(self, provider: LLMProvider) -> None:
        self.provider = provider

    def invoke(self, request: AgentRequest) -> AgentResponse:
        agent = request.agent
        logger.debug(
            "Invoking LLM agent",
            extra={"agent_id": agent.id, "attempt": request.attempt, "model": agent.model.name or None},
        )
        raw = self.provider.generate(
            request.prompt,
            max_tokens=agent.model.max_tokens,
            temperature=agent.model.temperature,
            json_output=agent.is_json,
        )
        return AgentResponse.from_raw(raw, agent.output_format)
