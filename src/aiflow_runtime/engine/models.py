"""Immutable workflow definition.

A definition is loaded once per run from an `.aiflow` project document and
never mutated afterwards.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any

from aiflow_runtime.engine.retry import RetryPolicy
from aiflow_runtime.exceptions import WorkflowStructureError

OUTPUT_FORMAT_JSON = "json"
OUTPUT_FORMAT_TEXT = "text"
DEFAULT_CONDITION = "always"


def _str(v: object, default: str = "") -> str:
    return v if isinstance(v, str) else default


def _float(v: object) -> float | None:
    if isinstance(v, int | float) and not isinstance(v, bool):
        return float(v)
    return None


def _int(v: object) -> int | None:
    if isinstance(v, int) and not isinstance(v, bool):
        return v
    if isinstance(v, str):
        try:
            return int(v)
        except ValueError:
            return None
    return None


@dataclass(frozen=True, slots=True)
class AgentModel:
    provider: str = ""
    name: str = ""
    temperature: float | None = None
    max_tokens: int | None = None

    @staticmethod
    def from_json(obj: Mapping[str, object]) -> AgentModel:
        return AgentModel(
            provider=_str(obj.get("provider")),
            name=_str(obj.get("name")),
            temperature=_float(obj.get("temperature")),
            max_tokens=_int(obj.get("max_tokens")),
        )


@dataclass(frozen=True, slots=True)
class AgentSpec:
    id: str
    name: str = ""
    role: str = ""
    prompt_ref: str = ""
    output_format: str = OUTPUT_FORMAT_TEXT
    tool_whitelist: tuple[str, ...] = ()
    model: AgentModel = field(default_factory=AgentModel)
    retry: Mapping[str, object] | None = None

    @property
    def is_json(self) -> bool:
        return self.output_format.strip().lower() == OUTPUT_FORMAT_JSON

    def retry_policy(self, default: RetryPolicy) -> RetryPolicy:
        """Agent-level retry override, falling back to `default` per field."""

        if not self.retry:
            return default
        return RetryPolicy.from_json(self.retry, base=default)

    @staticmethod
    def from_json(obj: Mapping[str, object]) -> AgentSpec:
        agent_id = obj.get("id")
        if not isinstance(agent_id, str) or not agent_id:
            raise WorkflowStructureError(f"Agent is missing an id: {obj!r}")
        tools_raw = obj.get("tools") or obj.get("tool_whitelist") or []
        model_raw = obj.get("model")
        retry_raw = obj.get("retry")
        if isinstance(retry_raw, Mapping):
            try:
                RetryPolicy.from_json(retry_raw)
            except ValueError as e:
                raise WorkflowStructureError(f"Agent {agent_id!r} has an invalid retry block: {e}") from e
        return AgentSpec(
            id=agent_id,
            name=_str(obj.get("name"), agent_id),
            role=_str(obj.get("role")),
            prompt_ref=_str(obj.get("prompt")),
            output_format=_str(obj.get("output_format"), OUTPUT_FORMAT_TEXT),
            tool_whitelist=tuple(t for t in tools_raw if isinstance(t, str)) if isinstance(tools_raw, list) else (),
            model=AgentModel.from_json(model_raw) if isinstance(model_raw, Mapping) else AgentModel(),
            retry=MappingProxyType(dict(retry_raw)) if isinstance(retry_raw, Mapping) else None,
        )


@dataclass(frozen=True, slots=True)
class TransitionRule:
    id: str
    from_agent: str
    to_agent: str
    condition: str = DEFAULT_CONDITION
    description: str = ""

    @property
    def effective_condition(self) -> str:
        """The condition text, with blank conditions replaced by `always`."""

        return self.condition.strip() or DEFAULT_CONDITION

    @staticmethod
    def from_json(obj: Mapping[str, object], *, index: int) -> TransitionRule:
        src = obj.get("from")
        dest = obj.get("to")
        if not isinstance(src, str) or not isinstance(dest, str):
            raise WorkflowStructureError(f"Rule #{index} needs string 'from' and 'to' fields")
        return TransitionRule(
            id=_str(obj.get("id")) or f"rule_{index}",
            from_agent=src,
            to_agent=dest,
            condition=_str(obj.get("condition")),
            description=_str(obj.get("description")),
        )


@dataclass(frozen=True, slots=True)
class WorkflowDefinition:
    entry_agent_id: str
    agents: tuple[AgentSpec, ...]
    rules: tuple[TransitionRule, ...] = ()
    initial_variables: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))
    tool_registry: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))
    prompts: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    name: str = ""

    def __post_init__(self) -> None:
        # Unknown entry or rule targets are left to the executor, which aborts
        # with the partial trace when a step reaches them.
        seen: set[str] = set()
        for agent in self.agents:
            if agent.id in seen:
                raise WorkflowStructureError(f"Duplicate agent id: {agent.id!r}")
            seen.add(agent.id)

    def agent(self, agent_id: str) -> AgentSpec | None:
        for agent in self.agents:
            if agent.id == agent_id:
                return agent
        return None

    def rules_from(self, agent_id: str) -> list[TransitionRule]:
        """Rules leaving `agent_id`, in definition order."""

        return [r for r in self.rules if r.from_agent == agent_id]

    @staticmethod
    def from_json(obj: Mapping[str, object]) -> WorkflowDefinition:
        flow_raw = obj.get("flow")
        flow: Mapping[str, object] = flow_raw if isinstance(flow_raw, Mapping) else {}

        entry = flow.get("entry_agent")
        if not isinstance(entry, str) or not entry:
            raise WorkflowStructureError("flow.entry_agent is required")

        agents_raw = obj.get("agents")
        agents = tuple(
            AgentSpec.from_json(a) for a in (agents_raw if isinstance(agents_raw, list) else []) if isinstance(a, Mapping)
        )
        logic_raw = flow.get("logic")
        rules = tuple(
            TransitionRule.from_json(r, index=i)
            for i, r in enumerate(logic_raw if isinstance(logic_raw, list) else [])
            if isinstance(r, Mapping)
        )

        variables = flow.get("variables")
        tools = obj.get("tools")
        prompts = obj.get("prompts")
        metadata = obj.get("metadata")

        return WorkflowDefinition(
            entry_agent_id=entry,
            agents=agents,
            rules=rules,
            initial_variables=MappingProxyType(dict(variables) if isinstance(variables, Mapping) else {}),
            tool_registry=MappingProxyType(dict(tools) if isinstance(tools, Mapping) else {}),
            prompts=MappingProxyType(
                {k: v for k, v in prompts.items() if isinstance(v, str)} if isinstance(prompts, Mapping) else {}
            ),
            name=_str(metadata.get("name")) if isinstance(metadata, Mapping) else "",
        )


def load_workflow(path: Path) -> WorkflowDefinition:
    """Load an `.aiflow` JSON project file."""

    raw = json.loads(path.read_text(encoding="utf-8"))
    if not isinstance(raw, Mapping):
        raise WorkflowStructureError(f"{path} does not contain a JSON object")
    return WorkflowDefinition.from_json(raw)
