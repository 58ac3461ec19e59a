"""The mutable execution context owned by the executor for one run."""

from __future__ import annotations

import copy
from collections.abc import Iterator, Mapping
from typing import Any

OUTPUT_KEY_PREFIX = "output_"


def output_key(agent_id: str) -> str:
    return f"{OUTPUT_KEY_PREFIX}{agent_id}"


class ExecutionContext:
    """String-keyed, JSON-like run state.

    Only the executor mutates it. Everything handed out (`snapshot`,
    `to_json`) is a deep copy, so a recorded snapshot never changes when later
    steps write to the live context.
    """

    def __init__(self, initial: Mapping[str, Any] | None = None) -> None:
        self._data: dict[str, Any] = copy.deepcopy(dict(initial or {}))

    def __contains__(self, key: object) -> bool:
        return key in self._data

    def __getitem__(self, key: str) -> Any:
        return self._data[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    def snapshot(self) -> dict[str, Any]:
        return copy.deepcopy(self._data)

    def set_agent_output(self, agent_id: str, output: Any) -> str:
        key = output_key(agent_id)
        self._data[key] = copy.deepcopy(output)
        return key

    def merge(self, updates: Mapping[str, Any]) -> list[str]:
        """Merge an explicit diff returned by a collaborator; returns the keys written."""

        for key, value in updates.items():
            self._data[str(key)] = copy.deepcopy(value)
        return [str(k) for k in updates]

    def to_json(self) -> dict[str, Any]:
        return self.snapshot()


def build_scope(context: Mapping[str, Any], output: Any, agent_id: str) -> dict[str, Any]:
    """The mapping conditions are evaluated against.

    Bare names resolve against the agent's output fields first, then the
    context variables. `context`, `output` and `agentId` are always available
    as qualified roots.
    """

    scope: dict[str, Any] = dict(context)
    if isinstance(output, Mapping):
        scope.update(output)
    scope["context"] = context
    scope["output"] = output
    scope["agentId"] = agent_id
    return scope
