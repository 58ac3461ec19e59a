"""Deterministic stand-in for a live agent call.

Output depends only on (seed, agent id, context snapshot): the same triple
always yields byte-identical raw output.
"""

from __future__ import annotations

import hashlib
import json
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any, TypeVar

from aiflow_runtime.engine.invokers import AgentRequest, AgentResponse
from aiflow_runtime.engine.models import AgentSpec

T = TypeVar("T")

DEFAULT_SEED = 42

TICKET_CATEGORIES: tuple[str, ...] = ("billing", "technical", "general")

# Checked in order; first category with a matching keyword wins.
_CATEGORY_KEYWORDS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("billing", ("invoice", "refund", "billing", "charge", "payment", "subscription", "price")),
    ("technical", ("wifi", "error", "crash", "bug", "network", "login", "password", "broken")),
)
_CLASSIFIER_HINTS = ("classif", "triage", "router", "categor")


@dataclass(frozen=True, slots=True)
class SimOverrides:
    ticket_type: str | None = None
    solution_found: bool | None = None

    def to_json(self) -> dict[str, object]:
        out: dict[str, object] = {}
        if self.ticket_type is not None:
            out["ticket_type"] = self.ticket_type
        if self.solution_found is not None:
            out["solution_found"] = self.solution_found
        return out


def stable_hash(seed: int, agent_id: str, context: Mapping[str, Any]) -> int:
    """First 8 hex digits of sha256(seed:agent_id:canonical-context) as an integer."""

    serialized = json.dumps(context, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str)
    digest = hashlib.sha256(f"{seed}:{agent_id}:{serialized}".encode()).hexdigest()
    return int(digest[:8], 16)


def stable_pick(options: Sequence[T], value: int) -> T:
    return options[value % len(options)]


def is_classifier(agent: AgentSpec) -> bool:
    label = f"{agent.role} {agent.name}".lower()
    return any(hint in label for hint in _CLASSIFIER_HINTS)


def classify_ticket(text: str) -> str | None:
    lowered = text.lower()
    for category, keywords in _CATEGORY_KEYWORDS:
        if any(k in lowered for k in keywords):
            return category
    return None


class DeterministicSimulator:
    """Agent invoker that fabricates reproducible output instead of calling a model."""

    def __init__(self, seed: int = DEFAULT_SEED, overrides: SimOverrides | None = None) -> None:
        self.seed = seed
        self.overrides = overrides or SimOverrides()

    def signature(self, agent_id: str, sig: int) -> str:
        return f"sim-{self.seed}-{agent_id}-{sig:08x}"

    def simulate(self, agent: AgentSpec, context: Mapping[str, Any]) -> str:
        sig = stable_hash(self.seed, agent.id, context)
        if not agent.is_json:
            return f"SIMULATED_OUTPUT({agent.id}) seed={self.seed} sig={sig:08x}"

        payload: dict[str, Any] = {"simulated": True, "agentId": agent.id, "agentName": agent.name, "role": agent.role}
        applied: dict[str, object] = {}

        if is_classifier(agent):
            ticket_text = context.get("ticket_text")
            category = classify_ticket(ticket_text) if isinstance(ticket_text, str) else None
            if self.overrides.ticket_type is not None:
                category = self.overrides.ticket_type
                applied["ticket_type"] = category
            payload["category"] = category or stable_pick(TICKET_CATEGORIES, sig)
            payload["ticket_type"] = payload["category"]
        else:
            payload["decision"] = stable_pick(("A", "B", "C"), sig)

        if self.overrides.solution_found is not None:
            payload["solution_found"] = self.overrides.solution_found
            applied["solution_found"] = self.overrides.solution_found

        payload["signature"] = self.signature(agent.id, sig)
        if applied:
            payload["__sim_override"] = applied
        return json.dumps(payload, indent=2, ensure_ascii=False)

    def invoke(self, request: AgentRequest) -> AgentResponse:
        raw = self.simulate(request.agent, request.context)
        return AgentResponse.from_raw(raw, request.output_format)
