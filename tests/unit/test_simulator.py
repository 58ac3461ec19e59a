"""Unit tests for the deterministic simulator."""

from __future__ import annotations

import json

from aiflow_runtime.engine.invokers import AgentRequest
from aiflow_runtime.engine.models import AgentSpec
from aiflow_runtime.engine.simulator import (
    DeterministicSimulator,
    SimOverrides,
    classify_ticket,
    is_classifier,
    stable_hash,
    stable_pick,
)

TRIAGE = AgentSpec(id="triage", name="Triage", role="Ticket classifier", output_format="json")
WRITER = AgentSpec(id="writer", name="Writer", role="Drafts replies", output_format="json")
NOTES = AgentSpec(id="notes", name="Notes", role="Summariser")


def _request(agent: AgentSpec, context: dict[str, object]) -> AgentRequest:
    return AgentRequest(agent=agent, prompt="ignored", context=context)


def test_identical_inputs_give_identical_raw_output() -> None:
    ctx = {"ticket_text": "my wifi is broken", "nested": {"b": 2, "a": 1}}

    first = DeterministicSimulator(seed=7).invoke(_request(WRITER, ctx))
    second = DeterministicSimulator(seed=7).invoke(_request(WRITER, dict(ctx)))

    assert first.raw_output == second.raw_output


def test_hash_ignores_key_order_but_not_seed_or_agent() -> None:
    a = stable_hash(1, "x", {"a": 1, "b": 2})

    assert a == stable_hash(1, "x", {"b": 2, "a": 1})
    assert a != stable_hash(2, "x", {"a": 1, "b": 2})
    assert a != stable_hash(1, "y", {"a": 1, "b": 2})
    assert 0 <= a < 16**8


def test_stable_pick_is_modulo() -> None:
    assert stable_pick(("A", "B", "C"), 4) == "B"


def test_text_agents_emit_a_signature_only() -> None:
    response = DeterministicSimulator(seed=3).invoke(_request(NOTES, {}))

    assert response.raw_output.startswith("SIMULATED_OUTPUT(notes) seed=3 sig=")
    assert response.parsed_output == response.raw_output


def test_classifier_uses_ticket_heuristics() -> None:
    sim = DeterministicSimulator()

    billing = sim.invoke(_request(TRIAGE, {"ticket_text": "Please refund the duplicate charge"}))
    technical = sim.invoke(_request(TRIAGE, {"ticket_text": "The app shows an error on login"}))

    assert billing.parsed_output["category"] == "billing"
    assert billing.parsed_output["ticket_type"] == "billing"
    assert technical.parsed_output["category"] == "technical"


def test_classifier_without_ticket_text_picks_a_known_category() -> None:
    output = DeterministicSimulator().invoke(_request(TRIAGE, {})).parsed_output
    assert output["category"] in {"billing", "technical", "general"}


def test_generic_json_agent_output() -> None:
    output = DeterministicSimulator(seed=5).invoke(_request(WRITER, {"x": 1})).parsed_output

    assert output["simulated"] is True
    assert output["agentId"] == "writer"
    assert output["decision"] in {"A", "B", "C"}
    assert output["signature"].startswith("sim-5-writer-")
    assert "__sim_override" not in output


def test_overrides_are_applied_and_recorded() -> None:
    sim = DeterministicSimulator(overrides=SimOverrides(ticket_type="general", solution_found=False))

    output = json.loads(sim.invoke(_request(TRIAGE, {"ticket_text": "refund please"})).raw_output)

    assert output["category"] == "general"
    assert output["solution_found"] is False
    assert output["__sim_override"] == {"ticket_type": "general", "solution_found": False}


def test_heuristics() -> None:
    assert is_classifier(TRIAGE)
    assert not is_classifier(WRITER)
    assert classify_ticket("Invoice question") == "billing"
    assert classify_ticket("hello there") is None
