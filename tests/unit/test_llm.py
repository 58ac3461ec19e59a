"""Unit tests for the LLM provider layer and the real-mode agent invoker."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import Mock

import pytest

from aiflow_runtime.engine.invokers import AgentRequest, LLMAgentInvoker
from aiflow_runtime.engine.models import AgentModel, AgentSpec
from aiflow_runtime.llm.factory import LLMFactory
from aiflow_runtime.llm.openai_provider import OpenAIProvider
from aiflow_runtime.llm.provider import LLMProvider
from aiflow_runtime.orchestrator.config import LLMConfig


def _client(content: str | None) -> Mock:
    client = Mock()
    client.chat.completions.create.return_value = Mock(choices=[Mock(message=Mock(content=content))])
    return client


def test_openai_provider_requires_api_key(clean_env: Path) -> None:
    with pytest.raises(ValueError, match="API key is required"):
        OpenAIProvider(LLMConfig())


def test_openai_provider_requests_json_when_asked(clean_env: Path) -> None:
    client = _client('{"ok": true}')
    provider = OpenAIProvider(LLMConfig(openai_model="gpt-4o-mini"), client=client)

    text = provider.generate("Classify", max_tokens=64, json_output=True)

    assert text == '{"ok": true}'
    kwargs = client.chat.completions.create.call_args.kwargs
    assert kwargs["model"] == "gpt-4o-mini"
    assert kwargs["messages"] == [{"role": "user", "content": "Classify"}]
    assert kwargs["max_tokens"] == 64
    assert kwargs["temperature"] == 0.7
    assert kwargs["response_format"] == {"type": "json_object"}


def test_openai_provider_plain_text(clean_env: Path) -> None:
    client = _client(None)
    provider = OpenAIProvider(LLMConfig(), client=client)

    assert provider.generate("Hello", temperature=0.1) == ""
    kwargs = client.chat.completions.create.call_args.kwargs
    assert kwargs["temperature"] == 0.1
    assert "response_format" not in kwargs


def test_factory_creates_openai_provider(clean_env: Path) -> None:
    provider = LLMFactory.create(LLMConfig(openai_api_key="test-key"))

    assert isinstance(provider, OpenAIProvider)


def test_llm_agent_invoker_parses_fenced_json() -> None:
    provider = Mock(spec=LLMProvider)
    provider.generate.return_value = '```json\n{"category": "billing"}\n```'
    agent = AgentSpec(
        id="triage",
        role="Ticket classifier",
        output_format="json",
        model=AgentModel(temperature=0.2, max_tokens=128),
    )

    response = LLMAgentInvoker(provider).invoke(AgentRequest(agent=agent, prompt="Classify", context={}))

    assert response.parsed_output == {"category": "billing"}
    provider.generate.assert_called_once_with("Classify", max_tokens=128, temperature=0.2, json_output=True)


def test_llm_agent_invoker_propagates_provider_errors() -> None:
    provider = Mock(spec=LLMProvider)
    provider.generate.side_effect = TimeoutError("Request timed out.")

    with pytest.raises(TimeoutError):
        LLMAgentInvoker(provider).invoke(AgentRequest(agent=AgentSpec(id="a"), prompt="x", context={}))
