"""OpenAI LLM provider implementation."""

import logging
from typing import Any

from openai import OpenAI

from aiflow_runtime.llm.provider import LLMProvider
from aiflow_runtime.orchestrator.config import LLMConfig

logger = logging.getLogger(__name__)


class OpenAIProvider(LLMProvider):
    """OpenAI API provider implementation."""

    def __init__(self, config: LLMConfig, client: OpenAI | None = None) -> None:
        """Initialize the OpenAI provider.

        Args:
            config: LLM configuration.
            client: Pre-built client (mainly for tests).

        Raises:
            ValueError: If API key is not provided.
        """
        if client is None and not config.openai_api_key:
            raise ValueError("OpenAI API key is required (required for real mode)")

        self.config = config
        # Retries are owned by the workflow executor's retry policy.
        self.client = client or OpenAI(api_key=config.openai_api_key, max_retries=0)
        self.model = config.openai_model
        self.temperature = config.openai_temperature

        logger.info(f"OpenAI provider initialized with model: {self.model}")

    def generate(
        self,
        prompt: str,
        max_tokens: int | None = None,
        temperature: float | None = None,
        json_output: bool = False,
        **kwargs: Any,
    ) -> str:
        """Generate a completion using the OpenAI chat completions API.

        Args:
            prompt: The input prompt.
            max_tokens: Maximum tokens to generate.
            temperature: Sampling temperature.
            json_output: Request a JSON object response.
            **kwargs: Additional OpenAI-specific parameters.

        Returns:
            Generated text completion.
        """
        temp = temperature if temperature is not None else self.temperature
        if json_output:
            kwargs.setdefault("response_format", {"type": "json_object"})

        logger.debug(f"Generating completion for prompt: {prompt[:100]}...")

        response = self.client.chat.completions.create(
            model=self.model,
            messages=[{"role": "user", "content": prompt}],
            max_tokens=max_tokens,
            temperature=temp,
            **kwargs,
        )

        content = response.choices[0].message.content or ""
        logger.debug(f"Generated {len(content)} characters")

        return content
