"""Abstract base class for LLM providers."""

from abc import ABC, abstractmethod
from typing import Any


class LLMProvider(ABC):
    """Abstract base class for LLM providers.

    Real-mode agent calls go through this interface, so any backend that can
    turn a prompt into text can drive a workflow.
    """

    @abstractmethod
    def generate(
        self,
        prompt: str,
        max_tokens: int | None = None,
        temperature: float | None = None,
        json_output: bool = False,
        **kwargs: Any,
    ) -> str:
        """Generate a completion from a prompt.

        Args:
            prompt: The input prompt.
            max_tokens: Maximum tokens to generate.
            temperature: Sampling temperature.
            json_output: Ask the backend for a JSON object response.
            **kwargs: Additional provider-specific parameters.

        Returns:
            Generated text completion.

        Raises:
            Exception: Backend failures propagate unchanged; they must expose
                `message` and, where available, `code` and `status` or
                `status_code` for retry classification.
        """
        pass
