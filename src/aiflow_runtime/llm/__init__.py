"""LLM package initialization."""

from aiflow_runtime.llm.factory import LLMFactory
from aiflow_runtime.llm.provider import LLMProvider

__all__ = [
    "LLMFactory",
    "LLMProvider",
]
