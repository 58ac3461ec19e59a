"""Run configuration.

Configuration is loaded from:
- environment variables
- and a local `.env` file (if present)

Settings objects can also be built directly (field names are accepted as
well as the environment variable aliases), which is how the CLI applies
command-line overrides and how tests configure runs.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from aiflow_runtime.engine.retry import (
    DEFAULT_BACKOFF_CAP_MS,
    DEFAULT_MAX_ATTEMPTS,
    RETRY_CATEGORIES,
    RetryPolicy,
    parse_retry_on,
)

RunMode = Literal["real", "sim"]
ConditionMode = Literal["strict", "legacy"]

DEFAULT_MAX_STEPS = 10


class LLMConfig(BaseSettings):
    """Configuration for the real-mode LLM provider."""

    provider: Literal["openai"] = Field(
        default="openai",
        description="LLM provider to use",
    )
    openai_api_key: str | None = Field(
        default=None,
        description="OpenAI API key",
    )
    openai_model: str = Field(
        default="gpt-4o-mini",
        description="OpenAI model to use",
    )
    openai_temperature: float = Field(
        default=0.7,
        ge=0.0,
        le=2.0,
        description="Default temperature when an agent does not set one",
    )

    model_config = SettingsConfigDict(
        env_prefix="AIFLOW_",
        env_file=".env",
        extra="ignore",
    )


@dataclass(frozen=True, slots=True)
class ResolvedMode:
    mode: RunMode
    source: str


class RunSettings(BaseSettings):
    """Settings for a workflow run.

    Environment variables:
    - AIFLOW_MODE             real | sim
    - AIFLOW_MOCK_LLM / MOCK_LLM   1 | true selects sim when AIFLOW_MODE is unset
    - AIFLOW_SEED             simulation seed
    - AIFLOW_MAX_STEPS        hard cap on executed steps
    - AIFLOW_MAX_ATTEMPTS     default attempts per agent call
    - AIFLOW_RETRY_ON         comma-separated retryable categories
    - AIFLOW_BACKOFF_CAP_MS   ceiling for provider-suggested delays
    - AIFLOW_SLEEP            false records backoff without waiting
    - AIFLOW_CONDITION_MODE   strict | legacy
    - LOG_LEVEL
    """

    mode: RunMode | None = Field(
        default=None,
        description="Explicit run mode; unset falls back to the mock flag, then 'real'",
    )
    # "mock_llm" also matches the unprefixed MOCK_LLM variable.
    mock_llm: bool = Field(
        default=False,
        validation_alias=AliasChoices("mock_llm", "AIFLOW_MOCK_LLM"),
        description="Legacy switch selecting simulation mode",
    )
    seed: int = Field(
        default=42,
        description="Deterministic simulation seed",
    )
    max_steps: int = Field(
        default=DEFAULT_MAX_STEPS,
        ge=1,
        description="Hard ceiling on executed steps per run",
    )
    max_attempts: int = Field(
        default=DEFAULT_MAX_ATTEMPTS,
        ge=1,
        description="Default attempts per agent call",
    )
    retry_on: str = Field(
        default="transient",
        description="Comma-separated retryable categories",
    )
    backoff_cap_ms: int = Field(
        default=DEFAULT_BACKOFF_CAP_MS,
        ge=0,
        description="Ceiling for provider-suggested retry delays",
    )
    sleep: bool = Field(
        default=True,
        description="Actually wait between retries (backoff is recorded either way)",
    )
    condition_mode: ConditionMode = Field(
        default="strict",
        description="Condition evaluator: strict grammar or deprecated legacy matcher",
    )
    # Aliased to skip the AIFLOW_ prefix: read from LOG_LEVEL.
    log_level: str = Field(
        default="INFO",
        validation_alias=AliasChoices("log_level"),
        description="Root logging level",
    )

    llm: LLMConfig = Field(
        default_factory=LLMConfig,
        description="LLM configuration",
    )

    model_config = SettingsConfigDict(
        env_prefix="AIFLOW_",
        env_file=".env",
        extra="ignore",
        populate_by_name=True,
    )

    @field_validator("mode", mode="before")
    @classmethod
    def _normalise_mode(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip().lower() or None
        return value

    @field_validator("condition_mode", mode="before")
    @classmethod
    def _normalise_condition_mode(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip().lower() or "strict"
        return value

    @field_validator("retry_on")
    @classmethod
    def _known_categories(cls, value: str) -> str:
        unknown = parse_retry_on(value) - RETRY_CATEGORIES
        if unknown:
            raise ValueError(f"Unknown retry categories: {sorted(unknown)}")
        return value

    @property
    def resolved_mode(self) -> ResolvedMode:
        """Run mode and where it came from: AIFLOW_MODE, then MOCK_LLM, then default."""

        if self.mode is not None:
            return ResolvedMode(self.mode, "AIFLOW_MODE")
        if self.mock_llm:
            return ResolvedMode("sim", "MOCK_LLM")
        return ResolvedMode("real", "default")

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(max_attempts=self.max_attempts, retry_on=parse_retry_on(self.retry_on))
