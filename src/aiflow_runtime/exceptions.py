"""Exception types shared by the condition language and the engine."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from aiflow_runtime.engine.trace import RunResult


class AIFlowError(Exception):
    """Base class for all runtime errors raised by this package."""


class ConditionParseError(AIFlowError, ValueError):
    """Raised when condition text is rejected by the strict grammar."""

    def __init__(self, message: str, *, expression: str = "", position: int | None = None) -> None:
        super().__init__(message)
        self.expression = expression
        self.position = position


class WorkflowStructureError(AIFlowError):
    pass


class AgentNotFoundError(WorkflowStructureError):
    def __init__(self, agent_id: str) -> None:
        super().__init__(f"Agent '{agent_id}' not found in configuration")
        self.agent_id = agent_id


class AgentCallError(AIFlowError):
    """A failed agent call.

    The retry classifier inspects exactly `message`, `code` and `status`;
    `payload` holds any structured provider error body (used to find a
    suggested retry delay).
    """

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        status: int | None = None,
        payload: Any = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.status = status
        self.payload = payload


class WorkflowAbortedError(AIFlowError):
    """A run stopped on a fatal fault.

    The original cause is chained via `__cause__`; `result` holds the steps
    completed before the fault and the live context at that point.
    """

    def __init__(self, message: str, *, result: RunResult) -> None:
        super().__init__(message)
        self.result = result
