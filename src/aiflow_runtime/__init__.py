"""AIFlow runtime.

Executes `.aiflow` multi-agent workflow projects:
- a strict condition language guarding transitions
- retry with classified agent-call failures
- tool directives extracted from agent output
- a deterministic simulation mode for offline runs
"""

__version__ = "0.1.0"

from aiflow_runtime.orchestrator.config import RunSettings

__all__ = ["__version__", "RunSettings"]
