"""Workflow engine: definition models, context, retry, tools, simulator and the executor.

Import from the submodules directly; this package keeps no re-exports so that
`engine.retry` can be imported by the settings layer without pulling in the
executor.
"""

__all__: list[str] = []
