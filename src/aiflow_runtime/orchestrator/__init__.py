"""Run-level plumbing around the engine.

- Settings loaded from the environment and `.env`
- Structured logging
- The `aiflow` CLI
"""
