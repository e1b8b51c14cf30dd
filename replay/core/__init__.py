"""
Core package for procedure replay.
Lightweight package init to avoid import cycles.

Consumers should import submodules directly, e.g.:
  from replay.core.loader import load_workflow
  from replay.core.executor import StepExecutor
  from replay.core.runner import WorkflowRunner
"""

__all__: list[str] = []
