# replay/core/errors.py
from __future__ import annotations

"""Error taxonomy
-----------------
Per-step failures are raised inside tool adapters and converted into explicit
outcomes at the adapter boundary; the executor never lets them escape a run.
"""

from enum import Enum


class ErrorKind(str, Enum):
    configuration = "configuration"
    validation = "validation"
    execution = "execution"


class RunStatus(str, Enum):
    """How a single executor run terminated."""
    completed = "completed"
    aborted = "aborted"                        # `stop` policy
    user_input_required = "user_input_required"  # `ask` (or unrecognized) policy


class WorkflowError(Exception):
    kind: ErrorKind = ErrorKind.execution


# ---------- Configuration (registry lookups) ----------

class ConfigurationError(WorkflowError):
    kind = ErrorKind.configuration


class UnknownCategoryError(ConfigurationError):
    def __init__(self, category: str):
        self.category = category
        super().__init__(f"Tool category not found: {category}")


class UnknownOperationError(ConfigurationError):
    def __init__(self, category: str, operation: str):
        self.category = category
        self.operation = operation
        super().__init__(f"Tool not found: {category}.{operation}")


# ---------- Adapter-level ----------

class ToolValidationError(WorkflowError):
    """Missing or malformed step parameter."""
    kind = ErrorKind.validation


class ToolExecutionError(WorkflowError):
    """The underlying side effect failed (missing file, network error, ...)."""
    kind = ErrorKind.execution


# ---------- Orchestration ----------

class WorkflowNotFoundError(WorkflowError):
    def __init__(self, workflow_id: str):
        self.workflow_id = workflow_id
        super().__init__(f"Workflow not found: {workflow_id}")


class WorkflowBusyError(WorkflowError):
    def __init__(self, workflow_id: str):
        self.workflow_id = workflow_id
        super().__init__(f"Workflow is already executing: {workflow_id}")


__all__ = [
    "ErrorKind",
    "RunStatus",
    "WorkflowError",
    "ConfigurationError",
    "UnknownCategoryError",
    "UnknownOperationError",
    "ToolValidationError",
    "ToolExecutionError",
    "WorkflowNotFoundError",
    "WorkflowBusyError",
]
