# replay/core/results.py
from __future__ import annotations

"""Execution result shapes
--------------------------
The terminal payloads of one executor run. Callers (CLI, history recorder, UI)
depend on these exact camelCase shapes, so construction lives here and nowhere
else.
"""

from typing import Any, Literal, Sequence, Union

from pydantic import Field

from replay.core.errors import RunStatus
from replay.core.models import DocumentModel, ExecutionLogEntry, SimulationEntry
from replay.utils.timing import utc_timestamp


class _LoggedResult(DocumentModel):
    execution_log: list[ExecutionLogEntry]

    def to_dict(self) -> dict[str, Any]:
        d = super().to_dict()
        d["executionLog"] = [e.to_dict() for e in self.execution_log]
        return d


class CompletedResult(_LoggedResult):
    success: Literal[True] = True
    workflow_id: str
    results: list[dict[str, Any]]
    timestamp: str = Field(default_factory=utc_timestamp)

    @property
    def status(self) -> RunStatus:
        return RunStatus.completed

    @property
    def failed_steps(self) -> list[int]:
        """Steps that failed under a `continue` policy; the top-level flag hides them."""
        return [e.step for e in self.execution_log if e.status == "error"]


class AbortedResult(_LoggedResult):
    success: Literal[False] = False
    error: str
    completed_steps: int
    total_steps: int
    timestamp: str = Field(default_factory=utc_timestamp)

    @property
    def status(self) -> RunStatus:
        return RunStatus.aborted


class UserInputRequiredResult(_LoggedResult):
    success: Literal[False] = False
    requires_user_input: Literal[True] = True
    error: str
    timestamp: str = Field(default_factory=utc_timestamp)

    @property
    def status(self) -> RunStatus:
        return RunStatus.user_input_required


class DryRunResult(DocumentModel):
    success: Literal[True] = True
    is_dry_run: Literal[True] = True
    simulation_log: list[SimulationEntry]
    timestamp: str = Field(default_factory=utc_timestamp)


ExecutionResult = Union[CompletedResult, AbortedResult, UserInputRequiredResult]


# ---------- Builders ----------


def build_completed(workflow_id: str, log: Sequence[ExecutionLogEntry], results: Sequence[dict[str, Any]]) -> CompletedResult:
    return CompletedResult(workflow_id=workflow_id, execution_log=list(log), results=list(results))


def build_aborted(step_number: int, message: str, log: Sequence[ExecutionLogEntry], completed_steps: int, total_steps: int) -> AbortedResult:
    return AbortedResult(
        error=f"Failed at step {step_number}: {message}",
        execution_log=list(log),
        completed_steps=completed_steps,
        total_steps=total_steps,
    )


def build_user_input_required(step_number: int, message: str, log: Sequence[ExecutionLogEntry]) -> UserInputRequiredResult:
    return UserInputRequiredResult(error=f"Step {step_number} failed: {message}", execution_log=list(log))


def build_dry_run(entries: Sequence[SimulationEntry]) -> DryRunResult:
    return DryRunResult(simulation_log=list(entries))


__all__ = [
    "CompletedResult",
    "AbortedResult",
    "UserInputRequiredResult",
    "DryRunResult",
    "ExecutionResult",
    "build_completed",
    "build_aborted",
    "build_user_input_required",
    "build_dry_run",
]
