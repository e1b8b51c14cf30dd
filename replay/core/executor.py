# replay/core/executor.py
from __future__ import annotations

"""Step executor
----------------
Runs an ordered list of steps against the tool registry, one at a time, and
applies each step's error policy when its tool fails:

- stop      abort the run; report the failing step and how many steps before it
- continue  record the failure and move on; the run still completes
- ask       halt and signal that a human has to decide

Also provides a dry run that describes the steps without touching any tool.
"""

from typing import Any, Iterable, Mapping, Optional, Sequence, Union

from replay.core.errors import ConfigurationError, ErrorKind
from replay.core.loader import expand_env
from replay.core.models import ErrorPolicy, ExecutionLogEntry, SimulationEntry, Step, Workflow
from replay.core.registry import ToolRegistry, default_registry
from replay.core.results import (
    DryRunResult,
    ExecutionResult,
    build_aborted,
    build_completed,
    build_dry_run,
    build_user_input_required,
)
from replay.tools.base import ToolErr, ToolOk, ToolOutcome
from replay.utils.logger import get_logger, log_with_context
from replay.utils.timing import measure, utc_timestamp

log = get_logger(__name__)

StepLike = Union[Step, Mapping[str, Any]]


def _ordered(steps: Iterable[StepLike]) -> list[Step]:
    parsed = [st if isinstance(st, Step) else Step.model_validate(dict(st)) for st in steps]
    # sorted() is stable: duplicate numbers keep their input order
    return sorted(parsed, key=lambda st: st.step_number)


class StepExecutor:
    """Sequential executor over a registry. Holds no per-run state."""

    def __init__(self, registry: Optional[ToolRegistry] = None):
        self.registry = registry or default_registry()

    # ---------- Single step ----------

    def _invoke(self, step: Step) -> ToolOutcome:
        try:
            op = self.registry.resolve(step.tool, step.tool_action)
        except ConfigurationError as e:
            return ToolErr(ErrorKind.configuration, str(e))
        return op.invoke(step.parameters)

    # ---------- Runs ----------

    @measure("executor.execute", level="DEBUG")
    def execute(self, steps: Sequence[StepLike], workflow_id: str) -> ExecutionResult:
        """
        Execute `steps` in ascending stepNumber order.

        Returns CompletedResult, AbortedResult (a `stop` step failed) or
        UserInputRequiredResult (an `ask` step failed). Tool failures never
        escape as exceptions.
        """
        ordered = _ordered(steps)
        total = len(ordered)
        run_log = log_with_context(log, workflow_id=workflow_id)
        run_log.info(f"Starting workflow execution: {workflow_id} (steps={total})")

        execution_log: list[ExecutionLogEntry] = []
        results: list[dict[str, Any]] = []

        for index, step in enumerate(ordered):
            step_log = log_with_context(run_log, step=step.step_number)
            step_log.info(f"Executing step {step.step_number}: {step.label}")

            outcome = self._invoke(step)

            if isinstance(outcome, ToolOk):
                record = {
                    "tool": step.tool,
                    "toolAction": step.tool_action,
                    "parameters": dict(step.parameters),
                    "result": outcome.value,
                    "success": True,
                }
                execution_log.append(ExecutionLogEntry(
                    step=step.step_number,
                    description=step.description,
                    status="success",
                    result=record,
                    timestamp=utc_timestamp(),
                ))
                results.append(record)
                continue

            execution_log.append(ExecutionLogEntry(
                step=step.step_number,
                description=step.description,
                status="error",
                error=outcome.message,
                timestamp=utc_timestamp(),
            ))
            step_log.error(f"Step {step.step_number} failed ({outcome.kind.value}): {outcome.message}")

            policy = step.policy
            if policy is ErrorPolicy.stop:
                run_log.warning(f"Aborting workflow {workflow_id} at step {step.step_number}")
                return build_aborted(step.step_number, outcome.message, execution_log, index, total)
            if policy is ErrorPolicy.continue_:
                step_log.warning("Continuing despite error")
                continue
            run_log.warning(f"Workflow {workflow_id} paused at step {step.step_number}: user input required")
            return build_user_input_required(step.step_number, outcome.message, execution_log)

        run_log.info(f"Workflow execution completed: {workflow_id}")
        return build_completed(workflow_id, execution_log, results)

    def dry_run(self, steps: Sequence[StepLike], workflow_id: Optional[str] = None) -> DryRunResult:
        """Describe what `execute` would do; resolves nothing and runs nothing."""
        ordered = _ordered(steps)
        log.info(f"Starting dry run: {workflow_id or '<unsaved>'} (steps={len(ordered)})")
        entries = [
            SimulationEntry(
                step=st.step_number,
                description=st.description,
                tool=st.tool,
                parameters=dict(st.parameters),
                expected_output=st.expected_output,
            )
            for st in ordered
        ]
        return build_dry_run(entries)

    def execute_with_confirmation(self, steps: Sequence[StepLike], workflow_id: str) -> ExecutionResult:
        # Same result as execute(); only the confirmation point is logged
        log_with_context(log, workflow_id=workflow_id).info(
            f"Execution confirmed for workflow {workflow_id}; running {len(steps)} steps"
        )
        return self.execute(steps, workflow_id)

    # ---------- Workflow conveniences ----------

    def execute_workflow(self, workflow: Workflow, confirm: bool = False) -> ExecutionResult:
        workflow = expand_env(workflow)
        if confirm:
            return self.execute_with_confirmation(workflow.steps, workflow.id)
        return self.execute(workflow.steps, workflow.id)

    def dry_run_workflow(self, workflow: Workflow) -> DryRunResult:
        return self.dry_run(expand_env(workflow).steps, workflow.id)


__all__ = ["StepExecutor"]
