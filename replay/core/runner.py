# replay/core/runner.py
from __future__ import annotations

"""Workflow runner
------------------
Orchestration around the executor for stored workflows: load by id, guard
against two concurrent runs of the same workflow, execute (or dry-run), record
the outcome in the workflow's history and optionally write a per-run log.
"""

import json
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, Optional, Union

from replay.core.errors import WorkflowBusyError
from replay.core.executor import StepExecutor
from replay.core.results import DryRunResult, ExecutionResult
from replay.core.storage import WorkflowStore
from replay.utils.config import Settings, get_settings
from replay.utils.logger import attach_file_logger, detach_file_logger, get_logger, log_with_context

log = get_logger(__name__)

RunResult = Union[ExecutionResult, DryRunResult]


def _ts() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%d_%H-%M-%S-%f")


class WorkflowRunner:
    """Runs stored workflows; at most one live run per workflow id."""

    def __init__(
        self,
        store: Optional[WorkflowStore] = None,
        executor: Optional[StepExecutor] = None,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self.store = store or WorkflowStore()
        self.executor = executor or StepExecutor()
        self.last_run_dir: Optional[Path] = None
        self._guard = threading.Lock()
        self._running: set[str] = set()

    @contextmanager
    def _exclusive(self, workflow_id: str) -> Iterator[None]:
        with self._guard:
            if workflow_id in self._running:
                raise WorkflowBusyError(workflow_id)
            self._running.add(workflow_id)
        try:
            yield
        finally:
            with self._guard:
                self._running.discard(workflow_id)

    def is_running(self, workflow_id: str) -> bool:
        with self._guard:
            return workflow_id in self._running

    def _new_run_dir(self, workflow_id: str) -> Path:
        run_dir = self.settings.run_logs_dir / workflow_id / _ts()
        run_dir.mkdir(parents=True, exist_ok=True)
        self.last_run_dir = run_dir
        return run_dir

    @staticmethod
    def _write_result(run_dir: Path, result: RunResult) -> None:
        (run_dir / "result.json").write_text(json.dumps(result.to_dict(), indent=2, ensure_ascii=False), encoding="utf-8")

    def run(self, workflow_id: str, *, dry_run: bool = False, confirm: bool = False) -> RunResult:
        """
        Execute the stored workflow `workflow_id`.

        Raises WorkflowNotFoundError for an unknown id and WorkflowBusyError
        when the same workflow is already executing. Dry runs are not recorded
        in history.
        """
        wf = self.store.require(workflow_id)
        run_log = log_with_context(log, workflow_id=wf.id)

        with self._exclusive(wf.id):
            handler = None
            run_dir: Optional[Path] = None
            if self.settings.RUN_LOGS and not dry_run:
                run_dir = self._new_run_dir(wf.id)
                handler = attach_file_logger(run_dir / "run.log")
            try:
                if dry_run:
                    result: RunResult = self.executor.dry_run_workflow(wf)
                else:
                    result = self.executor.execute_workflow(wf, confirm=confirm)
                    self.store.append_execution(wf.id, result.to_dict())
            finally:
                if handler is not None:
                    detach_file_logger(handler)

            if run_dir is not None:
                self._write_result(run_dir, result)
                run_log.info(f"Run log written: {run_dir}")

        run_log.info(f"Run finished: {wf.id} success={result.success}")
        return result


__all__ = ["WorkflowRunner"]
