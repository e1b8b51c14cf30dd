import json
import logging
import threading
from pathlib import Path

import pytest

from replay.core.errors import WorkflowBusyError, WorkflowNotFoundError
from replay.core.executor import StepExecutor
from replay.core.models import Workflow
from replay.core.registry import ToolRegistry
from replay.core.runner import WorkflowRunner
from replay.core.storage import WorkflowStore
from replay.tools import ToolAdapter, ToolCategory, ToolOperation, ToolParams
from replay.utils.config import get_settings


class GateParams(ToolParams):
    value: str = "x"


def _workflow(id_="wf-run"):
    return Workflow.model_validate({
        "id": id_,
        "name": id_,
        "steps": [{"stepNumber": 1, "tool": "shell", "toolAction": "execute_command", "parameters": {"value": "a"}}],
    })


def _runner(tmp_path: Path, handler):
    op = ToolOperation(ToolCategory.shell, "execute_command", "test op", GateParams, handler)
    executor = StepExecutor(ToolRegistry([ToolAdapter(ToolCategory.shell, "test shell", [op])]))
    store = WorkflowStore(tmp_path / "store")
    return WorkflowRunner(store=store, executor=executor)


def test_run_records_history(tmp_path: Path):
    runner = _runner(tmp_path, lambda p: {"success": True, "value": p.value})
    runner.store.save(_workflow())

    res = runner.run("wf-run")
    assert res.success is True
    history = runner.store.execution_history("wf-run")
    assert len(history) == 1
    assert history[0]["result"]["workflowId"] == "wf-run"


def test_dry_run_is_not_recorded(tmp_path: Path):
    calls = []
    runner = _runner(tmp_path, lambda p: calls.append(p) or {"success": True})
    runner.store.save(_workflow())

    res = runner.run("wf-run", dry_run=True)
    assert res.is_dry_run is True
    assert calls == []
    assert runner.store.execution_history("wf-run") == []


def test_missing_workflow(tmp_path: Path):
    runner = _runner(tmp_path, lambda p: {"success": True})
    with pytest.raises(WorkflowNotFoundError):
        runner.run("nope")


def test_concurrent_run_of_same_workflow_is_rejected(tmp_path: Path):
    entered = threading.Event()
    release = threading.Event()

    def handler(p):
        entered.set()
        release.wait(5)
        return {"success": True}

    runner = _runner(tmp_path, handler)
    runner.store.save(_workflow("busy"))
    runner.store.save(_workflow("other"))

    first = threading.Thread(target=runner.run, args=("busy",))
    first.start()
    try:
        assert entered.wait(5)
        assert runner.is_running("busy")
        with pytest.raises(WorkflowBusyError):
            runner.run("busy")
    finally:
        release.set()
        first.join(5)

    assert not runner.is_running("busy")
    # the lock is per workflow and released after the run
    assert runner.run("busy").success is True
    assert runner.run("other").success is True


def test_run_logs_written_when_enabled(tmp_path: Path, monkeypatch):
    monkeypatch.setenv("RUN_LOGS", "true")
    get_settings.cache_clear()

    def step(p):
        logging.getLogger("replay.tests").warning("inside run")
        return {"success": True}

    runner = _runner(tmp_path, step)
    runner.store.save(_workflow())
    runner.run("wf-run")

    assert runner.last_run_dir is not None
    assert runner.last_run_dir.parent == get_settings().run_logs_dir / "wf-run"
    saved = json.loads((runner.last_run_dir / "result.json").read_text(encoding="utf-8"))
    assert saved["success"] is True

    lines = (runner.last_run_dir / "run.log").read_text(encoding="utf-8").splitlines()
    assert "inside run" in [json.loads(line)["msg"] for line in lines]
    assert not (get_settings().run_logs_dir / "wf-run" / "run.log").exists()


def test_run_resolves_env_only_for_execution(tmp_path: Path, monkeypatch):
    monkeypatch.setenv("GATE_VALUE", "resolved")
    seen = []
    runner = _runner(tmp_path, lambda p: seen.append(p.value) or {"success": True})
    runner.store.save(Workflow.model_validate({
        "id": "wf-env",
        "steps": [{"stepNumber": 1, "tool": "shell", "toolAction": "execute_command", "parameters": {"value": "${GATE_VALUE}"}}],
    }))

    runner.run("wf-env")
    assert seen == ["resolved"]
    assert runner.store.require("wf-env").steps[0].parameters == {"value": "${GATE_VALUE}"}
