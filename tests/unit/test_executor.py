from pathlib import Path

import pytest

from replay.core.errors import RunStatus, ToolExecutionError
from replay.core.executor import StepExecutor
from replay.core.models import Workflow
from replay.core.registry import ToolRegistry, default_registry
from replay.core.results import AbortedResult, CompletedResult, DryRunResult, UserInputRequiredResult
from replay.tools import ToolAdapter, ToolCategory, ToolOperation, ToolParams


class SpyParams(ToolParams):
    value: str = "x"
    fail: bool = False


@pytest.fixture
def calls():
    return []


@pytest.fixture
def executor(calls):
    def handler(params: SpyParams) -> dict:
        calls.append(params.value)
        if params.fail:
            raise ToolExecutionError(f"boom {params.value}")
        return {"success": True, "value": params.value}

    op = ToolOperation(ToolCategory.shell, "execute_command", "spy", SpyParams, handler)
    return StepExecutor(ToolRegistry([ToolAdapter(ToolCategory.shell, "spy shell", [op])]))


def step(n, value, *, fail=False, policy=None, tool="shell", action="execute_command"):
    d = {
        "stepNumber": n,
        "description": f"step {value}",
        "tool": tool,
        "toolAction": action,
        "parameters": {"value": value, "fail": fail},
    }
    if policy is not None:
        d["errorHandling"] = policy
    return d


# ---------- Happy path / ordering ----------


def test_all_steps_succeed(executor, calls):
    res = executor.execute([step(1, "a"), step(2, "b"), step(3, "c")], "wf-1")
    assert isinstance(res, CompletedResult)
    assert res.success is True
    assert res.status is RunStatus.completed
    assert len(res.results) == len(res.execution_log) == 3
    assert calls == ["a", "b", "c"]

    d = res.to_dict()
    assert set(d) == {"success", "workflowId", "executionLog", "results", "timestamp"}
    assert d["workflowId"] == "wf-1"
    assert d["results"][0] == {
        "tool": "shell",
        "toolAction": "execute_command",
        "parameters": {"value": "a", "fail": False},
        "result": {"success": True, "value": "a"},
        "success": True,
    }
    entry = d["executionLog"][0]
    assert entry["status"] == "success" and "error" not in entry
    assert entry["timestamp"].endswith("Z")


def test_steps_run_in_step_number_order(executor, calls):
    res = executor.execute([step(3, "c"), step(1, "a"), step(2, "b")], "wf")
    assert calls == ["a", "b", "c"]
    numbers = [e.step for e in res.execution_log]
    assert numbers == sorted(numbers) and len(set(numbers)) == len(numbers)


def test_empty_step_list_completes(executor):
    res = executor.execute([], "empty")
    assert res.success is True and res.execution_log == [] and res.results == []


# ---------- Failure policies ----------


def test_continue_policy_keeps_top_level_success(executor, calls):
    res = executor.execute([step(1, "a"), step(2, "b", fail=True, policy="continue"), step(3, "c")], "wf")
    assert res.success is True
    assert calls == ["a", "b", "c"]
    assert [e.status for e in res.execution_log] == ["success", "error", "success"]
    assert res.execution_log[1].error == "boom b"
    assert len(res.results) == 2
    assert res.failed_steps == [2]
    assert "result" not in res.to_dict()["executionLog"][1]


def test_stop_policy_aborts_and_reports_progress(executor, calls):
    res = executor.execute([step(1, "a"), step(2, "b", fail=True, policy="stop"), step(3, "c")], "wf")
    assert isinstance(res, AbortedResult)
    assert res.success is False
    assert res.status is RunStatus.aborted
    assert calls == ["a", "b"]
    assert len(res.execution_log) == 2
    assert res.completed_steps == 1
    assert res.total_steps == 3
    assert res.error == "Failed at step 2: boom b"
    assert set(res.to_dict()) == {"success", "error", "executionLog", "completedSteps", "totalSteps", "timestamp"}


def test_missing_policy_defaults_to_stop(executor, calls):
    res = executor.execute([step(1, "a", fail=True), step(2, "b")], "wf")
    assert isinstance(res, AbortedResult)
    assert res.completed_steps == 0
    assert calls == ["a"]


@pytest.mark.parametrize("policy", ["ask", "ask the user what to do", "retry twice"])
def test_ask_and_unknown_policies_require_user_input(executor, calls, policy):
    res = executor.execute([step(1, "a"), step(2, "b", fail=True, policy=policy), step(3, "c")], "wf")
    assert isinstance(res, UserInputRequiredResult)
    assert res.status is RunStatus.user_input_required
    assert calls == ["a", "b"]
    d = res.to_dict()
    assert d["success"] is False and d["requiresUserInput"] is True
    assert d["error"] == "Step 2 failed: boom b"
    assert len(d["executionLog"]) == 2


def test_policy_text_is_case_insensitive(executor):
    res = executor.execute([step(1, "a", fail=True, policy=" Continue "), step(2, "b")], "wf")
    assert isinstance(res, CompletedResult)


# ---------- Configuration / validation failures ----------


def test_unknown_category_is_a_policy_governed_step_failure(executor, calls):
    steps = [step(1, "a"), step(2, "q", tool="database", action="query", policy="continue"), step(3, "c")]
    res = executor.execute(steps, "wf")
    assert res.success is True
    assert "database" in res.execution_log[1].error
    assert calls == ["a", "c"]


def test_unknown_operation_with_stop(executor):
    res = executor.execute([step(1, "a", action="format_disk")], "wf")
    assert isinstance(res, AbortedResult)
    assert res.error == "Failed at step 1: Tool not found: shell.format_disk"


def test_invalid_parameters_fail_the_step(executor, calls):
    bad = step(1, "a")
    bad["parameters"] = {"value": ["not", "a", "string"]}
    res = executor.execute([bad], "wf")
    assert isinstance(res, AbortedResult)
    assert "Invalid parameters for shell.execute_command" in res.error
    assert calls == []


def test_success_false_result_is_a_failure():
    def handler(params):
        return {"success": False, "error": "exit 3", "exitCode": 3}

    op = ToolOperation(ToolCategory.shell, "execute_command", "fails softly", SpyParams, handler)
    ex = StepExecutor(ToolRegistry([ToolAdapter(ToolCategory.shell, "s", [op])]))
    res = ex.execute([step(1, "a")], "wf")
    assert isinstance(res, AbortedResult)
    assert res.error == "Failed at step 1: exit 3"


def test_unexpected_handler_exception_is_contained():
    def handler(params):
        raise KeyError("boom")

    op = ToolOperation(ToolCategory.shell, "execute_command", "buggy", SpyParams, handler)
    ex = StepExecutor(ToolRegistry([ToolAdapter(ToolCategory.shell, "s", [op])]))
    res = ex.execute([step(1, "a", policy="continue")], "wf")
    assert res.success is True
    assert res.execution_log[0].error.startswith("KeyError")


# ---------- Dry run / confirmation ----------


def test_dry_run_never_invokes_tools(executor, calls):
    steps = [step(2, "b", fail=True), step(1, "a"), step(3, "q", tool="database", action="query")]
    res = executor.dry_run(steps, "wf")
    assert isinstance(res, DryRunResult)
    assert calls == []
    d = res.to_dict()
    assert d["success"] is True and d["isDryRun"] is True
    assert [e["step"] for e in d["simulationLog"]] == [1, 2, 3]
    assert all(e["wouldExecute"] is True for e in d["simulationLog"])
    assert d["simulationLog"][0] == {
        "step": 1,
        "description": "step a",
        "tool": "shell",
        "parameters": {"value": "a", "fail": False},
        "expectedOutput": None,
        "wouldExecute": True,
    }


def test_confirmation_variant_matches_execute(executor, calls):
    steps = [step(1, "a"), step(2, "b", fail=True, policy="stop")]
    res = executor.execute_with_confirmation(steps, "wf")
    assert isinstance(res, AbortedResult)
    assert res.completed_steps == 1
    assert calls == ["a", "b"]


def test_workflow_conveniences(executor, calls):
    wf = Workflow.model_validate({"id": "wf-x", "steps": [step(1, "a")]})
    assert executor.execute_workflow(wf).workflow_id == "wf-x"
    assert executor.execute_workflow(wf, confirm=True).success is True
    assert len(executor.dry_run_workflow(wf).simulation_log) == 1
    assert calls == ["a", "a"]


# ---------- End-to-end with the real filesystem adapter ----------


def test_filesystem_workflow_stops_on_missing_rename_source(tmp_path: Path):
    (tmp_path / "reports").mkdir()
    (tmp_path / "reports" / "jan.txt").write_text("jan", encoding="utf-8")
    steps = [
        {"stepNumber": 1, "tool": "filesystem", "toolAction": "list_files",
         "parameters": {"path": str(tmp_path / "reports")}},
        {"stepNumber": 2, "tool": "filesystem", "toolAction": "file_exists",
         "parameters": {"path": str(tmp_path / "missing.txt")}},
        {"stepNumber": 3, "tool": "filesystem", "toolAction": "rename_file",
         "parameters": {"oldPath": str(tmp_path / "old.txt"), "newPath": str(tmp_path / "new.txt")}},
    ]
    res = StepExecutor(default_registry()).execute(steps, "fs-e2e")
    d = res.to_dict()
    assert d["success"] is False
    assert d["completedSteps"] == 2
    assert d["totalSteps"] == 3
    assert d["executionLog"][0]["result"]["result"]["files"] == ["jan.txt"]
    assert d["executionLog"][1]["result"]["result"]["exists"] is False
    assert "File not found" in d["error"]
    assert not (tmp_path / "new.txt").exists()
