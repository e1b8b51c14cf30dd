import json
from pathlib import Path
import textwrap

import pytest

from replay.core.loader import WorkflowLoader, expand_env, load_workflow, load_workflows_file, normalize_document


def test_load_workflows_file_multiple_docs(tmp_path: Path):
    yml = textwrap.dedent(
        """
        id: do-one
        name: Do one
        steps:
          - stepNumber: 1
            tool: filesystem
            toolAction: write_file
            parameters: {path: one.txt, content: "1"}
        ---
        id: do-two
        name: Do two
        steps:
          - stepNumber: 1
            tool: shell
            toolAction: execute_command
            parameters: {command: "echo two"}
        """
    )
    f = tmp_path / "multi.yaml"
    f.write_text(yml, encoding="utf-8")

    workflows = load_workflows_file(f)
    assert len(workflows) == 2
    assert workflows[0].id == "do-one" and workflows[0].steps[0].tool_action == "write_file"
    assert workflows[1].id == "do-two" and workflows[1].steps[0].tool == "shell"


def test_multi_doc_without_ids_gets_distinct_ids(tmp_path: Path):
    f = tmp_path / "batch.yaml"
    f.write_text("steps: []\n---\nsteps: []\n", encoding="utf-8")
    ids = [wf.id for wf in load_workflows_file(f)]
    assert ids == ["batch-1", "batch-2"]


def test_analysis_document_with_snake_case_steps(tmp_path: Path):
    doc = {
        "name": "Clean reports",
        "analysis": {
            "goal": "Rename monthly reports",
            "steps": [
                {"step_number": 2, "description": "second", "tool": "file",
                 "tool_action": "delete", "parameters": {"path": "b"}, "error_handling": "continue"},
                {"step_number": 1, "description": "first", "tool": "file",
                 "tool_action": "exists", "parameters": {"path": "a"}, "expected_output": "true"},
            ],
        },
    }
    f = tmp_path / "report_cleanup.json"
    f.write_text(json.dumps(doc, indent=2), encoding="utf-8")

    wf = load_workflow(f)
    assert wf.id == "report_cleanup"
    assert wf.name == "Clean reports"
    assert wf.goal == "Rename monthly reports"
    assert [s.step_number for s in wf.steps] == [1, 2]
    assert wf.steps[0].expected_output == "true"
    assert wf.steps[1].error_handling == "continue"


def test_missing_step_numbers_follow_position():
    doc = normalize_document({"id": "x", "steps": [{"tool": "shell", "toolAction": "run"}, {"tool": "shell", "toolAction": "run"}]})
    assert [s["stepNumber"] for s in doc["steps"]] == [1, 2]


def test_env_substitution(tmp_path: Path, monkeypatch):
    monkeypatch.setenv("REPORT_DIR", "/srv/reports")
    f = tmp_path / "wf.yaml"
    f.write_text(
        textwrap.dedent(
            """
            id: env
            steps:
              - stepNumber: 1
                tool: filesystem
                toolAction: list_files
                parameters: {path: "${REPORT_DIR}/2024", pattern: "${UNSET_VAR_FOR_TEST}"}
            """
        ),
        encoding="utf-8",
    )
    wf = load_workflow(f)
    # the loaded document keeps its references
    assert wf.steps[0].parameters["path"] == "${REPORT_DIR}/2024"

    params = expand_env(wf).steps[0].parameters
    assert params["path"] == "/srv/reports/2024"
    assert params["pattern"] == "${UNSET_VAR_FOR_TEST}"


def test_invalid_workflow_lists_locations(tmp_path: Path):
    f = tmp_path / "bad.yaml"
    f.write_text("id: bad\nsteps:\n  - stepNumber: 0\n    tool: shell\n", encoding="utf-8")
    with pytest.raises(ValueError) as ei:
        load_workflow(f)
    msg = str(ei.value)
    assert "Invalid workflow" in msg
    assert "steps.0" in msg


def test_duplicate_step_numbers_rejected(tmp_path: Path):
    f = tmp_path / "dup.yaml"
    f.write_text(
        "id: dup\nsteps:\n"
        "  - {stepNumber: 1, tool: shell, toolAction: run}\n"
        "  - {stepNumber: 1, tool: shell, toolAction: run}\n",
        encoding="utf-8",
    )
    with pytest.raises(ValueError, match="duplicate stepNumber 1"):
        load_workflow(f)


def test_yaml_parse_error(tmp_path: Path):
    f = tmp_path / "broken.yaml"
    f.write_text("id: [unclosed\n", encoding="utf-8")
    with pytest.raises(ValueError, match="YAML parse error"):
        load_workflows_file(f)


def test_load_directory_skips_bad_files(tmp_path: Path):
    (tmp_path / "nested").mkdir()
    (tmp_path / "good.yaml").write_text("id: good\nsteps: []\n", encoding="utf-8")
    (tmp_path / "nested" / "also.yml").write_text("id: also\nsteps: []\n", encoding="utf-8")
    (tmp_path / "bad.yaml").write_text("- just\n- a list\n", encoding="utf-8")
    (tmp_path / "notes.txt").write_text("ignored", encoding="utf-8")

    ids = sorted(wf.id for wf in WorkflowLoader().load_directory(tmp_path))
    assert ids == ["also", "good"]
    assert [wf.id for wf in WorkflowLoader().load_directory(tmp_path, recursive=False)] == ["good"]
