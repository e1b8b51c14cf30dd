# replay/cli.py
from __future__ import annotations

"""Command-line interface
------------------------
Commands to inspect the tool catalog, list/validate/run workflow files and
manage the workflow store. Thin wrapper around the loader, executor and runner.
"""

import json
import sys
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional

import click

from replay.core.errors import WorkflowError
from replay.core.loader import load_workflows_file
from replay.core.models import Workflow
from replay.utils.config import get_settings
from replay.utils.logger import bind, get_logger, set_log_level, unbind

_SUFFIXES = (".yaml", ".yml", ".json")


# -------- helpers --------


def _echo_json(obj) -> None:
    click.echo(json.dumps(obj, indent=2, ensure_ascii=False, default=str))


def _resolve_paths(paths: List[str]) -> List[Path]:
    return [Path(p).resolve() for p in paths]


def _find_workflow_files(root: Path, recursive: bool = True) -> list[Path]:
    pattern = "**/*" if recursive else "*"
    return sorted(p for p in root.glob(pattern) if p.is_file() and p.suffix.lower() in _SUFFIXES)


def _collect_files(targets: List[str], workflows_dir: Optional[str], recursive: bool) -> Optional[list[Path]]:
    if targets:
        paths: list[Path] = []
        for p in _resolve_paths(targets):
            if p.is_dir():
                paths.extend(_find_workflow_files(p, recursive=True))
            else:
                paths.append(p)
        return paths
    if workflows_dir:
        return _find_workflow_files(Path(workflows_dir), recursive=recursive)
    return None


def _outcome_line(label: str, res: dict) -> str:
    if res.get("isDryRun"):
        return f"DRY {label} -> {len(res.get('simulationLog', []))} step(s) simulated"
    if res.get("success"):
        failed = [e["step"] for e in res.get("executionLog", []) if e.get("status") == "error"]
        note = f" (failed steps: {', '.join(str(n) for n in failed)})" if failed else ""
        return f"OK  {label} -> {len(res.get('results', []))} step(s) succeeded{note}"
    prefix = "ASK " if res.get("requiresUserInput") else ""
    return f"ERR {label} -> {prefix}{res.get('error', 'unknown error')}"


def _executor():
    # imported lazily so `config`/`validate` never build the registry
    from replay.core.executor import StepExecutor
    return StepExecutor()


# -------- CLI root --------


@click.group(context_settings=dict(help_option_names=["-h", "--help"]))
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"], case_sensitive=False),
    default=None,
    help="Override LOG_LEVEL from settings",
)
@click.version_option(package_name="procedure-replay")
def cli(log_level: Optional[str]):
    _ = get_settings()
    if log_level:
        set_log_level(log_level.upper())


# -------- commands --------


@cli.command("config")
def cmd_config():
    """Print effective configuration (after .env & env vars)."""
    s = get_settings()
    data = {k: (str(v) if isinstance(v, Path) else v) for k, v in s.model_dump().items()}
    _echo_json(data)


@cli.command("tools")
@click.option("--json", "as_json", is_flag=True, default=False, help="Print the full catalog with parameter types")
def cmd_tools(as_json: bool):
    """List tool categories and their operations."""
    from replay.core.registry import default_registry

    registry = default_registry()
    if as_json:
        _echo_json(registry.catalog())
        return
    for entry in registry.list_available_tools():
        click.echo(f"{entry['category']}.{entry['name']:<20} {entry['description']}")


@cli.command("list")
@click.option(
    "--dir", "workflows_dir",
    type=click.Path(file_okay=False, dir_okay=True, exists=True),
    default=lambda: str(get_settings().WORKFLOWS_DIR),
    show_default=True,
    help="Directory containing workflow files",
)
@click.option("--recursive/--no-recursive", default=True, show_default=True)
def cmd_list(workflows_dir: str, recursive: bool):
    """List workflows available in a directory."""
    rows: list[tuple[Path, Workflow]] = []
    for fp in _find_workflow_files(Path(workflows_dir), recursive=recursive):
        try:
            rows.extend((fp, wf) for wf in load_workflows_file(fp))
        except (OSError, ValueError):
            # use `validate` for details
            continue

    if not rows:
        click.echo("No workflows found.")
        return

    click.echo(f"Found {len(rows)} workflow(s):\n")
    for fp, wf in rows:
        click.echo(f" - [{wf.id}] {wf.name}  ({len(wf.steps)} steps)  <- {fp}")


@cli.command("validate")
@click.argument("targets", nargs=-1, required=False)
@click.option("--dir", "workflows_dir", type=click.Path(file_okay=False, dir_okay=True, exists=True), help="Validate all workflows under this directory")
@click.option("--recursive/--no-recursive", default=True, show_default=True)
@click.option("--strict", is_flag=True, default=False, help="Also resolve every step against the tool registry")
def cmd_validate(targets: List[str], workflows_dir: Optional[str], recursive: bool, strict: bool):
    """Validate workflow files (supports multi-doc YAML)."""
    paths = _collect_files(targets, workflows_dir, recursive)
    if paths is None:
        click.echo("Provide file(s) or --dir to validate.")
        sys.exit(2)

    registry = None
    if strict:
        from replay.core.registry import default_registry
        registry = default_registry()

    ok = True
    for fp in paths:
        try:
            for wf in load_workflows_file(fp):
                if registry is not None:
                    for st in wf.steps:
                        registry.resolve(st.tool, st.tool_action)
                click.echo(f"OK  {fp}  ->  [{wf.id}] {wf.name} ({len(wf.steps)} steps)")
        except (OSError, ValueError, WorkflowError) as e:
            ok = False
            click.echo(f"ERR {fp}  ->  {e}")

    sys.exit(0 if ok else 1)


@cli.command("run")
@click.argument("targets", nargs=-1, required=False)
@click.option("--dir", "workflows_dir", type=click.Path(file_okay=False, dir_okay=True, exists=True),
              help="Run all workflows found under this directory")
@click.option("--recursive/--no-recursive", default=True, show_default=True)
@click.option("--dry-run", is_flag=True, default=False, help="Simulate only; no tool is invoked")
@click.option("--confirm", is_flag=True, default=False, help="Run through the confirmation path")
@click.option("--parallel/--no-parallel", default=False, show_default=True, help="Run separate workflows concurrently")
@click.option("--max-workers", type=int, default=4, show_default=True)
@click.option("--json-out", type=click.Path(dir_okay=False), default=None, help="Write a JSON summary to this file")
def cmd_run(
    targets: List[str],
    workflows_dir: Optional[str],
    recursive: bool,
    dry_run: bool,
    confirm: bool,
    parallel: bool,
    max_workers: int,
    json_out: Optional[str],
):
    """
    Run workflows from files. Steps within one workflow always run in order.

    Examples:
      replay run workflows/rename_reports.yaml
      replay run --dir workflows --dry-run
    """
    log = get_logger(__name__)
    files = _collect_files(targets, workflows_dir, recursive)
    if files is None:
        click.echo("Nothing to run. Provide file(s) or --dir.")
        sys.exit(2)

    jobs: list[tuple[str, Optional[Workflow], Optional[str]]] = []
    for fp in files:
        try:
            for wf in load_workflows_file(fp):
                jobs.append((f"{fp} [{wf.id}]", wf, None))
        except (OSError, ValueError) as e:
            jobs.append((str(fp), None, str(e)))

    if not jobs:
        click.echo("No workflows matched.")
        sys.exit(1)

    executor = _executor()

    def _run_one(wf: Workflow) -> dict:
        if dry_run:
            return executor.dry_run_workflow(wf).to_dict()
        return executor.execute_workflow(wf, confirm=confirm).to_dict()

    bind(run_id=datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ"))
    click.echo(f"Running {len(jobs)} workflow(s){' (dry run)' if dry_run else ''}...")

    results: list[dict] = []
    runnable = [wf for _, wf, _ in jobs if wf is not None]
    if parallel and len(runnable) > 1:
        with ThreadPoolExecutor(max_workers=max(1, max_workers)) as ex:
            outcomes = iter(list(ex.map(_run_one, runnable)))
    else:
        outcomes = (_run_one(wf) for wf in runnable)

    for label, wf, load_error in jobs:
        if wf is None:
            res = {"success": False, "error": load_error}
        else:
            res = next(outcomes)
        log.debug(f"{label}: success={res.get('success')}")
        results.append({"workflow": label, **res})
        click.echo(_outcome_line(label, res))

    ok_count = sum(1 for r in results if r.get("success"))
    fail_count = len(results) - ok_count
    click.echo(f"Done. OK={ok_count}  FAIL={fail_count}")

    if json_out:
        outp = Path(json_out).resolve()
        outp.parent.mkdir(parents=True, exist_ok=True)
        outp.write_text(json.dumps({"results": results}, indent=2, ensure_ascii=False), encoding="utf-8")
        click.echo(f"Wrote summary: {outp}")

    unbind("run_id")
    sys.exit(0 if fail_count == 0 else 1)


# -------- store --------


@cli.group("store")
def store_group():
    """Manage workflows persisted under DATA_DIR."""


def _store():
    from replay.core.storage import WorkflowStore
    return WorkflowStore()


@store_group.command("list")
@click.option("--search", "query", type=str, default=None, help="Filter by name or id substring")
def cmd_store_list(query: Optional[str]):
    """List stored workflows, newest first."""
    store = _store()
    workflows = store.search(query) if query else store.list_all()
    if not workflows:
        click.echo("No stored workflows.")
        return
    for wf in workflows:
        click.echo(f" - [{wf.id}] {wf.name}  ({len(wf.steps)} steps, {len(wf.execution_history)} runs)")


@store_group.command("show")
@click.argument("workflow_id")
def cmd_store_show(workflow_id: str):
    """Print a stored workflow document."""
    try:
        wf = _store().get(workflow_id)
    except ValueError as e:
        click.echo(f"ERR {workflow_id} -> {e}")
        sys.exit(1)
    if wf is None:
        click.echo(f"Workflow not found: {workflow_id}")
        sys.exit(1)
    _echo_json(wf.to_dict())


@store_group.command("import")
@click.argument("targets", nargs=-1, required=True)
def cmd_store_import(targets: List[str]):
    """Import workflow files into the store (upsert by name)."""
    store = _store()
    ok = True
    for fp in _resolve_paths(targets):
        try:
            for wf in load_workflows_file(fp):
                saved = store.save_or_update(wf)
                click.echo(f"OK  {fp}  ->  [{saved.id}] {saved.name}")
        except (OSError, ValueError) as e:
            ok = False
            click.echo(f"ERR {fp}  ->  {e}")
    sys.exit(0 if ok else 1)


@store_group.command("run")
@click.argument("workflow_id")
@click.option("--dry-run", is_flag=True, default=False)
@click.option("--confirm", is_flag=True, default=False)
def cmd_store_run(workflow_id: str, dry_run: bool, confirm: bool):
    """Run a stored workflow and record it in its history."""
    from replay.core.runner import WorkflowRunner

    runner = WorkflowRunner(store=_store(), executor=_executor())
    bind(run_id=datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ"))
    try:
        res = runner.run(workflow_id, dry_run=dry_run, confirm=confirm).to_dict()
    except (WorkflowError, ValueError) as e:
        click.echo(f"ERR {workflow_id} -> {e}")
        sys.exit(1)
    finally:
        unbind("run_id")
    click.echo(_outcome_line(workflow_id, res))
    sys.exit(0 if res.get("success") else 1)


@store_group.command("history")
@click.argument("workflow_id")
def cmd_store_history(workflow_id: str):
    """Print the execution history of a stored workflow."""
    try:
        history = _store().execution_history(workflow_id)
    except (WorkflowError, ValueError) as e:
        click.echo(f"ERR {workflow_id} -> {e}")
        sys.exit(1)
    _echo_json(history)


@store_group.command("delete")
@click.argument("workflow_id")
def cmd_store_delete(workflow_id: str):
    """Delete a stored workflow."""
    try:
        deleted = _store().delete(workflow_id)
    except ValueError as e:
        click.echo(f"ERR {workflow_id} -> {e}")
        sys.exit(1)
    if not deleted:
        click.echo(f"Workflow not found: {workflow_id}")
        sys.exit(1)
    click.echo(f"Deleted {workflow_id}")


@store_group.command("stats")
def cmd_store_stats():
    """Print store statistics."""
    _echo_json(_store().statistics())


def main() -> None:
    cli(prog_name="replay")


if __name__ == "__main__":
    main()
