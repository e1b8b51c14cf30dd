# replay/core/loader.py
from __future__ import annotations

"""Workflow loader
------------------
Loads workflow documents from YAML or JSON files (JSON is valid YAML), including
multi-document files, and normalizes the shapes produced upstream:

- steps nested under `analysis` (as emitted by the analysis step)
- snake_case step keys (`step_number`, `tool_action`, `error_handling`, ...)
- steps without a number (numbered by position)
- missing `id`/`name` (derived from the file stem)

Documents are kept as written: `${VAR}` references in step parameters are
only resolved on the copy handed to the executor (`expand_env`), so stored and
imported workflows never carry secret values.
"""

import os
import re
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import ValidationError

from replay.core.models import Workflow
from replay.utils.logger import get_logger

log = get_logger(__name__)

_ENV_REF = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")
_SUFFIXES = (".yaml", ".yml", ".json")


# ---------- Helpers ----------


def _subst_env(obj: Any) -> Any:
    if isinstance(obj, str):
        def repl(m):
            return os.environ.get(m.group(1), m.group(0))
        return _ENV_REF.sub(repl, obj)
    if isinstance(obj, list):
        return [_subst_env(x) for x in obj]
    if isinstance(obj, dict):
        return {k: _subst_env(v) for k, v in obj.items()}
    return obj


def normalize_document(data: dict, source: Optional[Path] = None) -> dict:
    """Bring a stored or analysed workflow document into the `Workflow` shape."""
    doc = dict(data)

    analysis = doc.pop("analysis", None)
    if isinstance(analysis, dict):
        if not doc.get("steps"):
            doc["steps"] = analysis.get("steps") or []
        for key in ("goal", "description"):
            if not doc.get(key) and analysis.get(key):
                doc[key] = analysis[key]

    if source is not None and not doc.get("id"):
        doc["id"] = source.stem
    if not doc.get("name"):
        doc["name"] = doc.get("id") or ""

    steps: list[Any] = []
    for position, st in enumerate(doc.get("steps") or [], start=1):
        if isinstance(st, dict) and st.get("stepNumber") is None and st.get("step_number") is None:
            st = {**st, "stepNumber": position}
        steps.append(st)
    doc["steps"] = steps
    return doc


def _validation_message(ve: ValidationError, header: str) -> str:
    lines = [header]
    for e in ve.errors():
        loc = ".".join(str(p) for p in e.get("loc", []))
        msg = e.get("msg", "invalid value")
        lines.append(f"  - {loc}: {msg}")
    return "\n".join(lines)


def parse_workflow(data: dict, source: Optional[Path] = None, *, label: Optional[str] = None) -> Workflow:
    """Normalize and validate one document."""
    where = label or (str(source) if source else "<document>")
    try:
        return Workflow.model_validate(normalize_document(data, source))
    except ValidationError as ve:
        raise ValueError(_validation_message(ve, f"Invalid workflow '{where}':")) from ve


def expand_env(workflow: Workflow) -> Workflow:
    """Copy of `workflow` with `${VAR}` references in step parameters resolved."""
    steps = [st.model_copy(update={"parameters": _subst_env(st.parameters)}) for st in workflow.steps]
    return workflow.model_copy(update={"steps": steps})


# ---------- Public API ----------


def load_workflow(path: Path | str) -> Workflow:
    """Load a single-document workflow file."""
    wf_path = Path(path)
    if not wf_path.exists():
        raise FileNotFoundError(f"Workflow file not found: {wf_path}")
    try:
        data = yaml.safe_load(wf_path.read_text(encoding="utf-8"))
    except yaml.YAMLError as ye:
        raise ValueError(f"YAML parse error in {wf_path}: {ye}") from ye
    if not isinstance(data, dict):
        raise ValueError("Workflow file must define a mapping/object at the top level.")
    return parse_workflow(data, wf_path)


def load_workflows_file(path: Path | str) -> list[Workflow]:
    """Load one or more workflows from a file (supports multi-document YAML)."""
    wf_path = Path(path)
    if not wf_path.exists():
        raise FileNotFoundError(f"Workflow file not found: {wf_path}")
    try:
        docs = list(yaml.safe_load_all(wf_path.read_text(encoding="utf-8")))
    except yaml.YAMLError as ye:
        raise ValueError(f"YAML parse error in {wf_path}: {ye}") from ye

    out: list[Workflow] = []
    multi = len([d for d in docs if d is not None]) > 1
    for idx, data in enumerate(docs, start=1):
        if data is None:
            continue
        if not isinstance(data, dict):
            raise ValueError(f"Document {idx} in {wf_path} must be a mapping/object.")
        if multi and not data.get("id"):
            # file stem alone would collide across documents
            data = {**data, "id": f"{wf_path.stem}-{idx}"}
        out.append(parse_workflow(data, wf_path, label=f"{wf_path} (document {idx})"))
    if not out:
        raise ValueError(f"No valid workflow documents found in {wf_path}")
    return out


class WorkflowLoader:
    def load_directory(self, root: Path | str, *, recursive: bool = True) -> list[Workflow]:
        """
        Load every workflow file under `root`. Files that fail to load are
        logged and skipped so one bad document does not hide the rest.
        """
        base = Path(root)
        pattern = "**/*" if recursive else "*"
        files = sorted(p for p in base.glob(pattern) if p.is_file() and p.suffix.lower() in _SUFFIXES)

        workflows: list[Workflow] = []
        for fp in files:
            try:
                workflows.extend(load_workflows_file(fp))
            except (OSError, ValueError) as e:
                log.warning(f"Skipping {fp}: {e}")
        return workflows


__all__ = [
    "normalize_document",
    "parse_workflow",
    "expand_env",
    "load_workflow",
    "load_workflows_file",
    "WorkflowLoader",
]
