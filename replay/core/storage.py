# replay/core/storage.py
from __future__ import annotations

"""Workflow store
-----------------
File-backed JSON persistence: one `<id>.json` document per workflow under
`DATA_DIR/workflows`. Documents keep their execution history inline.
"""

import json
import re
import threading
import uuid
from pathlib import Path
from typing import Any, Mapping, Optional, Union

from replay.core.errors import WorkflowNotFoundError
from replay.core.loader import parse_workflow
from replay.core.models import Workflow
from replay.utils.config import get_settings
from replay.utils.logger import get_logger
from replay.utils.timing import utc_timestamp

log = get_logger(__name__)

_SAFE_ID = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]*$")

WorkflowLike = Union[Workflow, Mapping[str, Any]]


class WorkflowStore:
    def __init__(self, root: Optional[Path | str] = None):
        self.root = Path(root) if root is not None else get_settings().workflows_store_dir
        self.root.mkdir(parents=True, exist_ok=True)
        # serializes read-modify-write cycles (update, history appends)
        self._lock = threading.RLock()

    # ---------- Paths / IO ----------

    def _path_for(self, workflow_id: str) -> Path:
        if not _SAFE_ID.match(workflow_id or ""):
            raise ValueError(f"Invalid workflow id: {workflow_id!r}")
        return self.root / f"{workflow_id}.json"

    def _read(self, path: Path) -> Workflow:
        data = json.loads(path.read_text(encoding="utf-8"))
        if not isinstance(data, dict):
            raise ValueError(f"Workflow document must be an object: {path}")
        return parse_workflow(data, path)

    def _write(self, wf: Workflow) -> Workflow:
        path = self._path_for(wf.id)
        tmp = path.with_suffix(".json.tmp")
        tmp.write_text(json.dumps(wf.to_dict(), indent=2, ensure_ascii=False), encoding="utf-8")
        tmp.replace(path)
        return wf

    @staticmethod
    def _coerce(workflow: WorkflowLike) -> Workflow:
        if isinstance(workflow, Workflow):
            return workflow
        data = dict(workflow)
        if not data.get("id"):
            data["id"] = str(uuid.uuid4())
        return parse_workflow(data)

    # ---------- CRUD ----------

    def save(self, workflow: WorkflowLike) -> Workflow:
        wf = self._coerce(workflow)
        if not wf.created_at:
            wf = wf.model_copy(update={"created_at": utc_timestamp()})
        with self._lock:
            self._write(wf)
        log.info(f"Workflow saved: {wf.id}")
        return wf

    def get(self, workflow_id: str) -> Optional[Workflow]:
        path = self._path_for(workflow_id)
        if not path.exists():
            log.warning(f"Workflow not found: {workflow_id}")
            return None
        return self._read(path)

    def require(self, workflow_id: str) -> Workflow:
        wf = self.get(workflow_id)
        if wf is None:
            raise WorkflowNotFoundError(workflow_id)
        return wf

    def list_all(self) -> list[Workflow]:
        """All readable workflows, newest `createdAt` first."""
        out: list[Workflow] = []
        for fp in sorted(self.root.glob("*.json")):
            try:
                out.append(self._read(fp))
            except (OSError, ValueError) as e:
                log.error(f"Error reading workflow file {fp.name}: {e}")
        out.sort(key=lambda w: w.created_at or "", reverse=True)
        return out

    def delete(self, workflow_id: str) -> bool:
        path = self._path_for(workflow_id)
        with self._lock:
            if not path.exists():
                return False
            path.unlink()
        log.info(f"Workflow deleted: {workflow_id}")
        return True

    def update(self, workflow_id: str, updates: Mapping[str, Any]) -> Workflow:
        """Merge `updates` (camelCase or snake_case keys) into the stored document; id is fixed."""
        with self._lock:
            current = self.require(workflow_id)
            merged = {**current.to_dict(), **dict(updates), "id": workflow_id, "updatedAt": utc_timestamp()}
            merged.pop("updated_at", None)
            wf = parse_workflow(merged)
            self._write(wf)
        log.info(f"Workflow updated: {workflow_id}")
        return wf

    def save_or_update(self, workflow: WorkflowLike) -> Workflow:
        """Upsert by name: an existing workflow of the same name keeps its id and createdAt."""
        wf = self._coerce(workflow)
        with self._lock:
            existing = self.get_by_name(wf.name)
            if existing is None:
                return self.save(wf)
            wf = wf.model_copy(update={
                "id": existing.id,
                "created_at": existing.created_at,
                "updated_at": utc_timestamp(),
                "execution_history": wf.execution_history or existing.execution_history,
            })
            self._write(wf)
        log.info(f"Workflow updated by name: {wf.name} ({wf.id})")
        return wf

    # ---------- Queries ----------

    def search(self, query: str) -> list[Workflow]:
        q = (query or "").lower()
        return [w for w in self.list_all() if q in w.name.lower() or q in w.id.lower()]

    def get_by_name(self, name: str) -> Optional[Workflow]:
        for w in self.list_all():
            if w.name == name:
                return w
        return None

    # ---------- Execution history ----------

    def append_execution(self, workflow_id: str, result: Mapping[str, Any]) -> dict[str, Any]:
        entry = {
            "id": str(uuid.uuid4()),
            "timestamp": utc_timestamp(),
            "success": bool(result.get("success")),
            "result": dict(result),
        }
        with self._lock:
            wf = self.require(workflow_id)
            wf = wf.model_copy(update={"execution_history": [*wf.execution_history, entry]})
            self._write(wf)
        log.debug(f"Execution recorded for {workflow_id}: {entry['id']}")
        return entry

    def execution_history(self, workflow_id: str) -> list[dict[str, Any]]:
        return list(self.require(workflow_id).execution_history)

    def statistics(self) -> dict[str, Any]:
        workflows = self.list_all()
        return {
            "totalWorkflows": len(workflows),
            "totalExecutions": sum(len(w.execution_history) for w in workflows),
            "createdAt": utc_timestamp(),
        }


__all__ = ["WorkflowStore"]
