# replay/tools/filesystem.py
from __future__ import annotations

"""Filesystem tool
------------------
Local file operations. Write, rename and copy create missing parent
directories; everything else fails when the target does not exist.
"""

import glob
import os
import shutil
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from pydantic import Field

from replay.core.errors import ToolExecutionError
from replay.tools.base import ToolAdapter, ToolCategory, ToolOperation, ToolParams
from replay.utils.logger import get_logger
from replay.utils.timing import measure

log = get_logger(__name__)


# ---------- Parameter contracts ----------


class ListFilesParams(ToolParams):
    path: str = Field(..., description="Directory path")
    pattern: Optional[str] = Field(default=None, description="Optional glob pattern")


class PathParams(ToolParams):
    path: str = Field(..., description="File path")


class WriteFileParams(ToolParams):
    path: str = Field(..., description="File path")
    content: str = Field(..., description="File content")


class RenameFileParams(ToolParams):
    old_path: str = Field(..., description="Current file path")
    new_path: str = Field(..., description="New file path")


class CopyFileParams(ToolParams):
    source: str = Field(..., description="Source path")
    destination: str = Field(..., description="Destination path")


# ---------- Internals ----------


def _ensure_parent(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def _iso(ts: float) -> str:
    return datetime.fromtimestamp(ts, tz=timezone.utc).isoformat().replace("+00:00", "Z")


def _os_error(action: str, path: str, exc: OSError) -> ToolExecutionError:
    return ToolExecutionError(f"Failed to {action} {path}: {exc.strerror or exc}")


# ---------- Operations ----------


@measure("filesystem.list_files", level="DEBUG")
def list_files(params: ListFilesParams) -> dict:
    root = Path(params.path)
    if not root.is_dir():
        raise ToolExecutionError(f"Directory not found: {params.path}")

    if params.pattern:
        files = sorted(glob.glob(os.path.join(params.path, params.pattern)))
    else:
        files = sorted(os.listdir(root))

    log.debug(f"Listed {len(files)} files in {params.path}")
    return {
        "success": True,
        "files": files,
        "count": len(files),
        "directory": params.path,
    }


@measure("filesystem.read_file", level="DEBUG")
def read_file(params: PathParams) -> dict:
    p = Path(params.path)
    if not p.is_file():
        raise ToolExecutionError(f"File not found: {params.path}")
    try:
        content = p.read_text(encoding="utf-8")
    except UnicodeDecodeError as e:
        raise ToolExecutionError(f"File is not UTF-8 text: {params.path} ({e.reason})") from e
    except OSError as e:
        raise _os_error("read", params.path, e) from e

    log.debug(f"Read file: {params.path} ({len(content)} chars)")
    return {
        "success": True,
        "path": params.path,
        "content": content,
        "size": len(content),
    }


@measure("filesystem.write_file", level="DEBUG")
def write_file(params: WriteFileParams) -> dict:
    p = Path(params.path)
    try:
        _ensure_parent(p)
        p.write_text(params.content, encoding="utf-8")
    except OSError as e:
        raise _os_error("write", params.path, e) from e

    log.info(f"File written: {params.path}")
    return {
        "success": True,
        "path": params.path,
        "bytesWritten": len(params.content.encode("utf-8")),
    }


@measure("filesystem.rename_file", level="DEBUG")
def rename_file(params: RenameFileParams) -> dict:
    src, dst = Path(params.old_path), Path(params.new_path)
    if not src.exists():
        raise ToolExecutionError(f"File not found: {params.old_path}")
    try:
        _ensure_parent(dst)
        # shutil.move falls back to copy+delete across filesystems
        shutil.move(str(src), str(dst))
    except OSError as e:
        raise _os_error("rename", params.old_path, e) from e

    log.info(f"File renamed: {params.old_path} -> {params.new_path}")
    return {
        "success": True,
        "oldPath": params.old_path,
        "newPath": params.new_path,
    }


@measure("filesystem.delete_file", level="DEBUG")
def delete_file(params: PathParams) -> dict:
    p = Path(params.path)
    if not p.exists():
        raise ToolExecutionError(f"File not found: {params.path}")
    if p.is_dir():
        raise ToolExecutionError(f"Path is a directory, not a file: {params.path}")
    try:
        p.unlink()
    except OSError as e:
        raise _os_error("delete", params.path, e) from e

    log.info(f"File deleted: {params.path}")
    return {"success": True, "deletedPath": params.path}


@measure("filesystem.file_exists", level="DEBUG")
def file_exists(params: PathParams) -> dict:
    exists = Path(params.path).exists()
    log.debug(f"File exists check: {params.path} = {exists}")
    return {"success": True, "path": params.path, "exists": exists}


@measure("filesystem.copy_file", level="DEBUG")
def copy_file(params: CopyFileParams) -> dict:
    src, dst = Path(params.source), Path(params.destination)
    if not src.is_file():
        raise ToolExecutionError(f"Source file not found: {params.source}")
    try:
        _ensure_parent(dst)
        shutil.copyfile(src, dst)
    except OSError as e:
        raise _os_error("copy", params.source, e) from e

    log.info(f"File copied: {params.source} -> {params.destination}")
    return {
        "success": True,
        "source": params.source,
        "destination": params.destination,
    }


@measure("filesystem.get_file_info", level="DEBUG")
def get_file_info(params: PathParams) -> dict:
    p = Path(params.path)
    if not p.exists():
        raise ToolExecutionError(f"File not found: {params.path}")
    st = p.stat()
    # st_birthtime only exists on some platforms; fall back to ctime
    created = getattr(st, "st_birthtime", st.st_ctime)
    return {
        "success": True,
        "path": params.path,
        "size": st.st_size,
        "created": _iso(created),
        "modified": _iso(st.st_mtime),
        "isFile": p.is_file(),
        "isDirectory": p.is_dir(),
    }


# ---------- Adapter ----------

_CAT = ToolCategory.filesystem

ADAPTER = ToolAdapter(
    _CAT,
    "File system operations",
    [
        ToolOperation(_CAT, "list_files", "List files in a directory with optional pattern matching", ListFilesParams, list_files),
        ToolOperation(_CAT, "read_file", "Read file contents", PathParams, read_file),
        ToolOperation(_CAT, "write_file", "Write contents to file", WriteFileParams, write_file),
        ToolOperation(_CAT, "rename_file", "Rename or move a file", RenameFileParams, rename_file),
        ToolOperation(_CAT, "delete_file", "Delete a file", PathParams, delete_file),
        ToolOperation(_CAT, "file_exists", "Check if file exists", PathParams, file_exists),
        ToolOperation(_CAT, "copy_file", "Copy a file", CopyFileParams, copy_file),
        ToolOperation(_CAT, "get_file_info", "Get file size, timestamps and type", PathParams, get_file_info),
    ],
)
