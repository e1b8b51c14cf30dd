# replay/tools/shell.py
from __future__ import annotations

"""Shell tool
-------------
Runs commands through the platform shell with two hard bounds taken from
settings: a wall-clock timeout (SHELL_TIMEOUT_MS) and a per-stream output cap
(SHELL_MAX_BUFFER_BYTES). Hitting either bound, a nonzero exit, or a spawn
failure yields a structured `success: False` result instead of an exception.
"""

import os
import shutil
import signal
import subprocess
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import IO, Callable, Optional

from pydantic import Field, field_validator

from replay.core.errors import ToolExecutionError
from replay.tools.base import ToolAdapter, ToolCategory, ToolOperation, ToolParams
from replay.utils.config import get_settings
from replay.utils.logger import get_logger
from replay.utils.timing import Stopwatch, measure

log = get_logger(__name__)

_POLL_SECONDS = 0.05
_READ_CHUNK = 64 * 1024
_READER_JOIN_SECONDS = 5.0


# ---------- Parameter contracts ----------


class CommandParams(ToolParams):
    command: str = Field(..., description="Command to execute")
    cwd: Optional[str] = Field(default=None, description="Working directory")

    @field_validator("command")
    @classmethod
    def _command_non_empty(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("command cannot be empty")
        return v


class DirectoryParams(ToolParams):
    path: str = Field(default=".", description="Directory path")


class CreateDirectoryParams(ToolParams):
    path: str = Field(..., min_length=1, description="Directory to create")


class RemoveDirectoryParams(ToolParams):
    path: str = Field(..., min_length=1, description="Directory to remove")
    recursive: bool = Field(default=False, description="Remove contents as well")


# ---------- Bounded process runner ----------


class _StreamCollector(threading.Thread):
    """Drains one pipe into memory, stopping at `limit` bytes."""

    def __init__(self, stream: IO[bytes], limit: int, on_overflow: Callable[[], None]):
        super().__init__(daemon=True)
        self.stream = stream
        self.limit = limit
        self.on_overflow = on_overflow
        self.buf = bytearray()
        self.overflowed = False

    def run(self) -> None:
        try:
            while True:
                chunk = self.stream.read1(_READ_CHUNK)
                if not chunk:
                    break
                room = self.limit - len(self.buf)
                if len(chunk) > room:
                    self.buf.extend(chunk[:room])
                    self.overflowed = True
                    self.on_overflow()
                    break
                self.buf.extend(chunk)
        except (OSError, ValueError):
            # pipe closed underneath us after the process was killed
            pass
        finally:
            self.stream.close()

    def text(self) -> str:
        return self.buf.decode("utf-8", errors="replace")


@dataclass
class CommandRun:
    exit_code: int
    stdout: str
    stderr: str
    timed_out: bool = False
    truncated: bool = False
    spawn_error: Optional[str] = None
    duration_ms: int = 0

    @property
    def ok(self) -> bool:
        return self.spawn_error is None and not self.timed_out and not self.truncated and self.exit_code == 0


def _kill_tree(proc: subprocess.Popen) -> None:
    if os.name == "posix":
        try:
            os.killpg(proc.pid, signal.SIGKILL)
        except (ProcessLookupError, PermissionError):
            proc.kill()
    else:
        proc.kill()


def run_bounded(command: str, cwd: Optional[str] = None) -> CommandRun:
    """Run `command` in a shell, enforcing the configured timeout and output cap."""
    s = get_settings()
    timeout_ms = s.SHELL_TIMEOUT_MS
    limit = s.SHELL_MAX_BUFFER_BYTES

    popen_kwargs: dict = {
        "shell": True,
        "cwd": cwd,
        "stdin": subprocess.DEVNULL,
        "stdout": subprocess.PIPE,
        "stderr": subprocess.PIPE,
    }
    if s.SHELL_EXECUTABLE:
        popen_kwargs["executable"] = s.SHELL_EXECUTABLE
    if os.name == "posix":
        # own process group so a timeout kills the shell and its children together
        popen_kwargs["start_new_session"] = True
    else:
        popen_kwargs["creationflags"] = subprocess.CREATE_NEW_PROCESS_GROUP

    try:
        proc = subprocess.Popen(command, **popen_kwargs)
    except OSError as e:
        return CommandRun(exit_code=1, stdout="", stderr=str(e), spawn_error=str(e))

    overflow = threading.Event()
    out = _StreamCollector(proc.stdout, limit, overflow.set)
    err = _StreamCollector(proc.stderr, limit, overflow.set)
    out.start()
    err.start()

    timed_out = False
    with Stopwatch() as sw:
        while True:
            try:
                proc.wait(timeout=_POLL_SECONDS)
                break
            except subprocess.TimeoutExpired:
                pass
            if overflow.is_set():
                _kill_tree(proc)
                break
            if sw.elapsed_ms() >= timeout_ms:
                timed_out = True
                _kill_tree(proc)
                break
        proc.wait()
        out.join(_READER_JOIN_SECONDS)
        err.join(_READER_JOIN_SECONDS)
        duration = sw.elapsed_ms()

    return CommandRun(
        exit_code=proc.returncode if proc.returncode is not None else 1,
        stdout=out.text(),
        stderr=err.text(),
        timed_out=timed_out,
        truncated=out.overflowed or err.overflowed,
        duration_ms=duration,
    )


def _failure_message(run: CommandRun, command: str) -> str:
    if run.spawn_error:
        return f"Failed to start command: {run.spawn_error}"
    if run.timed_out:
        return f"Command timed out after {get_settings().SHELL_TIMEOUT_MS} ms: {command}"
    if run.truncated:
        return f"Command output exceeded {get_settings().SHELL_MAX_BUFFER_BYTES} bytes: {command}"
    detail = run.stderr.strip().splitlines()
    suffix = f"\n{detail[-1]}" if detail else ""
    return f"Command failed with exit code {run.exit_code}: {command}{suffix}"


# ---------- Operations ----------


@measure("shell.execute_command", level="DEBUG")
def execute_command(params: CommandParams) -> dict:
    cwd = params.cwd or os.getcwd()
    log.info(f"Executing command: {params.command} (cwd: {cwd})")
    run = run_bounded(params.command, cwd=cwd)

    result = {
        "success": run.ok,
        "command": params.command,
        "cwd": cwd,
        "stdout": run.stdout,
        "stderr": run.stderr,
        "exitCode": run.exit_code,
        "timedOut": run.timed_out,
        "truncated": run.truncated,
        "durationMs": run.duration_ms,
    }
    if not run.ok:
        result["error"] = _failure_message(run, params.command)
        log.error(result["error"])
    return result


@measure("shell.get_output", level="DEBUG")
def get_output(params: CommandParams) -> dict:
    cwd = params.cwd or os.getcwd()
    log.debug(f"Getting output from: {params.command}")
    run = run_bounded(params.command, cwd=cwd)
    if not run.ok:
        raise ToolExecutionError(_failure_message(run, params.command))
    return {"success": True, "command": params.command, "output": run.stdout.strip()}


@measure("shell.list_directory", level="DEBUG")
def list_directory(params: DirectoryParams) -> dict:
    root = Path(params.path)
    if not root.is_dir():
        raise ToolExecutionError(f"Directory not found: {params.path}")
    entries = []
    for entry in sorted(root.iterdir(), key=lambda p: p.name):
        is_dir = entry.is_dir()
        entries.append({
            "name": entry.name,
            "type": "directory" if is_dir else "file",
            "size": None if is_dir else entry.stat().st_size,
        })
    return {"success": True, "path": params.path, "contents": entries, "count": len(entries)}


@measure("shell.create_directory", level="DEBUG")
def create_directory(params: CreateDirectoryParams) -> dict:
    log.info(f"Creating directory: {params.path}")
    try:
        Path(params.path).mkdir(parents=True, exist_ok=False)
    except FileExistsError as e:
        raise ToolExecutionError(f"Directory already exists: {params.path}") from e
    except OSError as e:
        raise ToolExecutionError(f"Failed to create directory {params.path}: {e.strerror or e}") from e
    return {"success": True, "path": params.path, "created": True}


@measure("shell.remove_directory", level="DEBUG")
def remove_directory(params: RemoveDirectoryParams) -> dict:
    target = Path(params.path)
    if not target.is_dir():
        raise ToolExecutionError(f"Directory not found: {params.path}")
    log.info(f"Removing directory: {params.path}")
    try:
        if params.recursive:
            shutil.rmtree(target)
        else:
            target.rmdir()
    except OSError as e:
        raise ToolExecutionError(f"Failed to remove directory {params.path}: {e.strerror or e}") from e
    return {"success": True, "path": params.path, "removed": True}


# ---------- Adapter ----------

_CAT = ToolCategory.shell

ADAPTER = ToolAdapter(
    _CAT,
    "Shell command execution",
    [
        ToolOperation(_CAT, "execute_command", "Execute shell command", CommandParams, execute_command),
        ToolOperation(_CAT, "get_output", "Run a command and return its trimmed stdout", CommandParams, get_output),
        ToolOperation(_CAT, "list_directory", "List directory contents", DirectoryParams, list_directory),
        ToolOperation(_CAT, "create_directory", "Create a directory (and missing parents)", CreateDirectoryParams, create_directory),
        ToolOperation(_CAT, "remove_directory", "Remove a directory", RemoveDirectoryParams, remove_directory),
    ],
)
