import os
import tempfile

# Settings are read on first import of replay.*; keep the suite away from ./data
os.environ.setdefault("DATA_DIR", tempfile.mkdtemp(prefix="replay-tests-"))
os.environ["LOG_LEVEL"] = "WARNING"
os.environ["COLORIZED_OUTPUT"] = "false"

import pytest

from replay.utils.config import get_settings


@pytest.fixture(autouse=True)
def isolated_settings(tmp_path, monkeypatch):
    monkeypatch.setenv("DATA_DIR", str(tmp_path / "data"))
    monkeypatch.delenv("RUN_LOGS", raising=False)
    monkeypatch.delenv("SHELL_TIMEOUT_MS", raising=False)
    monkeypatch.delenv("SHELL_MAX_BUFFER_BYTES", raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
