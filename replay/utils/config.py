# replay/utils/config.py
from __future__ import annotations

import functools
from enum import Enum
from pathlib import Path
from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# ---------- Enums ----------

class LogLevel(str, Enum):
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


DEFAULT_USER_AGENT = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36"


# ---------- Settings ----------

class Settings(BaseSettings):
    """
    Central configuration for procedure replay.

    Values load in this order of precedence:
      1) Environment variables
      2) .env file in project root
      3) Defaults below
    """

    # ---- Storage ----
    DATA_DIR: Path = Field(default=Path("./data"), description="Workflow store + run logs")
    WORKFLOWS_DIR: Path = Field(default=Path("./workflows"), description="YAML/JSON workflow files")

    # ---- Shell tool bounds ----
    SHELL_TIMEOUT_MS: int = Field(default=30000, ge=1, description="Wall-clock limit per command")
    SHELL_MAX_BUFFER_BYTES: int = Field(default=10 * 1024 * 1024, ge=1, description="Cap per output stream")
    SHELL_EXECUTABLE: Optional[str] = Field(default=None, description="Override the platform shell")

    # ---- Web tool ----
    HTTP_TIMEOUT_SECONDS: float = Field(default=30.0, gt=0)
    HTTP_USER_AGENT: str = Field(default=DEFAULT_USER_AGENT)

    # ---- Execution ----
    RUN_LOGS: bool = Field(default=False, description="Write a JSON log file per workflow run")

    # ---- Logging ----
    LOG_LEVEL: LogLevel = Field(default=LogLevel.INFO)
    LOG_TO_FILE: bool = Field(default=False)
    LOG_FILE: Path = Field(default=Path("./replay.log"))
    COLORIZED_OUTPUT: bool = Field(default=True)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",  # ignore unknown envs to keep things flexible
    )

    @field_validator("DATA_DIR", "WORKFLOWS_DIR", "LOG_FILE", mode="before")
    @classmethod
    def _coerce_to_path(cls, v):
        if isinstance(v, Path):
            return v
        return Path(str(v)) if v is not None else v

    @field_validator("DATA_DIR", "WORKFLOWS_DIR", "LOG_FILE", mode="after")
    @classmethod
    def _absolutize(cls, v: Path):
        return v if v.is_absolute() else Path.cwd() / v

    @property
    def workflows_store_dir(self) -> Path:
        return self.DATA_DIR / "workflows"

    @property
    def run_logs_dir(self) -> Path:
        return self.DATA_DIR / "runs"

    def ensure_dirs(self) -> None:
        """Create required directories (idempotent)."""
        for p in {self.DATA_DIR, self.workflows_store_dir}:
            p.mkdir(parents=True, exist_ok=True)
        if self.LOG_TO_FILE:
            self.LOG_FILE.parent.mkdir(parents=True, exist_ok=True)


# --------- Public accessor (memoized) ---------

@functools.lru_cache(maxsize=1)
def get_settings() -> Settings:
    """
    Load and cache settings once per process.
    Call `get_settings.cache_clear()` if you need to reload after changing env.
    """
    s = Settings()
    s.ensure_dirs()
    return s
