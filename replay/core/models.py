# replay/core/models.py
from __future__ import annotations

"""Workflow data model
----------------------
Pydantic models for steps, workflows and execution-log entries. Field names are
snake_case in Python; documents use camelCase (`stepNumber`, `toolAction`, ...),
and both spellings are accepted on input.
"""

from enum import Enum
from typing import Any, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


# ---------- Core enums ----------


class ErrorPolicy(str, Enum):
    stop = "stop"
    continue_ = "continue"
    ask = "ask"

    @classmethod
    def parse(cls, raw: Optional[str]) -> "ErrorPolicy":
        text = (raw or "").strip().lower()
        if text == cls.stop.value:
            return cls.stop
        if text == cls.continue_.value:
            return cls.continue_
        # Free-text instructions from analysis ("ask the user", "retry", ...) all fall here
        return cls.ask


class DocumentModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
    )

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


# ---------- Step ----------


class Step(DocumentModel):
    model_config = ConfigDict(frozen=True)

    step_number: int = Field(..., ge=1, description="Execution order; unique within a workflow")
    description: str = Field(default="", description="Human-readable label, logging only")
    tool: str = Field(..., description="Tool category or alias, e.g. 'filesystem' or 'file'")
    tool_action: str = Field(..., description="Operation name within the category")
    parameters: dict[str, Any] = Field(default_factory=dict)
    expected_output: Optional[str] = Field(default=None, description="Advisory only")
    error_handling: str = Field(default=ErrorPolicy.stop.value)

    @field_validator("tool", "tool_action")
    @classmethod
    def _non_empty(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be empty")
        return v

    @field_validator("parameters", mode="before")
    @classmethod
    def _none_params(cls, v):
        return {} if v is None else v

    @field_validator("error_handling", mode="before")
    @classmethod
    def _none_policy(cls, v):
        return ErrorPolicy.stop.value if v is None else v

    @property
    def policy(self) -> ErrorPolicy:
        return ErrorPolicy.parse(self.error_handling)

    @property
    def label(self) -> str:
        return self.description or f"{self.tool}.{self.tool_action}"


# ---------- Workflow ----------


class Workflow(DocumentModel):
    id: str = Field(..., description="Workflow identity used for log attribution and history")
    name: str = Field(default="")
    description: Optional[str] = None
    goal: Optional[str] = None
    steps: list[Step] = Field(default_factory=list)
    created_at: Optional[str] = None
    updated_at: Optional[str] = None
    execution_history: list[dict[str, Any]] = Field(default_factory=list)

    @field_validator("id")
    @classmethod
    def _id_non_empty(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("id cannot be empty")
        return v

    @model_validator(mode="after")
    def _order_steps(self) -> "Workflow":
        seen: set[int] = set()
        for st in self.steps:
            if st.step_number in seen:
                raise ValueError(f"duplicate stepNumber {st.step_number}")
            seen.add(st.step_number)
        self.steps.sort(key=lambda st: st.step_number)
        return self


# ---------- Execution log ----------


class ExecutionLogEntry(DocumentModel):
    step: int
    description: str
    status: Literal["success", "error"]
    result: Optional[dict[str, Any]] = None
    error: Optional[str] = None
    timestamp: str

    def to_dict(self) -> dict[str, Any]:
        # success entries carry `result`, error entries carry `error`, never both
        d = super().to_dict()
        d.pop("error" if self.status == "success" else "result", None)
        return d


class SimulationEntry(DocumentModel):
    step: int
    description: str
    tool: str
    parameters: dict[str, Any]
    expected_output: Optional[str] = None
    would_execute: bool = True


__all__ = [
    "ErrorPolicy",
    "Step",
    "Workflow",
    "ExecutionLogEntry",
    "SimulationEntry",
]
