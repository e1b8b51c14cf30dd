# replay/tools/base.py
from __future__ import annotations

"""Tool adapter primitives
--------------------------
Every adapter operation couples a pydantic parameter model (its typed contract)
with a handler. `ToolOperation.invoke` is the adapter boundary: it validates the
raw step parameters, runs the handler, and returns an explicit `ToolOk`/`ToolErr`
outcome instead of raising.
"""

import typing
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Callable, Mapping, Optional, Sequence, Union

from pydantic import BaseModel, ConfigDict
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from replay.core.errors import ErrorKind, WorkflowError
from replay.utils.logger import get_logger


class ToolCategory(str, Enum):
    filesystem = "filesystem"
    spreadsheet = "spreadsheet"
    web = "web"
    shell = "shell"


class ToolParams(BaseModel):
    """Base for operation parameter models; accepts camelCase or snake_case keys."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        frozen=True,
    )


# ---------- Outcomes ----------


@dataclass(frozen=True)
class ToolOk:
    value: dict[str, Any]
    ok: bool = field(default=True, init=False)


@dataclass(frozen=True)
class ToolErr:
    kind: ErrorKind
    message: str
    details: dict[str, Any] = field(default_factory=dict)
    ok: bool = field(default=False, init=False)


ToolOutcome = Union[ToolOk, ToolErr]


# ---------- Catalog helpers ----------

_TYPE_TAGS = {
    str: "string",
    int: "integer",
    float: "number",
    bool: "boolean",
    dict: "object",
    list: "array",
}


def type_tag(annotation: Any) -> str:
    """Flat descriptive type tag for a parameter annotation ('string', 'object', ...)."""
    if annotation is Any:
        return "any"
    origin = typing.get_origin(annotation)
    if origin is typing.Literal:
        return type_tag(type(typing.get_args(annotation)[0]))
    if origin is Union or getattr(origin, "__name__", "") == "UnionType":
        args = [a for a in typing.get_args(annotation) if a is not type(None)]
        tags = sorted({type_tag(a) for a in args})
        return tags[0] if len(tags) == 1 else "|".join(tags)
    base = origin or annotation
    return _TYPE_TAGS.get(base, "any")


def _format_validation(qualified: str, err: PydanticValidationError) -> str:
    parts = []
    for e in err.errors():
        loc = ".".join(str(p) for p in e.get("loc", [])) or "parameters"
        parts.append(f"{loc}: {e.get('msg', 'invalid value')}")
    return f"Invalid parameters for {qualified}: " + "; ".join(parts)


# ---------- Operation / adapter ----------


@dataclass(frozen=True)
class ToolOperation:
    category: ToolCategory
    name: str
    description: str
    params_model: type[ToolParams]
    handler: Callable[[Any], dict[str, Any]]

    @property
    def qualified_name(self) -> str:
        return f"{self.category.value}.{self.name}"

    def describe(self) -> dict[str, Any]:
        params: dict[str, Any] = {}
        for fname, finfo in self.params_model.model_fields.items():
            params[finfo.alias or fname] = {
                "type": type_tag(finfo.annotation),
                "description": finfo.description or "",
                "required": finfo.is_required(),
            }
        return {"name": self.name, "description": self.description, "parameters": params}

    def invoke(self, parameters: Optional[Mapping[str, Any]]) -> ToolOutcome:
        log = get_logger(__name__)
        try:
            params = self.params_model.model_validate(dict(parameters or {}))
        except PydanticValidationError as ve:
            return ToolErr(ErrorKind.validation, _format_validation(self.qualified_name, ve))

        log.info(f"Executing tool: {self.qualified_name}")
        try:
            result = self.handler(params)
        except WorkflowError as e:
            log.error(f"Error executing tool {self.qualified_name}: {e}")
            return ToolErr(e.kind, str(e))
        except Exception as e:
            # Library-level failures (bad workbook, selector syntax, ...) are still step failures
            log.exception(f"Unexpected error in tool {self.qualified_name}")
            return ToolErr(ErrorKind.execution, f"{e.__class__.__name__}: {e}")

        if result.get("success") is False:
            message = result.get("error") or f"{self.qualified_name} reported failure"
            return ToolErr(ErrorKind.execution, str(message), details=dict(result))
        log.info(f"Tool executed successfully: {self.qualified_name}")
        return ToolOk(result)


class ToolAdapter:
    """A fixed set of operations for one tool category."""

    def __init__(self, category: ToolCategory, description: str, operations: Sequence[ToolOperation]):
        self.category = category
        self.description = description
        ops: dict[str, ToolOperation] = {}
        for op in operations:
            if op.category is not category:
                raise ValueError(f"{op.qualified_name} registered on {category.value} adapter")
            if op.name in ops:
                raise ValueError(f"duplicate operation {op.qualified_name}")
            ops[op.name] = op
        self.operations: Mapping[str, ToolOperation] = MappingProxyType(ops)

    def get(self, name: str) -> Optional[ToolOperation]:
        return self.operations.get(name)

    def describe(self) -> dict[str, Any]:
        return {
            "name": self.category.value,
            "description": self.description,
            "tools": [op.describe() for op in self.operations.values()],
        }


__all__ = [
    "ToolCategory",
    "ToolParams",
    "ToolOk",
    "ToolErr",
    "ToolOutcome",
    "ToolOperation",
    "ToolAdapter",
    "type_tag",
]
