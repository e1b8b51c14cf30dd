# replay/core/registry.py
from __future__ import annotations

"""Tool registry
----------------
Resolves a step's `(tool, toolAction)` pair to a concrete adapter operation and
publishes the catalog of categories/operations/parameters that the analysis
side uses to constrain what it emits. Built once, read-only afterwards, and
safe to share between concurrent runs.
"""

from types import MappingProxyType
from typing import Any, Iterable, Mapping, Optional

from replay.core.errors import UnknownCategoryError, UnknownOperationError
from replay.tools import ToolAdapter, ToolCategory, ToolOperation, builtin_adapters


# Fixed synonyms seen in recorded/analysed workflows; not user-configurable.
CATEGORY_ALIASES: Mapping[str, ToolCategory] = MappingProxyType({
    "file": ToolCategory.filesystem,
    "files": ToolCategory.filesystem,
    "fs": ToolCategory.filesystem,
    "excel": ToolCategory.spreadsheet,
    "csv": ToolCategory.spreadsheet,
    "http": ToolCategory.web,
    "terminal": ToolCategory.shell,
    "cmd": ToolCategory.shell,
})

# Short operation names -> canonical operation names, per category.
# Keys are normalized (lowercase, '-' -> '_').
OPERATION_ALIASES: Mapping[ToolCategory, Mapping[str, str]] = MappingProxyType({
    ToolCategory.filesystem: MappingProxyType({
        "list": "list_files",
        "read": "read_file",
        "write": "write_file",
        "rename": "rename_file",
        "move": "rename_file",
        "delete": "delete_file",
        "exists": "file_exists",
        "copy": "copy_file",
        "stat": "get_file_info",
    }),
    ToolCategory.spreadsheet: MappingProxyType({
        "read": "read_spreadsheet",
        "write": "write_spreadsheet",
        "sort": "sort_data",
        "filter": "filter_data",
        "append": "append_data",
    }),
    ToolCategory.web: MappingProxyType({
        "fetch": "fetch_url",
        "page_info": "get_page_info",
    }),
    ToolCategory.shell: MappingProxyType({
        "execute": "execute_command",
        "run": "execute_command",
    }),
})


def _norm(token: str) -> str:
    return (token or "").strip().lower().replace("-", "_")


class ToolRegistry:
    """Immutable `(category, operation) -> ToolOperation` lookup."""

    def __init__(self, adapters: Iterable[ToolAdapter]):
        table: dict[ToolCategory, ToolAdapter] = {}
        for adapter in adapters:
            if adapter.category in table:
                raise ValueError(f"duplicate adapter for category {adapter.category.value}")
            table[adapter.category] = adapter

        # every alias must point at a real operation of a registered adapter
        for category, aliases in OPERATION_ALIASES.items():
            adapter = table.get(category)
            if adapter is None:
                continue
            for alias, target in aliases.items():
                if adapter.get(target) is None:
                    raise ValueError(f"alias {category.value}.{alias} -> unknown operation {target}")

        self._adapters: Mapping[ToolCategory, ToolAdapter] = MappingProxyType(table)

    # ---------- Lookup ----------

    @property
    def categories(self) -> list[ToolCategory]:
        return list(self._adapters)

    def canonical_category(self, category: str) -> Optional[ToolCategory]:
        token = _norm(category)
        if token in CATEGORY_ALIASES:
            return CATEGORY_ALIASES[token]
        try:
            return ToolCategory(token)
        except ValueError:
            return None

    def resolve(self, category: str, operation: str) -> ToolOperation:
        """
        Return the operation for `category`/`operation` after alias resolution.

        Raises UnknownCategoryError or UnknownOperationError (both
        ConfigurationError); tool runtime failures never surface here.
        """
        cat = self.canonical_category(category)
        adapter = self._adapters.get(cat) if cat is not None else None
        if adapter is None:
            raise UnknownCategoryError(category)

        op_token = _norm(operation)
        op = adapter.get(op_token)
        if op is None:
            target = OPERATION_ALIASES.get(cat, {}).get(op_token)
            op = adapter.get(target) if target else None
        if op is None:
            raise UnknownOperationError(cat.value, operation)
        return op

    # ---------- Catalog ----------

    def catalog(self) -> dict[str, Any]:
        """Per category: description and operations with typed parameter tags."""
        return {cat.value: adapter.describe() for cat, adapter in self._adapters.items()}

    def list_available_tools(self) -> list[dict[str, str]]:
        tools = []
        for cat, adapter in self._adapters.items():
            for op in adapter.operations.values():
                tools.append({"category": cat.value, "name": op.name, "description": op.description})
        return tools


def default_registry() -> ToolRegistry:
    """Registry over the built-in filesystem/spreadsheet/web/shell adapters."""
    return ToolRegistry(builtin_adapters())


__all__ = [
    "CATEGORY_ALIASES",
    "OPERATION_ALIASES",
    "ToolRegistry",
    "default_registry",
]
