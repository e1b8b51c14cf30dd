"""
Tool adapters
-------------
One module per tool category. Each exposes a module-level `ADAPTER`; the
registry in replay.core.registry collects them.
"""

from .base import ToolAdapter, ToolCategory, ToolErr, ToolOk, ToolOperation, ToolOutcome, ToolParams


def builtin_adapters() -> list[ToolAdapter]:
    """The four built-in adapters, imported lazily to keep package import cheap."""
    from . import filesystem, shell, spreadsheet, web

    return [filesystem.ADAPTER, spreadsheet.ADAPTER, web.ADAPTER, shell.ADAPTER]


__all__ = [
    "ToolAdapter",
    "ToolCategory",
    "ToolErr",
    "ToolOk",
    "ToolOperation",
    "ToolOutcome",
    "ToolParams",
    "builtin_adapters",
]
