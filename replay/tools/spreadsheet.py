# replay/tools/spreadsheet.py
from __future__ import annotations

"""Spreadsheet tool
-------------------
Row-oriented access to `.xlsx` workbooks (openpyxl) and `.csv` files. Rows are
dicts keyed by the header row. Sort, filter and append are read-modify-write:
one full read, one full write, no partial updates.
"""

import csv
from pathlib import Path
from typing import Any, Optional

from openpyxl import Workbook, load_workbook
from pydantic import Field

from replay.core.errors import ToolExecutionError
from replay.tools.base import ToolAdapter, ToolCategory, ToolOperation, ToolParams
from replay.utils.logger import get_logger
from replay.utils.timing import measure

log = get_logger(__name__)

DEFAULT_SHEET = "Sheet1"
_CSV_SUFFIXES = {".csv"}
_XLSX_SUFFIXES = {".xlsx", ".xlsm"}


# ---------- Parameter contracts ----------


class ReadParams(ToolParams):
    path: str = Field(..., description="Excel or CSV file path")
    sheet: Optional[str] = Field(default=None, description="Sheet name (for Excel)")


class WriteParams(ToolParams):
    path: str = Field(..., description="File path")
    data: list[dict[str, Any]] = Field(..., description="Rows to write (list of column->value objects)")
    sheet: Optional[str] = Field(default=None, description="Sheet name")


class SortParams(ToolParams):
    path: str = Field(..., description="File path")
    column: str = Field(..., description="Column to sort by")
    order: str = Field(default="asc", description="asc or desc")
    sheet: Optional[str] = Field(default=None, description="Sheet name")


class FilterParams(ToolParams):
    path: str = Field(..., description="File path")
    column: str = Field(..., description="Column to filter")
    value: Any = Field(..., description="Filter value")
    sheet: Optional[str] = Field(default=None, description="Sheet name")
    output_path: Optional[str] = Field(default=None, description="Where to write matching rows (defaults to path)")


class AppendParams(ToolParams):
    path: str = Field(..., description="File path")
    data: list[dict[str, Any]] = Field(..., description="Rows to append")
    sheet: Optional[str] = Field(default=None, description="Sheet name")


class GetCellParams(ToolParams):
    path: str = Field(..., description="File path")
    row: int = Field(..., ge=0, description="0-based data row index (header excluded)")
    column: str = Field(..., description="Column name")
    sheet: Optional[str] = Field(default=None, description="Sheet name")


# ---------- Internals ----------


def _kind(path: Path) -> str:
    suffix = path.suffix.lower()
    if suffix in _CSV_SUFFIXES:
        return "csv"
    if suffix in _XLSX_SUFFIXES:
        return "xlsx"
    raise ToolExecutionError(f"Unsupported spreadsheet format: {path.suffix or '<none>'} (use .xlsx or .csv)")


def _columns(rows: list[dict[str, Any]], header: Optional[list[str]] = None) -> list[str]:
    """`header` first, then any other row keys in first-seen order."""
    cols: list[str] = list(header or [])
    for row in rows:
        for k in row:
            if k not in cols:
                cols.append(k)
    return cols


def _read_rows(path: Path, sheet: Optional[str]) -> tuple[str, list[str], list[dict[str, Any]]]:
    """Sheet name, header row and data rows. Empty cells are kept as None."""
    if not path.is_file():
        raise ToolExecutionError(f"File not found: {path}")

    if _kind(path) == "csv":
        with path.open("r", encoding="utf-8-sig", newline="") as f:
            reader = csv.DictReader(f)
            rows = [dict(r) for r in reader]
            header = list(reader.fieldnames or [])
        return sheet or DEFAULT_SHEET, header, rows

    wb = load_workbook(path, read_only=True, data_only=True)
    try:
        if not wb.sheetnames:
            raise ToolExecutionError("No sheets found in workbook")
        sheet_name = sheet or wb.sheetnames[0]
        if sheet_name not in wb.sheetnames:
            raise ToolExecutionError(f"Sheet not found: {sheet_name}")
        values = list(wb[sheet_name].iter_rows(values_only=True))
    finally:
        wb.close()

    if not values:
        return sheet_name, [], []
    header = [str(h) if h is not None else f"column{i + 1}" for i, h in enumerate(values[0])]
    rows = []
    for raw in values[1:]:
        if raw is None or all(v is None for v in raw):
            continue
        rows.append({col: (raw[i] if i < len(raw) else None) for i, col in enumerate(header)})
    return sheet_name, header, rows


def _write_rows(
    path: Path,
    rows: list[dict[str, Any]],
    sheet: Optional[str],
    header: Optional[list[str]] = None,
) -> str:
    """Rewrite the sheet; `header` keeps the existing column order, even with no rows."""
    path.parent.mkdir(parents=True, exist_ok=True)
    cols = _columns(rows, header)
    sheet_name = sheet or DEFAULT_SHEET

    if _kind(path) == "csv":
        with path.open("w", encoding="utf-8", newline="") as f:
            writer = csv.DictWriter(f, fieldnames=cols)
            writer.writeheader()
            writer.writerows(rows)
        return sheet_name

    # Replace only the target sheet; other sheets in an existing workbook survive
    if path.exists():
        wb = load_workbook(path)
        if sheet_name in wb.sheetnames:
            idx = wb.sheetnames.index(sheet_name)
            wb.remove(wb[sheet_name])
            ws = wb.create_sheet(sheet_name, idx)
        else:
            ws = wb.create_sheet(sheet_name)
    else:
        wb = Workbook()
        ws = wb.active
        ws.title = sheet_name

    ws.append(cols)
    for row in rows:
        ws.append([row.get(c) for c in cols])
    wb.save(path)
    return sheet_name


def _sort_key(value: Any) -> tuple:
    # numbers (including numeric CSV text) sort numerically, ahead of other text
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return (0, value, "")
    try:
        return (0, float(str(value).strip()), "")
    except ValueError:
        return (1, 0, str(value))


def _loosely_equal(cell: Any, wanted: Any) -> bool:
    # CSV cells are always text; compare by string form when types differ
    if cell == wanted:
        return True
    if cell is None or wanted is None:
        return False
    return str(cell).strip() == str(wanted).strip()


# ---------- Operations ----------


@measure("spreadsheet.read_spreadsheet", level="DEBUG")
def read_spreadsheet(params: ReadParams) -> dict:
    sheet_name, header, rows = _read_rows(Path(params.path), params.sheet)
    log.info(f"Read spreadsheet: {params.path} (sheet: {sheet_name}, rows: {len(rows)})")
    return {
        "success": True,
        "path": params.path,
        "sheet": sheet_name,
        "data": rows,
        "rowCount": len(rows),
        "columnCount": len(_columns(rows, header)),
    }


@measure("spreadsheet.write_spreadsheet", level="DEBUG")
def write_spreadsheet(params: WriteParams) -> dict:
    sheet_name = _write_rows(Path(params.path), params.data, params.sheet)
    log.info(f"Spreadsheet written: {params.path} (sheet: {sheet_name}, rows: {len(params.data)})")
    return {
        "success": True,
        "path": params.path,
        "sheet": sheet_name,
        "rowsWritten": len(params.data),
    }


@measure("spreadsheet.sort_data", level="DEBUG")
def sort_data(params: SortParams) -> dict:
    path = Path(params.path)
    sheet_name, header, rows = _read_rows(path, params.sheet)

    present = [r for r in rows if r.get(params.column) not in (None, "")]
    missing = [r for r in rows if r.get(params.column) in (None, "")]
    order = "desc" if params.order.strip().lower().startswith("desc") else "asc"
    present.sort(key=lambda r: _sort_key(r[params.column]), reverse=(order == "desc"))
    ordered = present + missing

    _write_rows(path, ordered, sheet_name, header)
    log.info(f"Sorted spreadsheet by {params.column} ({order})")
    return {
        "success": True,
        "path": params.path,
        "sortedBy": params.column,
        "order": order,
        "rowsSorted": len(ordered),
    }


@measure("spreadsheet.filter_data", level="DEBUG")
def filter_data(params: FilterParams) -> dict:
    sheet_name, header, rows = _read_rows(Path(params.path), params.sheet)
    matched = [r for r in rows if _loosely_equal(r.get(params.column), params.value)]

    out_path = params.output_path or params.path
    _write_rows(Path(out_path), matched, sheet_name, header)
    log.info(f"Filtered spreadsheet: {params.column} = {params.value} ({len(matched)} rows matched)")
    return {
        "success": True,
        "path": params.path,
        "outputPath": out_path,
        "column": params.column,
        "value": params.value,
        "matchedRows": len(matched),
        "data": matched,
    }


@measure("spreadsheet.append_data", level="DEBUG")
def append_data(params: AppendParams) -> dict:
    path = Path(params.path)
    sheet_name, header, existing = _read_rows(path, params.sheet)
    combined = existing + list(params.data)
    _write_rows(path, combined, sheet_name, header)
    log.info(f"Appended {len(params.data)} rows to spreadsheet")
    return {
        "success": True,
        "path": params.path,
        "rowsAppended": len(params.data),
        "totalRows": len(combined),
    }


@measure("spreadsheet.get_cell", level="DEBUG")
def get_cell(params: GetCellParams) -> dict:
    _, _, rows = _read_rows(Path(params.path), params.sheet)
    if params.row >= len(rows):
        raise ToolExecutionError(f"Row {params.row} not found")
    return {
        "success": True,
        "row": params.row,
        "column": params.column,
        "value": rows[params.row].get(params.column),
    }


# ---------- Adapter ----------

_CAT = ToolCategory.spreadsheet

ADAPTER = ToolAdapter(
    _CAT,
    "Spreadsheet (Excel/CSV) operations",
    [
        ToolOperation(_CAT, "read_spreadsheet", "Read spreadsheet data", ReadParams, read_spreadsheet),
        ToolOperation(_CAT, "write_spreadsheet", "Write data to spreadsheet", WriteParams, write_spreadsheet),
        ToolOperation(_CAT, "sort_data", "Sort spreadsheet data in place", SortParams, sort_data),
        ToolOperation(_CAT, "filter_data", "Filter spreadsheet rows and write the matches", FilterParams, filter_data),
        ToolOperation(_CAT, "append_data", "Append rows to a spreadsheet", AppendParams, append_data),
        ToolOperation(_CAT, "get_cell", "Get a single cell value", GetCellParams, get_cell),
    ],
)
