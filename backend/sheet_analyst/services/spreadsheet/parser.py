"""Excel workbook parsing into :class:`Dataset` values.

Every sheet is read with pandas (openpyxl for ``.xlsx``, xlrd for ``.xls``)
without a header so the first row can be normalised here.  Cells are turned
into plain JSON-friendly Python values: NaN → None, numpy scalars → Python
scalars, dates → ISO strings.
"""

from __future__ import annotations

import logging
import math
import uuid
from datetime import date, datetime, time
from pathlib import Path
from typing import Any, Dict, List

import numpy as np
import pandas as pd

from sheet_analyst.core.utils import sanitize_null_bytes
from sheet_analyst.services.spreadsheet.schemas import CellValue, Dataset, Sheet

logger = logging.getLogger(__name__)

SAMPLE_ROWS = 5

_ENGINES: Dict[str, str] = {
    ".xlsx": "openpyxl",
    ".xls": "xlrd",
}


class SpreadsheetParseError(Exception):
    """Raised when a workbook cannot be read."""
    pass


def normalize_cell(value: Any) -> CellValue:
    """Convert a raw pandas cell to ``str | int | float | bool | None``."""
    if value is None:
        return None
    if isinstance(value, np.generic):
        value = value.item()
    if isinstance(value, float) and math.isnan(value):
        return None
    if value is pd.NaT:
        return None
    if isinstance(value, (bool, int, float)):
        return value
    if isinstance(value, str):
        return sanitize_null_bytes(value)
    if isinstance(value, (pd.Timestamp, datetime, date, time)):
        return value.isoformat()
    return sanitize_null_bytes(str(value))


def normalize_headers(raw: List[Any]) -> List[str]:
    """Header row as strings; blanks become ``Column N``."""
    headers = []
    for idx, value in enumerate(raw):
        cell = normalize_cell(value)
        text = "" if cell is None else str(cell).strip()
        headers.append(text or f"Column {idx + 1}")
    return headers


def _is_blank_row(row: List[CellValue]) -> bool:
    return all(cell is None or cell == "" for cell in row)


def sheet_from_frame(sheet_name: str, frame: pd.DataFrame) -> Sheet | None:
    """Build a :class:`Sheet` from a header-less frame, or None when it is empty."""
    rows = [[normalize_cell(v) for v in row] for row in frame.itertuples(index=False, name=None)]
    while rows and _is_blank_row(rows[-1]):
        rows.pop()
    if not rows:
        return None
    headers = normalize_headers(rows[0])
    return Sheet(sheet_name=str(sheet_name), headers=headers, data=rows[1:])


def build_summary(sheets: List[Sheet]) -> str:
    total_rows = sum(sheet.row_count for sheet in sheets)
    names = ", ".join(sheet.sheet_name for sheet in sheets)
    return f"File contains {len(sheets)} sheet(s): {names}. Total rows: {total_rows}"


def parse_workbook(file_path: str, original_name: str) -> Dataset:
    """Read every non-empty sheet of the workbook at *file_path*."""
    ext = Path(original_name).suffix.lower() or Path(file_path).suffix.lower()
    engine = _ENGINES.get(ext)

    try:
        frames = pd.read_excel(file_path, sheet_name=None, header=None, engine=engine)
    except Exception as exc:
        logger.error("Failed to read workbook %s: %s", original_name, exc)
        raise SpreadsheetParseError(f"Failed to process Excel file: {exc}") from exc

    sheets: List[Sheet] = []
    for sheet_name, frame in frames.items():
        sheet = sheet_from_frame(sheet_name, frame)
        if sheet is None:
            logger.debug("Skipping empty sheet %r in %s", sheet_name, original_name)
            continue
        sheets.append(sheet)

    if not sheets:
        raise SpreadsheetParseError("Workbook contains no data")

    dataset = Dataset(
        id=uuid.uuid4().hex,
        original_name=original_name,
        sheets=sheets,
        summary=build_summary(sheets),
    )
    logger.info(
        "Parsed %s: %d sheet(s), %d rows total", original_name, len(sheets), dataset.total_rows
    )
    return dataset


def dataset_context_for_llm(dataset: Dataset, sample_rows: int = SAMPLE_ROWS) -> str:
    """Compact description of *dataset* for prompts: columns, size, sample rows."""
    lines = [f"Dataset: {dataset.original_name}", f"Summary: {dataset.summary}", ""]
    for sheet in dataset.sheets:
        lines.append(f"Sheet: {sheet.sheet_name}")
        lines.append(f"Columns: {', '.join(sheet.headers)}")
        lines.append(f"Rows: {sheet.row_count}")
        if sheet.data:
            lines.append("Sample data:")
            for row in sheet.data[:sample_rows]:
                lines.append(", ".join("" if cell is None else str(cell) for cell in row))
        lines.append("")
    return "\n".join(lines)
