"""Serializer — turns parsed sheets into pandas construction code.

The generated code rebuilds every sheet as a DataFrame bound to a
deterministic variable name (``df_<sheet>``, or ``df1_<sheet>`` /
``df2_<sheet>`` for comparisons).  Values are emitted column by column as
Python literals.  Sheets above the chunk threshold are built from row-range
fragments and concatenated back in order, which keeps every single literal
small enough for the interpreter to parse comfortably.
"""

from __future__ import annotations

import math
import numbers
import re
from enum import Enum
from typing import Any, Callable, Dict, List, Sequence, Tuple

from sheet_analyst.core.config import settings
from sheet_analyst.services.spreadsheet.schemas import Dataset, Sheet

SCRIPT_HEADER = (
    "import pandas as pd\n"
    "import numpy as np\n"
    "from datetime import datetime\n"
)

_NON_IDENTIFIER = re.compile(r"[^a-zA-Z0-9]")

# Order matters: backslash first so later escapes are not doubled.
_STRING_ESCAPES: Tuple[Tuple[str, str], ...] = (
    ("\\", "\\\\"),
    ("'", "\\'"),
    ('"', '\\"'),
    ("\n", "\\n"),
    ("\r", "\\r"),
    ("\t", "\\t"),
)


# ── Cell encoding ─────────────────────────────────────────────


class CellKind(str, Enum):
    NULL = "null"
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    OTHER = "other"


def classify_cell(value: Any) -> CellKind:
    """Map a cell value onto its closed set of kinds."""
    if value is None or value == "":
        return CellKind.NULL
    if isinstance(value, bool):
        return CellKind.BOOLEAN
    if isinstance(value, str):
        return CellKind.STRING
    if isinstance(value, numbers.Real):
        return CellKind.NUMBER
    return CellKind.OTHER


def _escape(text: str) -> str:
    for raw, escaped in _STRING_ESCAPES:
        text = text.replace(raw, escaped)
    return text


def _encode_null(value: Any) -> str:
    return "None"


def _encode_string(value: Any) -> str:
    return f"'{_escape(value)}'"


def _encode_number(value: Any) -> str:
    if isinstance(value, numbers.Integral):
        return repr(int(value))
    value = float(value)
    if not math.isfinite(value):
        if math.isnan(value):
            return "float('nan')"
        return "float('inf')" if value > 0 else "float('-inf')"
    return repr(value)


def _encode_boolean(value: Any) -> str:
    return "True" if value else "False"


def _encode_other(value: Any) -> str:
    return _encode_string(str(value))


_ENCODERS: Dict[CellKind, Callable[[Any], str]] = {
    CellKind.NULL: _encode_null,
    CellKind.STRING: _encode_string,
    CellKind.NUMBER: _encode_number,
    CellKind.BOOLEAN: _encode_boolean,
    CellKind.OTHER: _encode_other,
}


def encode_cell(value: Any) -> str:
    """Return the Python literal for a single cell."""
    return _ENCODERS[classify_cell(value)](value)


def encode_list(values: Sequence[Any]) -> str:
    return "[" + ", ".join(encode_cell(v) for v in values) + "]"


# ── Variable naming ───────────────────────────────────────────


def sanitize_identifier(name: str) -> str:
    """Lower-case *name* and replace everything outside ``[a-zA-Z0-9]`` with ``_``."""
    return _NON_IDENTIFIER.sub("_", str(name).lower())


def dataframe_variable_names(dataset: Dataset, prefix: str = "df_") -> List[str]:
    """Variable name for every sheet of *dataset*, in sheet order.

    Two sheets that sanitize to the same name get ``_2``, ``_3`` … suffixes
    so no DataFrame silently overwrites another.
    """
    names: List[str] = []
    seen: set[str] = set()
    for sheet in dataset.sheets:
        base = prefix + sanitize_identifier(sheet.sheet_name)
        name = base
        counter = 2
        while name in seen:
            name = f"{base}_{counter}"
            counter += 1
        seen.add(name)
        names.append(name)
    return names


# ── Chunking ──────────────────────────────────────────────────


def sheet_needs_chunking(sheet: Sheet, threshold: int | None = None) -> bool:
    threshold = settings.CHUNK_ROW_THRESHOLD if threshold is None else threshold
    return sheet.row_count > threshold


def dataset_needs_chunking(dataset: Dataset, threshold: int | None = None) -> bool:
    return any(sheet_needs_chunking(sheet, threshold) for sheet in dataset.sheets)


def split_into_chunks(row_count: int, chunk_size: int) -> List[Tuple[int, int]]:
    """Half-open ``(start, end)`` row ranges covering ``[0, row_count)`` in order."""
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")
    return [
        (start, min(start + chunk_size, row_count))
        for start in range(0, row_count, chunk_size)
    ]


# ── Code generation ───────────────────────────────────────────


def _scratch_name(var_name: str, role: str) -> str:
    # Sheet variables always start with their prefix, never with "_"
    return f"_{var_name}_{role}"


def _fragment_code(sheet: Sheet, target: str, data_name: str, start: int, end: int) -> str:
    """Bind *target* to a DataFrame of rows ``[start, end)`` with positional column keys."""
    lines = [f"{data_name} = {{}}"]
    for col in range(sheet.column_count):
        column_values = [row[col] for row in sheet.data[start:end]]
        lines.append(f"{data_name}[{col}] = {encode_list(column_values)}")
    lines.append(
        f"{target} = pd.DataFrame({data_name}, "
        f"columns=list(range({sheet.column_count})), index=range({start}, {end}))"
    )
    lines.append(f"del {data_name}")
    return "\n".join(lines) + "\n"


def build_sheet_code(
    sheet: Sheet,
    var_name: str,
    chunk_row_threshold: int | None = None,
    chunk_size: int | None = None,
    progress: bool = False,
) -> str:
    """Python source that binds *var_name* to a DataFrame equal to *sheet*."""
    threshold = settings.CHUNK_ROW_THRESHOLD if chunk_row_threshold is None else chunk_row_threshold
    size = settings.CHUNK_SIZE if chunk_size is None else chunk_size

    columns_name = _scratch_name(var_name, "columns")
    data_name = _scratch_name(var_name, "data")

    code = f"# Create DataFrame for sheet: {_escape(sheet.sheet_name)}\n"
    code += f"{columns_name} = {encode_list(sheet.headers)}\n"

    if not sheet_needs_chunking(sheet, threshold):
        code += _fragment_code(sheet, var_name, data_name, 0, sheet.row_count)
    else:
        chunks = split_into_chunks(sheet.row_count, size)
        if progress:
            code += (
                f"print('Loading sheet {_escape(sheet.sheet_name)}: "
                f"{sheet.row_count} rows in {len(chunks)} chunks')\n"
            )
        chunk_names = []
        for idx, (start, end) in enumerate(chunks):
            chunk_name = _scratch_name(var_name, f"chunk_{idx}")
            chunk_names.append(chunk_name)
            code += f"# Rows {start}-{end - 1}\n"
            code += _fragment_code(sheet, chunk_name, data_name, start, end)
            if progress:
                code += f"print('Chunk {idx + 1}/{len(chunks)} loaded ({end - start} rows)')\n"
        code += f"{var_name} = pd.concat([{', '.join(chunk_names)}], ignore_index=True)\n"
        code += f"del {', '.join(chunk_names)}\n"

    code += f"{var_name}.columns = {columns_name}\n"
    code += f"del {columns_name}\n"
    if progress:
        code += f"print('DataFrame {var_name} ready: {sheet.row_count} rows x {sheet.column_count} columns')\n"
    return code + "\n"


def _dataset_body(dataset: Dataset, prefix: str, **options: Any) -> str:
    code = ""
    for sheet, var_name in zip(dataset.sheets, dataframe_variable_names(dataset, prefix)):
        code += build_sheet_code(sheet, var_name, **options)
    return code


def build_dataframe_code(
    dataset: Dataset,
    prefix: str = "df_",
    chunk_row_threshold: int | None = None,
    chunk_size: int | None = None,
    progress: bool = False,
) -> str:
    """Data-construction prefix for a single-dataset analysis script."""
    options = dict(chunk_row_threshold=chunk_row_threshold, chunk_size=chunk_size, progress=progress)
    return SCRIPT_HEADER + "\n" + _dataset_body(dataset, prefix, **options)


def build_comparison_dataframe_code(
    first: Dataset,
    second: Dataset,
    chunk_row_threshold: int | None = None,
    chunk_size: int | None = None,
    progress: bool = False,
) -> str:
    """Data-construction prefix for a two-file comparison (``df1_*`` / ``df2_*``)."""
    options = dict(chunk_row_threshold=chunk_row_threshold, chunk_size=chunk_size, progress=progress)
    code = SCRIPT_HEADER + "\n"
    code += f"# DataFrames for File 1: {_escape(first.original_name)}\n"
    code += _dataset_body(first, "df1_", **options)
    code += f"# DataFrames for File 2: {_escape(second.original_name)}\n"
    code += _dataset_body(second, "df2_", **options)
    return code
