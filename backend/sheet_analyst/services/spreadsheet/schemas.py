"""Pydantic models for parsed spreadsheet content."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

CellValue = Optional[Union[bool, int, float, str]]


class Sheet(BaseModel):
    """One named table of a workbook: headers plus a row-major cell matrix."""

    model_config = ConfigDict(frozen=True)

    sheet_name: str
    headers: List[str]
    data: List[List[CellValue]] = Field(default_factory=list)
    row_count: int = 0
    column_count: int = 0

    @model_validator(mode="before")
    @classmethod
    def _normalise_shape(cls, values):
        """Pad every row to ``column_count`` cells and derive the counts."""
        if not isinstance(values, dict):
            return values
        headers = list(values.get("headers") or [])
        width = len(headers)
        rows = []
        for row in values.get("data") or []:
            row = list(row)[:width]
            row.extend([None] * (width - len(row)))
            rows.append(row)
        return {
            **values,
            "headers": headers,
            "data": rows,
            "row_count": len(rows),
            "column_count": width,
        }


class Dataset(BaseModel):
    """A parsed upload: all non-empty sheets of one workbook."""

    model_config = ConfigDict(frozen=True)

    id: str
    original_name: str
    sheets: List[Sheet]
    summary: str = ""
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def total_rows(self) -> int:
        return sum(sheet.row_count for sheet in self.sheets)
