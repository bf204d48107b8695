import logging

from fastapi import APIRouter

from sheet_analyst.routes.utils import require_dataset
from sheet_analyst.services.spreadsheet.parser import SAMPLE_ROWS

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/data/{data_id}")
async def get_data(data_id: str):
    """Metadata and the first rows of every sheet of a stored dataset."""
    dataset = require_dataset(data_id)
    return {
        "id": dataset.id,
        "original_name": dataset.original_name,
        "summary": dataset.summary,
        "created_at": dataset.created_at.isoformat(),
        "sheets": [
            {
                "name": sheet.sheet_name,
                "row_count": sheet.row_count,
                "column_count": sheet.column_count,
                "headers": sheet.headers,
                "sample_data": sheet.data[:SAMPLE_ROWS],
            }
            for sheet in dataset.sheets
        ],
    }
