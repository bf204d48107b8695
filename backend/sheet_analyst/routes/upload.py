import asyncio
import logging
import os
import time
from functools import partial

from fastapi import APIRouter, UploadFile

from sheet_analyst.core.config import settings
from sheet_analyst.routes.utils import error_response
from sheet_analyst.services.file_validator import (
    FileValidationError,
    generate_internal_filename,
    validate_upload,
)
from sheet_analyst.services.spreadsheet.parser import SpreadsheetParseError, parse_workbook
from sheet_analyst.services.spreadsheet.store import save_dataset

logger = logging.getLogger(__name__)
router = APIRouter()

UPLOAD_DIR = settings.UPLOAD_DIR


@router.post("/upload")
async def upload_file(file: UploadFile):
    """Accept an Excel workbook, parse every sheet and store the dataset.

    The uploaded file itself is deleted once parsed; only the dataset JSON
    is kept, referenced by the returned ``id``.
    """
    if not file.filename:
        return error_response(400, "NO_FILE", "No file uploaded")

    loop = asyncio.get_running_loop()
    temp_path = None
    try:
        _t_total = time.perf_counter()
        try:
            internal_name, _ = generate_internal_filename(file.filename)
        except FileValidationError as e:
            return error_response(400, "VALIDATION_FAILED", "File validation failed", str(e))

        # ── 1. Stream file to disk (1 MiB chunks) ─────────────────────────
        os.makedirs(UPLOAD_DIR, exist_ok=True)
        temp_path = os.path.join(UPLOAD_DIR, internal_name)
        with open(temp_path, "wb") as tmp:
            while chunk := await file.read(1024 * 1024):
                await loop.run_in_executor(None, tmp.write, chunk)
        file_size = os.path.getsize(temp_path)

        # ── 2. Validation (python-magic reads the header, thread pool) ─────
        try:
            upload = await loop.run_in_executor(
                None,
                partial(validate_upload, file_path=temp_path, filename=file.filename, file_size=file_size),
            )
        except FileValidationError as e:
            logger.warning("File validation failed: %s", e)
            return error_response(400, "VALIDATION_FAILED", "File validation failed", str(e))

        # ── 3. Parse + persist (CPU-bound, thread pool) ───────────────────
        try:
            dataset = await loop.run_in_executor(None, parse_workbook, temp_path, file.filename)
        except SpreadsheetParseError as e:
            return error_response(422, "PARSE_FAILED", "Failed to process Excel file", str(e))
        await loop.run_in_executor(None, save_dataset, dataset)

        logger.info(
            "[UPLOAD] done  file=%s  mime=%s  id=%s  total=%.1fms",
            upload.safe_filename, upload.mime_type, dataset.id, (time.perf_counter() - _t_total) * 1000,
        )
        return {
            "id": dataset.id,
            "original_name": dataset.original_name,
            "file_size": upload.file_size,
            "summary": dataset.summary,
            "sheets": [
                {
                    "name": sheet.sheet_name,
                    "row_count": sheet.row_count,
                    "column_count": sheet.column_count,
                    "headers": sheet.headers,
                }
                for sheet in dataset.sheets
            ],
        }
    finally:
        if temp_path and os.path.exists(temp_path):
            try:
                os.remove(temp_path)
            except OSError as exc:
                logger.warning("Could not remove upload %s: %s", temp_path, exc)
