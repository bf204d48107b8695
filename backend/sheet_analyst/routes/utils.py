"""
Shared route utilities — helpers used across multiple route modules.

Centralises the unified error format, dataset lookup and the executor
dependency.
"""

from __future__ import annotations

import uuid
from functools import lru_cache

from fastapi import HTTPException
from fastapi.responses import JSONResponse

from sheet_analyst.services.code_execution.executor import ExecutionOutcome, PythonExecutor
from sheet_analyst.services.spreadsheet.schemas import Dataset
from sheet_analyst.services.spreadsheet.store import get_dataset

# Engine failure kind → (HTTP status, error code, user-facing message)
_OUTCOME_ERRORS = {
    "timeout": (504, "EXECUTION_TIMEOUT", "Analysis timed out. This may be due to large data or an infinite loop."),
    "spawn_failed": (503, "ENVIRONMENT_UNAVAILABLE", "Python environment is not available on the server."),
    "execution_failed": (422, "EXECUTION_FAILED", "The generated analysis code failed to run."),
}


def error_response(status_code: int, error_code: str, message: str, details: str = "") -> JSONResponse:
    """Return a structured error in the unified format."""
    return JSONResponse(
        status_code=status_code,
        content={
            "error_code": error_code,
            "message": message,
            "details": details,
            "request_id": uuid.uuid4().hex,
        },
    )


def outcome_error_response(outcome: ExecutionOutcome, generated_code: str) -> JSONResponse:
    """Translate a failed execution outcome into an HTTP error."""
    status_code, error_code, message = _OUTCOME_ERRORS.get(
        outcome.error_kind or "", (500, "EXECUTION_ERROR", "Failed to execute analysis.")
    )
    return JSONResponse(
        status_code=status_code,
        content={
            "error_code": error_code,
            "message": message,
            "details": outcome.error or "",
            "kind": outcome.error_kind,
            "exit_code": outcome.exit_code,
            "timeout_seconds": outcome.timeout_seconds,
            "generated_code": generated_code,
            "request_id": uuid.uuid4().hex,
        },
    )


def require_dataset(dataset_id: str) -> Dataset:
    """Fetch a dataset or raise 404."""
    dataset = get_dataset(dataset_id)
    if dataset is None:
        raise HTTPException(status_code=404, detail="Data not found")
    return dataset


@lru_cache(maxsize=1)
def get_executor() -> PythonExecutor:
    """Shared executor configured from settings (FastAPI dependency)."""
    return PythonExecutor()
