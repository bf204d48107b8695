"""Health check endpoints.

Checks system component availability:
- Python interpreter used for generated scripts (pandas + numpy importable)
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from sheet_analyst.routes.utils import get_executor
from sheet_analyst.services.code_execution.executor import PythonExecutor

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("/health")
async def health_check(executor: PythonExecutor = Depends(get_executor)):
    """Report whether the analysis interpreter is usable.

    The endpoint itself always answers 200; an unusable interpreter is
    reported as ``python_environment: "unavailable"``.
    """
    available = await executor.validate_environment()
    if not available:
        logger.warning("Python environment unavailable (%s)", executor.python_command)
    return {
        "status": "ok",
        "python_environment": "available" if available else "unavailable",
        "python_command": executor.python_command,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/health/simple")
async def simple_health_check():
    """Simple health check - just returns 200 OK.

    For basic uptime monitoring without component checks.
    """
    return {"status": "ok"}


@router.get("/")
async def index():
    return {
        "message": "Excel Data Analysis API",
        "endpoints": {
            "POST /upload": "Upload Excel file for processing",
            "POST /query": "Ask questions about uploaded data",
            "POST /compare": "Compare two uploaded files",
            "GET /data/{id}": "Get processed data details",
            "GET /health": "Check system health",
        },
    }
