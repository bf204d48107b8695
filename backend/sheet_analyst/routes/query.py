"""Question answering over uploaded datasets.

Flow per request: LLM writes pandas code → executor runs it against the
dataset's DataFrames → LLM explains the result.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from sheet_analyst.routes.utils import (
    error_response,
    get_executor,
    outcome_error_response,
    require_dataset,
)
from sheet_analyst.services.code_execution.executor import PythonExecutor
from sheet_analyst.services.llm_service.code_generator import (
    CodeGenerationError,
    generate_analysis_code,
    generate_comparison_code,
    interpret_comparison_results,
    interpret_results,
)

logger = logging.getLogger(__name__)
router = APIRouter()


class QueryRequest(BaseModel):
    data_id: str = Field(min_length=1)
    question: str = Field(min_length=1)


class CompareRequest(BaseModel):
    data_id_1: str = Field(min_length=1)
    data_id_2: str = Field(min_length=1)
    question: str = Field(min_length=1)


class QueryResponse(BaseModel):
    question: str
    generated_code: str
    generated_script: Optional[str] = None
    result: Any = None
    interpretation: Optional[str] = None
    warning: Optional[str] = None
    elapsed_seconds: float = 0.0


@router.post("/query", response_model=QueryResponse)
async def query_dataset(request: QueryRequest, executor: PythonExecutor = Depends(get_executor)):
    """Answer a natural-language question about one uploaded workbook."""
    dataset = require_dataset(request.data_id)
    logger.info("Query on %s (%d rows): %s", dataset.id, dataset.total_rows, request.question)

    try:
        code = await generate_analysis_code(dataset, request.question)
    except CodeGenerationError as e:
        return error_response(502, "CODE_GENERATION_FAILED", str(e), str(e.__cause__ or ""))

    outcome = await executor.execute_analysis(dataset, code)
    if not outcome.success:
        return outcome_error_response(outcome, code)

    interpretation = await interpret_results(request.question, outcome.result, code)
    return QueryResponse(
        question=request.question,
        generated_code=code,
        generated_script=outcome.generated_script or None,
        result=outcome.result,
        interpretation=interpretation,
        warning=outcome.warning,
        elapsed_seconds=outcome.elapsed_seconds,
    )


@router.post("/compare", response_model=QueryResponse)
async def compare_datasets(request: CompareRequest, executor: PythonExecutor = Depends(get_executor)):
    """Answer a comparison question across two uploaded workbooks."""
    first = require_dataset(request.data_id_1)
    second = require_dataset(request.data_id_2)
    logger.info("Comparison %s vs %s: %s", first.id, second.id, request.question)

    try:
        code = await generate_comparison_code(first, second, request.question)
    except CodeGenerationError as e:
        return error_response(502, "CODE_GENERATION_FAILED", str(e), str(e.__cause__ or ""))

    outcome = await executor.execute_comparison(first, second, code)
    if not outcome.success:
        return outcome_error_response(outcome, code)

    interpretation = await interpret_comparison_results(
        request.question, outcome.result, first, second, code
    )
    return QueryResponse(
        question=request.question,
        generated_code=code,
        generated_script=outcome.generated_script or None,
        result=outcome.result,
        interpretation=interpretation,
        warning=outcome.warning,
        elapsed_seconds=outcome.elapsed_seconds,
    )
