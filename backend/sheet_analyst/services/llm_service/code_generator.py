"""Code generation and result interpretation via the configured LLM.

The LLM writes pandas code against the DataFrame names produced by the
serializer and assigns its answer to ``result``; a second call turns the
execution result into a readable answer.
"""

from __future__ import annotations

import json
import logging
import re
import time
from typing import Any

from langchain_core.messages import HumanMessage, SystemMessage

from sheet_analyst.core.config import settings
from sheet_analyst.prompts import (
    get_analysis_code_prompt,
    get_comparison_code_prompt,
    get_comparison_interpretation_prompt,
    get_interpretation_prompt,
)
from sheet_analyst.services.code_execution.serializer import dataframe_variable_names
from sheet_analyst.services.llm_service.llm import get_llm
from sheet_analyst.services.spreadsheet.parser import dataset_context_for_llm
from sheet_analyst.services.spreadsheet.schemas import Dataset

logger = logging.getLogger(__name__)

CODE_SYSTEM_PROMPT = (
    "You are a Python data analysis expert. Generate ONLY executable Python code. "
    "Do NOT use markdown code blocks. Do NOT add explanations before or after the code. "
    "Return only the raw Python code that can be executed directly."
)
COMPARISON_SYSTEM_PROMPT = (
    "You are a Python data analysis expert specializing in file comparisons. "
    "Generate ONLY executable Python code. Do NOT use markdown code blocks. "
    "Return only the raw Python code that can be executed directly."
)
INTERPRETATION_SYSTEM_PROMPT = (
    "You are a data analyst. Explain technical results in simple, clear language. "
    "Focus on insights and the practical meaning of the data."
)

INTERPRETATION_FALLBACK = "The analysis completed successfully, but no interpretation could be generated."
COMPARISON_INTERPRETATION_FALLBACK = "The comparison completed successfully, but no interpretation could be generated."

_FENCE = re.compile(r"```[a-zA-Z0-9_+-]*")


class CodeGenerationError(Exception):
    """Raised when the LLM could not produce analysis code."""
    pass


def strip_code_fences(text: str) -> str:
    """Remove markdown code fences (```python … ```) the model adds anyway."""
    return _FENCE.sub("", text).strip()


def _response_text(response: Any) -> str:
    content = getattr(response, "content", response)
    if isinstance(content, list):
        # Some providers return content blocks
        content = "".join(
            block.get("text", "") if isinstance(block, dict) else str(block) for block in content
        )
    return str(content)


def _dataframe_listing(dataset: Dataset, prefix: str, label: str = "") -> str:
    names = dataframe_variable_names(dataset, prefix)
    return "\n".join(
        f'{label}Sheet "{sheet.sheet_name}" -> Variable: {name}'
        for sheet, name in zip(dataset.sheets, names)
    )


async def _invoke(system: str, prompt: str, mode: str, max_tokens: int) -> str:
    llm = get_llm(mode=mode, max_tokens=max_tokens)
    start = time.time()
    response = await llm.ainvoke([SystemMessage(content=system), HumanMessage(content=prompt)])
    logger.debug("LLM %s call finished in %.2fs", mode, time.time() - start)
    return _response_text(response)


async def generate_analysis_code(dataset: Dataset, question: str) -> str:
    """Ask the LLM for pandas code answering *question* about *dataset*."""
    prompt = get_analysis_code_prompt(
        data_context=dataset_context_for_llm(dataset),
        dataframe_names=_dataframe_listing(dataset, "df_"),
        question=question,
    )
    try:
        raw = await _invoke(CODE_SYSTEM_PROMPT, prompt, "code", settings.LLM_MAX_TOKENS_CODE)
    except Exception as exc:
        logger.error("Error generating Python code: %s", exc)
        raise CodeGenerationError("Failed to generate analysis code") from exc

    code = strip_code_fences(raw)
    if not code:
        raise CodeGenerationError("LLM returned no analysis code")
    logger.info("Generated %d chars of analysis code", len(code))
    return code


async def generate_comparison_code(first: Dataset, second: Dataset, question: str) -> str:
    """Ask the LLM for pandas code comparing *first* and *second*."""
    listing = "\n".join([
        _dataframe_listing(first, "df1_", f'File 1 "{first.original_name}" '),
        _dataframe_listing(second, "df2_", f'File 2 "{second.original_name}" '),
    ])
    prompt = get_comparison_code_prompt(
        first_name=first.original_name,
        first_context=dataset_context_for_llm(first),
        second_name=second.original_name,
        second_context=dataset_context_for_llm(second),
        dataframe_names=listing,
        question=question,
    )
    try:
        raw = await _invoke(COMPARISON_SYSTEM_PROMPT, prompt, "code", settings.LLM_MAX_TOKENS_COMPARISON)
    except Exception as exc:
        logger.error("Error generating comparison Python code: %s", exc)
        raise CodeGenerationError("Failed to generate comparison analysis code") from exc

    code = strip_code_fences(raw)
    if not code:
        raise CodeGenerationError("LLM returned no comparison code")
    logger.info("Generated %d chars of comparison code", len(code))
    return code


def _result_json(result: Any) -> str:
    return json.dumps(result, indent=2, ensure_ascii=False, default=str)


async def interpret_results(question: str, result: Any, code: str = "") -> str:
    """Readable answer for *result*; falls back to a fixed sentence on LLM errors."""
    prompt = get_interpretation_prompt(question, _result_json(result), code)
    try:
        text = await _invoke(
            INTERPRETATION_SYSTEM_PROMPT, prompt, "interpretation", settings.LLM_MAX_TOKENS_INTERPRETATION
        )
    except Exception as exc:
        logger.error("Error interpreting results: %s", exc)
        return INTERPRETATION_FALLBACK
    return text.strip() or INTERPRETATION_FALLBACK


async def interpret_comparison_results(
    question: str, result: Any, first: Dataset, second: Dataset, code: str = ""
) -> str:
    prompt = get_comparison_interpretation_prompt(
        question, _result_json(result), first.original_name, second.original_name, code
    )
    try:
        text = await _invoke(
            INTERPRETATION_SYSTEM_PROMPT, prompt, "interpretation", settings.LLM_MAX_TOKENS_INTERPRETATION
        )
    except Exception as exc:
        logger.error("Error interpreting comparison results: %s", exc)
        return COMPARISON_INTERPRETATION_FALLBACK
    return text.strip() or COMPARISON_INTERPRETATION_FALLBACK
