"""Prompt template loader.

Each ``get_*_prompt`` function loads a ``.txt`` template from this
package directory and substitutes placeholders.
"""

from __future__ import annotations

import os
from functools import lru_cache
from typing import Dict

from sheet_analyst.core.config import settings

_DIR = os.path.dirname(__file__)

# Results longer than this are cut before they reach the interpretation prompt
MAX_RESULT_CHARS = 8000

# Stands in for the analysis code when the caller has none
NO_CODE = "(not available)"


@lru_cache(maxsize=32)
def _load(filename: str) -> str:
    """Read a template file, caching the result."""
    with open(os.path.join(_DIR, filename), encoding="utf-8") as f:
        return f.read()


def _render(filename: str, subs: Dict[str, str]) -> str:
    """Load *filename* and apply all substitutions."""
    text = _load(filename)
    for key, val in subs.items():
        text = text.replace(key, val)
    return text


# ── Public helpers ────────────────────────────────────────


def get_analysis_code_prompt(data_context: str, dataframe_names: str, question: str) -> str:
    return _render("analysis_code_prompt.txt", {
        "{{DATA_CONTEXT}}": data_context,
        "{{DATAFRAME_NAMES}}": dataframe_names,
        "{{QUESTION}}": question,
    })


def get_comparison_code_prompt(
    first_name: str, first_context: str,
    second_name: str, second_context: str,
    dataframe_names: str, question: str,
) -> str:
    return _render("comparison_code_prompt.txt", {
        "{{FIRST_NAME}}": first_name,
        "{{FIRST_CONTEXT}}": first_context,
        "{{SECOND_NAME}}": second_name,
        "{{SECOND_CONTEXT}}": second_context,
        "{{DATAFRAME_NAMES}}": dataframe_names,
        "{{QUESTION}}": question,
    })


def get_interpretation_prompt(question: str, result_json: str, code: str = "") -> str:
    return _render("interpretation_prompt.txt", {
        "{{LANGUAGE}}": settings.INTERPRETATION_LANGUAGE,
        "{{QUESTION}}": question,
        "{{RESULT}}": result_json[:MAX_RESULT_CHARS],
        "{{CODE}}": code.strip() or NO_CODE,
    })


def get_comparison_interpretation_prompt(
    question: str, result_json: str, first_name: str, second_name: str, code: str = "",
) -> str:
    return _render("comparison_interpretation_prompt.txt", {
        "{{LANGUAGE}}": settings.INTERPRETATION_LANGUAGE,
        "{{QUESTION}}": question,
        "{{FIRST_NAME}}": first_name,
        "{{SECOND_NAME}}": second_name,
        "{{RESULT}}": result_json[:MAX_RESULT_CHARS],
        "{{CODE}}": code.strip() or NO_CODE,
    })
