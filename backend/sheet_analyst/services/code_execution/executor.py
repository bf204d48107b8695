"""Executor — assembles, runs and cleans up generated analysis scripts.

Ties together data-frame construction → analysis code → result epilogue →
temporary script file → sandbox execution → outcome.
"""

from __future__ import annotations

import logging
import os
import time
import uuid
from contextlib import contextmanager
from dataclasses import asdict, dataclass
from typing import Any, Dict, Iterator, Optional

from sheet_analyst.core.config import settings
from sheet_analyst.services.code_execution.sandbox import (
    ExecutionFailedError,
    ExecutionTimeoutError,
    ScriptExecutionError,
    SpawnFailedError,
    run_python_script,
)
from sheet_analyst.services.code_execution.sandbox_env import validate_python_environment
from sheet_analyst.services.code_execution.serializer import (
    build_comparison_dataframe_code,
    build_dataframe_code,
    dataset_needs_chunking,
)
from sheet_analyst.services.spreadsheet.schemas import Dataset

logger = logging.getLogger(__name__)

RESULT_VARIABLE = "result"

_EPILOGUE_TEMPLATE = '''
# Output result (with size limit for large results)
import json as _json
import math as _math


def _jsonable(value):
    if getattr(value, 'ndim', None) == 0 and hasattr(value, 'item'):
        value = value.item()
    if isinstance(value, float) and not _math.isfinite(value):
        return None
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return value


if '__RESULT__' in globals():
    try:
        __PROGRESS_DONE__
        if hasattr(__RESULT__, 'to_dict'):
            _result_data = __RESULT__.to_dict()
        elif hasattr(__RESULT__, 'tolist'):
            _result_data = __RESULT__.tolist()
        elif isinstance(__RESULT__, (dict, list, tuple, str, int, float, bool, type(None))):
            _result_data = __RESULT__
        else:
            _result_data = str(__RESULT__)
        _result_json = _json.dumps(_jsonable(_result_data), default=str, separators=(',', ':'))
        if len(_result_json) > __SIZE_LIMIT__:
            print(_json.dumps({
                "status": "result_too_large",
                "size": len(_result_json),
                "message": f"Result too large ({len(_result_json)} chars). Please use summary statistics instead of detailed data.",
                "truncated_result": _result_json[:__PREVIEW_CHARS__],
            }))
        else:
            print(_result_json)
    except Exception as _e:
        print(_json.dumps({"error": f"Error formatting result: {_e}", "type": "execution_error"}))
else:
    print(_json.dumps({"error": "No result variable found", "type": "analysis_error"}))
'''


def result_epilogue(
    size_limit: int | None = None,
    preview_chars: int | None = None,
    progress: bool = False,
) -> str:
    """Script tail that prints the ``result`` variable as one JSON line."""
    size_limit = settings.RESULT_SIZE_LIMIT if size_limit is None else size_limit
    preview_chars = settings.TRUNCATED_PREVIEW_CHARS if preview_chars is None else preview_chars
    done = "print('Analysis completed, formatting result...')" if progress else "pass"
    return (
        _EPILOGUE_TEMPLATE
        .replace("__RESULT__", RESULT_VARIABLE)
        .replace("__PROGRESS_DONE__", done)
        .replace("__SIZE_LIMIT__", str(int(size_limit)))
        .replace("__PREVIEW_CHARS__", str(int(preview_chars)))
    )


@dataclass
class ExecutionOutcome:
    """Terminal outcome of one generated script."""

    success: bool
    result: Any = None
    error_kind: Optional[str] = None
    error: Optional[str] = None
    exit_code: Optional[int] = None
    timeout_seconds: Optional[float] = None
    stderr: Optional[str] = None
    warning: Optional[str] = None
    generated_script: str = ""
    elapsed_seconds: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def classify_result(result: Any) -> Optional[str]:
    """Warning tag for degraded-but-successful results, else None."""
    if not isinstance(result, dict):
        return None
    if result.get("status") == "result_too_large":
        return "result_too_large"
    if result.get("type") == "analysis_error":
        return "no_result"
    if result.get("type") == "execution_error":
        return "result_format_error"
    return None


class PythonExecutor:
    """Runs LLM-authored pandas code against uploaded datasets.

    All knobs default to ``settings``; tests and alternative deployments
    pass their own values instead.
    """

    def __init__(
        self,
        python_command: Optional[str] = None,
        script_dir: Optional[str] = None,
        chunk_row_threshold: Optional[int] = None,
        chunk_size: Optional[int] = None,
        standard_timeout: Optional[float] = None,
        extended_timeout: Optional[float] = None,
        result_size_limit: Optional[int] = None,
        truncated_preview_chars: Optional[int] = None,
        stall_warning_seconds: Optional[float] = None,
        stall_check_interval: Optional[float] = None,
        progress: Optional[bool] = None,
    ):
        def _pick(value, default):
            return default if value is None else value

        self.python_command = _pick(python_command, settings.PYTHON_COMMAND)
        self.script_dir = _pick(script_dir, settings.SCRIPT_DIR)
        self.chunk_row_threshold = _pick(chunk_row_threshold, settings.CHUNK_ROW_THRESHOLD)
        self.chunk_size = _pick(chunk_size, settings.CHUNK_SIZE)
        self.standard_timeout = _pick(standard_timeout, settings.STANDARD_TIMEOUT_SECONDS)
        self.extended_timeout = _pick(extended_timeout, settings.EXTENDED_TIMEOUT_SECONDS)
        self.result_size_limit = _pick(result_size_limit, settings.RESULT_SIZE_LIMIT)
        self.truncated_preview_chars = _pick(truncated_preview_chars, settings.TRUNCATED_PREVIEW_CHARS)
        self.stall_warning_seconds = _pick(stall_warning_seconds, settings.STALL_WARNING_SECONDS)
        self.stall_check_interval = _pick(stall_check_interval, settings.STALL_CHECK_INTERVAL_SECONDS)
        self.progress = _pick(progress, settings.SCRIPT_PROGRESS_OUTPUT)

    # ── Script assembly ───────────────────────────────────────

    def select_timeout(self, *datasets: Dataset) -> float:
        """Extended timeout when any sheet is large enough to be chunked."""
        if any(dataset_needs_chunking(d, self.chunk_row_threshold) for d in datasets):
            return self.extended_timeout
        return self.standard_timeout

    def _serializer_options(self) -> Dict[str, Any]:
        return {
            "chunk_row_threshold": self.chunk_row_threshold,
            "chunk_size": self.chunk_size,
            "progress": self.progress,
        }

    def _epilogue(self) -> str:
        return result_epilogue(self.result_size_limit, self.truncated_preview_chars, self.progress)

    def build_analysis_script(self, dataset: Dataset, analysis_code: str) -> str:
        start = "print('Starting single file analysis...')\n" if self.progress else ""
        return (
            build_dataframe_code(dataset, **self._serializer_options())
            + "\n# Analysis code\n"
            + start
            + analysis_code.rstrip()
            + "\n"
            + self._epilogue()
        )

    def build_comparison_script(self, first: Dataset, second: Dataset, comparison_code: str) -> str:
        start = "print('Starting comparison analysis...')\n" if self.progress else ""
        return (
            build_comparison_dataframe_code(first, second, **self._serializer_options())
            + "\n# Comparison analysis code\n"
            + start
            + comparison_code.rstrip()
            + "\n"
            + self._epilogue()
        )

    # ── Script file lifecycle ─────────────────────────────────

    @contextmanager
    def temporary_script(self, content: str, prefix: str = "analysis") -> Iterator[str]:
        """Write *content* to a uniquely named file and always delete it afterwards."""
        os.makedirs(self.script_dir, exist_ok=True)
        script_path = os.path.join(
            self.script_dir, f"{prefix}_{time.time_ns()}_{uuid.uuid4().hex[:8]}.py"
        )
        try:
            with open(script_path, "w", encoding="utf-8") as f:
                f.write(content)
            logger.debug("Script written to %s (%d chars)", script_path, len(content))
            yield script_path
        finally:
            try:
                if os.path.exists(script_path):
                    os.remove(script_path)
            except OSError as exc:
                logger.warning("Failed to delete temporary script %s: %s", script_path, exc)

    # ── Execution ─────────────────────────────────────────────

    async def _run(self, script: str, prefix: str, timeout: float) -> ExecutionOutcome:
        job_id = uuid.uuid4().hex[:8]
        started = time.monotonic()
        logger.info("[%s] Executing %s script (%d chars, timeout=%ss)", job_id, prefix, len(script), timeout)

        try:
            with self.temporary_script(script, prefix) as script_path:
                result = await run_python_script(
                    script_path,
                    timeout,
                    self.python_command,
                    stall_warning_seconds=self.stall_warning_seconds,
                    stall_check_interval=self.stall_check_interval,
                )
        except ScriptExecutionError as exc:
            outcome = ExecutionOutcome(
                success=False,
                error_kind=exc.kind,
                error=str(exc),
                generated_script=script,
                elapsed_seconds=round(time.monotonic() - started, 2),
            )
            if isinstance(exc, ExecutionTimeoutError):
                outcome.timeout_seconds = exc.timeout_seconds
            elif isinstance(exc, ExecutionFailedError):
                outcome.exit_code = exc.exit_code
                outcome.stderr = exc.stderr
            elif isinstance(exc, SpawnFailedError):
                outcome.stderr = exc.reason
            logger.warning("[%s] Execution failed (%s): %s", job_id, exc.kind, exc)
            return outcome

        outcome = ExecutionOutcome(
            success=True,
            result=result,
            exit_code=0,
            warning=classify_result(result),
            generated_script=script,
            elapsed_seconds=round(time.monotonic() - started, 2),
        )
        logger.info(
            "[%s] Execution complete: elapsed=%ss, warning=%s",
            job_id, outcome.elapsed_seconds, outcome.warning,
        )
        return outcome

    async def execute_analysis(self, dataset: Dataset, analysis_code: str) -> ExecutionOutcome:
        """Run *analysis_code* against the DataFrames of *dataset*."""
        timeout = self.select_timeout(dataset)
        logger.info(
            "Using %s timeout (%ss) for analysis of %s",
            "extended" if timeout == self.extended_timeout else "standard",
            timeout, dataset.id,
        )
        script = self.build_analysis_script(dataset, analysis_code)
        return await self._run(script, "analysis", timeout)

    async def execute_comparison(
        self, first: Dataset, second: Dataset, comparison_code: str
    ) -> ExecutionOutcome:
        """Run *comparison_code* against ``df1_*`` and ``df2_*`` DataFrames."""
        timeout = self.select_timeout(first, second)
        script = self.build_comparison_script(first, second, comparison_code)
        return await self._run(script, "comparison", timeout)

    async def validate_environment(self, timeout: float | None = None) -> bool:
        timeout = settings.ENV_PROBE_TIMEOUT_SECONDS if timeout is None else timeout
        return await validate_python_environment(self.python_command, timeout)
