"""Sandbox — runs a generated script in an external Python interpreter.

Runs one script file per call in a subprocess with:
- Hard timeout enforcement (SIGKILL, the process may be unresponsive)
- Output capture for stdout and stderr
- Stall monitoring (warns when the script stays silent for too long)
- Extraction of the JSON result line from mixed progress/result output

Note: this is not a security boundary.  The interpreter command is opaque
configuration (``settings.PYTHON_COMMAND``); whatever it launches runs with
the server's privileges minus the provider API keys stripped below.
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import shlex
import time
from enum import Enum
from typing import Any, Dict, Optional

from sheet_analyst.core.utils import preview

logger = logging.getLogger(__name__)

# ── Configuration ─────────────────────────────────────────────

MAX_OUTPUT_SIZE = 1_000_000  # keep the last 1MB of each stream
MAX_SCAN_LINES = 1000        # lines inspected when looking for the JSON result
READ_CHUNK_SIZE = 64 * 1024

_STRIP_ENV_KEYS = {
    "GOOGLE_API_KEY", "NVIDIA_API_KEY", "OPENAI_API_KEY", "ANTHROPIC_API_KEY",
    "AWS_SECRET_ACCESS_KEY", "AWS_ACCESS_KEY_ID",
}


# ── Errors ────────────────────────────────────────────────────


class ScriptExecutionError(Exception):
    """Base class for every terminal failure of a script run."""

    kind = "execution_error"


class SpawnFailedError(ScriptExecutionError):
    kind = "spawn_failed"

    def __init__(self, message: str):
        super().__init__(f"Failed to start Python process: {message}")
        self.reason = message


class ExecutionTimeoutError(ScriptExecutionError):
    kind = "timeout"

    def __init__(self, timeout_seconds: float):
        super().__init__(
            f"Python script execution timed out after {timeout_seconds:g} seconds. "
            "This might be due to large data processing or infinite loops."
        )
        self.timeout_seconds = timeout_seconds


class ExecutionFailedError(ScriptExecutionError):
    kind = "execution_failed"

    def __init__(self, exit_code: int, stderr: str):
        super().__init__(f"Python script failed with code {exit_code}: {stderr.strip()}")
        self.exit_code = exit_code
        self.stderr = stderr


# ── State machine ─────────────────────────────────────────────


class ExecutionState(str, Enum):
    IDLE = "idle"
    SPAWNED = "spawned"
    RUNNING = "running"
    COMPLETED = "completed"
    TIMED_OUT = "timed_out"
    SPAWN_FAILED = "spawn_failed"


TERMINAL_STATES = frozenset({
    ExecutionState.COMPLETED,
    ExecutionState.TIMED_OUT,
    ExecutionState.SPAWN_FAILED,
})


class ScriptRun:
    """Bookkeeping for one interpreter process: state, buffers, timings."""

    def __init__(self, script_path: str, timeout: float):
        self.script_path = script_path
        self.timeout = timeout
        self.state = ExecutionState.IDLE
        self.exit_code: Optional[int] = None
        self.started_at = time.monotonic()
        self.last_output_at = self.started_at
        self._stdout = bytearray()
        self._stderr = bytearray()

    def transition(self, new_state: ExecutionState) -> bool:
        """Move to *new_state*; returns False once a terminal state is reached."""
        if self.state in TERMINAL_STATES:
            logger.debug("Ignoring %s → %s for %s", self.state.value, new_state.value, self.script_path)
            return False
        self.state = new_state
        return True

    def append_stdout(self, chunk: bytes) -> None:
        self.last_output_at = time.monotonic()
        self._stdout.extend(chunk)
        if len(self._stdout) > 2 * MAX_OUTPUT_SIZE:
            del self._stdout[:-MAX_OUTPUT_SIZE]

    def append_stderr(self, chunk: bytes) -> None:
        self._stderr.extend(chunk)
        if len(self._stderr) > 2 * MAX_OUTPUT_SIZE:
            del self._stderr[:-MAX_OUTPUT_SIZE]

    @property
    def stdout(self) -> str:
        return bytes(self._stdout[-MAX_OUTPUT_SIZE:]).decode("utf-8", errors="replace")

    @property
    def stderr(self) -> str:
        return bytes(self._stderr[-MAX_OUTPUT_SIZE:]).decode("utf-8", errors="replace")

    @property
    def elapsed_seconds(self) -> float:
        return round(time.monotonic() - self.started_at, 2)

    @property
    def silent_for(self) -> float:
        return time.monotonic() - self.last_output_at


# ── Output parsing ────────────────────────────────────────────


def extract_json_result(stdout: str, max_lines: int = MAX_SCAN_LINES) -> Any:
    """Return the last stdout line that parses as JSON.

    Scripts print progress lines before the result, so lines are scanned
    from the end.  When nothing parses, the trimmed output is returned as a
    plain string.
    """
    text = stdout.strip()
    lines = text.splitlines()
    for line in reversed(lines[-max_lines:]):
        candidate = line.strip()
        if not candidate:
            continue
        try:
            return json.loads(candidate)
        except ValueError:
            continue
    return text


def build_command(python_command: str, *args: str) -> list[str]:
    """Split the configured interpreter command and append *args*.

    An existing file path is used verbatim, so interpreters installed under
    directories with spaces keep working.
    """
    if os.path.isfile(python_command):
        return [python_command, *args]
    try:
        parts = shlex.split(python_command)
    except ValueError as exc:
        raise SpawnFailedError(f"malformed interpreter command {python_command!r}: {exc}") from exc
    if not parts:
        raise SpawnFailedError("empty interpreter command")
    return [*parts, *args]


def child_environment() -> Dict[str, str]:
    """Environment for the interpreter, with provider credentials removed."""
    env = {k: v for k, v in os.environ.items() if k not in _STRIP_ENV_KEYS}
    # Keep BLAS/OpenMP pools small; several scripts may run at once.
    env["OPENBLAS_NUM_THREADS"] = "4"
    env["MKL_NUM_THREADS"] = "4"
    env["OMP_NUM_THREADS"] = "4"
    env["NUMEXPR_MAX_THREADS"] = "4"
    env["PYTHONUNBUFFERED"] = "1"
    env["PYTHONIOENCODING"] = "utf-8"
    return env


# ── Runner ────────────────────────────────────────────────────


async def _monitor_stalls(run: ScriptRun, stall_after: float, interval: float) -> None:
    while True:
        await asyncio.sleep(interval)
        if run.silent_for > stall_after:
            logger.warning(
                "Python script seems hung (no output for %.0fs): %s",
                run.silent_for, run.script_path,
            )


async def _pump(stream: asyncio.StreamReader, sink, label: str) -> None:
    while True:
        chunk = await stream.read(READ_CHUNK_SIZE)
        if not chunk:
            return
        sink(chunk)
        text = chunk.decode("utf-8", errors="replace").strip()
        if not text:
            continue
        if label == "stdout":
            logger.info("Python progress: %s", preview(text))
        else:
            logger.warning("Python stderr: %s", preview(text, 500))


async def run_python_script(
    script_path: str,
    timeout: float,
    python_command: str,
    *,
    cwd: Optional[str] = None,
    stall_warning_seconds: float = 60,
    stall_check_interval: float = 30,
) -> Any:
    """Execute *script_path* and return its parsed result.

    Args:
        script_path: Generated script to run.
        timeout: Hard limit in seconds; the process is killed when it fires.
        python_command: Interpreter command, e.g. ``python3`` or ``./venv/bin/python``.
        cwd: Working directory for the child (defaults to the server's).
        stall_warning_seconds: Silence that triggers a "seems hung" warning.
        stall_check_interval: How often the stall monitor checks.

    Returns:
        The last JSON value printed on stdout, or the trimmed stdout text.

    Raises:
        SpawnFailedError: the interpreter could not be started.
        ExecutionTimeoutError: the timeout fired first.
        ExecutionFailedError: the process exited with a non-zero status.
    """
    run = ScriptRun(script_path, timeout)
    try:
        cmd = build_command(python_command, script_path)
    except SpawnFailedError as exc:
        run.transition(ExecutionState.SPAWN_FAILED)
        logger.error("Could not start %r: %s", python_command, exc)
        raise
    logger.info("Spawning %s (timeout=%ss)", " ".join(cmd), timeout)

    try:
        process = await asyncio.create_subprocess_exec(
            *cmd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=cwd,
            env=child_environment(),
        )
    except OSError as exc:
        run.transition(ExecutionState.SPAWN_FAILED)
        logger.error("Could not start %s: %s", cmd[0], exc)
        raise SpawnFailedError(str(exc)) from exc

    run.transition(ExecutionState.SPAWNED)
    run.transition(ExecutionState.RUNNING)
    monitor = asyncio.create_task(
        _monitor_stalls(run, stall_warning_seconds, stall_check_interval),
        name=f"stall_monitor:{os.path.basename(script_path)}",
    )

    try:
        assert process.stdout is not None and process.stderr is not None
        await asyncio.wait_for(
            asyncio.gather(
                _pump(process.stdout, run.append_stdout, "stdout"),
                _pump(process.stderr, run.append_stderr, "stderr"),
                process.wait(),
            ),
            timeout=timeout,
        )
    except asyncio.TimeoutError:
        run.transition(ExecutionState.TIMED_OUT)
        try:
            process.kill()
        except ProcessLookupError:
            logger.debug("Process for %s exited before kill", script_path)
        await process.wait()
        logger.error("Script %s killed after %ss timeout", script_path, timeout)
        raise ExecutionTimeoutError(timeout)
    finally:
        monitor.cancel()

    run.transition(ExecutionState.COMPLETED)
    run.exit_code = process.returncode
    logger.info("Script %s exited with %s in %.2fs", script_path, run.exit_code, run.elapsed_seconds)

    if run.exit_code != 0:
        raise ExecutionFailedError(run.exit_code, run.stderr)

    return extract_json_result(run.stdout)
