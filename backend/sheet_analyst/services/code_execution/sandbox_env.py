"""Sandbox environment — interpreter availability and script-dir housekeeping.

The generated scripts need pandas and numpy in whatever interpreter
``settings.PYTHON_COMMAND`` points at.  The probe here reports whether that
is the case; a missing interpreter is a normal, reportable condition.
"""

from __future__ import annotations

import asyncio
import glob
import logging
import os
from typing import List

from sheet_analyst.services.code_execution.sandbox import (
    SpawnFailedError,
    build_command,
    child_environment,
)

logger = logging.getLogger(__name__)

# Import names the generated scripts rely on
REQUIRED_PACKAGES: List[str] = ["pandas", "numpy"]

SCRIPT_PREFIXES = ("analysis_", "comparison_")


def probe_code(packages: List[str] = REQUIRED_PACKAGES) -> str:
    imports = "; ".join(f"import {pkg}" for pkg in packages)
    return f"{imports}; print('OK')"


async def validate_python_environment(python_command: str, timeout: float = 30) -> bool:
    """Return True if *python_command* starts and can import the required packages.

    Never raises: a missing binary, a failed import or a hung interpreter
    all report False.
    """
    try:
        cmd = build_command(python_command, "-c", probe_code())
        process = await asyncio.create_subprocess_exec(
            *cmd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            env=child_environment(),
        )
    except (OSError, SpawnFailedError) as exc:
        logger.warning("[sandbox_env] Interpreter %r unavailable: %s", python_command, exc)
        return False

    try:
        _, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        try:
            process.kill()
        except ProcessLookupError:
            pass
        await process.wait()
        logger.warning("[sandbox_env] Environment probe timed out after %ss", timeout)
        return False

    if process.returncode != 0:
        logger.warning(
            "[sandbox_env] Required packages missing for %r: %s",
            python_command,
            stderr.decode("utf-8", errors="replace").strip()[-500:],
        )
        return False
    return True


def cleanup_stale_scripts(script_dir: str) -> int:
    """Delete generated scripts left behind by a previous crash.

    Returns the number of files removed.
    """
    removed = 0
    for prefix in SCRIPT_PREFIXES:
        for path in glob.glob(os.path.join(script_dir, f"{prefix}*.py")):
            try:
                os.remove(path)
                removed += 1
            except OSError as exc:
                logger.warning("[sandbox_env] Could not remove stale script %s: %s", path, exc)
    if removed:
        logger.info("[sandbox_env] Cleaned up %d stale scripts in %s", removed, script_dir)
    return removed
