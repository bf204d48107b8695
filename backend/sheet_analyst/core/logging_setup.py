"""Process-wide logging: stdout plus a size-rotated file under ``LOG_DIR``."""

from __future__ import annotations

import logging
import logging.handlers
import os
import sys

LOG_FORMAT = "%(asctime)s %(name)s %(levelname)s %(message)s"
LOG_FILE = "sheet_analyst.log"

_QUIET_LOGGERS = ("httpx", "httpcore", "uvicorn.access", "openpyxl")


def configure_logging(log_dir: str, debug: bool = False) -> None:
    """Install the stdout and rotating-file handlers on the root logger.

    Safe to call more than once; ``force=True`` replaces earlier handlers.
    """
    os.makedirs(log_dir, exist_ok=True)
    formatter = logging.Formatter(LOG_FORMAT)

    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(formatter)
    logfile = logging.handlers.RotatingFileHandler(
        os.path.join(log_dir, LOG_FILE), maxBytes=10 * 1024 * 1024, backupCount=3, encoding="utf-8"
    )
    logfile.setFormatter(formatter)

    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        handlers=[console, logfile],
        force=True,
    )
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
