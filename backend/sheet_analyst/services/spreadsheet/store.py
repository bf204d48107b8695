"""Dataset persistence — one JSON file per parsed upload.

Datasets are written once after parsing and only read afterwards, so a
plain file per id is enough; there is no eviction.
"""

from __future__ import annotations

import logging
import os
import re
from typing import Optional

from pydantic import ValidationError

from sheet_analyst.core.config import settings
from sheet_analyst.services.spreadsheet.schemas import Dataset

logger = logging.getLogger(__name__)

_VALID_ID = re.compile(r"^[A-Za-z0-9_-]{1,64}$")


def _dataset_path(dataset_id: str, base_dir: Optional[str] = None) -> Optional[str]:
    if not _VALID_ID.match(dataset_id):
        return None
    return os.path.join(base_dir or settings.DATASET_DIR, f"{dataset_id}.json")


def save_dataset(dataset: Dataset, base_dir: Optional[str] = None) -> str:
    """Persist *dataset*; returns the file path."""
    directory = base_dir or settings.DATASET_DIR
    os.makedirs(directory, exist_ok=True)
    path = _dataset_path(dataset.id, directory)
    if path is None:
        raise ValueError(f"Invalid dataset id: {dataset.id!r}")
    tmp_path = path + ".tmp"
    with open(tmp_path, "w", encoding="utf-8") as f:
        f.write(dataset.model_dump_json())
    os.replace(tmp_path, path)
    logger.debug("Saved dataset %s to %s", dataset.id, path)
    return path


def get_dataset(dataset_id: str, base_dir: Optional[str] = None) -> Optional[Dataset]:
    """Load a dataset by id; None when it does not exist or cannot be read."""
    path = _dataset_path(dataset_id, base_dir)
    if path is None or not os.path.exists(path):
        return None
    try:
        with open(path, encoding="utf-8") as f:
            return Dataset.model_validate_json(f.read())
    except (OSError, ValidationError) as exc:
        logger.error("Failed to load dataset %s: %s", dataset_id, exc)
        return None
