"""
Shared pytest fixtures and configuration for the entire test suite.
Applies to all subdirectories: unit/, integration/, api/
"""

import sys
import os
import uuid
import tempfile
import pytest

# ── Ensure backend is importable from every pytest session ──────────────────
BACKEND_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "backend"))
if BACKEND_DIR not in sys.path:
    sys.path.insert(0, BACKEND_DIR)

# Minimal env so that Pydantic Settings validates on import and never
# touches the real data directories.
_TEST_ROOT = tempfile.mkdtemp(prefix="sheet_analyst_tests_")
os.environ.setdefault("UPLOAD_DIR", os.path.join(_TEST_ROOT, "uploads"))
os.environ.setdefault("DATASET_DIR", os.path.join(_TEST_ROOT, "datasets"))
os.environ.setdefault("SCRIPT_DIR", os.path.join(_TEST_ROOT, "scripts"))
os.environ.setdefault("LOG_DIR", os.path.join(_TEST_ROOT, "logs"))
os.environ.setdefault("PYTHON_COMMAND", sys.executable)
os.environ.setdefault("LLM_PROVIDER", "OLLAMA")


# ── Dataset fixtures ─────────────────────────────────────────────────────────

@pytest.fixture
def make_dataset():
    """Factory: ``make_dataset([(sheet_name, headers, rows), ...], name=...)``."""
    from sheet_analyst.services.spreadsheet.schemas import Dataset, Sheet

    def _make(sheets, name="sales.xlsx", dataset_id=None):
        return Dataset(
            id=dataset_id or uuid.uuid4().hex,
            original_name=name,
            sheets=[Sheet(sheet_name=n, headers=h, data=rows) for n, h, rows in sheets],
            summary=f"File contains {len(sheets)} sheet(s)",
        )

    return _make


@pytest.fixture
def sales_dataset(make_dataset):
    """Small single-sheet dataset with every cell kind represented."""
    return make_dataset([
        (
            "Sales",
            ["Region", "Units", "Price", "Active"],
            [
                ["North", 10, 2.5, True],
                ["South", 20, 3.0, False],
                ["East", None, 1.75, True],
                ["O'Brien \"West\"", 5, None, None],
            ],
        )
    ])


@pytest.fixture
def large_dataset(make_dataset):
    """Dataset just above the default chunk threshold (5000 rows)."""
    rows = [[i, f"row {i}"] for i in range(5001)]
    return make_dataset([("Big", ["id", "label"], rows)], name="big.xlsx")


# ── Executor fixture ─────────────────────────────────────────────────────────

@pytest.fixture
def executor(tmp_path):
    """PythonExecutor running the current interpreter with a private script dir."""
    from sheet_analyst.services.code_execution.executor import PythonExecutor

    return PythonExecutor(
        python_command=sys.executable,
        script_dir=str(tmp_path / "scripts"),
        standard_timeout=60,
        extended_timeout=120,
        progress=False,
    )


# ── Workbook fixture ─────────────────────────────────────────────────────────

@pytest.fixture
def workbook_path(tmp_path):
    """Two-sheet .xlsx written with pandas/openpyxl; returns its path."""
    import pandas as pd

    path = tmp_path / "quarterly.xlsx"
    with pd.ExcelWriter(path, engine="openpyxl") as writer:
        pd.DataFrame(
            {"Product": ["Widget", "Gadget", "Doohickey"], "Revenue": [1200, 850, 430]}
        ).to_excel(writer, sheet_name="Q1", index=False)
        pd.DataFrame(
            {"Product": ["Widget", "Gadget"], "Revenue": [1500, 910]}
        ).to_excel(writer, sheet_name="Q2", index=False)
    return str(path)
