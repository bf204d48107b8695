"""
Unit tests for backend/sheet_analyst/services/file_validator.py
Tests: file size limits, spreadsheet extension allowlist, filename
sanitization, path traversal prevention, MIME sniffing of renamed files
No network required; MIME checks use libmagic via python-magic.
"""

import sys
import os
import pytest

BACKEND_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "..", "backend"))
sys.path.insert(0, BACKEND_DIR)

os.environ.setdefault("LLM_PROVIDER", "OLLAMA")

from sheet_analyst.services.file_validator import (
    BLOCKED_MIME_TYPES,
    MAX_FILE_SIZE,
    SPREADSHEET_MIME_TYPES,
    FileValidationError,
    generate_internal_filename,
    sanitize_filename,
    validate_extension,
    validate_file_size,
    validate_mime,
    validate_upload,
)


# ────────────────────────────────────────────────────────────────────────────
# File size validation
# ────────────────────────────────────────────────────────────────────────────

class TestFileSizeValidation:

    def test_normal_size_passes(self):
        validate_file_size(512 * 1024)  # no exception

    def test_zero_size_rejected(self):
        with pytest.raises(FileValidationError, match="empty"):
            validate_file_size(0)

    def test_exceeds_limit_rejected(self):
        with pytest.raises(FileValidationError, match="too large|exceeds"):
            validate_file_size(MAX_FILE_SIZE + 1)

    def test_exactly_at_limit_passes(self):
        validate_file_size(MAX_FILE_SIZE)  # no exception


# ────────────────────────────────────────────────────────────────────────────
# Extension allowlist
# ────────────────────────────────────────────────────────────────────────────

class TestExtension:

    @pytest.mark.parametrize("name,ext", [
        ("report.xlsx", ".xlsx"),
        ("legacy.xls", ".xls"),
        ("UPPER.XLSX", ".xlsx"),
    ])
    def test_spreadsheets_accepted(self, name, ext):
        assert validate_extension(name) == ext

    @pytest.mark.parametrize("name", ["data.csv", "notes.pdf", "macro.xlsm", "noext", "run.exe"])
    def test_other_types_rejected(self, name):
        with pytest.raises(FileValidationError, match="Only Excel files"):
            validate_extension(name)


# ────────────────────────────────────────────────────────────────────────────
# Filename sanitization
# ────────────────────────────────────────────────────────────────────────────

class TestSanitizeFilename:

    def test_normal_filename_kept(self):
        assert sanitize_filename("sales_2024.xlsx") == "sales_2024.xlsx"

    def test_path_components_stripped(self):
        result = sanitize_filename("../../etc/budget.xlsx")
        assert result == "budget.xlsx"

    def test_null_bytes_removed(self):
        assert "\x00" not in sanitize_filename("bud\x00get.xlsx")

    def test_backslash_path_traversal(self):
        with pytest.raises(FileValidationError):
            sanitize_filename("..\\secret.xlsx")

    def test_special_chars_replaced(self):
        result = sanitize_filename("Q1 report (final)!.xlsx")
        assert "(" not in result
        assert "!" not in result
        assert result.endswith(".xlsx")

    def test_long_filename_truncated(self):
        result = sanitize_filename("a" * 300 + ".xlsx")
        assert len(result) <= 255
        assert result.endswith(".xlsx")

    def test_windows_path_rejected(self):
        with pytest.raises(FileValidationError):
            sanitize_filename("C:\\Users\\admin\\budget.xlsx")

    def test_empty_filename_rejected(self):
        with pytest.raises(FileValidationError):
            sanitize_filename("")

    def test_hidden_file_rejected(self):
        with pytest.raises(FileValidationError):
            sanitize_filename(".xlsx")


class TestGenerateInternalFilename:

    def test_extension_preserved_lowercase(self):
        name, ext = generate_internal_filename("Report.XLSX")
        assert ext == ".xlsx"
        assert name.endswith(".xlsx")

    def test_internal_name_unique(self):
        n1, _ = generate_internal_filename("file.xlsx")
        n2, _ = generate_internal_filename("file.xlsx")
        assert n1 != n2

    def test_original_name_not_exposed(self):
        name, _ = generate_internal_filename("confidential_payroll.xlsx")
        assert "confidential" not in name


# ────────────────────────────────────────────────────────────────────────────
# MIME sniffing
# ────────────────────────────────────────────────────────────────────────────

class TestMimeSniffing:

    def test_sets_are_disjoint(self):
        assert not (SPREADSHEET_MIME_TYPES & BLOCKED_MIME_TYPES)

    def test_real_workbook_passes(self, workbook_path):
        mime = validate_mime("quarterly.xlsx", workbook_path)
        assert mime not in BLOCKED_MIME_TYPES

    def test_renamed_shell_script_blocked(self, tmp_path):
        path = tmp_path / "totally_a_sheet.xlsx"
        path.write_text("#!/bin/sh\necho pwned\nrm -rf /tmp/x\n")
        with pytest.raises(FileValidationError, match="Blocked file type"):
            validate_mime("totally_a_sheet.xlsx", str(path))

    def test_renamed_elf_blocked(self, tmp_path):
        path = tmp_path / "binary.xlsx"
        path.write_bytes(b"\x7fELF\x02\x01\x01" + b"\x00" * 9 + b"\x02\x00\x3e\x00" + b"\x00" * 200)
        with pytest.raises(FileValidationError):
            validate_mime("binary.xlsx", str(path))


class TestValidateUpload:

    def test_metadata_returned(self, workbook_path):
        size = os.path.getsize(workbook_path)
        info = validate_upload(workbook_path, "Quarterly Report.xlsx", size)
        assert info.original_filename == "Quarterly Report.xlsx"
        assert info.safe_filename == "Quarterly_Report.xlsx"
        assert info.file_extension == ".xlsx"
        assert info.file_size == size
        assert info.mime_type not in BLOCKED_MIME_TYPES

    def test_wrong_extension_rejected_before_sniffing(self, workbook_path):
        with pytest.raises(FileValidationError):
            validate_upload(workbook_path, "quarterly.csv", os.path.getsize(workbook_path))


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
