"""Spreadsheet upload validation.

An upload is accepted only when all of these hold:
- its extension is listed in ``settings.ALLOWED_EXTENSIONS``
- it is non-empty and no larger than ``settings.MAX_UPLOAD_SIZE_MB``
- libmagic does not identify it as an executable or script
- its name survives sanitisation (no directories, no hidden files)

The stored copy always gets a random internal name; the client's filename
is only ever kept as metadata.
"""

from __future__ import annotations

import logging
import re
import uuid
from pathlib import Path
from typing import NamedTuple, Tuple

import magic  # python-magic

from sheet_analyst.core.config import settings

logger = logging.getLogger(__name__)

MAX_FILE_SIZE = settings.MAX_UPLOAD_SIZE_MB * 1024 * 1024
MAX_FILENAME_LENGTH = 255

# What libmagic usually reports for real .xlsx (zip) and .xls (OLE2) files
SPREADSHEET_MIME_TYPES: frozenset[str] = frozenset({
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "application/vnd.ms-excel",
    "application/zip",
    "application/x-ole-storage",
    "application/CDFV2",
    "application/octet-stream",
})

# Rejected regardless of the extension the client claims
BLOCKED_MIME_TYPES: frozenset[str] = frozenset({
    "application/x-executable",
    "application/x-sharedlib",
    "application/x-elf",
    "application/x-pie-executable",
    "application/x-dosexec",
    "application/x-msdownload",
    "application/x-mach-binary",
    "application/java-archive",
    "application/x-sh",
    "text/x-shellscript",
    "text/x-script.python",
    "text/x-python",
})

_UNSAFE_CHARS = re.compile(r"[^\w\s.\-]")
_SEPARATOR_RUNS = re.compile(r"[\s_]+")


class FileValidationError(Exception):
    """The upload was rejected; the message is safe to show to the client."""
    pass


class ValidatedUpload(NamedTuple):
    original_filename: str
    safe_filename: str
    mime_type: str
    file_extension: str
    file_size: int


def validate_file_size(file_size: int) -> None:
    if file_size <= 0:
        raise FileValidationError("File is empty")
    if file_size > MAX_FILE_SIZE:
        raise FileValidationError(
            f"File too large: {file_size / (1024 * 1024):.2f} MB exceeds the "
            f"{settings.MAX_UPLOAD_SIZE_MB} MB limit"
        )


def validate_extension(filename: str) -> str:
    """Lower-cased extension of *filename* if it is an accepted spreadsheet type."""
    ext = Path(filename).suffix.lower()
    if ext in settings.ALLOWED_EXTENSIONS:
        return ext
    raise FileValidationError(f"Only Excel files ({', '.join(settings.ALLOWED_EXTENSIONS)}) are allowed")


def validate_mime(filename: str, file_path: str) -> str:
    """Sniff *file_path* with libmagic and refuse executables.

    Unusual but harmless types are let through; the workbook parser is the
    final judge of whether the content is a spreadsheet.
    """
    try:
        mime = magic.from_file(file_path, mime=True)
    except (OSError, magic.MagicException) as exc:
        logger.warning("MIME detection failed for %s (%s), relying on extension", filename, exc)
        return "application/octet-stream"

    if mime in BLOCKED_MIME_TYPES:
        raise FileValidationError(
            f"Blocked file type: {mime}. Executable and script files are not allowed."
        )
    if mime not in SPREADSHEET_MIME_TYPES:
        logger.info("Unexpected MIME type %s for %s", mime, filename)
    return mime


def sanitize_filename(filename: str) -> str:
    """Reduce a client-supplied name to a safe single path component."""
    name = Path(filename.replace("\0", "")).name
    if ".." in name or "\\" in name:
        raise FileValidationError("Invalid filename: path traversal detected")

    name = _SEPARATOR_RUNS.sub("_", _UNSAFE_CHARS.sub("_", name))
    if len(name) > MAX_FILENAME_LENGTH:
        suffix = Path(name).suffix
        name = Path(name).stem[: MAX_FILENAME_LENGTH - len(suffix) - 50] + suffix

    if not name or name.startswith("."):
        raise FileValidationError("Filename is invalid or empty after sanitization")
    return name


def generate_internal_filename(original_filename: str) -> Tuple[str, str]:
    """``(<random hex><ext>, <ext>)`` for storing an upload on disk."""
    ext = Path(sanitize_filename(original_filename)).suffix.lower()
    return uuid.uuid4().hex + ext, ext


def validate_upload(file_path: str, filename: str, file_size: int) -> ValidatedUpload:
    """Run every check against an upload already written to *file_path*.

    Cheap checks run first so obviously wrong uploads never reach libmagic.

    Raises:
        FileValidationError: on the first failed check.
    """
    ext = validate_extension(filename)
    validate_file_size(file_size)
    safe_name = sanitize_filename(filename)
    mime = validate_mime(filename, file_path)

    logger.info("Upload accepted: %s (%s, %d bytes)", safe_name, mime, file_size)
    return ValidatedUpload(
        original_filename=filename,
        safe_filename=safe_name,
        mime_type=mime,
        file_extension=ext,
        file_size=file_size,
    )
