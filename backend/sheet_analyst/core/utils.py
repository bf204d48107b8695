from typing import Any


def sanitize_null_bytes(data: Any) -> Any:
    """
    Recursively remove null bytes (x00) from strings, lists, tuples and dictionaries.
    Python source files cannot contain null bytes, so cell text must be clean
    before it is embedded in a generated script.
    """
    if isinstance(data, str):
        return data.replace("\x00", "")
    elif isinstance(data, (list, tuple)):
        return type(data)(sanitize_null_bytes(item) for item in data)
    elif isinstance(data, dict):
        return {sanitize_null_bytes(key): sanitize_null_bytes(value) for key, value in data.items()}
    else:
        return data


def preview(text: str, limit: int = 100) -> str:
    """Single-line preview of *text* for log messages."""
    flat = " ".join(text.split())
    return flat[:limit] + ("..." if len(flat) > limit else "")
