"""
Application configuration.

Every knob is a field on :class:`Settings` and can be set through the
environment or a ``.env`` file.  Modules import the ``settings`` singleton;
tests build their own ``Settings(...)`` instances.
"""

from __future__ import annotations

import logging
import os
import sys
from functools import lru_cache
from typing import List, Literal

from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings

# Relative directories are resolved against backend/
_BASE_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", ".."))

_DIR_FIELDS = ("UPLOAD_DIR", "DATASET_DIR", "SCRIPT_DIR", "LOG_DIR")
_PROVIDER_KEYS = {"GOOGLE": "GOOGLE_API_KEY", "NVIDIA": "NVIDIA_API_KEY"}


class Settings(BaseSettings):
    """Settings for the spreadsheet analysis service."""

    # ── Runtime ───────────────────────────────────────────
    ENVIRONMENT: Literal["development", "staging", "production"] = "development"
    DEBUG: bool = False
    LOG_DIR: str = "./logs"

    # ── Uploads and datasets ──────────────────────────────
    UPLOAD_DIR: str = "./data/uploads"
    DATASET_DIR: str = "./data/datasets"
    MAX_UPLOAD_SIZE_MB: int = 10
    ALLOWED_EXTENSIONS: List[str] = [".xlsx", ".xls"]

    # ── Generated script execution ────────────────────────
    SCRIPT_DIR: str = "./temp"
    PYTHON_COMMAND: str = ""  # blank: python3 in production, this interpreter elsewhere
    CHUNK_ROW_THRESHOLD: int = 5000
    CHUNK_SIZE: int = 3000
    STANDARD_TIMEOUT_SECONDS: int = 120
    EXTENDED_TIMEOUT_SECONDS: int = 300
    STALL_WARNING_SECONDS: int = 60
    STALL_CHECK_INTERVAL_SECONDS: int = 30
    RESULT_SIZE_LIMIT: int = 20000
    TRUNCATED_PREVIEW_CHARS: int = 1000
    SCRIPT_PROGRESS_OUTPUT: bool = True
    ENV_PROBE_TIMEOUT_SECONDS: int = 30

    # ── HTTP ──────────────────────────────────────────────
    CORS_ORIGINS: List[str] = ["*"]

    # ── LLM providers ─────────────────────────────────────
    LLM_PROVIDER: str = "OLLAMA"
    OLLAMA_MODEL: str = "llama3"
    OLLAMA_BASE_URL: str = "http://localhost:11434"
    GOOGLE_MODEL: str = "models/gemini-2.5-flash"
    GOOGLE_API_KEY: str = ""
    NVIDIA_MODEL: str = "qwen/qwen3.5-397b-a17b"
    NVIDIA_API_KEY: str = ""
    LLM_TIMEOUT: int = 120

    # ── LLM generation ────────────────────────────────────
    LLM_TEMPERATURE_CODE: float = 0.1
    LLM_TEMPERATURE_INTERPRETATION: float = 0.3
    LLM_MAX_TOKENS_CODE: int = 1500
    LLM_MAX_TOKENS_COMPARISON: int = 2000
    LLM_MAX_TOKENS_INTERPRETATION: int = 1500
    INTERPRETATION_LANGUAGE: str = "English"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    @field_validator("CORS_ORIGINS", "ALLOWED_EXTENSIONS", mode="before")
    @classmethod
    def _split_csv(cls, v):
        if isinstance(v, str):
            return [item.strip() for item in v.split(",") if item.strip()]
        return v

    @field_validator("LLM_PROVIDER", mode="after")
    @classmethod
    def _known_provider(cls, v: str) -> str:
        v = v.strip().upper()
        if v not in {"OLLAMA", "GOOGLE", "NVIDIA"}:
            raise ValueError(f"LLM_PROVIDER must be OLLAMA, GOOGLE or NVIDIA, got {v!r}")
        return v

    @field_validator("CHUNK_ROW_THRESHOLD", "CHUNK_SIZE", "RESULT_SIZE_LIMIT", mode="after")
    @classmethod
    def _positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("must be a positive integer")
        return v

    @model_validator(mode="after")
    def _finalise(self):
        for attr in _DIR_FIELDS:
            path = getattr(self, attr)
            if path and not os.path.isabs(path):
                object.__setattr__(self, attr, os.path.join(_BASE_DIR, path))

        if not self.PYTHON_COMMAND.strip():
            interpreter = "python3" if self.ENVIRONMENT == "production" else sys.executable
            object.__setattr__(self, "PYTHON_COMMAND", interpreter)

        if self.TRUNCATED_PREVIEW_CHARS >= self.RESULT_SIZE_LIMIT:
            raise ValueError("TRUNCATED_PREVIEW_CHARS must be smaller than RESULT_SIZE_LIMIT")

        key_field = _PROVIDER_KEYS.get(self.LLM_PROVIDER)
        if key_field and not getattr(self, key_field):
            logging.getLogger("config").warning(
                "LLM_PROVIDER is %s but %s is empty", self.LLM_PROVIDER, key_field
            )
        return self


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
