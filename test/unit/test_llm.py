"""
Unit tests for backend/sheet_analyst/services/llm_service/llm.py
Tests: provider selection, role temperatures, instance caching
Builders are replaced with recorders; no provider client is created.
"""

import sys
import os
from unittest.mock import patch

import pytest

BACKEND_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), "..", "..", "backend"))
sys.path.insert(0, BACKEND_DIR)

os.environ.setdefault("LLM_PROVIDER", "OLLAMA")

from sheet_analyst.core.config import settings
from sheet_analyst.services.llm_service import llm as llm_module
from sheet_analyst.services.llm_service.llm import (
    BUILDERS,
    clear_llm_cache,
    get_llm,
    temperature_for,
)


def _recorder(name):
    def build(temperature, max_tokens):
        return {"provider": name, "temperature": temperature, "max_tokens": max_tokens}
    return build


@pytest.fixture(autouse=True)
def fake_builders():
    clear_llm_cache()
    fakes = {name: _recorder(name) for name in BUILDERS}
    with patch.dict(llm_module.BUILDERS, fakes):
        yield
    clear_llm_cache()


class TestTemperatures:

    def test_code_role(self):
        assert temperature_for("code") == settings.LLM_TEMPERATURE_CODE

    def test_interpretation_role(self):
        assert temperature_for("interpretation") == settings.LLM_TEMPERATURE_INTERPRETATION

    def test_unknown_role_uses_code_temperature(self):
        assert temperature_for("whatever") == settings.LLM_TEMPERATURE_CODE


class TestGetLlm:

    def test_default_provider(self):
        assert get_llm()["provider"] == settings.LLM_PROVIDER

    def test_explicit_provider_case_insensitive(self):
        assert get_llm(provider="google")["provider"] == "GOOGLE"

    def test_unknown_provider_falls_back(self):
        assert get_llm(provider="MYSTERY")["provider"] == "OLLAMA"

    def test_mode_sets_temperature(self):
        assert get_llm(mode="interpretation")["temperature"] == settings.LLM_TEMPERATURE_INTERPRETATION

    def test_explicit_temperature_wins(self):
        assert get_llm(temperature=0.9, mode="interpretation")["temperature"] == 0.9

    def test_max_tokens_forwarded(self):
        assert get_llm(max_tokens=1500)["max_tokens"] == 1500

    def test_same_arguments_reuse_instance(self):
        assert get_llm(max_tokens=10) is get_llm(max_tokens=10)

    def test_different_arguments_new_instance(self):
        assert get_llm(max_tokens=10) is not get_llm(max_tokens=20)

    def test_cache_is_bounded(self):
        first = get_llm(max_tokens=1)
        for n in range(2, 20):
            get_llm(max_tokens=n)
        assert get_llm(max_tokens=1) is not first


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
