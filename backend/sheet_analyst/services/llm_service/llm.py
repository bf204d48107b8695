"""Chat model factory for the configured LLM provider.

The service talks to the LLM in two roles:

- ``"code"``: writes pandas code, so it runs cold (``LLM_TEMPERATURE_CODE``)
- ``"interpretation"``: explains results in prose (``LLM_TEMPERATURE_INTERPRETATION``)

Usage:
    llm = get_llm(mode="code", max_tokens=settings.LLM_MAX_TOKENS_CODE)
    reply = await llm.ainvoke([SystemMessage(...), HumanMessage(...)])

Instances are cached per ``(provider, temperature, max_tokens)``.
"""

from __future__ import annotations

import logging
from collections import OrderedDict
from typing import Any, Callable, Dict, Optional, Tuple

from langchain_google_genai import ChatGoogleGenerativeAI
from langchain_nvidia_ai_endpoints import ChatNVIDIA
from langchain_ollama import ChatOllama

from sheet_analyst.core.config import settings

logger = logging.getLogger(__name__)

DEFAULT_PROVIDER = "OLLAMA"
_CACHE_SIZE = 8

_cache: "OrderedDict[Tuple[str, float, Optional[int]], Any]" = OrderedDict()


def _ollama(temperature: float, max_tokens: Optional[int]) -> ChatOllama:
    # Ollama names the completion limit num_predict and takes the HTTP
    # timeout through its client kwargs
    options: Dict[str, Any] = {
        "model": settings.OLLAMA_MODEL,
        "base_url": settings.OLLAMA_BASE_URL,
        "temperature": temperature,
        "client_kwargs": {"timeout": settings.LLM_TIMEOUT},
    }
    if max_tokens:
        options["num_predict"] = max_tokens
    return ChatOllama(**options)


def _google(temperature: float, max_tokens: Optional[int]) -> ChatGoogleGenerativeAI:
    options: Dict[str, Any] = {
        "model": settings.GOOGLE_MODEL,
        "google_api_key": settings.GOOGLE_API_KEY,
        "temperature": temperature,
        "timeout": settings.LLM_TIMEOUT,
    }
    if max_tokens:
        options["max_tokens"] = max_tokens
    return ChatGoogleGenerativeAI(**options)


def _nvidia(temperature: float, max_tokens: Optional[int]) -> ChatNVIDIA:
    options: Dict[str, Any] = {
        "model": settings.NVIDIA_MODEL,
        "api_key": settings.NVIDIA_API_KEY,
        "temperature": temperature,
        # reasoning traces would end up inside the generated code
        "model_kwargs": {"chat_template_kwargs": {"thinking": False}},
    }
    if max_tokens:
        options["max_tokens"] = max_tokens
    return ChatNVIDIA(**options)


BUILDERS: Dict[str, Callable[[float, Optional[int]], Any]] = {
    "OLLAMA": _ollama,
    "GOOGLE": _google,
    "NVIDIA": _nvidia,
}


def temperature_for(mode: str) -> float:
    """Configured temperature for a role; unknown roles get the code temperature."""
    if mode == "interpretation":
        return settings.LLM_TEMPERATURE_INTERPRETATION
    return settings.LLM_TEMPERATURE_CODE


def get_llm(
    temperature: Optional[float] = None,
    max_tokens: Optional[int] = None,
    provider: Optional[str] = None,
    mode: str = "code",
):
    """Return a LangChain chat model.

    Args:
        temperature: Overrides the role temperature when given.
        max_tokens: Completion limit; ``None`` leaves the provider default.
        provider: ``OLLAMA``, ``GOOGLE`` or ``NVIDIA``; defaults to ``settings.LLM_PROVIDER``.
        mode: ``"code"`` or ``"interpretation"``.
    """
    name = (provider or settings.LLM_PROVIDER).upper()
    if name not in BUILDERS:
        logger.warning("Unknown LLM provider %r, using %s", name, DEFAULT_PROVIDER)
        name = DEFAULT_PROVIDER
    temp = temperature_for(mode) if temperature is None else temperature

    key = (name, temp, max_tokens)
    if key in _cache:
        _cache.move_to_end(key)
        return _cache[key]

    logger.debug("Creating %s chat model (temperature=%s, max_tokens=%s)", name, temp, max_tokens)
    model = BUILDERS[name](temp, max_tokens)
    _cache[key] = model
    while len(_cache) > _CACHE_SIZE:
        _cache.popitem(last=False)
    return model


def clear_llm_cache() -> None:
    _cache.clear()
