"""
Выбор провайдера LLM по LLM_PROVIDER.
"""

from __future__ import annotations

from smart_content.common.config import get_settings
from smart_content.common.errors import ErrCode, ProviderError

from .base import LLMProvider
from .mock import MockLLMProvider
from .openai_compat import OpenAICompatProvider


def get_llm_provider() -> LLMProvider:
    kind = (get_settings().llm_provider or "").strip().lower()
    if kind == "mock":
        return MockLLMProvider()
    if kind in {"openai_compat", "openrouter", "openai"}:
        return OpenAICompatProvider()
    raise ProviderError(
        ErrCode.LLM_PROVIDER_ERROR,
        "Неизвестный LLM_PROVIDER",
        {"llm_provider": kind},
    )
