"""
Базовые типы для LLM.

Назначение:
- единый контракт провайдера генерации
- результат генерации с метаданными для логов
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any


@dataclass
class LLMResult:
    """
    Результат генерации LLM.
    """

    text: str
    model_id: str | None = None
    usage: dict[str, Any] | None = None
    latency_ms: int | None = None


class LLMProvider(ABC):
    """
    Интерфейс провайдера LLM.
    Реализация обязана бросать ProviderError на любую ошибку вызова.
    """

    @abstractmethod
    def complete_text(self, *, system: str, user: str) -> LLMResult:
        raise NotImplementedError
