"""
Mock LLM для тестов и dev.

Назначение:
- Гонять intake -> воркер -> push без реальных вызовов LLM
- Предсказуемый результат
"""

from __future__ import annotations

from .base import LLMProvider, LLMResult


class MockLLMProvider(LLMProvider):
    def complete_text(self, *, system: str, user: str) -> LLMResult:
        return LLMResult(
            text=f"mock_content: {user}",
            usage={"mock": True},
            latency_ms=1,
            model_id="mock",
        )
