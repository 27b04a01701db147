"""
Общие утилиты проекта.

Правила:
- сюда кладём только реально общие функции
- без бизнес-логики
"""

from __future__ import annotations


def preview(text: str | None, max_len: int = 100) -> str:
    """Короткий превью промпта/контента для логов."""
    if not text:
        return ""
    return text if len(text) <= max_len else text[:max_len] + "..."
