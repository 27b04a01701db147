"""
Доменные перечисления (enum).

Используются во всей системе:
- тип генерируемого контента (закрытый набор)
- статус задачи генерации
"""

from __future__ import annotations

import enum


class ContentType(str, enum.Enum):
    """
    Тип контента. Значения: внешние строки API и хранилища.
    Новый тип = новый член enum + шаблон в domain/prompts.py.
    """

    blog_post_outline = "Blog Post Outline"
    product_description = "Product Description"
    social_media_caption = "Social Media Caption"

    @classmethod
    def parse(cls, raw: str | None) -> ContentType | None:
        if raw is None:
            return None
        value = str(raw).strip()
        for item in cls:
            if item.value == value:
                return item
        return None

    @classmethod
    def choices(cls) -> list[str]:
        return [item.value for item in cls]


class JobStatus(str, enum.Enum):
    """
    Статус задачи генерации.

    failed зарезервирован и сейчас не выставляется (см. DESIGN.md).
    """

    queued = "queued"
    processing = "processing"
    completed = "completed"
    failed = "failed"
    error = "error"


TERMINAL_STATUSES = frozenset({JobStatus.completed, JobStatus.failed, JobStatus.error})
ERROR_STATUSES = frozenset({JobStatus.failed, JobStatus.error})
