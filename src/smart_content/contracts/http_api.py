"""
HTTP API контракты (Pydantic-модели).

Назначение:
- вход/выход на уровне FastAPI
- стабильные структуры для клиентов

Бизнес-валидация (обязательность полей, тип контента) делается в intake_service,
чтобы ошибка была в едином формате {"code","message"}.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import AliasChoices, BaseModel, Field


# =============================================================================
# ЗАПРОСЫ
# =============================================================================
class GenerateContentRequest(BaseModel):
    prompt: str | None = None
    content_type: str | None = Field(
        default=None,
        validation_alias=AliasChoices("content_type", "contentType"),
    )


# =============================================================================
# ОТВЕТЫ
# =============================================================================
class GenerateContentAccepted(BaseModel):
    message: str
    job_id: str
    status: str
    delay_seconds: int
    scheduled_for: datetime
    estimated_completion_time: datetime


class JobView(BaseModel):
    job_id: str
    status: str
    content_type: str
    prompt: str
    scheduled_for: datetime
    created_at: datetime
    updated_at: datetime | None = None
    attempts: int = 0

    # Только для completed
    generated_content: str | None = None
    completed_at: datetime | None = None

    # Только для error/failed
    error: str | None = None
