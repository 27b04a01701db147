"""
Контракты задач очереди (runtime, Python-описание).

Важно:
- payload всегда JSON
- schema_version обязателен
- tracking_key == job_id (дедупликация повторной постановки)
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Literal

from .versions import QUEUE_SCHEMA_VERSION

SchemaV1 = Literal["v1"]


@dataclass
class GenerationTaskPayload:
    """
    Данные задачи, которые нужны воркеру (без обращения к intake).
    """

    job_id: str
    user_id: str
    prompt: str
    content_type: str

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> GenerationTaskPayload:
        return cls(
            job_id=str(raw["job_id"]),
            user_id=str(raw["user_id"]),
            prompt=str(raw["prompt"]),
            content_type=str(raw["content_type"]),
        )


@dataclass
class QueuedTask:
    """
    Конверт задачи в очереди: payload + служебные поля расписания/ретраев.
    """

    tracking_key: str
    payload: dict[str, Any]
    max_attempts: int
    backoff_ms: int
    not_before_ms: int
    attempts: int = 0
    next_retry_at_ms: int | None = None
    last_error: str | None = None
    enqueued_at_ms: int = 0
    schema_version: SchemaV1 = QUEUE_SCHEMA_VERSION
    meta: dict[str, Any] = field(default_factory=dict)

    @property
    def is_last_attempt(self) -> bool:
        """Текущий запуск последний разрешённый (attempts ещё не увеличен)."""
        return self.attempts + 1 >= self.max_attempts

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> QueuedTask:
        return cls(
            tracking_key=str(raw["tracking_key"]),
            payload=dict(raw.get("payload") or {}),
            max_attempts=int(raw.get("max_attempts", 1)),
            backoff_ms=int(raw.get("backoff_ms", 0)),
            not_before_ms=int(raw.get("not_before_ms", 0)),
            attempts=int(raw.get("attempts", 0)),
            next_retry_at_ms=raw.get("next_retry_at_ms"),
            last_error=raw.get("last_error"),
            enqueued_at_ms=int(raw.get("enqueued_at_ms", 0)),
            schema_version=raw.get("schema_version", QUEUE_SCHEMA_VERSION),
            meta=dict(raw.get("meta") or {}),
        )
