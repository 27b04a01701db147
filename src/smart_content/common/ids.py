"""
Генерация идентификаторов.

Назначение:
- job_id (он же tracking key задачи в очереди)
- имя consumer-а воркера
"""

from __future__ import annotations

import secrets
import uuid


def new_uuid() -> str:
    """UUIDv4 строкой."""
    return str(uuid.uuid4())


def new_job_id() -> str:
    """
    Идентификатор задачи генерации.
    Глобально уникален; используется как ключ дедупликации в очереди.
    """
    return new_uuid()


def new_consumer_name(prefix: str = "worker") -> str:
    """Имя consumer'а воркера (для логов и lease-меток)."""
    return f"{prefix}-{secrets.token_hex(4)}"
