"""
Утилиты времени.

Назначение:
- единый формат времени (ISO UTC)
- миллисекунды для расписания очереди
"""

from __future__ import annotations

from datetime import UTC, datetime


def utc_now() -> datetime:
    """
    Текущее время в UTC (datetime).
    """
    return datetime.now(UTC)


def utc_ms() -> int:
    """
    Текущее время в UTC в миллисекундах (int).
    """
    return int(utc_now().timestamp() * 1000)


def ensure_utc(dt: datetime | None) -> datetime | None:
    """
    SQLite отдаёт naive datetime, считаем его UTC.
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)
