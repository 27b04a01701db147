"""
Машина состояний задачи генерации.

Назначение:
- Централизованные правила переходов статуса
- Монотонность: из queued/processing нельзя вернуться назад,
  из терминальных статусов нельзя выйти
- Основа для идемпотентной обработки повторной доставки задачи

Переходы:
    queued     -> processing
    processing -> processing   (повторная доставка, no-op)
    processing -> completed | error
"""

from __future__ import annotations

from .enums import TERMINAL_STATUSES, JobStatus

_ALLOWED: dict[JobStatus, frozenset[JobStatus]] = {
    JobStatus.queued: frozenset({JobStatus.processing}),
    JobStatus.processing: frozenset({JobStatus.processing, JobStatus.completed, JobStatus.error}),
    **{s: frozenset() for s in TERMINAL_STATUSES},
}


def can_transition(current: JobStatus, target: JobStatus) -> bool:
    return target in _ALLOWED.get(current, frozenset())


def allowed_sources(target: JobStatus) -> list[JobStatus]:
    """
    Статусы, из которых допустим переход в target.
    Репозиторий использует это как условие WHERE для условного UPDATE.
    """
    return [src for src in _ALLOWED if can_transition(src, target)]
