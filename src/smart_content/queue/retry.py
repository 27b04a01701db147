"""
Политика повторов задач очереди.

Назначение:
- ограниченное число попыток (QUEUE_MAX_ATTEMPTS)
- экспоненциальный backoff: base * 2^(n-1) после n-й неудачи
- решение «повторить / в DLQ» отдаётся наружу, воркер по нему пишет статус

Важно:
- никаких sleep: задержка повтора выражается временем готовности задачи в очереди
"""

from __future__ import annotations

from dataclasses import dataclass

from smart_content.common.config import get_settings


def backoff_delay_ms(base_ms: int, failures: int) -> int:
    """
    Задержка перед следующей попыткой после `failures` неудач подряд.
    1 -> base, 2 -> 2*base, 3 -> 4*base ...
    """
    if failures <= 0 or base_ms <= 0:
        return 0
    return int(base_ms) * (2 ** (failures - 1))


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int
    backoff_base_ms: int

    @classmethod
    def from_settings(cls) -> RetryPolicy:
        s = get_settings()
        return cls(
            max_attempts=max(1, int(s.queue_max_attempts)),
            backoff_base_ms=max(0, int(s.queue_backoff_base_ms)),
        )


@dataclass(frozen=True)
class RetryDecision:
    """
    Итог неудачной попытки.
    - exhausted=True: попытки кончились, задача ушла в DLQ
    - иначе next_retry_at_ms: когда задача снова станет готовой
    """

    attempts: int
    exhausted: bool
    next_retry_at_ms: int | None = None
