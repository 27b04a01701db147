"""
Кластерный rate limit воркеров (fixed window в Redis).

Назначение:
- не более N стартов задач за окно W секунд по ВСЕМ воркерам
- общий счётчик: INCR + EXPIRE в одном pipeline

Важно:
- окно фиксированное (ключ = <prefix>:<номер окна>), поэтому на стыке
  окон возможна пачка до 2N стартов
"""

from __future__ import annotations

import threading
import time

import redis

from smart_content.common.logging import get_project_logger

log = get_project_logger()


class FixedWindowRateLimiter:
    def __init__(
        self,
        name: str,
        *,
        client: redis.Redis,
        max_events: int,
        window_sec: int,
    ) -> None:
        self.name = name
        self.client = client
        self.max_events = max(1, int(max_events))
        self.window_sec = max(1, int(window_sec))

    def _key(self, window_no: int) -> str:
        return f"{self.name}:rl:{window_no}"

    def try_acquire(self, *, now: float | None = None) -> bool:
        """
        Занять слот в текущем окне.
        False: лимит окна исчерпан.
        """
        now = time.time() if now is None else now
        window_no = int(now // self.window_sec)
        p = self.client.pipeline()
        p.incr(self._key(window_no))
        p.expire(self._key(window_no), self.window_sec + 1)
        count = int(p.execute()[0])
        return count <= self.max_events

    def seconds_until_next_window(self, *, now: float | None = None) -> float:
        now = time.time() if now is None else now
        return self.window_sec - (now % self.window_sec)

    def wait_for_slot(self, stop: threading.Event, *, poll_sec: float = 1.0) -> bool:
        """
        Блокирующе ждать слот.
        False: пришёл сигнал остановки раньше, чем освободился слот.
        """
        while not stop.is_set():
            if self.try_acquire():
                return True
            wait = min(max(0.05, poll_sec), self.seconds_until_next_window())
            log.debug(
                "rate_limit_wait",
                extra={"payload": {"limiter": self.name, "wait_sec": round(wait, 3)}},
            )
            stop.wait(wait)
        return False
