"""
Отложенная очередь задач на Redis.

Назначение:
- задача становится видимой воркерам не раньше not_before_ms
- дедупликация по tracking key (повторная постановка = no-op)
- ограниченные повторы с экспоненциальным backoff, затем DLQ
- lease на захваченную задачу: если воркер умер, reaper возвращает её в очередь

Ключи (prefix = имя очереди):
- <prefix>:tasks    HASH  tracking_key -> JSON конверта задачи
- <prefix>:delayed  ZSET  tracking_key -> ready_at_ms
- <prefix>:active   ZSET  tracking_key -> lease deadline (ms)
- <prefix>:claim:<tracking_key>  STRING  владелец (SET NX EX)
- <prefix>:dlq      LIST  исчерпавшие попытки задачи

Важно:
- одна задача захвачена не более чем одним воркером (claim через SET NX)
- порядок при захвате: claim-ключ -> active -> удалить из delayed,
  поэтому при падении между шагами задача остаётся видимой reaper'у
- повторная доставка после истечения lease не увеличивает attempts
"""

from __future__ import annotations

import json
from typing import Any

import redis

from smart_content.common.logging import get_project_logger
from smart_content.common.time import utc_ms
from smart_content.contracts.queue_events import QueuedTask

from .redis import redis_client
from .retry import RetryDecision, RetryPolicy, backoff_delay_ms

log = get_project_logger()

# сколько готовых задач просматривать за один проход claim
_CLAIM_SCAN = 16


class DelayedTaskQueue:
    def __init__(
        self,
        name: str,
        *,
        client: redis.Redis | None = None,
        policy: RetryPolicy | None = None,
        lease_sec: int = 300,
    ) -> None:
        self.name = name
        self._client = client
        self.policy = policy or RetryPolicy.from_settings()
        self.lease_sec = max(1, int(lease_sec))

    # -------------------------------------------------------------------------
    # keys
    # -------------------------------------------------------------------------
    @property
    def tasks_key(self) -> str:
        return f"{self.name}:tasks"

    @property
    def delayed_key(self) -> str:
        return f"{self.name}:delayed"

    @property
    def active_key(self) -> str:
        return f"{self.name}:active"

    @property
    def dlq_key(self) -> str:
        return f"{self.name}:dlq"

    def claim_key(self, tracking_key: str) -> str:
        return f"{self.name}:claim:{tracking_key}"

    def _r(self) -> redis.Redis:
        return self._client if self._client is not None else redis_client()

    # -------------------------------------------------------------------------
    # submit
    # -------------------------------------------------------------------------
    def submit(
        self,
        *,
        tracking_key: str,
        payload: dict[str, Any],
        delay_ms: int,
        now_ms: int | None = None,
    ) -> bool:
        """
        Поставить задачу в очередь с задержкой.

        Возвращает:
        - True: задача создана
        - False: задача с таким tracking key уже есть (дедупликация)
        """
        now_ms = utc_ms() if now_ms is None else now_ms
        not_before = now_ms + max(0, int(delay_ms))
        task = QueuedTask(
            tracking_key=tracking_key,
            payload=payload,
            max_attempts=self.policy.max_attempts,
            backoff_ms=self.policy.backoff_base_ms,
            not_before_ms=not_before,
            enqueued_at_ms=now_ms,
        )

        r = self._r()
        created = r.hsetnx(self.tasks_key, tracking_key, json.dumps(task.to_dict(), ensure_ascii=False))
        if not created:
            log.info(
                "queue_submit_duplicate",
                extra={"payload": {"queue": self.name, "tracking_key": tracking_key}},
            )
            return False

        r.zadd(self.delayed_key, {tracking_key: not_before})
        log.info(
            "queue_submit",
            extra={
                "payload": {
                    "queue": self.name,
                    "tracking_key": tracking_key,
                    "not_before_ms": not_before,
                }
            },
        )
        return True

    # -------------------------------------------------------------------------
    # claim
    # -------------------------------------------------------------------------
    def claim(self, *, consumer: str, now_ms: int | None = None) -> QueuedTask | None:
        """
        Захватить одну готовую задачу (ready_at <= now) под lease.
        None: готовых задач нет (или все уже захвачены другими воркерами).
        """
        now_ms = utc_ms() if now_ms is None else now_ms
        r = self._r()

        ready = r.zrangebyscore(self.delayed_key, "-inf", now_ms, start=0, num=_CLAIM_SCAN)
        for tracking_key in ready:
            if not r.set(self.claim_key(tracking_key), consumer, nx=True, ex=self.lease_sec):
                continue

            # список ready снят до захвата: задачу могли перепланировать на backoff
            ready_at = r.zscore(self.delayed_key, tracking_key)
            if ready_at is not None and float(ready_at) > now_ms:
                r.delete(self.claim_key(tracking_key))
                continue

            raw = r.hget(self.tasks_key, tracking_key)
            if raw is None:
                # задача уже подтверждена, осталась висячая запись расписания
                pipe = r.pipeline()
                pipe.zrem(self.delayed_key, tracking_key)
                pipe.delete(self.claim_key(tracking_key))
                pipe.execute()
                continue

            pipe = r.pipeline()
            pipe.zadd(self.active_key, {tracking_key: now_ms + self.lease_sec * 1000})
            pipe.zrem(self.delayed_key, tracking_key)
            pipe.execute()

            task = QueuedTask.from_dict(json.loads(raw))
            log.info(
                "queue_claim",
                extra={
                    "payload": {
                        "queue": self.name,
                        "tracking_key": tracking_key,
                        "consumer": consumer,
                        "attempts": task.attempts,
                    }
                },
            )
            return task
        return None

    # -------------------------------------------------------------------------
    # ack / fail / release
    # -------------------------------------------------------------------------
    def ack(self, task: QueuedTask) -> None:
        """Задача обработана (или больше не нужна): удалить из очереди."""
        tk = task.tracking_key
        pipe = self._r().pipeline()
        pipe.hdel(self.tasks_key, tk)
        pipe.zrem(self.active_key, tk)
        pipe.zrem(self.delayed_key, tk)
        pipe.delete(self.claim_key(tk))
        pipe.execute()

    def fail(self, task: QueuedTask, *, error: str, now_ms: int | None = None) -> RetryDecision:
        """
        Зафиксировать неудачную попытку.

        Попытки исчерпаны: задача уходит в DLQ и удаляется из очереди,
        иначе перепланируется через base * 2^(attempts-1) мс.
        """
        now_ms = utc_ms() if now_ms is None else now_ms
        tk = task.tracking_key
        task.attempts += 1
        task.last_error = error

        r = self._r()
        if task.attempts >= task.max_attempts:
            task.next_retry_at_ms = None
            pipe = r.pipeline()
            pipe.lpush(self.dlq_key, json.dumps(task.to_dict(), ensure_ascii=False))
            pipe.hdel(self.tasks_key, tk)
            pipe.zrem(self.active_key, tk)
            pipe.zrem(self.delayed_key, tk)
            pipe.delete(self.claim_key(tk))
            pipe.execute()
            log.warning(
                "task_moved_to_dlq",
                extra={
                    "payload": {
                        "queue": self.name,
                        "dlq": self.dlq_key,
                        "tracking_key": tk,
                        "attempts": task.attempts,
                        "max_attempts": task.max_attempts,
                    }
                },
            )
            return RetryDecision(attempts=task.attempts, exhausted=True)

        next_at = now_ms + backoff_delay_ms(task.backoff_ms, task.attempts)
        task.next_retry_at_ms = next_at
        pipe = r.pipeline()
        pipe.hset(self.tasks_key, tk, json.dumps(task.to_dict(), ensure_ascii=False))
        pipe.zadd(self.delayed_key, {tk: next_at})
        pipe.zrem(self.active_key, tk)
        pipe.delete(self.claim_key(tk))
        pipe.execute()
        log.warning(
            "task_requeued",
            extra={
                "payload": {
                    "queue": self.name,
                    "tracking_key": tk,
                    "attempts": task.attempts,
                    "max_attempts": task.max_attempts,
                    "next_retry_at_ms": next_at,
                }
            },
        )
        return RetryDecision(attempts=task.attempts, exhausted=False, next_retry_at_ms=next_at)

    def release(self, task: QueuedTask, *, now_ms: int | None = None) -> None:
        """
        Вернуть захваченную задачу без расхода попытки
        (например, воркер останавливается, не дождавшись rate limit).
        """
        now_ms = utc_ms() if now_ms is None else now_ms
        tk = task.tracking_key
        pipe = self._r().pipeline()
        pipe.zadd(self.delayed_key, {tk: now_ms})
        pipe.zrem(self.active_key, tk)
        pipe.delete(self.claim_key(tk))
        pipe.execute()

    # -------------------------------------------------------------------------
    # lease reaper
    # -------------------------------------------------------------------------
    def reap_expired(self, *, now_ms: int | None = None) -> int:
        """
        Вернуть в очередь задачи, чей lease истёк (воркер пропал).
        attempts не меняется.
        """
        now_ms = utc_ms() if now_ms is None else now_ms
        r = self._r()
        expired = r.zrangebyscore(self.active_key, "-inf", now_ms)
        for tk in expired:
            pipe = r.pipeline()
            pipe.zadd(self.delayed_key, {tk: now_ms})
            pipe.zrem(self.active_key, tk)
            pipe.delete(self.claim_key(tk))
            pipe.execute()
        if expired:
            log.warning(
                "queue_leases_reaped",
                extra={"payload": {"queue": self.name, "count": len(expired)}},
            )
        return len(expired)

    # -------------------------------------------------------------------------
    # introspection
    # -------------------------------------------------------------------------
    def get(self, tracking_key: str) -> QueuedTask | None:
        raw = self._r().hget(self.tasks_key, tracking_key)
        return QueuedTask.from_dict(json.loads(raw)) if raw else None

    def dlq_items(self, limit: int = 100) -> list[QueuedTask]:
        raw_items = self._r().lrange(self.dlq_key, 0, max(0, limit - 1))
        return [QueuedTask.from_dict(json.loads(x)) for x in raw_items]

    def stats(self) -> dict[str, int]:
        r = self._r()
        return {
            "delayed": int(r.zcard(self.delayed_key)),
            "active": int(r.zcard(self.active_key)),
            "dlq": int(r.llen(self.dlq_key)),
        }
