"""
Диспетчер очереди генерации.

Назначение:
- Единое имя очереди и настройки (задержка, попытки, lease)
- Упаковка задачи генерации в JSON-конверт
- enqueue_generation для intake, фабрики очереди и rate limit для воркера
"""

from __future__ import annotations

from smart_content.common.config import get_settings
from smart_content.common.logging import get_project_logger
from smart_content.contracts.queue_events import GenerationTaskPayload

from .delayed import DelayedTaskQueue
from .ratelimit import FixedWindowRateLimiter
from .redis import redis_client
from .retry import RetryPolicy

log = get_project_logger()


def get_generation_queue() -> DelayedTaskQueue:
    s = get_settings()
    return DelayedTaskQueue(
        s.queue_name,
        client=redis_client(),
        policy=RetryPolicy.from_settings(),
        lease_sec=s.queue_lease_sec,
    )


def get_worker_rate_limiter() -> FixedWindowRateLimiter:
    s = get_settings()
    return FixedWindowRateLimiter(
        s.queue_name,
        client=redis_client(),
        max_events=s.worker_rate_limit_max,
        window_sec=s.worker_rate_limit_window_sec,
    )


def enqueue_generation(
    *,
    job_id: str,
    user_id: str,
    prompt: str,
    content_type: str,
    delay_sec: int | None = None,
) -> bool:
    """
    Поставить задачу генерации (tracking key = job_id).

    Возвращает False, если задача с этим job_id уже в очереди.
    Сбой Redis пробрасывается как есть.
    """
    s = get_settings()
    delay = s.job_delay_sec if delay_sec is None else delay_sec
    payload = GenerationTaskPayload(
        job_id=job_id,
        user_id=user_id,
        prompt=prompt,
        content_type=content_type,
    )
    created = get_generation_queue().submit(
        tracking_key=job_id,
        payload=payload.to_dict(),
        delay_ms=int(delay) * 1000,
    )
    log.info(
        "enqueue_generation",
        extra={"payload": {"job_id": job_id, "delay_sec": delay, "created": created}},
    )
    return created
