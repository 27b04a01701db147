"""
Intake: приём запроса на генерацию.

Поток:
- валидация (prompt, content_type из закрытого набора)
- запись ContentJob(status=queued)
- постановка задачи в отложенную очередь (tracking key = job_id)
- ответ-подтверждение; LLM здесь не вызывается

Если очередь недоступна после записи в БД, запись удаляется (компенсация),
наружу уходит QueueFaultError.
"""

from __future__ import annotations

from datetime import timedelta

import redis

from smart_content.common.config import get_settings
from smart_content.common.errors import QueueFaultError, ValidationError
from smart_content.common.ids import new_job_id
from smart_content.common.logging import get_project_logger
from smart_content.common.metrics import JOBS_SUBMITTED_TOTAL
from smart_content.common.time import utc_now
from smart_content.common.utils import preview
from smart_content.contracts.http_api import GenerateContentAccepted
from smart_content.domain.enums import ContentType, JobStatus
from smart_content.queue.dispatcher import enqueue_generation
from smart_content.storage.db import db_session
from smart_content.storage.models import ContentJob
from smart_content.storage.repositories import ContentJobRepository

log = get_project_logger()

ACK_MESSAGE = "Задача генерации поставлена в очередь"


def _validate(prompt: str | None, content_type: str | None) -> tuple[str, ContentType]:
    if not isinstance(prompt, str) or not prompt.strip() or not content_type:
        raise ValidationError("Укажите prompt и content_type")
    parsed = ContentType.parse(content_type)
    if parsed is None:
        raise ValidationError(
            "Неизвестный content_type",
            {"allowed": ContentType.choices()},
        )
    return prompt, parsed


def submit_job(
    *,
    user_id: str,
    prompt: str | None,
    content_type: str | None,
) -> GenerateContentAccepted:
    try:
        prompt, ct = _validate(prompt, content_type)
    except ValidationError:
        JOBS_SUBMITTED_TOTAL.labels(content_type=str(content_type or ""), result="validation").inc()
        raise

    s = get_settings()
    job_id = new_job_id()
    now = utc_now()
    scheduled_for = now + timedelta(seconds=s.job_delay_sec)

    with db_session() as session:
        ContentJobRepository(session).add(
            ContentJob(
                job_id=job_id,
                user_id=user_id,
                prompt=prompt,
                content_type=ct,
                status=JobStatus.queued,
                scheduled_for=scheduled_for,
                attempts=0,
                created_at=now,
                updated_at=now,
            )
        )

    try:
        enqueue_generation(
            job_id=job_id,
            user_id=user_id,
            prompt=prompt,
            content_type=ct.value,
            delay_sec=s.job_delay_sec,
        )
    except redis.RedisError as e:
        with db_session() as session:
            ContentJobRepository(session).delete(job_id)
        JOBS_SUBMITTED_TOTAL.labels(content_type=ct.value, result="queue_fault").inc()
        log.error(
            "intake_enqueue_failed",
            extra={"payload": {"job_id": job_id, "err": str(e)[:200]}},
        )
        raise QueueFaultError(details={"job_id": job_id}) from e

    JOBS_SUBMITTED_TOTAL.labels(content_type=ct.value, result="queued").inc()
    log.info(
        "job_submitted",
        extra={
            "payload": {
                "job_id": job_id,
                "user_id": user_id,
                "content_type": ct.value,
                "prompt": preview(prompt),
                "scheduled_for": scheduled_for.isoformat(),
            }
        },
    )
    return GenerateContentAccepted(
        message=ACK_MESSAGE,
        job_id=job_id,
        status=JobStatus.queued.value,
        delay_seconds=s.job_delay_sec,
        scheduled_for=scheduled_for,
        estimated_completion_time=scheduled_for + timedelta(seconds=s.job_processing_allowance_sec),
    )
