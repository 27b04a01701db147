"""
Обработка одной задачи генерации воркером.

Шаги:
1) queued -> processing (условный UPDATE; терминальная/пропавшая запись -> ack и skip)
2) вызов LLM
3) успех -> условная запись completed, затем job_completed в bridge
   (публикует только тот, кто выиграл условный UPDATE)
4) ошибка -> на последней попытке сначала status=error, затем fail в очередь;
   на ранних попытках запись остаётся processing, очередь делает backoff

Между записью в БД и вызовом LLM никаких блокировок не держим.
"""

from __future__ import annotations

from smart_content.bridge.pubsub import CompletionPublisher, build_completion_event
from smart_content.common.errors import AppError, ErrCode
from smart_content.common.logging import get_project_logger
from smart_content.common.metrics import QUEUE_TASKS_TOTAL, track_stage_latency
from smart_content.common.time import utc_now
from smart_content.contracts.queue_events import GenerationTaskPayload, QueuedTask
from smart_content.domain.enums import ContentType
from smart_content.llm.base import LLMProvider
from smart_content.queue.delayed import DelayedTaskQueue
from smart_content.storage.db import db_session
from smart_content.storage.repositories import ContentJobRepository

from .generation import generate_content

log = get_project_logger()

SERVICE = "worker-generation"

# итоги обработки (метка метрики и возвращаемое значение)
RESULT_SUCCESS = "success"
RESULT_RETRY = "retry"
RESULT_EXHAUSTED = "exhausted"
RESULT_SKIPPED = "skipped"


def _error_text(err: Exception) -> str:
    if isinstance(err, AppError):
        return f"{err.code}: {err.message}"
    return f"{ErrCode.UNKNOWN}: {str(err)[:500]}"


def _count(queue: DelayedTaskQueue, result: str) -> None:
    QUEUE_TASKS_TOTAL.labels(service=SERVICE, queue=queue.name, result=result).inc()


def process_task(
    task: QueuedTask,
    *,
    queue: DelayedTaskQueue,
    publisher: CompletionPublisher,
    provider: LLMProvider | None = None,
) -> str:
    payload = GenerationTaskPayload.from_dict(task.payload)
    job_id = payload.job_id

    with db_session() as session:
        started = ContentJobRepository(session).mark_processing(job_id)
    if not started:
        queue.ack(task)
        _count(queue, RESULT_SKIPPED)
        log.info(
            "job_skipped",
            extra={"payload": {"job_id": job_id, "reason": "missing_or_terminal"}},
        )
        return RESULT_SKIPPED

    log.info(
        "job_active",
        extra={"payload": {"job_id": job_id, "attempt": task.attempts + 1, "max_attempts": task.max_attempts}},
    )

    try:
        content_type = ContentType.parse(payload.content_type)
        if content_type is None:
            raise AppError(ErrCode.VALIDATION, "Неизвестный content_type в задаче")
        with track_stage_latency(SERVICE, "llm"):
            content = generate_content(payload.prompt, content_type, provider=provider)
    except Exception as e:
        return _handle_failure(task, queue=queue, job_id=job_id, err=e)

    completed_at = utc_now()
    with db_session() as session:
        won = ContentJobRepository(session).mark_completed(
            job_id, content=content, completed_at=completed_at
        )
    if not won:
        # другой доставщик уже записал итог
        queue.ack(task)
        _count(queue, RESULT_SKIPPED)
        log.info("job_completion_lost_race", extra={"payload": {"job_id": job_id}})
        return RESULT_SKIPPED

    _count(queue, RESULT_SUCCESS)
    log.info("job_completed", extra={"payload": {"job_id": job_id, "chars": len(content)}})

    publisher.publish(
        build_completion_event(
            user_id=payload.user_id,
            job_id=job_id,
            generated_content=content,
            completed_at=completed_at.isoformat(),
        )
    )
    queue.ack(task)
    return RESULT_SUCCESS


def _handle_failure(
    task: QueuedTask,
    *,
    queue: DelayedTaskQueue,
    job_id: str,
    err: Exception,
) -> str:
    error = _error_text(err)

    if task.is_last_attempt:
        with db_session() as session:
            ContentJobRepository(session).mark_error(job_id, error=error)

    decision = queue.fail(task, error=error)
    result = RESULT_EXHAUSTED if decision.exhausted else RESULT_RETRY
    _count(queue, result)
    log.warning(
        "job_failed",
        extra={
            "payload": {
                "job_id": job_id,
                "attempts": decision.attempts,
                "exhausted": decision.exhausted,
                "next_retry_at_ms": decision.next_retry_at_ms,
                "err": error[:200],
            }
        },
    )
    return result
