"""
Чтение статуса задач генерации для API.
"""

from __future__ import annotations

from smart_content.common.errors import NotFoundError
from smart_content.common.time import ensure_utc
from smart_content.contracts.http_api import JobView
from smart_content.domain.enums import ERROR_STATUSES, JobStatus
from smart_content.storage.db import db_session
from smart_content.storage.models import ContentJob
from smart_content.storage.repositories import ContentJobRepository


def to_view(job: ContentJob) -> JobView:
    status = JobStatus(job.status)
    completed = status == JobStatus.completed
    return JobView(
        job_id=job.job_id,
        status=status.value,
        content_type=job.content_type.value,
        prompt=job.prompt,
        scheduled_for=ensure_utc(job.scheduled_for),
        created_at=ensure_utc(job.created_at),
        updated_at=ensure_utc(job.updated_at),
        attempts=job.attempts or 0,
        generated_content=job.generated_content if completed else None,
        completed_at=ensure_utc(job.completed_at) if completed else None,
        error=job.error if status in ERROR_STATUSES else None,
    )


def get_job_view(*, job_id: str, user_id: str) -> JobView:
    """
    Чужая задача неотличима от несуществующей (404 в обоих случаях).
    """
    with db_session() as session:
        job = ContentJobRepository(session).get_for_user(job_id, user_id)
        if job is None:
            raise NotFoundError("Задача не найдена", {"job_id": job_id})
        return to_view(job)


def list_job_views(*, user_id: str, limit: int = 100) -> list[JobView]:
    with db_session() as session:
        jobs = ContentJobRepository(session).list_for_user(user_id, limit=limit)
        return [to_view(j) for j in jobs]
