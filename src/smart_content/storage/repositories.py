"""
Репозитории (DAO слой).

Правила:
- Никакой бизнес-логики
- Только CRUD и запросы
- Переходы статуса: условные UPDATE (WHERE status IN <допустимые источники>),
  чтобы повторная доставка задачи не могла откатить терминальный статус
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import delete, desc, select, update
from sqlalchemy.orm import Session

from smart_content.common.time import utc_now
from smart_content.domain.enums import JobStatus
from smart_content.domain.state_machine import allowed_sources

from .models import ContentJob


# =============================================================================
# CONTENT JOB REPOSITORY
# =============================================================================
class ContentJobRepository:
    def __init__(self, session: Session) -> None:
        self.session = session

    def add(self, job: ContentJob) -> ContentJob:
        self.session.add(job)
        self.session.flush()
        return job

    def get(self, job_id: str) -> ContentJob | None:
        return self.session.get(ContentJob, job_id)

    def get_for_user(self, job_id: str, user_id: str) -> ContentJob | None:
        stmt = select(ContentJob).where(
            ContentJob.job_id == job_id,
            ContentJob.user_id == user_id,
        )
        return self.session.scalars(stmt).one_or_none()

    def list_for_user(self, user_id: str, *, limit: int = 100) -> list[ContentJob]:
        stmt = (
            select(ContentJob)
            .where(ContentJob.user_id == user_id)
            .order_by(desc(ContentJob.created_at), desc(ContentJob.job_id))
            .limit(max(1, min(limit, 500)))
        )
        return list(self.session.scalars(stmt).all())

    def delete(self, job_id: str) -> int:
        res = self.session.execute(delete(ContentJob).where(ContentJob.job_id == job_id))
        return int(res.rowcount or 0)

    def _transition(self, job_id: str, target: JobStatus, values: dict) -> bool:
        now = utc_now()
        stmt = (
            update(ContentJob)
            .where(
                ContentJob.job_id == job_id,
                ContentJob.status.in_(allowed_sources(target)),
            )
            .values(status=target, updated_at=now, **values)
            .execution_options(synchronize_session=False)
        )
        res = self.session.execute(stmt)
        return bool(res.rowcount)

    def mark_processing(self, job_id: str) -> bool:
        """
        queued|processing -> processing, attempts += 1.
        False: записи нет или она уже терминальная.
        """
        return self._transition(
            job_id,
            JobStatus.processing,
            {"attempts": ContentJob.attempts + 1},
        )

    def mark_completed(self, job_id: str, *, content: str, completed_at: datetime) -> bool:
        return self._transition(
            job_id,
            JobStatus.completed,
            {"generated_content": content, "error": None, "completed_at": completed_at},
        )

    def mark_error(self, job_id: str, *, error: str) -> bool:
        return self._transition(
            job_id,
            JobStatus.error,
            {"error": error, "generated_content": None},
        )
