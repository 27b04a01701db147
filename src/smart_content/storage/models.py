"""
ORM-модели базы данных.

Назначение:
- Хранение задач генерации (ground truth статуса)
- Доступ по job_id (уникален) и по user_id, новые сверху
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Enum, Index, Integer, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

from smart_content.common.time import utc_now
from smart_content.domain.enums import ContentType, JobStatus


def _enum_values(enum_cls) -> list[str]:
    return [m.value for m in enum_cls]


# =============================================================================
# BASE
# =============================================================================
class Base(DeclarativeBase):
    pass


# =============================================================================
# CONTENT JOB
# =============================================================================
class ContentJob(Base):
    """
    Задача генерации контента.

    Создаётся intake со статусом queued, дальше меняется только воркером.
    generated_content заполнен тогда и только тогда, когда status=completed;
    error: тогда и только тогда, когда status in (failed, error).
    """

    __tablename__ = "content_jobs"
    __table_args__ = (Index("ix_content_jobs_user_created", "user_id", "created_at"),)

    job_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(128), nullable=False)

    prompt: Mapped[str] = mapped_column(Text, nullable=False)
    content_type: Mapped[ContentType] = mapped_column(
        Enum(ContentType, values_callable=_enum_values, native_enum=False, length=32),
        nullable=False,
    )
    status: Mapped[JobStatus] = mapped_column(
        Enum(JobStatus, values_callable=_enum_values, native_enum=False, length=16),
        nullable=False,
        default=JobStatus.queued,
    )

    scheduled_for: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    generated_content: Mapped[str | None] = mapped_column(Text, nullable=True)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now, onupdate=utc_now, nullable=False
    )
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
