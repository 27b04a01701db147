from datetime import timedelta

from smart_content.common.time import utc_now
from smart_content.domain.enums import ContentType, JobStatus
from smart_content.storage.db import db_session
from smart_content.storage.models import ContentJob
from smart_content.storage.repositories import ContentJobRepository


def _job(job_id: str, user_id: str = "u1", *, age_sec: int = 0) -> ContentJob:
    created = utc_now() - timedelta(seconds=age_sec)
    return ContentJob(
        job_id=job_id,
        user_id=user_id,
        prompt="prompt",
        content_type=ContentType.product_description,
        status=JobStatus.queued,
        scheduled_for=created + timedelta(seconds=60),
        created_at=created,
        updated_at=created,
    )


def test_db_session_context_manager_smoke():
    with db_session() as s:
        assert s is not None


def test_list_for_user_newest_first_with_limit():
    with db_session() as s:
        repo = ContentJobRepository(s)
        repo.add(_job("old", age_sec=30))
        repo.add(_job("mid", age_sec=20))
        repo.add(_job("new", age_sec=10))
        repo.add(_job("foreign", user_id="u2"))

    with db_session() as s:
        repo = ContentJobRepository(s)
        assert [j.job_id for j in repo.list_for_user("u1")] == ["new", "mid", "old"]
        assert [j.job_id for j in repo.list_for_user("u1", limit=2)] == ["new", "mid"]
        assert repo.get_for_user("foreign", "u1") is None
        assert repo.get_for_user("foreign", "u2") is not None


def test_conditional_transitions():
    with db_session() as s:
        ContentJobRepository(s).add(_job("j1"))

    with db_session() as s:
        repo = ContentJobRepository(s)
        assert repo.mark_completed("j1", content="x", completed_at=utc_now()) is False
        assert repo.mark_processing("j1") is True
        assert repo.mark_processing("j1") is True
        assert repo.mark_completed("j1", content="done", completed_at=utc_now()) is True
        assert repo.mark_error("j1", error="late") is False
        assert repo.mark_processing("j1") is False

    with db_session() as s:
        job = ContentJobRepository(s).get("j1")
        assert job.status == JobStatus.completed
        assert job.generated_content == "done"
        assert job.error is None
        assert job.attempts == 2


def test_delete_returns_rowcount():
    with db_session() as s:
        ContentJobRepository(s).add(_job("j2"))
    with db_session() as s:
        repo = ContentJobRepository(s)
        assert repo.delete("j2") == 1
        assert repo.delete("j2") == 0
