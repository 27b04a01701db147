from __future__ import annotations

import json

import pytest
import redis

from smart_content.bridge.pubsub import CompletionPublisher
from smart_content.common.errors import ErrCode, ProviderError
from smart_content.common.time import utc_ms, utc_now
from smart_content.domain.enums import JobStatus
from smart_content.llm.base import LLMProvider, LLMResult
from smart_content.queue.dispatcher import get_generation_queue
from smart_content.services.intake_service import submit_job
from smart_content.services.job_processor import (
    RESULT_EXHAUSTED,
    RESULT_RETRY,
    RESULT_SKIPPED,
    RESULT_SUCCESS,
    process_task,
)
from smart_content.storage.db import db_session
from smart_content.storage.repositories import ContentJobRepository


class _StaticProvider(LLMProvider):
    def __init__(self, text: str) -> None:
        self.text = text
        self.calls: list[tuple[str, str]] = []

    def complete_text(self, *, system: str, user: str) -> LLMResult:
        self.calls.append((system, user))
        return LLMResult(text=self.text, model_id="static")


class _FailingProvider(LLMProvider):
    def __init__(self) -> None:
        self.calls = 0

    def complete_text(self, *, system: str, user: str) -> LLMResult:
        self.calls += 1
        raise ProviderError(ErrCode.LLM_PROVIDER_ERROR, "LLM вернул ошибку", {"status": 502})


class _RacingProvider(LLMProvider):
    """Пока мы генерируем, другой доставщик успевает записать итог."""

    def __init__(self, job_id: str) -> None:
        self.job_id = job_id

    def complete_text(self, *, system: str, user: str) -> LLMResult:
        with db_session() as session:
            ContentJobRepository(session).mark_completed(
                self.job_id, content="winner", completed_at=utc_now()
            )
        return LLMResult(text="loser")


class _BrokenRedis:
    def publish(self, channel: str, message: str) -> int:
        raise redis.ConnectionError("down")


@pytest.fixture()
def env(fake_redis, settings_snapshot):
    settings_snapshot.job_delay_sec = 0
    settings_snapshot.queue_max_attempts = 3
    settings_snapshot.queue_backoff_base_ms = 1000
    queue = get_generation_queue()
    publisher = CompletionPublisher(client=fake_redis, channel="job_completed")
    return queue, publisher, fake_redis


def _submit() -> str:
    ack = submit_job(user_id="u1", prompt="AI in schools", content_type="Blog Post Outline")
    return ack.job_id


def _claim(queue, ahead_ms: int = 60_000):
    task = queue.claim(consumer="w-test", now_ms=utc_ms() + ahead_ms)
    assert task is not None
    return task


def _job(job_id: str):
    with db_session() as session:
        return ContentJobRepository(session).get(job_id)


def test_success_writes_content_and_publishes_once(env) -> None:
    queue, publisher, fake = env
    job_id = _submit()
    provider = _StaticProvider("Generated outline")

    assert process_task(_claim(queue), queue=queue, publisher=publisher, provider=provider) == RESULT_SUCCESS

    job = _job(job_id)
    assert job.status == JobStatus.completed
    assert job.generated_content == "Generated outline"
    assert job.completed_at is not None
    assert job.error is None
    assert job.attempts == 1
    assert provider.calls[0][1] == "Please create a blog post outline about: AI in schools"

    assert len(fake.published) == 1
    channel, raw = fake.published[0]
    event = json.loads(raw)
    assert channel == "job_completed"
    assert event["event_type"] == "job_completed"
    assert event["user_id"] == "u1"
    assert event["job_id"] == job_id
    assert event["generated_content"] == "Generated outline"
    assert queue.stats() == {"delayed": 0, "active": 0, "dlq": 0}


def test_failures_stay_processing_then_error_on_last_attempt(env) -> None:
    queue, publisher, fake = env
    job_id = _submit()
    provider = _FailingProvider()

    assert process_task(_claim(queue), queue=queue, publisher=publisher, provider=provider) == RESULT_RETRY
    job = _job(job_id)
    assert job.status == JobStatus.processing
    assert job.error is None

    assert process_task(_claim(queue), queue=queue, publisher=publisher, provider=provider) == RESULT_RETRY
    assert _job(job_id).status == JobStatus.processing

    assert (
        process_task(_claim(queue), queue=queue, publisher=publisher, provider=provider)
        == RESULT_EXHAUSTED
    )
    job = _job(job_id)
    assert job.status == JobStatus.error
    assert ErrCode.LLM_PROVIDER_ERROR in job.error
    assert job.generated_content is None
    assert job.attempts == 3
    assert provider.calls == 3

    assert fake.published == []
    assert queue.stats() == {"delayed": 0, "active": 0, "dlq": 1}


def test_empty_llm_output_is_a_failure(env) -> None:
    queue, publisher, _ = env
    job_id = _submit()
    result = process_task(
        _claim(queue), queue=queue, publisher=publisher, provider=_StaticProvider("   ")
    )
    assert result == RESULT_RETRY
    assert _job(job_id).status == JobStatus.processing


def test_redelivery_after_completion_is_skipped(env) -> None:
    queue, publisher, fake = env
    job_id = _submit()
    task = _claim(queue)
    process_task(task, queue=queue, publisher=publisher, provider=_StaticProvider("first"))

    provider = _StaticProvider("second")
    assert process_task(task, queue=queue, publisher=publisher, provider=provider) == RESULT_SKIPPED
    assert provider.calls == []
    assert _job(job_id).generated_content == "first"
    assert len(fake.published) == 1


def test_redelivery_after_lost_lease_completes(env) -> None:
    queue, publisher, fake = env
    job_id = _submit()
    crashed = _claim(queue)
    with db_session() as session:
        ContentJobRepository(session).mark_processing(crashed.tracking_key)

    assert queue.reap_expired(now_ms=utc_ms() + 10**8) == 1
    task = _claim(queue, ahead_ms=10**9)
    assert task.attempts == 0
    assert process_task(task, queue=queue, publisher=publisher, provider=_StaticProvider("ok")) == RESULT_SUCCESS
    assert _job(job_id).status == JobStatus.completed
    assert len(fake.published) == 1


def test_losing_writer_does_not_publish(env) -> None:
    queue, publisher, fake = env
    job_id = _submit()
    result = process_task(
        _claim(queue), queue=queue, publisher=publisher, provider=_RacingProvider(job_id)
    )
    assert result == RESULT_SKIPPED
    assert _job(job_id).generated_content == "winner"
    assert fake.published == []


def test_missing_record_is_acked_and_skipped(env) -> None:
    queue, publisher, _ = env
    job_id = _submit()
    with db_session() as session:
        ContentJobRepository(session).delete(job_id)

    provider = _StaticProvider("x")
    assert process_task(_claim(queue), queue=queue, publisher=publisher, provider=provider) == RESULT_SKIPPED
    assert provider.calls == []
    assert queue.stats() == {"delayed": 0, "active": 0, "dlq": 0}


def test_terminal_error_is_never_overwritten(env) -> None:
    queue, publisher, _ = env
    job_id = _submit()
    task = _claim(queue)
    with db_session() as session:
        repo = ContentJobRepository(session)
        repo.mark_processing(job_id)
        repo.mark_error(job_id, error="earlier failure")

    assert process_task(task, queue=queue, publisher=publisher, provider=_StaticProvider("late")) == RESULT_SKIPPED
    job = _job(job_id)
    assert job.status == JobStatus.error
    assert job.generated_content is None


def test_bridge_failure_does_not_fail_job(env) -> None:
    queue, _, _ = env
    job_id = _submit()
    publisher = CompletionPublisher(client=_BrokenRedis(), channel="job_completed")

    assert process_task(_claim(queue), queue=queue, publisher=publisher, provider=_StaticProvider("ok")) == RESULT_SUCCESS
    assert _job(job_id).status == JobStatus.completed
    assert queue.stats() == {"delayed": 0, "active": 0, "dlq": 0}
