from __future__ import annotations

import threading

import pytest
import redis

from apps.worker_generation.main import GenerationWorker, _parse_args
from smart_content.bridge.pubsub import CompletionPublisher
from smart_content.domain.enums import JobStatus
from smart_content.llm.mock import MockLLMProvider
from smart_content.queue.dispatcher import get_generation_queue
from smart_content.queue.ratelimit import FixedWindowRateLimiter
from smart_content.services.intake_service import submit_job
from smart_content.storage.db import db_session
from smart_content.storage.repositories import ContentJobRepository


@pytest.fixture()
def ready_jobs(fake_redis, settings_snapshot) -> list[str]:
    settings_snapshot.job_delay_sec = 0
    return [
        submit_job(user_id="u1", prompt=f"topic {i}", content_type="Product Description").job_id
        for i in range(3)
    ]


def _worker(fake_redis, *, concurrency: int, rate_max: int) -> GenerationWorker:
    return GenerationWorker(
        queue=get_generation_queue(),
        limiter=FixedWindowRateLimiter(
            "q-worker-test", client=fake_redis, max_events=rate_max, window_sec=3600
        ),
        publisher=CompletionPublisher(client=fake_redis, channel="job_completed"),
        concurrency=concurrency,
        provider=MockLLMProvider(),
        name="w-test",
        poll_interval_sec=0.01,
        reap_interval_sec=0.0,
    )


def _status(job_id: str) -> JobStatus:
    with db_session() as session:
        return ContentJobRepository(session).get(job_id).status


def test_drain_once_processes_all_ready_jobs(fake_redis, ready_jobs) -> None:
    worker = _worker(fake_redis, concurrency=2, rate_max=10)
    assert worker.drain_once() == 3
    assert all(_status(j) == JobStatus.completed for j in ready_jobs)
    assert len(fake_redis.published) == 3
    assert get_generation_queue().stats() == {"delayed": 0, "active": 0, "dlq": 0}


def test_shutdown_while_rate_limited_releases_claim(fake_redis, ready_jobs) -> None:
    worker = _worker(fake_redis, concurrency=1, rate_max=1)
    timer = threading.Timer(0.3, worker.shutdown)
    timer.start()
    try:
        started = worker.drain_once()
    finally:
        timer.cancel()

    assert started == 1
    assert worker.stopping is True
    statuses = [_status(j) for j in ready_jobs]
    assert statuses.count(JobStatus.completed) == 1
    assert statuses.count(JobStatus.queued) == 2
    # освобождённая задача не потеряла попытку
    stats = get_generation_queue().stats()
    assert stats == {"delayed": 2, "active": 0, "dlq": 0}


class _FlakyLimiter(FixedWindowRateLimiter):
    def __init__(self, *args, failures: int, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.failures = failures

    def wait_for_slot(self, stop, *, poll_sec: float = 1.0) -> bool:
        if self.failures != 0:
            self.failures -= 1
            raise redis.ConnectionError("rate limit backend is down")
        return super().wait_for_slot(stop, poll_sec=poll_sec)


def _flaky_worker(fake_redis, *, failures: int) -> GenerationWorker:
    worker = _worker(fake_redis, concurrency=1, rate_max=10)
    worker.limiter = _FlakyLimiter(
        "q-worker-test", client=fake_redis, max_events=10, window_sec=3600, failures=failures
    )
    return worker


def test_rate_limit_backend_error_returns_claim(fake_redis, ready_jobs) -> None:
    worker = _flaky_worker(fake_redis, failures=-1)
    assert worker.drain_once() == 0
    assert all(_status(j) == JobStatus.queued for j in ready_jobs)
    assert get_generation_queue().stats() == {"delayed": 3, "active": 0, "dlq": 0}


def test_worker_survives_rate_limit_backend_error(fake_redis, ready_jobs) -> None:
    worker = _flaky_worker(fake_redis, failures=1)
    timer = threading.Timer(0.5, worker.shutdown)
    timer.start()
    try:
        started = worker.run()
    finally:
        timer.cancel()

    assert started == 3
    assert all(_status(j) == JobStatus.completed for j in ready_jobs)
    assert get_generation_queue().stats() == {"delayed": 0, "active": 0, "dlq": 0}


def test_stopped_worker_does_not_claim(fake_redis, ready_jobs) -> None:
    worker = _worker(fake_redis, concurrency=1, rate_max=10)
    worker.shutdown()
    assert worker.run() == 0
    assert all(_status(j) == JobStatus.queued for j in ready_jobs)


def test_cli_args() -> None:
    args = _parse_args(["--concurrency", "3", "--burst", "--name", "w1"])
    assert args.concurrency == 3
    assert args.burst is True
    assert args.name == "w1"
