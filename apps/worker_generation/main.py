"""
Worker Generation.

Алгоритм:
- ждём свободный слот (не более K задач в работе)
- захватываем готовую задачу из отложенной очереди (lease)
- ждём слот кластерного rate limit (не более N стартов за окно)
- обрабатываем в пуле потоков: processing -> LLM -> completed/error
- периодически возвращаем в очередь задачи с истёкшим lease

Остановка (SIGINT/SIGTERM):
- перестаём захватывать
- задачу, не дождавшуюся rate limit, возвращаем в очередь без расхода попытки
- дожидаемся задач в работе, закрываем Redis и БД

Запуск:
    python -m apps.worker_generation.main
    python -m apps.worker_generation.main --concurrency 2 --burst
"""

from __future__ import annotations

import argparse
import signal
import threading
import time
from concurrent.futures import ThreadPoolExecutor

import redis

from smart_content.bridge.pubsub import CompletionPublisher
from smart_content.common.config import get_settings
from smart_content.common.ids import new_consumer_name
from smart_content.common.logging import get_project_logger, setup_logging
from smart_content.common.metrics import QUEUE_TASKS_TOTAL
from smart_content.contracts.queue_events import QueuedTask
from smart_content.llm.base import LLMProvider
from smart_content.queue.delayed import DelayedTaskQueue
from smart_content.queue.dispatcher import get_generation_queue, get_worker_rate_limiter
from smart_content.queue.ratelimit import FixedWindowRateLimiter
from smart_content.queue.redis import close_redis
from smart_content.services.job_processor import SERVICE, process_task
from smart_content.storage.db import dispose_db, init_db

log = get_project_logger()


class GenerationWorker:
    def __init__(
        self,
        *,
        queue: DelayedTaskQueue,
        limiter: FixedWindowRateLimiter,
        publisher: CompletionPublisher,
        concurrency: int,
        provider: LLMProvider | None = None,
        name: str | None = None,
        poll_interval_sec: float = 1.0,
        reap_interval_sec: float = 15.0,
    ) -> None:
        self.queue = queue
        self.limiter = limiter
        self.publisher = publisher
        self.provider = provider
        self.concurrency = max(1, int(concurrency))
        self.name = name or new_consumer_name("worker-generation")
        self.poll_interval_sec = max(0.01, float(poll_interval_sec))
        self.reap_interval_sec = max(0.0, float(reap_interval_sec))

        self._stop = threading.Event()
        self._slots = threading.BoundedSemaphore(self.concurrency)
        self._last_reap = 0.0

    @property
    def stopping(self) -> bool:
        return self._stop.is_set()

    def shutdown(self) -> None:
        if not self._stop.is_set():
            log.info("worker_generation_stopping", extra={"payload": {"worker": self.name}})
        self._stop.set()

    # -------------------------------------------------------------------------
    # internals
    # -------------------------------------------------------------------------
    def _maybe_reap(self) -> None:
        now = time.monotonic()
        if now - self._last_reap < self.reap_interval_sec:
            return
        self._last_reap = now
        try:
            self.queue.reap_expired()
        except redis.RedisError as e:
            log.warning("worker_reap_failed", extra={"payload": {"err": str(e)[:200]}})

    def _execute(self, task: QueuedTask) -> None:
        try:
            process_task(
                task,
                queue=self.queue,
                publisher=self.publisher,
                provider=self.provider,
            )
        except Exception as e:
            # задача осталась под lease: reaper вернёт её в очередь
            QUEUE_TASKS_TOTAL.labels(service=SERVICE, queue=self.queue.name, result="crashed").inc()
            log.error(
                "worker_generation_task_crashed",
                extra={"payload": {"tracking_key": task.tracking_key, "err": str(e)[:200]}},
                exc_info=True,
            )
        finally:
            self._slots.release()

    def _claim(self) -> QueuedTask | None:
        try:
            return self.queue.claim(consumer=self.name)
        except redis.RedisError as e:
            log.warning("worker_claim_failed", extra={"payload": {"err": str(e)[:200]}})
            self._stop.wait(self.poll_interval_sec)
            return None

    def _release_quietly(self, task: QueuedTask) -> None:
        try:
            self.queue.release(task)
        except redis.RedisError as e:
            # не удалось вернуть: задачу подберёт reaper по истечении lease
            log.warning(
                "worker_release_failed",
                extra={"payload": {"tracking_key": task.tracking_key, "err": str(e)[:200]}},
            )

    # -------------------------------------------------------------------------
    # main loop
    # -------------------------------------------------------------------------
    def run(self, *, burst: bool = False) -> int:
        """
        Крутить цикл до shutdown() (или, в burst-режиме, пока есть готовые задачи).
        Возвращает число запущенных задач.
        """
        started = 0
        log.info(
            "worker_generation_ready",
            extra={
                "payload": {
                    "worker": self.name,
                    "queue": self.queue.name,
                    "concurrency": self.concurrency,
                    "rate_limit": f"{self.limiter.max_events}/{self.limiter.window_sec}s",
                    "burst": burst,
                }
            },
        )

        executor = ThreadPoolExecutor(
            max_workers=self.concurrency,
            thread_name_prefix="generation",
        )
        try:
            while not self._stop.is_set():
                self._maybe_reap()

                if not self._slots.acquire(timeout=self.poll_interval_sec):
                    continue

                task = self._claim()
                if task is None:
                    self._slots.release()
                    if burst:
                        break
                    self._stop.wait(self.poll_interval_sec)
                    continue

                try:
                    got_slot = self.limiter.wait_for_slot(self._stop, poll_sec=self.poll_interval_sec)
                except redis.RedisError as e:
                    self._release_quietly(task)
                    self._slots.release()
                    log.warning(
                        "worker_rate_limit_failed",
                        extra={"payload": {"tracking_key": task.tracking_key, "err": str(e)[:200]}},
                    )
                    if burst:
                        break
                    self._stop.wait(self.poll_interval_sec)
                    continue

                if not got_slot:
                    self._release_quietly(task)
                    self._slots.release()
                    log.info(
                        "worker_generation_released",
                        extra={"payload": {"tracking_key": task.tracking_key}},
                    )
                    break

                executor.submit(self._execute, task)
                started += 1
        finally:
            # дожидаемся задач в работе
            executor.shutdown(wait=True)

        log.info(
            "worker_generation_stopped",
            extra={"payload": {"worker": self.name, "started": started}},
        )
        return started

    def drain_once(self) -> int:
        """Обработать всё, что готово сейчас, и вернуться."""
        return self.run(burst=True)


def build_worker(
    *,
    concurrency: int | None = None,
    name: str | None = None,
    provider: LLMProvider | None = None,
) -> GenerationWorker:
    s = get_settings()
    return GenerationWorker(
        queue=get_generation_queue(),
        limiter=get_worker_rate_limiter(),
        publisher=CompletionPublisher(channel=s.completion_channel),
        concurrency=concurrency or s.worker_concurrency,
        provider=provider,
        name=name,
        poll_interval_sec=s.worker_poll_interval_sec,
        reap_interval_sec=s.worker_reap_interval_sec,
    )


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run content generation worker")
    parser.add_argument(
        "--concurrency",
        "-c",
        type=int,
        default=None,
        help="Max tasks in flight (default: WORKER_CONCURRENCY)",
    )
    parser.add_argument(
        "--burst",
        "-b",
        action="store_true",
        help="Process ready tasks and exit",
    )
    parser.add_argument(
        "--name",
        "-n",
        default=None,
        help="Worker name (auto-generated if not specified)",
    )
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> None:
    args = _parse_args(argv)
    setup_logging()
    init_db()

    worker = build_worker(concurrency=args.concurrency, name=args.name)

    def _on_signal(signum, _frame) -> None:
        log.info("worker_generation_signal", extra={"payload": {"signal": signum}})
        worker.shutdown()

    signal.signal(signal.SIGINT, _on_signal)
    signal.signal(signal.SIGTERM, _on_signal)

    try:
        worker.run(burst=args.burst)
    finally:
        close_redis()
        dispose_db()


if __name__ == "__main__":
    main()
