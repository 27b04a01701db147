"""
Метрики Prometheus для сервиса.

Назначение:
- Экспорт /metrics
- Общие счётчики и гистограммы для intake, воркера, bridge и push-уведомлений
- Используется API Gateway и воркером генерации
"""

from __future__ import annotations

import time
from collections.abc import Iterator
from contextlib import contextmanager

from fastapi import FastAPI, Request
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, Histogram, generate_latest

# =============================================================================
# СЧЁТЧИКИ И МЕТРИКИ
# =============================================================================

REQUESTS_TOTAL = Counter(
    "content_requests_total",
    "Общее количество HTTP запросов",
    ["service", "route", "method", "status"],
)

HTTP_REQUEST_LATENCY_MS = Histogram(
    "content_http_request_latency_ms",
    "Задержка HTTP запроса (мс)",
    ["service", "route", "method"],
    buckets=(5, 10, 25, 50, 100, 250, 500, 1000, 2500, 5000, 10000),
)

JOB_STAGE_LATENCY_MS = Histogram(
    "content_job_stage_latency_ms",
    "Задержка выполнения стадий задачи генерации (мс)",
    ["service", "stage"],
    buckets=(50, 100, 250, 500, 1000, 2500, 5000, 10000, 30000, 60000, 120000),
)

JOBS_SUBMITTED_TOTAL = Counter(
    "content_jobs_submitted_total",
    "Количество принятых intake задач",
    ["content_type", "result"],  # result=queued|validation|queue_fault
)

QUEUE_TASKS_TOTAL = Counter(
    "content_queue_tasks_total",
    "Количество обработанных задач очереди",
    ["service", "queue", "result"],  # success|retry|exhausted|skipped
)

QUEUE_DEPTH = Gauge(
    "content_queue_depth",
    "Текущая глубина очереди по состояниям",
    ["queue", "state"],  # delayed|active|dlq
)

BRIDGE_EVENTS_TOTAL = Counter(
    "content_bridge_events_total",
    "События completion bridge",
    ["direction", "result"],  # publish|receive
)

NOTIFICATIONS_TOTAL = Counter(
    "content_notifications_total",
    "Push-уведомления job_completed",
    ["result"],  # delivered|no_connection|send_failed
)

LIVE_CONNECTIONS = Gauge(
    "content_live_connections",
    "Количество активных WS-подключений в процессе",
)

METRICS_COLLECTION_ERRORS_TOTAL = Counter(
    "content_metrics_collection_errors_total",
    "Ошибки сборки служебных метрик",
    ["source"],
)


@contextmanager
def track_stage_latency(service: str, stage: str) -> Iterator[None]:
    started = time.perf_counter()
    try:
        yield
    finally:
        elapsed_ms = (time.perf_counter() - started) * 1000
        JOB_STAGE_LATENCY_MS.labels(service=service, stage=stage).observe(elapsed_ms)


def refresh_queue_metrics() -> None:
    try:
        from smart_content.queue.dispatcher import get_generation_queue

        queue = get_generation_queue()
        for state, value in queue.stats().items():
            QUEUE_DEPTH.labels(queue=queue.name, state=state).set(value)
    except Exception:
        METRICS_COLLECTION_ERRORS_TOTAL.labels(source="queue_metrics").inc()


# =============================================================================
# ENDPOINT /metrics
# =============================================================================
def setup_metrics_endpoint(app: FastAPI) -> None:
    """
    Регистрирует endpoint /metrics для Prometheus.
    """

    @app.middleware("http")
    async def http_metrics(request: Request, call_next):
        route = request.url.path
        method = request.method
        started = time.perf_counter()

        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - started) * 1000
        status_code = str(response.status_code)

        REQUESTS_TOTAL.labels(
            service="api-gateway",
            route=route,
            method=method,
            status=status_code,
        ).inc()
        HTTP_REQUEST_LATENCY_MS.labels(
            service="api-gateway",
            route=route,
            method=method,
        ).observe(elapsed_ms)
        return response

    @app.get("/metrics")
    def metrics() -> Response:
        refresh_queue_metrics()
        return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)
