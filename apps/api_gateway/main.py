"""
API Gateway (FastAPI).

Функции:
- /health
- /metrics
- HTTP API генерации контента (intake + статус)
- WebSocket /v1/ws для push job_completed

Архитектурно:
- intake пишет задачу в БД и ставит её в отложенную очередь Redis
- воркер публикует job_completed в Redis pubsub (completion bridge)
- процесс API подписан на канал и пушит событие в WS пользователя
"""

from __future__ import annotations

import asyncio
from contextlib import suppress
from typing import Any

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from apps.api_gateway.routers.generate_content import router as generate_content_router
from apps.api_gateway.ws import ws_router
from smart_content.bridge.pubsub import CompletionSubscriber
from smart_content.common.config import get_settings
from smart_content.common.logging import get_project_logger, setup_logging
from smart_content.common.metrics import setup_metrics_endpoint
from smart_content.common.observability import setup_observability
from smart_content.contracts.ws_events import JOB_COMPLETED
from smart_content.realtime.notifier import Notifier
from smart_content.realtime.registry import ConnectionRegistry
from smart_content.storage.db import init_db

log = get_project_logger()


def _parse_origins(raw: str) -> list[str]:
    origins = [o.strip() for o in (raw or "").split(",") if o.strip()]
    return origins or ["*"]


def _is_prod_env(app_env: str | None) -> bool:
    env = (app_env or "").strip().lower()
    return env in {"prod", "production"}


def _cors_params() -> tuple[list[str], bool]:
    settings = get_settings()
    allow_origins = _parse_origins(settings.cors_allowed_origins)
    allow_credentials = bool(settings.cors_allow_credentials)

    if _is_prod_env(settings.app_env) and "*" in allow_origins:
        raise RuntimeError("CORS wildcard '*' запрещён в APP_ENV=prod")

    # '*' нельзя использовать вместе с credentials=true
    if "*" in allow_origins:
        allow_credentials = False

    return allow_origins, allow_credentials


def create_app() -> FastAPI:
    app = FastAPI(title="Smart Content Generator", version="0.1.0")
    allow_origins, allow_credentials = _cors_params()
    settings = get_settings()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=allow_origins,
        allow_methods=["*"],
        allow_headers=["*"],
        allow_credentials=allow_credentials,
    )

    setup_metrics_endpoint(app)

    # реестр подключений и notifier живут в процессе API
    app.state.registry = ConnectionRegistry()
    app.state.notifier = Notifier(app.state.registry)
    app.state.bridge_stop = None
    app.state.bridge_task = None

    @app.get("/health")
    def health() -> dict[str, Any]:
        return {"ok": True}

    @app.on_event("startup")
    async def start_bridge_subscriber() -> None:
        if not settings.bridge_subscriber_enabled:
            log.info("bridge_subscriber_disabled")
            return
        subscriber = CompletionSubscriber(channel=settings.completion_channel)
        subscriber.on(JOB_COMPLETED, app.state.notifier.handle_bridge_event)
        stop = asyncio.Event()
        app.state.bridge_stop = stop
        app.state.bridge_task = asyncio.create_task(subscriber.run(stop))

    @app.on_event("shutdown")
    async def stop_bridge_subscriber() -> None:
        stop: asyncio.Event | None = app.state.bridge_stop
        task: asyncio.Task | None = app.state.bridge_task
        if stop is None or task is None:
            return
        stop.set()
        try:
            with suppress(asyncio.CancelledError, asyncio.TimeoutError):
                await asyncio.wait_for(task, timeout=5.0)
        except Exception as e:
            log.warning("bridge_subscriber_failed", extra={"payload": {"err": str(e)[:200]}})

    app.include_router(generate_content_router, prefix="/v1")
    app.include_router(ws_router, prefix="/v1")

    return app


setup_logging()
setup_observability(service_name="api-gateway")

# Автосоздание таблиц в dev (чтобы проект стартовал без ручных миграций)
init_db()

app = create_app()


def main() -> None:
    import uvicorn

    s = get_settings()
    uvicorn.run("apps.api_gateway.main:app", host=s.api_host, port=s.api_port)


if __name__ == "__main__":
    main()
