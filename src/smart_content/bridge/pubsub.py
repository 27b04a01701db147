"""
Completion bridge: worker -> Redis pub/sub -> API процесс.

Назначение:
- воркер публикует job_completed после записи результата в БД
- API процесс подписан на канал и передаёт событие в Notifier

Важно:
- доставка fire-and-forget: нет подписчика, событие теряется;
  клиент видит результат через GET статуса
- сбой публикации не валит задачу: логируем bridge_miss и идём дальше
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Awaitable, Callable
from contextlib import suppress
from typing import Any

import redis

from smart_content.common.config import get_settings
from smart_content.common.errors import ErrCode
from smart_content.common.logging import get_project_logger
from smart_content.common.metrics import BRIDGE_EVENTS_TOTAL
from smart_content.contracts.ws_events import JOB_COMPLETED, JobCompletedEvent
from smart_content.queue.redis import redis_client

log = get_project_logger()

EventHandler = Callable[[dict[str, Any]], Awaitable[None]]


# =============================================================================
# PUBLISHER (worker)
# =============================================================================
class CompletionPublisher:
    def __init__(self, *, client: redis.Redis | None = None, channel: str | None = None) -> None:
        self._client = client
        self.channel = channel or get_settings().completion_channel

    def publish(self, event: JobCompletedEvent) -> bool:
        """
        Опубликовать job_completed.
        False: публикация не удалась (ошибка поглощена и залогирована).
        """
        try:
            r = self._client if self._client is not None else redis_client()
            receivers = r.publish(self.channel, json.dumps(event.to_payload(), ensure_ascii=False))
        except Exception as e:
            BRIDGE_EVENTS_TOTAL.labels(direction="publish", result="error").inc()
            log.warning(
                ErrCode.BRIDGE_MISS,
                extra={
                    "payload": {
                        "channel": self.channel,
                        "job_id": event.job_id,
                        "err": str(e)[:200],
                    }
                },
            )
            return False

        BRIDGE_EVENTS_TOTAL.labels(direction="publish", result="ok").inc()
        log.info(
            "bridge_published",
            extra={"payload": {"channel": self.channel, "job_id": event.job_id, "receivers": receivers}},
        )
        return True


# =============================================================================
# SUBSCRIBER (api)
# =============================================================================
class CompletionSubscriber:
    """
    Явный consumer-цикл поверх синхронного redis pubsub.
    Сообщения разбираются по event_type и отдаются зарегистрированным обработчикам.
    """

    def __init__(self, *, client: redis.Redis | None = None, channel: str | None = None) -> None:
        self._client = client
        self.channel = channel or get_settings().completion_channel
        self._handlers: dict[str, EventHandler] = {}

    def on(self, event_type: str, handler: EventHandler) -> None:
        self._handlers[event_type] = handler

    async def dispatch(self, raw: str | bytes) -> bool:
        """
        Обработать одно сообщение канала.
        False: сообщение отброшено (битый JSON, неизвестный тип, ошибка обработчика).
        """
        try:
            data = json.loads(raw)
        except (TypeError, ValueError):
            BRIDGE_EVENTS_TOTAL.labels(direction="receive", result="bad_payload").inc()
            log.warning("bridge_bad_payload", extra={"payload": {"channel": self.channel}})
            return False
        if not isinstance(data, dict):
            BRIDGE_EVENTS_TOTAL.labels(direction="receive", result="bad_payload").inc()
            return False

        event_type = str(data.get("event_type") or "")
        handler = self._handlers.get(event_type)
        if handler is None:
            BRIDGE_EVENTS_TOTAL.labels(direction="receive", result="unknown_event").inc()
            log.info(
                "bridge_unknown_event",
                extra={"payload": {"channel": self.channel, "event_type": event_type}},
            )
            return False

        try:
            await handler(data)
        except Exception as e:
            BRIDGE_EVENTS_TOTAL.labels(direction="receive", result="handler_error").inc()
            log.warning(
                "bridge_handler_failed",
                extra={"payload": {"event_type": event_type, "err": str(e)[:200]}},
            )
            return False

        BRIDGE_EVENTS_TOTAL.labels(direction="receive", result="ok").inc()
        return True

    def _subscribe(self, r: redis.Redis) -> Any:
        pubsub = r.pubsub()
        try:
            pubsub.subscribe(self.channel)
        except redis.RedisError:
            pubsub.close()
            raise
        log.info("bridge_subscribed", extra={"payload": {"channel": self.channel}})
        return pubsub

    @staticmethod
    async def _pause(stop: asyncio.Event, seconds: float) -> None:
        with suppress(asyncio.TimeoutError):
            await asyncio.wait_for(stop.wait(), timeout=seconds)

    async def run(self, stop: asyncio.Event, *, retry_sec: float = 1.0) -> None:
        """
        Читать канал до stop.set().
        redis клиент синхронный, поэтому subscribe/get_message уходят в поток.
        Redis недоступен: подписка повторяется каждые retry_sec.
        """
        r = self._client if self._client is not None else redis_client()
        pubsub = None

        try:
            while not stop.is_set():
                if pubsub is None:
                    try:
                        pubsub = await asyncio.to_thread(self._subscribe, r)
                    except redis.RedisError as e:
                        BRIDGE_EVENTS_TOTAL.labels(direction="receive", result="subscribe_error").inc()
                        log.warning(
                            "bridge_subscribe_failed",
                            extra={"payload": {"channel": self.channel, "err": str(e)[:200]}},
                        )
                        await self._pause(stop, retry_sec)
                        continue

                try:
                    msg = await asyncio.to_thread(pubsub.get_message, True, 1.0)
                except redis.RedisError as e:
                    log.warning(
                        "bridge_receive_failed",
                        extra={"payload": {"channel": self.channel, "err": str(e)[:200]}},
                    )
                    await self._pause(stop, retry_sec)
                    continue
                if not msg:
                    await asyncio.sleep(0.01)
                    continue
                if msg.get("type") != "message":
                    continue
                data = msg.get("data")
                if not data:
                    continue
                await self.dispatch(data)
        finally:
            if pubsub is not None:
                try:
                    pubsub.unsubscribe(self.channel)
                    pubsub.close()
                except redis.RedisError:
                    log.debug("bridge_unsubscribe_failed", extra={"payload": {"channel": self.channel}})
                log.info("bridge_unsubscribed", extra={"payload": {"channel": self.channel}})


def build_completion_event(
    *, user_id: str, job_id: str, generated_content: str, completed_at: str
) -> JobCompletedEvent:
    return JobCompletedEvent(
        user_id=user_id,
        job_id=job_id,
        status="completed",
        generated_content=generated_content,
        completed_at=completed_at,
        event_type=JOB_COMPLETED,
    )
