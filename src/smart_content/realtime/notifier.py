"""
Push-уведомления о завершении задач.

Назначение:
- получить job_completed из bridge
- найти подключение пользователя в реестре и отправить payload

Важно:
- пользователь не подключён -> молча пропускаем (результат доступен через GET)
- ошибка отправки не пробрасывается
"""

from __future__ import annotations

import json
from typing import Any

from smart_content.common.logging import get_project_logger
from smart_content.common.metrics import NOTIFICATIONS_TOTAL
from smart_content.contracts.ws_events import JobCompletedEvent

from .registry import ConnectionRegistry

log = get_project_logger()


class Notifier:
    def __init__(self, registry: ConnectionRegistry) -> None:
        self.registry = registry

    async def notify(self, event: JobCompletedEvent) -> bool:
        handle = self.registry.get(event.user_id)
        if handle is None:
            NOTIFICATIONS_TOTAL.labels(result="no_connection").inc()
            log.debug(
                "notify_skipped_no_connection",
                extra={"payload": {"user_id": event.user_id, "job_id": event.job_id}},
            )
            return False

        try:
            await handle.send_text(json.dumps(event.to_payload(), ensure_ascii=False))
        except Exception as e:
            NOTIFICATIONS_TOTAL.labels(result="send_failed").inc()
            log.warning(
                "notify_send_failed",
                extra={
                    "payload": {
                        "user_id": event.user_id,
                        "job_id": event.job_id,
                        "err": str(e)[:200],
                    }
                },
            )
            return False

        NOTIFICATIONS_TOTAL.labels(result="delivered").inc()
        log.info(
            "notify_delivered",
            extra={"payload": {"user_id": event.user_id, "job_id": event.job_id}},
        )
        return True

    async def handle_bridge_event(self, raw: dict[str, Any]) -> None:
        """Обработчик для CompletionSubscriber.on("job_completed", ...)."""
        await self.notify(JobCompletedEvent.from_payload(raw))
