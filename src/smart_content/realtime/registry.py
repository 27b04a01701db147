"""
Реестр живых WebSocket-подключений процесса.

Правила:
- ключ user_id, значение: одно подключение (последнее выигрывает)
- реестр принадлежит процессу API (app.state), не глобальный модуль
- доступ только из event loop, поэтому без блокировок
"""

from __future__ import annotations

from typing import Any, Protocol

from smart_content.common.logging import get_project_logger
from smart_content.common.metrics import LIVE_CONNECTIONS

log = get_project_logger()


class ConnectionHandle(Protocol):
    async def send_text(self, data: str) -> Any: ...


class ConnectionRegistry:
    def __init__(self) -> None:
        self._by_user: dict[str, ConnectionHandle] = {}

    def register(self, user_id: str, handle: ConnectionHandle) -> ConnectionHandle | None:
        """
        Привязать подключение к пользователю.
        Возвращает вытесненное подключение (если было).
        """
        previous = self._by_user.get(user_id)
        self._by_user[user_id] = handle
        LIVE_CONNECTIONS.set(len(self._by_user))
        log.info(
            "ws_registered",
            extra={"payload": {"user_id": user_id, "replaced": previous is not None}},
        )
        return previous if previous is not handle else None

    def unregister(self, user_id: str, handle: ConnectionHandle) -> bool:
        """
        Снять привязку, только если она всё ещё указывает на это подключение:
        закрытие старого сокета не должно отвязать более новый.
        """
        if self._by_user.get(user_id) is not handle:
            return False
        del self._by_user[user_id]
        LIVE_CONNECTIONS.set(len(self._by_user))
        log.info("ws_unregistered", extra={"payload": {"user_id": user_id}})
        return True

    def get(self, user_id: str) -> ConnectionHandle | None:
        return self._by_user.get(user_id)

    def __contains__(self, user_id: object) -> bool:
        return user_id in self._by_user

    def __len__(self) -> int:
        return len(self._by_user)
