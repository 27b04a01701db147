"""
WebSocket endpoint для push-уведомлений (/v1/ws).

Протокол (MVP):
- токен проверяется ДО accept: Authorization: Bearer <jwt> или ?token=<jwt>
  (браузер не умеет ставить заголовки на handshake)
- неуспех -> close 1008 "unauthorized"
- после accept подключение регистрируется за user_id (последнее выигрывает)
- сервер пушит {"event_type":"job_completed", ...} из completion bridge
- клиент может слать {"event_type":"ping"} -> {"event_type":"pong"}

Важно:
- при отключении снимаем привязку, только если она всё ещё наша
"""

from __future__ import annotations

import json

from fastapi import APIRouter, WebSocket, WebSocketDisconnect, status

from apps.api_gateway.deps import audit_allow, audit_deny, get_registry
from smart_content.common.errors import ErrCode, UnauthorizedError
from smart_content.common.logging import get_project_logger
from smart_content.common.security import AuthContext, require_auth
from smart_content.contracts.versions import WS_SCHEMA_VERSION
from smart_content.contracts.ws_events import ErrorEvent

log = get_project_logger()

ws_router = APIRouter()


async def _authorize_ws(ws: WebSocket) -> AuthContext | None:
    try:
        ctx = require_auth(
            authorization=ws.headers.get("authorization"),
            token=ws.query_params.get("token"),
        )
    except UnauthorizedError as e:
        audit_deny(
            conn=ws,
            status_code=status.WS_1008_POLICY_VIOLATION,
            reason=e.message,
            error_code=e.code,
        )
        await ws.close(code=status.WS_1008_POLICY_VIOLATION, reason=ErrCode.UNAUTHORIZED)
        return None

    audit_allow(conn=ws, ctx=ctx, reason="ws_user_auth_ok")
    return ctx


async def _send_error(ws: WebSocket, code: str, message: str) -> None:
    await ws.send_text(json.dumps(ErrorEvent(code=code, message=message).to_payload(), ensure_ascii=False))


@ws_router.websocket("/ws")
async def websocket_endpoint(ws: WebSocket) -> None:
    ctx = await _authorize_ws(ws)
    if ctx is None:
        return

    await ws.accept()
    registry = get_registry(ws)
    user_id = ctx.user_id
    registry.register(user_id, ws)

    try:
        while True:
            raw = await ws.receive_text()
            try:
                event = json.loads(raw)
            except ValueError:
                await _send_error(ws, "bad_json", "Невалидный JSON")
                continue
            if not isinstance(event, dict):
                await _send_error(ws, "bad_event", "Ожидался JSON-объект")
                continue

            et = event.get("event_type")
            if et == "ping":
                await ws.send_text(
                    json.dumps({"event_type": "pong", "schema_version": WS_SCHEMA_VERSION})
                )
                continue

            await _send_error(ws, "bad_event", "Неизвестный event_type")
    except WebSocketDisconnect:
        log.info("ws_disconnected", extra={"payload": {"user_id": user_id}})
    finally:
        registry.unregister(user_id, ws)
