"""
FastAPI Depends.

Сюда выносим:
- проверку авторизации (Bearer JWT)
- аудит решений авторизации (security_audit_allow/deny)
- доступ к объектам процесса в app.state
"""

from __future__ import annotations

from fastapi import Header, HTTPException, Request, status
from starlette.requests import HTTPConnection

from smart_content.common.errors import UnauthorizedError
from smart_content.common.logging import get_project_logger
from smart_content.common.security import AuthContext, require_auth
from smart_content.realtime.registry import ConnectionRegistry

log = get_project_logger()


def _request_meta(conn: HTTPConnection | None) -> tuple[str, str, str | None]:
    if conn is None:
        return "unknown", "UNKNOWN", None
    endpoint = conn.url.path
    method = conn.scope.get("method") or "WS"
    client_ip = conn.client.host if conn.client else None
    return endpoint, method, client_ip


def audit_allow(*, conn: HTTPConnection | None, ctx: AuthContext, reason: str) -> None:
    endpoint, method, client_ip = _request_meta(conn)
    log.info(
        "security_audit_allow",
        extra={
            "payload": {
                "endpoint": endpoint,
                "method": method,
                "subject": ctx.subject,
                "auth_type": ctx.auth_type,
                "reason": reason,
                "client_ip": client_ip,
            }
        },
    )


def audit_deny(
    *,
    conn: HTTPConnection | None,
    status_code: int,
    reason: str,
    error_code: str,
) -> None:
    endpoint, method, client_ip = _request_meta(conn)
    log.warning(
        "security_audit_deny",
        extra={
            "payload": {
                "endpoint": endpoint,
                "method": method,
                "status_code": status_code,
                "reason": reason,
                "error_code": error_code,
                "client_ip": client_ip,
            }
        },
    )


def auth_dep(
    request: Request,
    authorization: str | None = Header(default=None, alias="Authorization"),
) -> AuthContext:
    """
    Проверка авторизации для HTTP.
    """
    try:
        ctx = require_auth(authorization=authorization)
    except UnauthorizedError as e:
        audit_deny(
            conn=request,
            status_code=status.HTTP_401_UNAUTHORIZED,
            reason=e.message,
            error_code=e.code,
        )
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail={"code": e.code, "message": e.message},
            headers={"WWW-Authenticate": "Bearer"},
        ) from e
    audit_allow(conn=request, ctx=ctx, reason="auth_ok")
    return ctx


def get_registry(conn: HTTPConnection) -> ConnectionRegistry:
    return conn.app.state.registry