"""
Утилиты безопасности и авторизации.

Поддерживаемые режимы (AUTH_MODE):
- jwt:  проверка Bearer JWT через shared secret или OIDC/JWKS
- none: без авторизации (ТОЛЬКО dev, все запросы от "anonymous")

Идентичность пользователя выдаёт внешний сервис авторизации;
здесь только проверяем подпись и достаём user_id из claim (JWT_USER_CLAIM).
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache
from typing import Any

import jwt
import requests

from .config import get_settings
from .errors import UnauthorizedError


@dataclass(frozen=True)
class AuthContext:
    subject: str
    auth_type: str
    claims: dict[str, Any] | None = None

    @property
    def user_id(self) -> str:
        return self.subject


def _jwt_algorithms(raw: str) -> list[str]:
    algos = [a.strip() for a in (raw or "").split(",") if a.strip()]
    return algos or ["HS256"]


def extract_bearer(authorization: str | None) -> str | None:
    if not authorization:
        return None
    prefix = "bearer "
    if authorization.lower().startswith(prefix):
        return authorization[len(prefix) :].strip() or None
    return None


def _is_prod_env(app_env: str | None) -> bool:
    env = (app_env or "").strip().lower()
    return env in {"prod", "production"}


@lru_cache(maxsize=8)
def _get_jwks_client(jwks_url: str) -> jwt.PyJWKClient:
    return jwt.PyJWKClient(jwks_url)


@lru_cache(maxsize=8)
def _discover_jwks_url(issuer_url: str, timeout_s: int) -> str:
    discovery = issuer_url.rstrip("/") + "/.well-known/openid-configuration"
    try:
        resp = requests.get(discovery, timeout=timeout_s)
        resp.raise_for_status()
        data = resp.json()
    except (requests.RequestException, ValueError) as e:
        raise UnauthorizedError("Не удалось получить OIDC discovery", {"err": str(e)}) from e

    jwks = data.get("jwks_uri")
    if not jwks:
        raise UnauthorizedError("OIDC discovery не содержит jwks_uri")
    return str(jwks)


def _verify_jwt(token: str) -> dict[str, Any]:
    s = get_settings()
    algos = _jwt_algorithms(s.oidc_algorithms)
    audience = s.oidc_audience
    issuer = s.oidc_issuer_url
    leeway = int(s.jwt_clock_skew_sec or 0)

    kwargs: dict[str, Any] = {
        "algorithms": algos,
        "options": {"verify_aud": bool(audience)},
        "leeway": leeway,
    }
    if audience:
        kwargs["audience"] = audience
    if issuer:
        kwargs["issuer"] = issuer

    secret = (s.jwt_shared_secret or "").strip()
    if secret:
        try:
            return jwt.decode(token, secret, **kwargs)
        except jwt.PyJWTError as e:
            raise UnauthorizedError("JWT не прошёл проверку", {"err": str(e)}) from e

    jwks_url = (s.oidc_jwks_url or "").strip()
    if not jwks_url:
        if not issuer:
            raise UnauthorizedError(
                "JWT не настроен: укажи JWT_SHARED_SECRET, OIDC_JWKS_URL или OIDC_ISSUER_URL"
            )
        jwks_url = _discover_jwks_url(issuer, int(s.oidc_discovery_timeout_sec or 5))

    try:
        key = _get_jwks_client(jwks_url).get_signing_key_from_jwt(token).key
        return jwt.decode(token, key=key, **kwargs)
    except jwt.PyJWTError as e:
        raise UnauthorizedError("JWT не прошёл проверку", {"err": str(e)}) from e


def _user_id_from_claims(claims: dict[str, Any]) -> str:
    claim_key = (get_settings().jwt_user_claim or "sub").strip()
    raw = claims.get(claim_key)
    if raw is None or not str(raw).strip():
        raise UnauthorizedError("JWT не содержит идентификатор пользователя", {"claim": claim_key})
    return str(raw).strip()


def require_auth(*, authorization: str | None, token: str | None = None) -> AuthContext:
    """
    Проверка авторизации для HTTP и WS:
    - AUTH_MODE=none: без проверки (dev)
    - AUTH_MODE=jwt: Bearer JWT из заголовка Authorization, либо token
      (WS-клиенты браузера не умеют ставить заголовки на handshake)
    """
    settings = get_settings()
    mode = (settings.auth_mode or "jwt").lower().strip()

    if mode == "none":
        if _is_prod_env(settings.app_env):
            raise UnauthorizedError("AUTH_MODE=none запрещён в APP_ENV=prod")
        return AuthContext(subject="anonymous", auth_type="none")

    if mode != "jwt":
        raise UnauthorizedError("Неизвестный режим авторизации")

    raw_token = extract_bearer(authorization) or (token or "").strip()
    if not raw_token:
        raise UnauthorizedError("Требуется Bearer JWT")

    claims = _verify_jwt(raw_token)
    return AuthContext(subject=_user_id_from_claims(claims), auth_type="jwt", claims=claims)
