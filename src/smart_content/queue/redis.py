"""
Redis-клиент для очереди, rate limit и completion bridge.

Назначение:
- Единая точка подключения к Redis
- Используется intake, воркером и подписчиком bridge на API
"""

from __future__ import annotations

import redis

from smart_content.common.config import get_settings

_settings = get_settings()
_client: redis.Redis | None = None


def redis_client() -> redis.Redis:
    """
    Singleton Redis client.
    """
    global _client
    if _client is None:
        _client = redis.Redis.from_url(_settings.redis_url, decode_responses=True)
    return _client


def close_redis() -> None:
    global _client
    if _client is not None:
        _client.close()
        _client = None
