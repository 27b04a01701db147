from __future__ import annotations

import fnmatch
import os
import tempfile
from typing import Any

import pytest
import redis

# Окружение должно быть выставлено до импорта smart_content (engine создаётся на импорте)
_TMP_DIR = tempfile.mkdtemp(prefix="smart-content-tests-")
os.environ["APP_ENV"] = "test"
os.environ["DATABASE_DSN"] = f"sqlite:///{_TMP_DIR}/test.db"
os.environ["DB_AUTO_CREATE"] = "true"
os.environ["AUTH_MODE"] = "jwt"
os.environ["JWT_SHARED_SECRET"] = "test-secret"
os.environ["LLM_PROVIDER"] = "mock"
os.environ["BRIDGE_SUBSCRIBER_ENABLED"] = "false"
os.environ["CORS_ALLOWED_ORIGINS"] = "http://localhost:3000"

from smart_content.common.config import get_settings  # noqa: E402
from smart_content.storage.db import db_session, init_db  # noqa: E402
from smart_content.storage.models import ContentJob  # noqa: E402


# =============================================================================
# IN-MEMORY REDIS
# =============================================================================
class _FakePubSub:
    def __init__(self, owner: FakeRedis) -> None:
        self.owner = owner
        self.channels: list[str] = []
        self.closed = False

    def subscribe(self, *channels: str) -> None:
        self.channels.extend(channels)

    def unsubscribe(self, *channels: str) -> None:
        for ch in channels:
            if ch in self.channels:
                self.channels.remove(ch)

    def get_message(self, ignore_subscribe_messages: bool = False, timeout: float = 0.0):
        if self.owner.inbox:
            return self.owner.inbox.pop(0)
        return None

    def close(self) -> None:
        self.closed = True


class _FakePipeline:
    def __init__(self, owner: FakeRedis) -> None:
        self.owner = owner
        self.calls: list[tuple[str, tuple, dict]] = []

    def __getattr__(self, name: str):
        def _record(*args: Any, **kwargs: Any) -> _FakePipeline:
            self.calls.append((name, args, kwargs))
            return self

        return _record

    def execute(self) -> list[Any]:
        self.owner._check()
        out = [getattr(self.owner, name)(*args, **kwargs) for name, args, kwargs in self.calls]
        self.calls = []
        return out


class FakeRedis:
    """Минимальный in-memory Redis для тестов очереди, rate limit и bridge."""

    def __init__(self) -> None:
        self.strings: dict[str, str] = {}
        self.hashes: dict[str, dict[str, str]] = {}
        self.zsets: dict[str, dict[str, float]] = {}
        self.lists: dict[str, list[str]] = {}
        self.ttls: dict[str, int] = {}
        self.published: list[tuple[str, str]] = []
        self.inbox: list[dict[str, Any]] = []
        self.broken = False

    def _check(self) -> None:
        if self.broken:
            raise redis.ConnectionError("fake redis is down")

    # strings
    def set(self, name: str, value: Any, nx: bool = False, ex: int | None = None):
        self._check()
        if nx and name in self.strings:
            return None
        self.strings[name] = str(value)
        if ex is not None:
            self.ttls[name] = int(ex)
        return True

    def get(self, name: str):
        self._check()
        return self.strings.get(name)

    def delete(self, *names: str) -> int:
        self._check()
        n = 0
        for name in names:
            for store in (self.strings, self.hashes, self.zsets, self.lists):
                if name in store:
                    del store[name]
                    n += 1
            self.ttls.pop(name, None)
        return n

    def incr(self, name: str) -> int:
        self._check()
        value = int(self.strings.get(name, "0")) + 1
        self.strings[name] = str(value)
        return value

    def expire(self, name: str, ttl: int) -> bool:
        self._check()
        self.ttls[name] = int(ttl)
        return True

    def keys(self, pattern: str = "*") -> list[str]:
        names = set(self.strings) | set(self.hashes) | set(self.zsets) | set(self.lists)
        return sorted(n for n in names if fnmatch.fnmatch(n, pattern))

    # hashes
    def hset(self, name: str, key: str, value: Any) -> int:
        self._check()
        h = self.hashes.setdefault(name, {})
        created = key not in h
        h[key] = str(value)
        return int(created)

    def hsetnx(self, name: str, key: str, value: Any) -> int:
        self._check()
        h = self.hashes.setdefault(name, {})
        if key in h:
            return 0
        h[key] = str(value)
        return 1

    def hget(self, name: str, key: str):
        self._check()
        return self.hashes.get(name, {}).get(key)

    def hdel(self, name: str, *keys: str) -> int:
        self._check()
        h = self.hashes.get(name, {})
        return sum(1 for k in keys if h.pop(k, None) is not None)

    def hlen(self, name: str) -> int:
        self._check()
        return len(self.hashes.get(name, {}))

    # sorted sets
    def zadd(self, name: str, mapping: dict[str, float]) -> int:
        self._check()
        z = self.zsets.setdefault(name, {})
        added = sum(1 for m in mapping if m not in z)
        for member, score in mapping.items():
            z[member] = float(score)
        return added

    def zrem(self, name: str, *members: str) -> int:
        self._check()
        z = self.zsets.get(name, {})
        return sum(1 for m in members if z.pop(m, None) is not None)

    def zscore(self, name: str, member: str):
        self._check()
        return self.zsets.get(name, {}).get(member)

    def zcard(self, name: str) -> int:
        self._check()
        return len(self.zsets.get(name, {}))

    def zrangebyscore(self, name: str, min: Any, max: Any, start: int | None = None, num: int | None = None):
        self._check()
        lo, hi = float(min), float(max)
        items = sorted(
            ((score, member) for member, score in self.zsets.get(name, {}).items() if lo <= score <= hi)
        )
        members = [m for _, m in items]
        if start is not None and num is not None:
            members = members[start : start + num]
        return members

    # lists
    def lpush(self, name: str, *values: Any) -> int:
        self._check()
        lst = self.lists.setdefault(name, [])
        for v in values:
            lst.insert(0, str(v))
        return len(lst)

    def llen(self, name: str) -> int:
        self._check()
        return len(self.lists.get(name, []))

    def lrange(self, name: str, start: int, end: int) -> list[str]:
        self._check()
        lst = self.lists.get(name, [])
        return lst[start : None if end == -1 else end + 1]

    # pub/sub
    def publish(self, channel: str, message: str) -> int:
        self._check()
        self.published.append((channel, message))
        return 0

    def pubsub(self) -> _FakePubSub:
        return _FakePubSub(self)

    def pipeline(self, transaction: bool = True) -> _FakePipeline:
        return _FakePipeline(self)

    def close(self) -> None:
        return None


# =============================================================================
# FIXTURES
# =============================================================================
@pytest.fixture()
def fake_redis(monkeypatch) -> FakeRedis:
    fake = FakeRedis()
    for target in (
        "smart_content.queue.dispatcher.redis_client",
        "smart_content.queue.delayed.redis_client",
        "smart_content.bridge.pubsub.redis_client",
    ):
        monkeypatch.setattr(target, lambda: fake)
    return fake


@pytest.fixture(autouse=True)
def clean_db():
    init_db()
    yield
    with db_session() as session:
        session.query(ContentJob).delete()


@pytest.fixture()
def settings_snapshot():
    s = get_settings()
    snapshot = s.model_dump()
    try:
        yield s
    finally:
        for k, v in snapshot.items():
            setattr(s, k, v)
