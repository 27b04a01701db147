from __future__ import annotations

import threading

from smart_content.queue.ratelimit import FixedWindowRateLimiter


def test_limit_is_enforced_per_window(fake_redis) -> None:
    limiter = FixedWindowRateLimiter("q-test", client=fake_redis, max_events=3, window_sec=60)
    now = 6_000.0
    assert [limiter.try_acquire(now=now) for _ in range(4)] == [True, True, True, False]
    # новое окно
    assert limiter.try_acquire(now=now + 60) is True


def test_counter_is_shared_between_limiters(fake_redis) -> None:
    a = FixedWindowRateLimiter("q-test", client=fake_redis, max_events=2, window_sec=60)
    b = FixedWindowRateLimiter("q-test", client=fake_redis, max_events=2, window_sec=60)
    now = 12_000.0
    assert a.try_acquire(now=now) is True
    assert b.try_acquire(now=now) is True
    assert a.try_acquire(now=now) is False
    assert b.try_acquire(now=now) is False


def test_window_key_has_ttl(fake_redis) -> None:
    limiter = FixedWindowRateLimiter("q-test", client=fake_redis, max_events=1, window_sec=10)
    limiter.try_acquire(now=100.0)
    assert fake_redis.ttls["q-test:rl:10"] == 11


def test_wait_for_slot_returns_false_on_stop(fake_redis) -> None:
    limiter = FixedWindowRateLimiter("q-test", client=fake_redis, max_events=1, window_sec=3600)
    assert limiter.wait_for_slot(threading.Event()) is True

    stop = threading.Event()
    stop.set()
    assert limiter.wait_for_slot(stop) is False
