"""
Per-booking mutual exclusion.

Transitions and document generation for one booking are serialized by a named
lock. With ``REDIS_URL`` configured the lock lives in Redis so several worker
processes share it; otherwise a process-local registry is used. The row-level
``FOR UPDATE`` read and the booking version column still guard the database
if the lock backend is unavailable.
"""

from __future__ import annotations

from contextlib import contextmanager
import logging
import threading
import time
from typing import Dict, Iterator, Optional
import uuid

from redis import Redis

from courseledger.core.config import settings
from courseledger.monitoring.prometheus_metrics import prometheus_metrics

logger = logging.getLogger(__name__)

_SYNC_REDIS: Optional[Redis] = None
_SYNC_REDIS_LOCK = threading.Lock()
_POLL_INTERVAL_S = 0.05

# Delete the key only while it still holds our token
RELEASE_LUA = r"""
if redis.call("GET", KEYS[1]) == ARGV[1] then
  return redis.call("DEL", KEYS[1])
end
return 0
"""

# Tokens of the Redis locks held by the current thread, by booking id
_HELD_TOKENS = threading.local()


def _held_tokens() -> Dict[str, str]:
    tokens = getattr(_HELD_TOKENS, "tokens", None)
    if tokens is None:
        tokens = {}
        _HELD_TOKENS.tokens = tokens
    return tokens


def _lock_key(booking_id: str) -> str:
    return f"booking:{booking_id}:mutex"


def _namespaced_key(key: str) -> str:
    return f"{settings.lock_namespace}:lock:{key}"


class _LocalLockRegistry:
    """Reference-counted named locks; entries are dropped when nobody holds or waits."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: Dict[str, threading.Lock] = {}
        self._refs: Dict[str, int] = {}

    def acquire(self, key: str, timeout: float) -> bool:
        with self._guard:
            lock = self._locks.setdefault(key, threading.Lock())
            self._refs[key] = self._refs.get(key, 0) + 1
        acquired = lock.acquire(timeout=timeout)
        if not acquired:
            self._drop_ref(key)
        return acquired

    def release(self, key: str) -> None:
        with self._guard:
            lock = self._locks.get(key)
        if lock is None:
            return
        lock.release()
        self._drop_ref(key)

    def _drop_ref(self, key: str) -> None:
        with self._guard:
            remaining = self._refs.get(key, 0) - 1
            if remaining <= 0:
                self._refs.pop(key, None)
                self._locks.pop(key, None)
            else:
                self._refs[key] = remaining

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)


_LOCAL_LOCKS = _LocalLockRegistry()


def _get_sync_redis() -> Optional[Redis]:
    global _SYNC_REDIS
    if not settings.redis_url:
        return None
    if _SYNC_REDIS is not None:
        return _SYNC_REDIS
    with _SYNC_REDIS_LOCK:
        if _SYNC_REDIS is not None:
            return _SYNC_REDIS
        try:
            client = Redis.from_url(
                settings.redis_url,
                encoding="utf-8",
                decode_responses=True,
            )
            client.ping()
        except Exception as exc:
            logger.warning("booking_lock_sync_redis_unavailable: %s", exc)
            return None
        _SYNC_REDIS = client
        return _SYNC_REDIS


def _acquire_redis(client: Redis, booking_id: str, ttl_s: int, wait_s: float) -> bool:
    key = _namespaced_key(_lock_key(booking_id))
    token = uuid.uuid4().hex
    deadline = time.monotonic() + wait_s
    while True:
        if client.set(key, token, nx=True, ex=ttl_s):
            _held_tokens()[booking_id] = token
            return True
        if time.monotonic() >= deadline:
            return False
        time.sleep(_POLL_INTERVAL_S)


def acquire_booking_lock_sync(
    booking_id: str,
    ttl_s: Optional[int] = None,
    wait_s: Optional[float] = None,
) -> bool:
    ttl = ttl_s if ttl_s is not None else settings.booking_lock_ttl_seconds
    wait = wait_s if wait_s is not None else settings.booking_lock_wait_seconds

    if not settings.redis_url:
        acquired = _LOCAL_LOCKS.acquire(_lock_key(booking_id), timeout=wait)
        prometheus_metrics.record_booking_lock("acquire", "success" if acquired else "blocked")
        return acquired

    client = _get_sync_redis()
    if client is None:
        prometheus_metrics.record_booking_lock("acquire", "redis_unavailable")
        logger.warning(
            "booking_lock_sync_redis_unavailable",
            extra={"booking_id": booking_id},
        )
        return True
    try:
        acquired = _acquire_redis(client, booking_id, ttl, wait)
    except Exception as exc:
        prometheus_metrics.record_booking_lock("acquire", "error")
        logger.warning(
            "booking_lock_sync_failed",
            extra={
                "booking_id": booking_id,
                "error": str(exc),
                "error_type": type(exc).__name__,
            },
        )
        return True
    prometheus_metrics.record_booking_lock("acquire", "success" if acquired else "blocked")
    return acquired


def release_booking_lock_sync(booking_id: str) -> None:
    if not settings.redis_url:
        _LOCAL_LOCKS.release(_lock_key(booking_id))
        prometheus_metrics.record_booking_lock("release", "success")
        return

    client = _get_sync_redis()
    if client is None:
        prometheus_metrics.record_booking_lock("release", "redis_unavailable")
        return
    token = _held_tokens().pop(booking_id, None)
    if token is None:
        prometheus_metrics.record_booking_lock("release", "not_held")
        return
    try:
        deleted = client.eval(RELEASE_LUA, 1, _namespaced_key(_lock_key(booking_id)), token)
        if deleted:
            prometheus_metrics.record_booking_lock("release", "success")
        else:
            prometheus_metrics.record_booking_lock("release", "not_found")
    except Exception as exc:
        prometheus_metrics.record_booking_lock("release", "error")
        logger.warning(
            "booking_lock_sync_release_failed",
            extra={
                "booking_id": booking_id,
                "error": str(exc),
                "error_type": type(exc).__name__,
            },
        )


@contextmanager
def booking_lock_sync(
    booking_id: str,
    ttl_s: Optional[int] = None,
    wait_s: Optional[float] = None,
) -> Iterator[bool]:
    acquired = acquire_booking_lock_sync(booking_id, ttl_s=ttl_s, wait_s=wait_s)
    try:
        yield acquired
    finally:
        if acquired:
            release_booking_lock_sync(booking_id)
