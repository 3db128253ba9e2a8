"""
Unit tests for booking_lock.py.

Coverage:
1) Key generation
2) Process-local locks
3) Redis-backed locks
4) Graceful degradation when Redis is unavailable
"""

import threading
from unittest.mock import MagicMock, patch

import pytest

from courseledger.core import booking_lock as lock_module
from courseledger.core.booking_lock import (
    RELEASE_LUA,
    _lock_key,
    _namespaced_key,
    acquire_booking_lock_sync,
    booking_lock_sync,
    release_booking_lock_sync,
)
from courseledger.core.config import settings


@pytest.fixture
def local_backend():
    with patch.object(settings, "redis_url", None):
        yield


@pytest.fixture
def redis_backend():
    client = MagicMock()
    with patch.object(settings, "redis_url", "redis://localhost:6379/0"), patch.object(
        lock_module, "_get_sync_redis", return_value=client
    ):
        lock_module._held_tokens().clear()
        yield client
        lock_module._held_tokens().clear()


class TestKeyGeneration:
    def test_lock_key_format(self) -> None:
        assert _lock_key("ABC123") == "booking:ABC123:mutex"

    def test_namespaced_key_format(self) -> None:
        namespaced = _namespaced_key("booking:ABC123:mutex")
        assert namespaced == f"{settings.lock_namespace}:lock:booking:ABC123:mutex"


class TestLocalLock:
    def test_context_manager_acquires_and_releases(self, local_backend) -> None:
        with booking_lock_sync("B1") as acquired:
            assert acquired is True
            assert len(lock_module._LOCAL_LOCKS) == 1
        assert len(lock_module._LOCAL_LOCKS) == 0

    def test_second_holder_times_out(self, local_backend) -> None:
        outcome = {}

        def contender() -> None:
            outcome["acquired"] = acquire_booking_lock_sync("B1", wait_s=0.05)

        with booking_lock_sync("B1"):
            thread = threading.Thread(target=contender)
            thread.start()
            thread.join()

        assert outcome["acquired"] is False
        assert len(lock_module._LOCAL_LOCKS) == 0

    def test_different_bookings_do_not_block(self, local_backend) -> None:
        with booking_lock_sync("B1") as first, booking_lock_sync("B2", wait_s=0) as second:
            assert first is True
            assert second is True

    def test_lock_is_free_after_error(self, local_backend) -> None:
        with pytest.raises(RuntimeError):
            with booking_lock_sync("B1"):
                raise RuntimeError("boom")
        assert acquire_booking_lock_sync("B1", wait_s=0) is True
        release_booking_lock_sync("B1")


class TestRedisLock:
    def test_acquire_sets_key_with_ttl(self, redis_backend) -> None:
        redis_backend.set.return_value = True

        assert acquire_booking_lock_sync("B1", ttl_s=15, wait_s=0) is True

        key = _namespaced_key("booking:B1:mutex")
        redis_backend.set.assert_called_once()
        args, kwargs = redis_backend.set.call_args
        assert args[0] == key
        assert kwargs == {"nx": True, "ex": 15}

    def test_held_lock_is_not_acquired(self, redis_backend) -> None:
        redis_backend.set.return_value = None
        assert acquire_booking_lock_sync("B1", wait_s=0) is False

    def test_release_deletes_only_our_token(self, redis_backend) -> None:
        redis_backend.set.return_value = True
        assert acquire_booking_lock_sync("B1", wait_s=0) is True
        token = redis_backend.set.call_args[0][1]

        release_booking_lock_sync("B1")

        redis_backend.eval.assert_called_once_with(
            RELEASE_LUA, 1, _namespaced_key("booking:B1:mutex"), token
        )
        redis_backend.delete.assert_not_called()

    def test_tokens_differ_between_holders(self, redis_backend) -> None:
        redis_backend.set.return_value = True
        acquire_booking_lock_sync("B1", wait_s=0)
        release_booking_lock_sync("B1")
        acquire_booking_lock_sync("B1", wait_s=0)
        release_booking_lock_sync("B1")

        first, second = (call.args[1] for call in redis_backend.set.call_args_list)
        assert first != second

    def test_release_without_holding_is_a_no_op(self, redis_backend) -> None:
        release_booking_lock_sync("B1")
        redis_backend.eval.assert_not_called()

    def test_unacquired_lock_is_not_released(self, redis_backend) -> None:
        redis_backend.set.return_value = None
        with booking_lock_sync("B1", wait_s=0) as acquired:
            assert acquired is False
        redis_backend.eval.assert_not_called()

    def test_redis_error_degrades_to_acquired(self, redis_backend) -> None:
        redis_backend.set.side_effect = ConnectionError("redis down")
        assert acquire_booking_lock_sync("B1", wait_s=0) is True


class TestRedisUnavailable:
    def test_missing_client_degrades_to_acquired(self) -> None:
        with patch.object(settings, "redis_url", "redis://localhost:6379/0"), patch.object(
            lock_module, "_get_sync_redis", return_value=None
        ):
            assert acquire_booking_lock_sync("B1") is True
            release_booking_lock_sync("B1")
