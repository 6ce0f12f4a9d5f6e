"""
Unit tests for scope_lock.py.

Coverage:
1) In-process lock: mutual exclusion, independence of keys, timeout
2) Redis lock: SET NX EX acquisition, token release, polling timeout
3) Graceful degradation when Redis is unavailable
4) Backend selection
"""

import threading
import time
from unittest.mock import MagicMock

import pytest

from goreserve.core.scope_lock import (
    InProcessScopeLock,
    RedisScopeLock,
    ScopeLockTimeout,
    build_scope_lock,
)


class TestInProcessScopeLock:
    def test_same_key_is_exclusive(self):
        lock = InProcessScopeLock(timeout=2)
        inside = threading.Event()
        release = threading.Event()
        order = []

        def holder():
            with lock.hold("staff:s1:2030-01-14"):
                inside.set()
                release.wait(2)
                order.append("holder")

        thread = threading.Thread(target=holder)
        thread.start()
        inside.wait(2)

        def waiter():
            with lock.hold("staff:s1:2030-01-14"):
                order.append("waiter")

        second = threading.Thread(target=waiter)
        second.start()
        time.sleep(0.05)
        assert order == []
        release.set()
        thread.join(2)
        second.join(2)
        assert order == ["holder", "waiter"]

    def test_different_keys_do_not_block(self):
        lock = InProcessScopeLock(timeout=0.1)
        with lock.hold("staff:s1:2030-01-14"):
            with lock.hold("staff:s2:2030-01-14"):
                pass

    def test_timeout_raises(self):
        lock = InProcessScopeLock(timeout=0.05)
        with lock.hold("pool:svc:2030-01-14"):
            errors = []

            def contender():
                try:
                    with lock.hold("pool:svc:2030-01-14"):
                        pass
                except ScopeLockTimeout as exc:
                    errors.append(exc)

            thread = threading.Thread(target=contender)
            thread.start()
            thread.join(2)

        assert len(errors) == 1
        assert errors[0].key == "pool:svc:2030-01-14"

    def test_released_after_exception(self):
        lock = InProcessScopeLock(timeout=0.05)
        with pytest.raises(RuntimeError):
            with lock.hold("k"):
                raise RuntimeError("boom")
        with lock.hold("k"):
            pass

    def test_idle_keys_are_evicted(self):
        lock = InProcessScopeLock(timeout=0.1)
        for day in range(1, 29):
            with lock.hold(f"staff:s1:2030-02-{day:02d}"):
                assert lock.active_keys() == 1
        assert lock.active_keys() == 0

    def test_key_kept_while_a_waiter_is_queued(self):
        lock = InProcessScopeLock(timeout=2)
        acquired = []

        def waiter():
            with lock.hold("staff:s1:2030-01-14"):
                acquired.append(True)

        with lock.hold("staff:s1:2030-01-14"):
            thread = threading.Thread(target=waiter)
            thread.start()
            time.sleep(0.05)
            assert lock.active_keys() == 1
        thread.join(2)

        assert acquired == [True]
        assert lock.active_keys() == 0

    def test_timed_out_waiter_leaves_no_entry(self):
        lock = InProcessScopeLock(timeout=0.05)
        with lock.hold("pool:svc:2030-01-14"):
            errors = []

            def contender():
                try:
                    with lock.hold("pool:svc:2030-01-14"):
                        pass
                except ScopeLockTimeout as exc:
                    errors.append(exc)

            thread = threading.Thread(target=contender)
            thread.start()
            thread.join(2)
            assert len(errors) == 1
            assert lock.active_keys() == 1
        assert lock.active_keys() == 0


class TestRedisScopeLock:
    def test_acquire_and_release(self):
        redis_client = MagicMock()
        redis_client.set.return_value = True
        redis_client.eval.return_value = 1
        lock = RedisScopeLock(redis_client=redis_client, timeout=1, ttl_seconds=30, namespace="t")

        with lock.hold("staff:s1:2030-01-14"):
            pass

        args, kwargs = redis_client.set.call_args
        assert args[0] == "t:lock:staff:s1:2030-01-14"
        assert kwargs == {"nx": True, "ex": 30}
        token = args[1]
        eval_args = redis_client.eval.call_args.args
        assert eval_args[1:] == (1, "t:lock:staff:s1:2030-01-14", token)

    def test_held_elsewhere_times_out(self):
        redis_client = MagicMock()
        redis_client.set.return_value = None
        lock = RedisScopeLock(redis_client=redis_client, timeout=0.1, namespace="t")

        with pytest.raises(ScopeLockTimeout):
            with lock.hold("staff:s1:2030-01-14"):
                pass
        assert redis_client.set.call_count >= 2
        redis_client.eval.assert_not_called()

    def test_redis_error_falls_back_to_local_lock(self):
        redis_client = MagicMock()
        redis_client.set.side_effect = ConnectionError("redis down")
        lock = RedisScopeLock(redis_client=redis_client, timeout=0.1, namespace="t")

        entered = []
        with lock.hold("staff:s1:2030-01-14"):
            entered.append(True)
        assert entered == [True]
        redis_client.eval.assert_not_called()

        # the local fallback was released
        with lock.hold("staff:s1:2030-01-14"):
            pass

    def test_release_failure_is_logged_not_raised(self):
        redis_client = MagicMock()
        redis_client.set.return_value = True
        redis_client.eval.side_effect = ConnectionError("redis down")
        lock = RedisScopeLock(redis_client=redis_client, timeout=0.1, namespace="t")

        with lock.hold("k"):
            pass


def test_build_scope_lock_backends():
    assert isinstance(build_scope_lock("memory"), InProcessScopeLock)
    assert isinstance(build_scope_lock("redis"), RedisScopeLock)
