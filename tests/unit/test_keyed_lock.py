"""Tests for the per-request lock registry."""

import threading
import time

from approval_kernel.utils.locks import KeyedLock


class TestKeyedLock:
    def test_registry_is_empty_after_release(self):
        locks = KeyedLock()
        with locks.hold("req-1"):
            assert len(locks) == 1
        assert len(locks) == 0

    def test_reentrant_for_owning_thread(self):
        locks = KeyedLock()
        with locks.hold("req-1"):
            with locks.hold("req-1"):
                assert len(locks) == 1
        assert len(locks) == 0

    def test_released_on_exception(self):
        locks = KeyedLock()
        try:
            with locks.hold("req-1"):
                raise RuntimeError("boom")
        except RuntimeError:
            pass
        assert len(locks) == 0

    def test_same_key_is_serialized(self):
        locks = KeyedLock()
        inside = 0
        max_inside = 0
        counter_lock = threading.Lock()

        def worker():
            nonlocal inside, max_inside
            with locks.hold("req-1"):
                with counter_lock:
                    inside += 1
                    max_inside = max(max_inside, inside)
                time.sleep(0.01)
                with counter_lock:
                    inside -= 1

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert max_inside == 1
        assert len(locks) == 0

    def test_different_keys_do_not_block(self):
        locks = KeyedLock()
        entered = threading.Event()

        def other():
            with locks.hold("req-2"):
                entered.set()

        with locks.hold("req-1"):
            t = threading.Thread(target=other)
            t.start()
            assert entered.wait(timeout=2)
            t.join()
