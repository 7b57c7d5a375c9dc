from __future__ import annotations

import threading
import time

import pytest

from docstore.locks import GLOBAL_PATH_LOCKS, PathLockRegistry, WriteSerializer


def _wait_until(predicate, timeout: float = 5.0) -> None:
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() > deadline:
            raise AssertionError("timed out waiting for condition")
        time.sleep(0.001)


def test_run_exclusive_returns_result_and_releases():
    serializer = WriteSerializer()

    assert serializer.run_exclusive(lambda a, b=0: a + b, 2, b=3) == 5
    assert serializer.status() == {"locked": False, "queue_length": 0}


def test_run_exclusive_releases_on_error():
    serializer = WriteSerializer()

    def boom():
        raise RuntimeError("boom")

    with pytest.raises(RuntimeError):
        serializer.run_exclusive(boom)
    assert serializer.status()["locked"] is False


def test_at_most_one_holder_at_a_time():
    serializer = WriteSerializer()
    active = 0
    peak = 0
    guard = threading.Lock()

    def work():
        nonlocal active, peak
        with guard:
            active += 1
            peak = max(peak, active)
        time.sleep(0.005)
        with guard:
            active -= 1

    threads = [threading.Thread(target=serializer.run_exclusive, args=(work,)) for _ in range(10)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert peak == 1


def test_waiters_are_released_in_arrival_order():
    serializer = WriteSerializer()
    order: list[int] = []
    threads = []

    serializer.acquire()
    for i in range(5):
        t = threading.Thread(target=serializer.run_exclusive, args=(order.append, i))
        t.start()
        threads.append(t)
        _wait_until(lambda n=i: serializer.status()["queue_length"] == n + 1)

    assert serializer.status() == {"locked": True, "queue_length": 5}
    serializer.release()
    for t in threads:
        t.join()

    assert order == [0, 1, 2, 3, 4]


def test_release_without_acquire_is_an_error():
    with pytest.raises(RuntimeError):
        WriteSerializer().release()


def test_path_lock_registry_returns_one_lock_per_path(tmp_path):
    registry = PathLockRegistry()
    a = registry.lock_for(tmp_path / "x.json")
    b = registry.lock_for(tmp_path / "sub" / ".." / "x.json")
    c = registry.lock_for(tmp_path / "y.json")

    assert a is b
    assert a is not c
    assert GLOBAL_PATH_LOCKS.lock_for(tmp_path / "x.json") is GLOBAL_PATH_LOCKS.lock_for(tmp_path / "x.json")
