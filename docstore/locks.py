from __future__ import annotations

import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Iterator, TypeVar

T = TypeVar("T")


class WriteSerializer:
    """
    Global write gate: at most one mutating operation runs at a time.

    Waiters are admitted strictly in arrival order (ticket ordering). The
    gate is not reentrant; calling run_exclusive from inside a held section
    deadlocks.
    """

    def __init__(self) -> None:
        self._cond = threading.Condition()
        self._next_ticket = 0
        self._now_serving = 0

    def acquire(self) -> None:
        with self._cond:
            ticket = self._next_ticket
            self._next_ticket += 1
            while ticket != self._now_serving:
                self._cond.wait()

    def release(self) -> None:
        with self._cond:
            if self._now_serving >= self._next_ticket:
                raise RuntimeError("release() called on an unlocked WriteSerializer")
            self._now_serving += 1
            self._cond.notify_all()

    @contextmanager
    def hold(self) -> Iterator[None]:
        self.acquire()
        try:
            yield
        finally:
            self.release()

    def run_exclusive(self, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        with self.hold():
            return fn(*args, **kwargs)

    def status(self) -> dict[str, Any]:
        with self._cond:
            in_flight = self._next_ticket - self._now_serving
        return {"locked": in_flight > 0, "queue_length": max(in_flight - 1, 0)}


class PathLockRegistry:
    """
    Provides a stable lock per normalized file path to avoid global contention.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}

    def lock_for(self, path: Path) -> threading.Lock:
        key = str(path.resolve())
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._locks[key] = lock
            return lock


GLOBAL_PATH_LOCKS = PathLockRegistry()
