from __future__ import annotations

import threading
from collections import OrderedDict
from typing import Any


def cache_key(collection: str, doc_id: str) -> str:
    return f"{collection}:{doc_id}"


class RecentAccessCache:
    """
    Bounded point-read cache keyed by "collection:id".

    Eviction is first-in-first-out by insertion: reads never promote an
    entry, and overwriting a key keeps its original position.
    """

    def __init__(self, max_items: int = 10000):
        if max_items < 1:
            raise ValueError("max_items must be >= 1")
        self._max_items = int(max_items)
        self._guard = threading.Lock()
        self._items: OrderedDict[str, dict[str, Any]] = OrderedDict()

    @property
    def max_items(self) -> int:
        return self._max_items

    def get(self, key: str) -> dict[str, Any] | None:
        with self._guard:
            return self._items.get(key)

    def set(self, key: str, value: dict[str, Any]) -> None:
        with self._guard:
            if key in self._items:
                self._items[key] = value
                return
            while len(self._items) >= self._max_items:
                self._items.popitem(last=False)
            self._items[key] = value

    def delete(self, key: str) -> bool:
        with self._guard:
            return self._items.pop(key, None) is not None

    def delete_prefix(self, prefix: str) -> int:
        with self._guard:
            doomed = [k for k in self._items if k.startswith(prefix)]
            for k in doomed:
                del self._items[k]
            return len(doomed)

    def clear(self) -> None:
        with self._guard:
            self._items.clear()

    def keys(self) -> list[str]:
        with self._guard:
            return list(self._items)

    def __contains__(self, key: object) -> bool:
        with self._guard:
            return key in self._items

    def __len__(self) -> int:
        with self._guard:
            return len(self._items)
