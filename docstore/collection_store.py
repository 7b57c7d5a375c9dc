from __future__ import annotations

import threading
from pathlib import Path
from typing import Any

from .interfaces import CollectionStorage
from .paths import PathIndex

Documents = dict[str, dict[str, Any]]


class CollectionStore:
    """
    The authoritative in-memory working set.

    Holds collection name -> {id: document} (insertion ordered) and, through
    the PathIndex, collection name -> backing file. Map mutations and reader
    snapshots go through one re-entrant lock so threads never observe a dict
    mid-resize.
    """

    def __init__(self, storage: CollectionStorage, paths: PathIndex):
        self._storage = storage
        self._paths = paths
        self._lock = threading.RLock()
        self._collections: dict[str, Documents] = {}

    @property
    def paths(self) -> PathIndex:
        return self._paths

    @property
    def lock(self) -> threading.RLock:
        return self._lock

    def get(self, name: str) -> Documents | None:
        with self._lock:
            return self._collections.get(name)

    def ensure(self, name: str) -> Documents:
        """Return the live map for `name`, loading it from disk on first use."""
        with self._lock:
            data = self._collections.get(name)
            if data is None:
                data = self._storage.load_collection(name)
                self._collections[name] = data
                if data:
                    self._paths.register(name)
            return data

    def set(self, name: str, data: Documents) -> None:
        with self._lock:
            self._collections[name] = data

    def drop(self, name: str) -> bool:
        with self._lock:
            existed = self._collections.pop(name, None) is not None
            self._paths.unregister(name)
            return existed

    def clear_all(self) -> None:
        with self._lock:
            self._collections.clear()
            self._paths.clear()

    def names(self) -> list[str]:
        with self._lock:
            return list(self._collections)

    def size(self, name: str) -> int:
        with self._lock:
            data = self._collections.get(name)
            return len(data) if data is not None else 0

    def total_size(self) -> int:
        with self._lock:
            return sum(len(data) for data in self._collections.values())

    # ---------------- document-level mutations ----------------

    def contains(self, name: str, doc_id: str) -> bool:
        with self._lock:
            data = self._collections.get(name)
            return data is not None and doc_id in data

    def lookup(self, name: str, doc_id: str) -> dict[str, Any] | None:
        with self._lock:
            data = self._collections.get(name)
            return data.get(doc_id) if data is not None else None

    def put(self, name: str, doc_id: str, body: dict[str, Any]) -> dict[str, Any] | None:
        """Store `body` under `doc_id`, returning the previous body (if any)."""
        with self._lock:
            data = self._collections.setdefault(name, {})
            previous = data.get(doc_id)
            data[doc_id] = body
            return previous

    def remove(self, name: str, doc_id: str) -> dict[str, Any] | None:
        with self._lock:
            data = self._collections.get(name)
            if data is None:
                return None
            return data.pop(doc_id, None)

    # ---------------- snapshots ----------------

    def items(self, name: str) -> list[tuple[str, dict[str, Any]]]:
        """Shallow, ordered snapshot of one collection's entries."""
        with self._lock:
            data = self._collections.get(name)
            return list(data.items()) if data is not None else []

    def copy_collection(self, name: str) -> Documents:
        with self._lock:
            return dict(self._collections.get(name) or {})

    def snapshot(self) -> tuple[dict[str, Documents], dict[str, Path]]:
        with self._lock:
            state = {name: dict(data) for name, data in self._collections.items()}
            return state, self._paths.snapshot()

    def restore_snapshot(self, snapshot: tuple[dict[str, Documents], dict[str, Path]]) -> None:
        state, files = snapshot
        with self._lock:
            self._collections = {name: dict(data) for name, data in state.items()}
            self._paths.replace(files)
