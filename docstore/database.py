from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable

from pydantic import ValidationError as RecordValidationError

from .cache import RecentAccessCache
from .collection import Collection
from .collection_store import CollectionStore
from .disk_store import DiskCollectionStorage
from .errors import RestoreError, StorageIOError, StoreError, ValidationError
from .interfaces import CollectionStorage, EventListener
from .locks import WriteSerializer
from .paths import PathIndex
from .records import BackupDocument, CollectionStats, StoreStats
from .validation import validate_collection_name

if TYPE_CHECKING:
    from settings import Settings

logger = logging.getLogger(__name__)


class DocumentDatabase:
    """
    A folder of JSON collections, held fully in memory.

    Opening is lazy and happens once: the manifest is read (or rebuilt from
    a folder scan if it is missing or corrupt) and every listed collection
    is loaded. All writes go through one global WriteSerializer.
    """

    def __init__(
        self,
        folder_path: str | Path = "./data",
        *,
        max_cache_items: int = 10000,
        storage: CollectionStorage | None = None,
    ):
        self._paths = PathIndex(folder_path)
        self._storage = storage if storage is not None else DiskCollectionStorage(self._paths)
        self._store = CollectionStore(self._storage, self._paths)
        self._cache = RecentAccessCache(max_cache_items)
        self._serializer = WriteSerializer()

        self._open_lock = threading.Lock()
        self._opened = False

        self._listeners_guard = threading.Lock()
        self._listeners: list[EventListener] = []

    @classmethod
    def from_settings(cls, settings: "Settings") -> "DocumentDatabase":
        return cls(settings.folder_path, max_cache_items=settings.max_cache_items)

    @property
    def folder(self) -> Path:
        return self._paths.folder

    @property
    def store(self) -> CollectionStore:
        return self._store

    @property
    def cache(self) -> RecentAccessCache:
        return self._cache

    @property
    def serializer(self) -> WriteSerializer:
        return self._serializer

    @property
    def storage(self) -> CollectionStorage:
        return self._storage

    @property
    def is_open(self) -> bool:
        return self._opened

    # ---------------- lifecycle ----------------

    def open(self) -> None:
        """
        Bootstrap once; concurrent callers wait for the first one to finish.

        Mutations call this again while holding the serializer, so a write
        queued behind close() reloads the folder instead of running against
        the emptied store. Lock order is always serializer, then _open_lock.
        """
        if self._opened:
            return
        with self._open_lock:
            if self._opened:
                return
            self._bootstrap()
            self._opened = True

    def close(self) -> None:
        with self._serializer.hold(), self._open_lock:
            if not self._opened:
                return
            self._opened = False
            try:
                self._storage.save_manifest(self._paths.names())
            except StorageIOError:
                logger.error("Error writing manifest during close", exc_info=True)
            self._cache.clear()
            self._store.clear_all()

    def __enter__(self) -> "DocumentDatabase":
        self.open()
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def _bootstrap(self) -> None:
        self._storage.ensure_storage_folder()
        self._store.clear_all()

        names = self._storage.load_manifest()
        if names is None:
            logger.info("Scanning collections folder %s", self.folder)
            for name, data in self._storage.scan_folder().items():
                self._store.set(name, data)
                self._paths.register(name)
            self._storage.save_manifest(self._paths.names())
        else:
            for name in names:
                try:
                    validate_collection_name(name)
                    data = self._storage.load_collection(name)
                except StoreError as e:
                    logger.warning("Failed to load collection %s: %s", name, e)
                    continue
                if not data:
                    logger.warning("Collection %s is listed in the manifest but has no documents on disk", name)
                    continue
                self._store.set(name, data)
                self._paths.register(name)
            if len(self._paths) != len(names):
                self._storage.save_manifest(self._paths.names())

        logger.info(
            "Initialized %d collections with %d documents",
            len(self._store.names()),
            self._store.total_size(),
        )

    # ---------------- events ----------------

    def subscribe(self, listener: EventListener) -> Callable[[], None]:
        with self._listeners_guard:
            self._listeners.append(listener)

        def _unsubscribe() -> None:
            with self._listeners_guard:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return _unsubscribe

    def emit(self, event: str, payload: dict[str, Any]) -> None:
        with self._listeners_guard:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(event, payload)
            except Exception:
                logger.exception("Event listener failed for %s", event)

    # ---------------- collections ----------------

    def collection(self, name: str) -> Collection:
        return Collection(self, name)

    def list_collection_names(self) -> list[str]:
        self.open()
        return self._store.names()

    def drop_collection(self, name: str) -> bool:
        validate_collection_name(name)
        with self._serializer.hold():
            self.open()
            if self._store.get(name) is None:
                return False
            with self._store.lock:
                self._store.drop(name)
                self._cache.delete_prefix(f"{name}:")
            self._storage.delete_collection(name)
            self._storage.save_manifest(self._paths.names())

        self.emit("collection:dropped", {"collection": name})
        return True

    def clear_all(self) -> None:
        """Delete every collection file and the manifest, and empty memory."""
        with self._serializer.hold():
            self.open()
            for name in dict.fromkeys(self._paths.names() + self._store.names()):
                self._storage.delete_collection(name)
            self._storage.delete_manifest()
            with self._store.lock:
                self._store.clear_all()
                self._cache.clear()

        self.emit("database:cleared", {})

    def total_document_count(self) -> int:
        self.open()
        return self._store.total_size()

    def get_stats(self) -> StoreStats:
        self.open()
        collections = {
            name: CollectionStats(
                document_count=self._store.size(name),
                file_path=str(self._paths.collection_path(name)),
            )
            for name in self._store.names()
        }
        return StoreStats(
            collections=collections,
            total_documents=sum(c.document_count for c in collections.values()),
            collection_count=len(collections),
            cache_size=len(self._cache),
            max_cache_items=self._cache.max_items,
            folder_path=str(self.folder),
            write_lock=self._serializer.status(),
        )

    def save(self) -> None:
        """Rewrite every collection file and the manifest from memory."""
        with self._serializer.hold():
            self.open()
            for name in self._store.names():
                self._write_collection(name)
            self._storage.save_manifest(self._paths.names())

    def persist_collection(self, name: str) -> None:
        """
        Write one collection and the manifest. Caller must hold the serializer.

        An empty collection is dropped from memory and its file removed.
        """
        self._write_collection(name)
        self._storage.save_manifest(self._paths.names())

    def _write_collection(self, name: str) -> None:
        data = self._store.copy_collection(name)
        if not data:
            self._store.drop(name)
            self._storage.delete_collection(name)
            return
        self._storage.save_collection(name, data)
        self._paths.register(name)

    # ---------------- backup & restore ----------------

    def backup(self, path: str | Path) -> Path:
        self.open()
        state, _ = self._store.snapshot()
        doc = BackupDocument(collections=state).to_disk_doc()

        target = Path(path)
        self._storage.write_backup(target, doc)
        logger.info("Backed up %d collections to %s", len(state), target)

        self.emit("backup", {"path": str(target)})
        return target

    def restore(self, path: str | Path) -> None:
        """
        Replace everything in memory and on disk with the contents of a backup.

        If anything fails, the previous in-memory state is put back; files
        already rewritten before the failure are left as they are.
        """
        source = Path(path)
        self.open()

        try:
            raw = self._storage.read_backup(source)
        except RestoreError:
            raise
        except StorageIOError as e:
            raise RestoreError(f"Failed to restore data: {e}") from e
        if not isinstance(raw, dict):
            raise RestoreError(f"Failed to restore data: {source} does not contain a JSON object")
        try:
            backup = BackupDocument.from_disk_doc(raw)
            for name in backup.collections:
                validate_collection_name(name)
        except (RecordValidationError, ValidationError) as e:
            raise RestoreError(f"Failed to restore data: {e}") from e

        with self._serializer.hold():
            self.open()
            previous = self._store.snapshot()
            previous_names = set(previous[1]) | set(previous[0])
            try:
                with self._store.lock:
                    self._store.clear_all()
                    self._cache.clear()
                for name, docs in backup.collections.items():
                    if not docs:
                        continue
                    self._store.set(name, dict(docs))
                    self._storage.save_collection(name, docs)
                    self._paths.register(name)
                self._storage.save_manifest(self._paths.names())
            except StoreError as e:
                self._store.restore_snapshot(previous)
                raise RestoreError(f"Failed to restore data: {e}") from e

            for stale in previous_names - set(self._paths.names()):
                try:
                    self._storage.delete_collection(stale)
                except StorageIOError as e:
                    logger.warning("Could not remove stale collection file %s: %s", stale, e)

        logger.info("Restored %d collections from %s", len(self._store.names()), source)
        self.emit("restore", {"path": str(source)})
