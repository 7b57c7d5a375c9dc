from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from pydantic import ValidationError as RecordValidationError

from json_store import atomic_write_json, load_json, read_json

from .errors import BackupNotFoundError, StorageIOError
from .interfaces import CollectionStorage
from .locks import GLOBAL_PATH_LOCKS
from .paths import COLLECTION_SUFFIX, PathIndex, ensure_dir
from .records import CollectionManifest

logger = logging.getLogger(__name__)


class DiskCollectionStorage(CollectionStorage):
    """
    Stores each collection as one pretty-printed JSON object on disk:

    - <folder>/<name>.json   { "<id>": {...document...}, ... }
    - <folder>/.index.json   manifest of known collections

    Every write replaces the whole file atomically (temp file + rename).
    """

    def __init__(self, paths: PathIndex):
        self._paths = paths

    @property
    def paths(self) -> PathIndex:
        return self._paths

    def ensure_storage_folder(self) -> Path:
        try:
            return ensure_dir(self._paths.folder)
        except OSError as e:
            raise StorageIOError(f"Cannot create storage folder {self._paths.folder}: {e}") from e

    # ---------------- manifest ----------------

    def load_manifest(self) -> list[str] | None:
        path = self._paths.manifest_path
        with GLOBAL_PATH_LOCKS.lock_for(path):
            raw = read_json(path)
        if not isinstance(raw, dict):
            return None
        try:
            manifest = CollectionManifest.from_disk_doc(raw)
        except RecordValidationError as e:
            logger.warning("Ignoring malformed manifest %s: %s", path, e)
            return None
        return manifest.collections

    def save_manifest(self, names: list[str]) -> None:
        path = self._paths.manifest_path
        doc = CollectionManifest(collections=list(names)).to_disk_doc()
        self._write(path, doc, indent=None)

    def delete_manifest(self) -> None:
        self._unlink(self._paths.manifest_path)

    # ---------------- collections ----------------

    def load_collection(self, name: str) -> dict[str, Any]:
        path = self._paths.collection_path(name)
        with GLOBAL_PATH_LOCKS.lock_for(path):
            try:
                raw = load_json(path, default=None)
            except (OSError, ValueError) as e:
                raise StorageIOError(f"Failed to load collection '{name}' from {path}: {e}") from e
        if raw is None:
            return {}
        if not isinstance(raw, dict):
            raise StorageIOError(f"Collection file {path} does not contain a JSON object")
        return {str(k): v for k, v in raw.items()}

    def save_collection(self, name: str, data: dict[str, Any]) -> Path:
        path = self._paths.collection_path(name)
        self._write(path, data)
        return path

    def delete_collection(self, name: str) -> None:
        self._unlink(self._paths.collection_path(name))

    def scan_folder(self) -> dict[str, dict[str, Any]]:
        found: dict[str, dict[str, Any]] = {}
        folder = self._paths.folder
        if not folder.is_dir():
            return found
        for path in sorted(folder.glob(f"*{COLLECTION_SUFFIX}")):
            if path.name.startswith(".") or not path.is_file():
                continue
            name = path.name[: -len(COLLECTION_SUFFIX)]
            try:
                found[name] = self.load_collection(name)
            except StorageIOError as e:
                logger.warning("Failed to load collection file %s: %s", path.name, e)
                continue
            logger.info("Loaded collection '%s' with %d documents", name, len(found[name]))
        return found

    # ---------------- backups ----------------

    def write_backup(self, path: Path, doc: dict[str, Any]) -> None:
        self._write(Path(path), doc)

    def read_backup(self, path: Path) -> Any:
        path = Path(path)
        with GLOBAL_PATH_LOCKS.lock_for(path):
            try:
                raw = load_json(path, default=None)
            except (OSError, ValueError) as e:
                raise StorageIOError(f"Failed to read backup {path}: {e}") from e
        if raw is None:
            raise BackupNotFoundError(f"Backup file not found: {path}")
        return raw

    # ---------------- helpers ----------------

    def _write(self, path: Path, doc: Any, *, indent: int | None = 2) -> None:
        with GLOBAL_PATH_LOCKS.lock_for(path):
            try:
                atomic_write_json(path, doc, indent=indent)
            except (OSError, TypeError, ValueError) as e:
                raise StorageIOError(f"Failed to write {path}: {e}") from e

    def _unlink(self, path: Path) -> None:
        with GLOBAL_PATH_LOCKS.lock_for(path):
            try:
                path.unlink(missing_ok=True)
            except OSError as e:
                raise StorageIOError(f"Failed to delete {path}: {e}") from e
