from __future__ import annotations

import threading
from pathlib import Path

MANIFEST_FILENAME = ".index.json"
COLLECTION_SUFFIX = ".json"


def ensure_dir(path: Path) -> Path:
    path.mkdir(parents=True, exist_ok=True)
    return path


class PathIndex:
    """
    Maps collection names to their backing files inside one storage folder.

    The registered names are exactly what the manifest lists; a name is
    registered once its file has been written (or loaded) and unregistered
    when the file goes away.
    """

    def __init__(self, folder: Path | str):
        self._folder = Path(folder).resolve()
        self._guard = threading.Lock()
        self._files: dict[str, Path] = {}

    @property
    def folder(self) -> Path:
        return self._folder

    @property
    def manifest_path(self) -> Path:
        return self._folder / MANIFEST_FILENAME

    def collection_path(self, name: str) -> Path:
        return self._folder / f"{name}{COLLECTION_SUFFIX}"

    def register(self, name: str) -> Path:
        path = self.collection_path(name)
        with self._guard:
            self._files[name] = path
        return path

    def unregister(self, name: str) -> Path | None:
        with self._guard:
            return self._files.pop(name, None)

    def path_for(self, name: str) -> Path | None:
        with self._guard:
            return self._files.get(name)

    def names(self) -> list[str]:
        with self._guard:
            return list(self._files)

    def snapshot(self) -> dict[str, Path]:
        with self._guard:
            return dict(self._files)

    def replace(self, files: dict[str, Path]) -> None:
        with self._guard:
            self._files = dict(files)

    def clear(self) -> None:
        with self._guard:
            self._files.clear()

    def __contains__(self, name: object) -> bool:
        with self._guard:
            return name in self._files

    def __len__(self) -> int:
        with self._guard:
            return len(self._files)
