from __future__ import annotations

from pathlib import Path
from typing import Any, Protocol


class CollectionStorage(Protocol):
    """
    Where collections live between process runs: one JSON document per
    collection, plus a manifest naming them.
    """

    def ensure_storage_folder(self) -> Path:
        ...

    def load_manifest(self) -> list[str] | None:
        """Return the listed collection names, or None if missing/corrupt."""
        ...

    def save_manifest(self, names: list[str]) -> None:
        ...

    def delete_manifest(self) -> None:
        ...

    def load_collection(self, name: str) -> dict[str, Any]:
        """Load one collection (empty dict if it has no file yet)."""
        ...

    def save_collection(self, name: str, data: dict[str, Any]) -> Path:
        """Persist the full collection, replacing the file."""
        ...

    def delete_collection(self, name: str) -> None:
        ...

    def scan_folder(self) -> dict[str, dict[str, Any]]:
        ...


class EventListener(Protocol):
    def __call__(self, event: str, payload: dict[str, Any]) -> None:
        ...
