from __future__ import annotations

import time
from typing import Any, Mapping

from pydantic import BaseModel, ConfigDict, Field

FORMAT_VERSION = 2
LEGACY_COLLECTION = "_default"


def now_ms() -> int:
    return int(time.time() * 1000)


class CollectionManifest(BaseModel):
    """
    Mirrors the on-disk .index.json schema exactly:
      { "version": 2, "timestamp": 1700000000000, "collections": ["users", ...] }
    """

    version: int = FORMAT_VERSION
    timestamp: int = Field(default_factory=now_ms)
    collections: list[str] = Field(default_factory=list)

    @classmethod
    def from_disk_doc(cls, doc: Mapping[str, Any]) -> "CollectionManifest":
        return cls.model_validate(doc)

    def to_disk_doc(self) -> dict[str, Any]:
        return self.model_dump(mode="json")


class BackupDocument(BaseModel):
    """
    Whole-store backup file:
      {
        "version": 2,
        "timestamp": 1700000000000,
        "folderBased": true,
        "collections": { "<name>": { "<id>": {...}, ... }, ... }
      }
    """

    model_config = ConfigDict(populate_by_name=True)

    version: int = FORMAT_VERSION
    timestamp: int = Field(default_factory=now_ms)
    folder_based: bool = Field(default=True, alias="folderBased")
    collections: dict[str, dict[str, dict[str, Any]]] = Field(default_factory=dict)

    @classmethod
    def from_disk_doc(cls, doc: Mapping[str, Any]) -> "BackupDocument":
        # Legacy migration: a flat { "<key>": value } store goes into "_default".
        if not _is_collection_backup(doc):
            legacy = {
                str(k): (dict(v) if isinstance(v, Mapping) else {"value": v})
                for k, v in doc.items()
            }
            return cls(collections={LEGACY_COLLECTION: legacy})
        return cls.model_validate(doc)

    def to_disk_doc(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


def _is_collection_backup(doc: Mapping[str, Any]) -> bool:
    if not isinstance(doc.get("collections"), Mapping):
        return False
    return bool(doc.get("folderBased")) or "version" in doc


class CollectionStats(BaseModel):
    document_count: int
    file_path: str


class StoreStats(BaseModel):
    collections: dict[str, CollectionStats] = Field(default_factory=dict)
    total_documents: int = 0
    collection_count: int = 0
    cache_size: int = 0
    max_cache_items: int
    folder_path: str
    write_lock: dict[str, Any] = Field(default_factory=dict)
