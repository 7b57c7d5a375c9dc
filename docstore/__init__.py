from __future__ import annotations

from .cache import RecentAccessCache
from .collection import Collection
from .database import DocumentDatabase
from .errors import (
    BackupNotFoundError,
    ConflictError,
    DocumentExistsError,
    RestoreError,
    StorageIOError,
    StoreError,
    ValidationError,
)
from .locks import WriteSerializer
from .query import FindOptions
from .repositories import AsyncCollection, AsyncDocumentDatabase

__all__ = [
    "DocumentDatabase",
    "Collection",
    "FindOptions",
    "RecentAccessCache",
    "WriteSerializer",
    "AsyncDocumentDatabase",
    "AsyncCollection",
    "StoreError",
    "ValidationError",
    "ConflictError",
    "DocumentExistsError",
    "StorageIOError",
    "RestoreError",
    "BackupNotFoundError",
]
