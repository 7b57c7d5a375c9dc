from __future__ import annotations


class StoreError(Exception):
    """Base class for document store errors."""


class ValidationError(StoreError, ValueError):
    """Raised for bad caller input, before any state is touched."""


class ConflictError(StoreError):
    """Raised when a write conflicts with existing state."""


class DocumentExistsError(ConflictError):
    def __init__(self, collection: str, doc_id: str):
        super().__init__(f"Document with id '{doc_id}' already exists in collection '{collection}'")
        self.collection = collection
        self.doc_id = doc_id


class StorageIOError(StoreError):
    """Raised when reading or writing the storage folder fails."""


class RestoreError(StorageIOError):
    """Raised when a restore fails; the in-memory state has been rolled back."""


class BackupNotFoundError(RestoreError):
    """Raised when the backup file to restore from does not exist."""
