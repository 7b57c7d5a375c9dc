from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any, AsyncIterator, Callable, Mapping, Protocol, Sequence

from .collection import Collection
from .database import DocumentDatabase
from .interfaces import EventListener
from .query import Filter, FindOptions
from .records import StoreStats


class AsyncCollectionRepository(Protocol):
    """
    Awaitable document CRUD for one collection.
    Mirrors Collection so callers on an event loop never block on disk I/O.
    """

    async def insert(self, document: Mapping[str, Any], doc_id: str | int | None = None) -> dict[str, Any]: ...
    async def update(self, doc_id: str | int, document: Mapping[str, Any]) -> dict[str, Any]: ...
    async def delete(self, doc_id: str | int) -> bool: ...

    async def find_by_id(self, doc_id: str | int) -> dict[str, Any] | None: ...
    async def find(
        self,
        options: FindOptions | Mapping[str, Any] | None = None,
        *,
        filter: Filter | None = None,
        limit: int | None = None,
        skip: int | None = None,
    ) -> list[dict[str, Any]]: ...
    async def find_one(self, filter: Filter | None = None) -> dict[str, Any] | None: ...
    async def count(self, filter_or_options: Filter | FindOptions | Mapping[str, Any] | None = None) -> int: ...


class AsyncCollection(AsyncCollectionRepository):
    """
    Async wrapper around a Collection handle.
    Uses asyncio.to_thread to avoid blocking the event loop on file I/O.
    """

    def __init__(self, collection: Collection) -> None:
        self._collection = collection

    @property
    def name(self) -> str:
        return self._collection.name

    async def insert(self, document: Mapping[str, Any], doc_id: str | int | None = None) -> dict[str, Any]:
        return await asyncio.to_thread(self._collection.insert, document, doc_id)

    async def update(self, doc_id: str | int, document: Mapping[str, Any]) -> dict[str, Any]:
        return await asyncio.to_thread(self._collection.update, doc_id, document)

    async def delete(self, doc_id: str | int) -> bool:
        return await asyncio.to_thread(self._collection.delete, doc_id)

    async def find_by_id(self, doc_id: str | int) -> dict[str, Any] | None:
        return await asyncio.to_thread(self._collection.find_by_id, doc_id)

    async def find(
        self,
        options: FindOptions | Mapping[str, Any] | None = None,
        *,
        filter: Filter | None = None,
        limit: int | None = None,
        skip: int | None = None,
    ) -> list[dict[str, Any]]:
        return await asyncio.to_thread(self._collection.find, options, filter=filter, limit=limit, skip=skip)

    async def find_one(self, filter: Filter | None = None) -> dict[str, Any] | None:
        return await asyncio.to_thread(self._collection.find_one, filter)

    async def count(self, filter_or_options: Filter | FindOptions | Mapping[str, Any] | None = None) -> int:
        return await asyncio.to_thread(self._collection.count, filter_or_options)

    async def aggregate(
        self, stages: Sequence[Mapping[str, Any]]
    ) -> list[dict[str, Any]] | dict[str, list[dict[str, Any]]]:
        return await asyncio.to_thread(self._collection.aggregate, stages)

    async def stream(self) -> AsyncIterator[dict[str, Any]]:
        iterator = self._collection.stream()
        done = object()
        while True:
            doc = await asyncio.to_thread(next, iterator, done)
            if doc is done:
                return
            yield doc


class AsyncDocumentDatabase:
    """
    Async facade over DocumentDatabase for the HTTP layer.

    Every call is pushed to a worker thread; the write serializer inside
    the database keeps mutations totally ordered across those threads.
    """

    def __init__(self, db: DocumentDatabase) -> None:
        self._db = db

    @property
    def sync(self) -> DocumentDatabase:
        return self._db

    def collection(self, name: str) -> AsyncCollection:
        return AsyncCollection(self._db.collection(name))

    def subscribe(self, listener: EventListener) -> Callable[[], None]:
        return self._db.subscribe(listener)

    async def open(self) -> None:
        await asyncio.to_thread(self._db.open)

    async def close(self) -> None:
        await asyncio.to_thread(self._db.close)

    async def list_collection_names(self) -> list[str]:
        return await asyncio.to_thread(self._db.list_collection_names)

    async def drop_collection(self, name: str) -> bool:
        return await asyncio.to_thread(self._db.drop_collection, name)

    async def clear_all(self) -> None:
        await asyncio.to_thread(self._db.clear_all)

    async def total_document_count(self) -> int:
        return await asyncio.to_thread(self._db.total_document_count)

    async def get_stats(self) -> StoreStats:
        return await asyncio.to_thread(self._db.get_stats)

    async def save(self) -> None:
        await asyncio.to_thread(self._db.save)

    async def backup(self, path: str | Path) -> Path:
        return await asyncio.to_thread(self._db.backup, path)

    async def restore(self, path: str | Path) -> None:
        await asyncio.to_thread(self._db.restore, path)
