from __future__ import annotations

import copy
import logging
import secrets
import string
import time
from typing import TYPE_CHECKING, Any, Iterator, Mapping, Sequence

from .cache import cache_key
from .errors import DocumentExistsError, StorageIOError, ValidationError
from .query import Filter, FindOptions, run_pipeline
from .validation import normalize_id, validate_collection_name, validate_document

if TYPE_CHECKING:
    from .database import DocumentDatabase

logger = logging.getLogger(__name__)

_BASE36 = string.digits + string.ascii_lowercase


def _base36(n: int) -> str:
    if n == 0:
        return "0"
    out = []
    while n:
        n, r = divmod(n, 36)
        out.append(_BASE36[r])
    return "".join(reversed(out))


def generate_id() -> str:
    """
    Millisecond timestamp plus 7 random chars, both base 36.

    Collisions are unlikely but not impossible; insert() still rejects a
    duplicate if one ever happens.
    """
    return _base36(int(time.time() * 1000)) + _base36(secrets.randbelow(36**7)).rjust(7, "0")


def _with_id(doc_id: str, body: Mapping[str, Any]) -> dict[str, Any]:
    return {"id": doc_id, **copy.deepcopy(body)}


def _coerce_options(options: Any) -> FindOptions:
    if options is None:
        return FindOptions()
    if isinstance(options, FindOptions):
        return FindOptions(filter=options.filter, limit=options.limit, skip=options.skip)
    if callable(options):
        return FindOptions(filter=options)
    if isinstance(options, Mapping):
        return FindOptions(
            filter=options.get("filter"),
            limit=options.get("limit"),
            skip=options.get("skip") or 0,
        )
    raise ValidationError(f"Unsupported query options: {type(options).__name__}")


class Collection:
    """
    Document CRUD bound to one collection name.

    Mutations run under the database's global write serializer and commit
    memory, cache and disk as one unit. Reads never take the serializer.
    """

    def __init__(self, db: "DocumentDatabase", name: str):
        self._db = db
        self._name = validate_collection_name(name)

    @property
    def name(self) -> str:
        return self._name

    def __repr__(self) -> str:
        return f"Collection({self._name!r})"

    # ---------------- writes ----------------

    def insert(self, document: Mapping[str, Any], doc_id: str | int | None = None) -> dict[str, Any]:
        body = validate_document(document)
        key = normalize_id(doc_id) if doc_id is not None else generate_id()

        db = self._db
        with db.serializer.hold():
            db.open()
            db.store.ensure(self._name)
            if db.store.contains(self._name, key):
                raise DocumentExistsError(self._name, key)
            self._commit_put(key, body)

        db.emit("collection:insert", {"collection": self._name, "id": key, "document": copy.deepcopy(body)})
        return _with_id(key, body)

    def update(self, doc_id: str | int, document: Mapping[str, Any]) -> dict[str, Any]:
        """Upsert: create the document if absent, else replace its whole body."""
        body = validate_document(document)
        key = normalize_id(doc_id)

        db = self._db
        with db.serializer.hold():
            db.open()
            db.store.ensure(self._name)
            self._commit_put(key, body)

        db.emit("collection:update", {"collection": self._name, "id": key, "document": copy.deepcopy(body)})
        return copy.deepcopy(body)

    def delete(self, doc_id: str | int) -> bool:
        key = normalize_id(doc_id)

        db = self._db
        with db.serializer.hold():
            db.open()
            if not db.store.contains(self._name, key):
                return False
            before = db.store.copy_collection(self._name)
            with db.store.lock:
                body = db.store.remove(self._name, key)
                db.cache.delete(cache_key(self._name, key))
            try:
                db.persist_collection(self._name)
            except StorageIOError:
                logger.warning("Rolling back delete of %s:%s after a storage failure", self._name, key)
                with db.store.lock:
                    db.store.set(self._name, before)
                    db.store.paths.register(self._name)
                raise

        db.emit("collection:delete", {"collection": self._name, "id": key, "document": copy.deepcopy(body)})
        return True

    def _commit_put(self, key: str, body: dict[str, Any]) -> None:
        db = self._db
        ck = cache_key(self._name, key)
        with db.store.lock:
            previous = db.store.put(self._name, key, body)
            db.cache.set(ck, body)
        try:
            db.persist_collection(self._name)
        except StorageIOError:
            logger.warning("Rolling back write of %s:%s after a storage failure", self._name, key)
            with db.store.lock:
                if previous is None:
                    db.store.remove(self._name, key)
                    db.cache.delete(ck)
                    if db.store.size(self._name) == 0:
                        db.store.drop(self._name)
                else:
                    db.store.put(self._name, key, previous)
                    db.cache.set(ck, previous)
            raise

    # ---------------- reads ----------------

    def find_by_id(self, doc_id: str | int) -> dict[str, Any] | None:
        key = normalize_id(doc_id)
        db = self._db
        db.open()

        ck = cache_key(self._name, key)
        cached = db.cache.get(ck)
        if cached is not None:
            return copy.deepcopy(cached)

        # Lookup and cache fill share the store lock with writers, so a slow
        # reader cannot put a superseded body back into the cache.
        with db.store.lock:
            body = db.store.lookup(self._name, key)
            if body is None:
                return None
            db.cache.set(ck, body)
        return copy.deepcopy(body)

    def find(
        self,
        options: FindOptions | Mapping[str, Any] | None = None,
        *,
        filter: Filter | None = None,
        limit: int | None = None,
        skip: int | None = None,
    ) -> list[dict[str, Any]]:
        """
        Scan in insertion order.

        `skip` drops raw entries before the filter is consulted; `limit`
        caps the number of filter-passing results. A falsy limit means no limit.
        """
        opts = _coerce_options(options)
        if filter is not None:
            opts.filter = filter
        if limit is not None:
            opts.limit = limit
        if skip is not None:
            opts.skip = skip

        self._db.open()
        results: list[dict[str, Any]] = []
        skipped = 0
        for doc_id, body in self._db.store.items(self._name):
            if skipped < opts.skip:
                skipped += 1
                continue
            if opts.limit and len(results) >= opts.limit:
                break
            if opts.filter is None or opts.filter(body, doc_id):
                results.append(_with_id(doc_id, body))
        return results

    def find_one(self, filter: Filter | None = None) -> dict[str, Any] | None:
        results = self.find(filter=filter, limit=1)
        return results[0] if results else None

    def count(self, filter_or_options: Filter | FindOptions | Mapping[str, Any] | None = None) -> int:
        predicate = _coerce_options(filter_or_options).filter
        self._db.open()
        if predicate is None:
            return self._db.store.size(self._name)
        return sum(1 for doc_id, body in self._db.store.items(self._name) if predicate(body, doc_id))

    def stream(self) -> Iterator[dict[str, Any]]:
        self._db.open()
        for doc_id, body in self._db.store.items(self._name):
            yield _with_id(doc_id, body)

    def aggregate(
        self, stages: Sequence[Mapping[str, Any]]
    ) -> list[dict[str, Any]] | dict[str, list[dict[str, Any]]]:
        """
        Run match/sort/limit/skip/group stages over find().

        `group` returns {key: [docs]} and must be the final stage.
        """
        return run_pipeline(self.find(), stages)
