from __future__ import annotations

import json
import threading
import time

import pytest

from docstore import (
    BackupNotFoundError,
    DocumentDatabase,
    RestoreError,
    StorageIOError,
)


def _manifest(data_dir):
    return json.loads((data_dir / ".index.json").read_text(encoding="utf-8"))


def test_open_creates_folder_and_manifest(db, data_dir):
    assert not data_dir.exists()

    db.open()
    db.open()

    assert data_dir.is_dir()
    assert _manifest(data_dir)["collections"] == []
    assert db.is_open


def test_concurrent_open_bootstraps_once(data_dir, monkeypatch):
    db = DocumentDatabase(data_dir)
    calls = []
    original = db._bootstrap

    def counting_bootstrap():
        calls.append(1)
        original()

    monkeypatch.setattr(db, "_bootstrap", counting_bootstrap)
    threads = [threading.Thread(target=db.open) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert calls == [1]


def test_round_trip_through_a_fresh_instance(db, data_dir):
    users = db.collection("users")
    docs = {f"u{i}": {"n": i, "nested": {"tags": ["a", i]}} for i in range(5)}
    for doc_id, body in docs.items():
        users.insert(body, doc_id)
    db.collection("orders").insert({"total": 9.5}, 1)
    db.close()

    reopened = DocumentDatabase(data_dir)
    assert sorted(reopened.list_collection_names()) == ["orders", "users"]
    assert {d.pop("id"): d for d in reopened.collection("users").find()} == docs
    assert reopened.collection("orders").find_by_id(1) == {"total": 9.5}


def test_manifest_tracks_structural_changes(db, data_dir):
    db.collection("a").insert({"v": 1}, "1")
    db.collection("b").insert({"v": 1}, "1")
    assert _manifest(data_dir)["collections"] == ["a", "b"]

    db.drop_collection("a")
    assert _manifest(data_dir)["collections"] == ["b"]


def test_corrupt_manifest_falls_back_to_folder_scan(data_dir):
    data_dir.mkdir(parents=True)
    (data_dir / "users.json").write_text(json.dumps({"1": {"name": "a"}}), encoding="utf-8")
    (data_dir / ".index.json").write_text("{garbage", encoding="utf-8")

    db = DocumentDatabase(data_dir)

    assert db.list_collection_names() == ["users"]
    assert _manifest(data_dir)["collections"] == ["users"]


def test_missing_manifest_is_rebuilt_from_folder(data_dir):
    data_dir.mkdir(parents=True)
    (data_dir / "b.json").write_text(json.dumps({"x": {}}), encoding="utf-8")
    (data_dir / "a.json").write_text(json.dumps({"y": {}}), encoding="utf-8")

    db = DocumentDatabase(data_dir)

    assert sorted(db.list_collection_names()) == ["a", "b"]
    assert sorted(_manifest(data_dir)["collections"]) == ["a", "b"]


def test_manifest_entries_without_files_are_dropped(data_dir):
    data_dir.mkdir(parents=True)
    (data_dir / "real.json").write_text(json.dumps({"1": {"ok": True}}), encoding="utf-8")
    (data_dir / ".index.json").write_text(
        json.dumps({"version": 2, "timestamp": 0, "collections": ["real", "ghost"]}), encoding="utf-8"
    )

    db = DocumentDatabase(data_dir)

    assert db.list_collection_names() == ["real"]
    assert _manifest(data_dir)["collections"] == ["real"]


def test_drop_collection(db, data_dir):
    users = db.collection("users")
    users.insert({"v": 1}, "1")
    users.find_by_id("1")

    assert db.drop_collection("users") is True
    assert db.drop_collection("users") is False
    assert not (data_dir / "users.json").exists()
    assert "users:1" not in db.cache
    assert users.find_by_id("1") is None


def test_clear_all_removes_files_and_manifest(db, data_dir):
    db.collection("a").insert({"v": 1}, "1")
    db.collection("b").insert({"v": 1}, "1")

    db.clear_all()

    assert db.list_collection_names() == []
    assert db.total_document_count() == 0
    assert len(db.cache) == 0
    assert not (data_dir / "a.json").exists()
    assert not (data_dir / ".index.json").exists()


def test_total_count_and_stats(db):
    db.collection("a").insert({"v": 1}, "1")
    db.collection("a").insert({"v": 2}, "2")
    db.collection("b").insert({"v": 3}, "1")

    stats = db.get_stats()

    assert db.total_document_count() == 3
    assert stats.total_documents == 3
    assert stats.collection_count == 2
    assert stats.collections["a"].document_count == 2
    assert stats.collections["a"].file_path.endswith("a.json")
    assert stats.cache_size == 3
    assert stats.max_cache_items == 100
    assert stats.write_lock == {"locked": False, "queue_length": 0}


def test_save_rewrites_every_collection(db, data_dir):
    db.collection("a").insert({"v": 1}, "1")
    (data_dir / "a.json").unlink()

    db.save()

    assert json.loads((data_dir / "a.json").read_text(encoding="utf-8")) == {"1": {"v": 1}}


def test_close_then_reuse_reopens_lazily(db):
    db.collection("a").insert({"v": 1}, "1")
    db.close()
    assert not db.is_open

    assert db.collection("a").find_by_id("1") == {"v": 1}
    assert db.is_open


def test_context_manager(data_dir):
    with DocumentDatabase(data_dir) as db:
        db.collection("a").insert({"v": 1}, "1")
        assert db.is_open
    assert not db.is_open


def test_failed_write_rolls_back_memory(db, data_dir, monkeypatch):
    users = db.collection("users")
    users.insert({"v": 1}, "keep")

    def broken_save(name, data):
        raise StorageIOError("disk full")

    monkeypatch.setattr(db.storage, "save_collection", broken_save)

    with pytest.raises(StorageIOError):
        users.insert({"v": 2}, "new")
    with pytest.raises(StorageIOError):
        users.update("keep", {"v": 3})
    with pytest.raises(StorageIOError):
        db.collection("fresh").insert({"v": 1}, "1")

    assert users.find_by_id("new") is None
    assert users.find_by_id("keep") == {"v": 1}
    assert db.cache.get("users:keep") == {"v": 1}
    assert "fresh" not in db.list_collection_names()


def test_failed_delete_rolls_back_memory(db, monkeypatch):
    users = db.collection("users")
    users.insert({"v": 1}, "a")
    users.insert({"v": 2}, "b")

    def broken_save(name, data):
        raise StorageIOError("disk full")

    monkeypatch.setattr(db.storage, "save_collection", broken_save)

    with pytest.raises(StorageIOError):
        users.delete("a")

    assert [d["id"] for d in users.find()] == ["a", "b"]


def test_events_are_emitted_after_writes(db):
    events = []
    unsubscribe = db.subscribe(lambda event, payload: events.append((event, payload)))

    users = db.collection("users")
    users.insert({"v": 1}, "1")
    users.update("1", {"v": 2})
    users.delete("1")
    db.collection("x").insert({"v": 1}, "1")
    db.drop_collection("x")
    db.clear_all()
    unsubscribe()
    db.collection("y").insert({"v": 1}, "1")

    assert [e for e, _ in events] == [
        "collection:insert",
        "collection:update",
        "collection:delete",
        "collection:insert",
        "collection:dropped",
        "database:cleared",
    ]
    assert events[0][1] == {"collection": "users", "id": "1", "document": {"v": 1}}


def test_failing_listener_does_not_fail_the_write(db):
    def bad_listener(event, payload):
        raise RuntimeError("listener bug")

    db.subscribe(bad_listener)

    assert db.collection("a").insert({"v": 1}, "1") == {"id": "1", "v": 1}


# ---------------- backup & restore ----------------


def test_backup_clear_restore_round_trip(db, tmp_path):
    db.collection("users").insert({"name": "a"}, "u1")
    db.collection("users").insert({"name": "b"}, "u2")
    db.collection("orders").insert({"total": 5}, "o1")
    before = {name: db.collection(name).find() for name in db.list_collection_names()}

    backup_path = db.backup(tmp_path / "backup.json")
    raw = json.loads(backup_path.read_text(encoding="utf-8"))
    assert raw["version"] == 2
    assert raw["folderBased"] is True
    assert raw["collections"]["users"] == {"u1": {"name": "a"}, "u2": {"name": "b"}}

    db.clear_all()
    db.restore(backup_path)

    after = {name: db.collection(name).find() for name in db.list_collection_names()}
    assert after == before


def test_restore_replaces_collections_missing_from_backup(db, data_dir, tmp_path):
    db.collection("keep").insert({"v": 1}, "1")
    path = db.backup(tmp_path / "backup.json")
    db.collection("extra").insert({"v": 1}, "1")

    db.restore(path)

    assert db.list_collection_names() == ["keep"]
    assert not (data_dir / "extra.json").exists()
    assert _manifest(data_dir)["collections"] == ["keep"]


def test_restore_legacy_flat_format(db, tmp_path):
    legacy = tmp_path / "legacy.json"
    legacy.write_text(json.dumps({"alpha": {"n": 1}, "beta": 7}), encoding="utf-8")

    db.restore(legacy)

    default = db.collection("_default")
    assert default.find_by_id("alpha") == {"n": 1}
    assert default.find_by_id("beta") == {"value": 7}


def test_restore_missing_file(db, tmp_path):
    with pytest.raises(BackupNotFoundError):
        db.restore(tmp_path / "nope.json")


def test_restore_failure_keeps_previous_memory_state(db, tmp_path, monkeypatch):
    db.collection("users").insert({"v": 1}, "1")
    other = DocumentDatabase(tmp_path / "other")
    other.collection("replacement").insert({"v": 2}, "2")
    path = other.backup(tmp_path / "backup.json")

    def broken_save(name, data):
        raise StorageIOError("disk full")

    monkeypatch.setattr(db.storage, "save_collection", broken_save)

    with pytest.raises(RestoreError):
        db.restore(path)

    assert db.list_collection_names() == ["users"]
    assert db.collection("users").find_by_id("1") == {"v": 1}


def test_restore_rejects_malformed_backup(db, tmp_path):
    bad = tmp_path / "bad.json"
    bad.write_text(json.dumps({"version": 2, "collections": {"users": {"1": "not an object"}}}), encoding="utf-8")
    db.collection("users").insert({"v": 1}, "1")

    with pytest.raises(RestoreError):
        db.restore(bad)

    assert db.collection("users").find_by_id("1") == {"v": 1}


def test_write_queued_behind_close_keeps_every_collection(db, data_dir):
    db.collection("a").insert({"v": 1}, "1")
    db.collection("b").insert({"v": 2}, "2")

    db.serializer.acquire()
    closer = threading.Thread(target=db.close)
    closer.start()
    _wait_for_queue(db, 1)
    writer = threading.Thread(target=db.collection("b").update, args=("3", {"v": 3}))
    writer.start()
    _wait_for_queue(db, 2)
    db.serializer.release()
    closer.join()
    writer.join()

    fresh = DocumentDatabase(data_dir)
    assert fresh.list_collection_names() == ["a", "b"]
    assert fresh.collection("a").find_by_id("1") == {"v": 1}
    assert fresh.collection("b").count() == 2
    assert _manifest(data_dir)["collections"] == ["a", "b"]


def _wait_for_queue(db, length, timeout=5.0):
    deadline = time.monotonic() + timeout
    while db.serializer.status()["queue_length"] != length:
        assert time.monotonic() < deadline, "serializer queue never reached expected length"
        time.sleep(0.005)
