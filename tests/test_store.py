"""Tests for the SQLite snapshot store."""

from inbox_cleaner.store import KEY_CATEGORIES, SnapshotStore


def test_save_and_load(tmp_path, sample_snapshot):
    db_path = tmp_path / "test.db"

    with SnapshotStore(db_path=db_path) as store:
        store.save_snapshot(sample_snapshot)

    with SnapshotStore(db_path=db_path) as store:
        loaded = store.load_snapshot()

    assert loaded is not None
    assert [s.email for s in loaded.senders] == [s.email for s in sample_snapshot.senders]
    assert loaded.classifications == sample_snapshot.classifications
    assert loaded.categories == ["People", "Newsletters", "Shopping"]
    assert loaded.last_scan == 1704200000000

    news = loaded.get_sender("Digest@News.Example.com")
    assert news.count == 1
    assert news.unsubscribe.one_click is True
    assert news.unsubscribe.mailto == "u@news.example.com?subject=Bye"


def test_stored_sender_uses_camel_case_keys(tmp_path, sample_snapshot):
    with SnapshotStore(db_path=tmp_path / "test.db") as store:
        store.save_snapshot(sample_snapshot)
        raw = store.get("senders")
        last_scan = store.get("lastScan")
    assert set(raw[0]) == {"email", "name", "count", "messageIds", "lastEmailDate", "unsubscribe"}
    assert last_scan == 1704200000000


def test_load_empty(tmp_path):
    with SnapshotStore(db_path=tmp_path / "empty.db") as store:
        assert store.load_snapshot() is None


def test_categories_derived_when_missing(tmp_path, sample_snapshot):
    with SnapshotStore(db_path=tmp_path / "test.db") as store:
        store.save_snapshot(sample_snapshot)
        store._conn.execute("DELETE FROM kv WHERE key = ?", (KEY_CATEGORIES,))
        loaded = store.load_snapshot()
    assert loaded.categories == ["People", "Newsletters", "Shopping"]


def test_save_overwrites(tmp_path, sample_snapshot):
    with SnapshotStore(db_path=tmp_path / "test.db") as store:
        store.save_snapshot(sample_snapshot)
        sample_snapshot.senders = sample_snapshot.senders[:1]
        store.save_snapshot(sample_snapshot)
        assert len(store.load_snapshot().senders) == 1


def test_clear(tmp_path, sample_snapshot):
    with SnapshotStore(db_path=tmp_path / "test.db") as store:
        store.save_snapshot(sample_snapshot)
        store.clear()
        assert store.load_snapshot() is None


def test_get_info(tmp_path, sample_snapshot):
    with SnapshotStore(db_path=tmp_path / "test.db") as store:
        assert store.get_info()["last_scan"] is None
        store.save_snapshot(sample_snapshot)
        info = store.get_info()

    assert info["sender_count"] == 3
    assert info["message_count"] == 4
    assert info["category_count"] == 3
    assert info["db_file_size"] > 0
