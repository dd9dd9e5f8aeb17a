"""
Unit tests for SnapshotStore.
"""

import json

import pytest

from persistq import PersistenceError, QueueItem, SnapshotStore


def test_creates_directory(queue_dir):
    assert not queue_dir.exists()
    SnapshotStore(queue_dir / "q.json")
    assert queue_dir.is_dir()


def test_save_and_load_roundtrip(queue_dir):
    path = queue_dir / "q.json"
    store = SnapshotStore(path)
    items = [QueueItem({"id": 1}), QueueItem({"id": 2, "tags": ["x"]}, retries=3)]

    assert store.save(items) is True

    loaded = SnapshotStore(path).load()
    assert [i.payload for i in loaded] == [{"id": 1}, {"id": 2, "tags": ["x"]}]
    assert [i.retries for i in loaded] == [0, 3]


def test_file_format_is_array_with_retries(queue_dir):
    path = queue_dir / "q.json"
    SnapshotStore(path).save([QueueItem({"id": 7}, retries=1)])
    assert json.loads(path.read_text(encoding="utf-8")) == [{"id": 7, "_retries": 1}]


def test_save_overwrites_previous_snapshot(queue_dir):
    path = queue_dir / "q.json"
    store = SnapshotStore(path)
    store.save([QueueItem({"id": 1}), QueueItem({"id": 2})])
    store.save([QueueItem({"id": 3})])
    assert [i.payload["id"] for i in store.load()] == [3]
    assert not (queue_dir / "q.json.tmp").exists()


def test_missing_file_loads_empty(queue_dir):
    assert SnapshotStore(queue_dir / "missing.json").load() == []


@pytest.mark.parametrize(
    "content",
    ["{not json", '{"id": 1}', "[1, 2, 3]", '[{"id": 1, "_retries": "many"}]', ""],
)
def test_corrupt_file_loads_empty(queue_dir, content):
    path = queue_dir / "q.json"
    queue_dir.mkdir(parents=True)
    path.write_text(content, encoding="utf-8")
    assert SnapshotStore(path).load() == []


def test_read_records_raises_on_corruption(queue_dir):
    path = queue_dir / "q.json"
    queue_dir.mkdir(parents=True)
    path.write_text("garbage", encoding="utf-8")
    with pytest.raises(PersistenceError):
        SnapshotStore(path).read_records()


def test_load_truncates_to_capacity(queue_dir):
    path = queue_dir / "q.json"
    SnapshotStore(path).save([QueueItem({"id": i}) for i in range(5)])

    loaded = SnapshotStore(path, max_size=3).load()
    # the oldest items are kept
    assert [i.payload["id"] for i in loaded] == [0, 1, 2]


def test_save_failure_is_reported_not_raised(queue_dir):
    store = SnapshotStore(queue_dir / "q.json")
    # a set is not JSON serializable
    assert store.save([QueueItem({"bad": {1, 2}})]) is False
    assert not (queue_dir / "q.json.tmp").exists()


def test_save_into_missing_directory_fails_softly(tmp_path):
    store = SnapshotStore(tmp_path / "gone" / "q.json")
    (tmp_path / "gone").rmdir()
    assert store.save([QueueItem({"id": 1})]) is False


@pytest.mark.parametrize(
    "retries",
    ["Infinity", "-Infinity", "NaN", "1e999", "-4", "true", '"3"', "1.5", "[1]"],
)
def test_invalid_retry_counter_loads_empty(queue_dir, retries):
    path = queue_dir / "q.json"
    queue_dir.mkdir(parents=True)
    path.write_text(f'[{{"id": 1, "_retries": {retries}}}]', encoding="utf-8")
    assert SnapshotStore(path).load() == []


def test_null_retry_counter_defaults_to_zero(queue_dir):
    path = queue_dir / "q.json"
    queue_dir.mkdir(parents=True)
    path.write_text('[{"id": 1, "_retries": null}]', encoding="utf-8")
    (item,) = SnapshotStore(path).load()
    assert item.retries == 0
