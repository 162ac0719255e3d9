"""Tests for the JSON-backed record store."""

import csv
import json
import threading

import pytest

from conftest import make_record
from greenlens.models.records import WasteCategory
from greenlens.utils import record_store
from greenlens.utils.record_store import RecordStore, RecordStoreError


def test_empty_store_lists_nothing(store) -> None:
    assert store.list_all() == []
    assert store.count() == 0


def test_list_all_is_insertion_ordered(store) -> None:
    records = [make_record(created_at=3), make_record(created_at=1), make_record(created_at=2)]
    for record in records:
        assert store.append(record) == record

    assert [r.id for r in store.list_all()] == [r.id for r in records]


def test_records_survive_restart(tmp_path) -> None:
    first = RecordStore(data_dir=str(tmp_path))
    record = make_record(trash_type=WasteCategory.CUP)
    first.append(record)

    reopened = RecordStore(data_dir=str(tmp_path))
    assert reopened.list_all() == [record]


def test_file_is_keyed_by_logical_name(tmp_path) -> None:
    store = RecordStore(data_dir=str(tmp_path), key="greenlens_detections")
    store.append(make_record())

    with open(tmp_path / "greenlens_detections.json") as f:
        data = json.load(f)
    assert len(data["greenlens_detections"]) == 1
    assert "last_updated" in data["metadata"]


def test_concurrent_appends_lose_nothing(store) -> None:
    records = [make_record() for _ in range(50)]
    barrier = threading.Barrier(len(records))

    def append(record):
        barrier.wait()
        store.append(record)

    threads = [threading.Thread(target=append, args=(r,)) for r in records]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(10.0)

    stored_ids = {r.id for r in store.list_all()}
    assert len(stored_ids) == 50
    assert stored_ids == {r.id for r in records}
    assert store.version == 50


def test_failed_write_leaves_store_unchanged(store, monkeypatch) -> None:
    kept = make_record()
    store.append(kept)

    def boom(src, dst):
        raise OSError("disk full")

    monkeypatch.setattr(record_store.os, "replace", boom)
    with pytest.raises(RecordStoreError):
        store.append(make_record())
    monkeypatch.undo()

    assert store.list_all() == [kept]
    assert store.version == 1


def test_corrupt_file_is_reported(tmp_path) -> None:
    store = RecordStore(data_dir=str(tmp_path))
    store.path.write_text("{not json")

    with pytest.raises(RecordStoreError):
        store.list_all()


def test_export_csv(store, tmp_path) -> None:
    store.append(make_record(trash_type=WasteCategory.CAN))
    output = store.export_csv(str(tmp_path / "export.csv"))

    with open(output, newline="") as f:
        rows = list(csv.DictReader(f))
    assert len(rows) == 1
    assert rows[0]["trash_type"] == "can"
    assert rows[0]["description"] == ""


@pytest.mark.parametrize("content", [
    "[]",
    '{"greenlens_detections": [{"id": "x"}]}',
    '{"greenlens_detections": ["not a record"]}',
    '{"greenlens_detections": [{"id": "x", "trash_type": "tyre", "confidence": 1, '
    '"lat": 0, "lng": 0, "created_at": 0}]}',
])
def test_malformed_collection_is_reported(tmp_path, content) -> None:
    store = RecordStore(data_dir=str(tmp_path))
    store.path.write_text(content)

    with pytest.raises(RecordStoreError):
        store.list_all()
