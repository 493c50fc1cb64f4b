"""Tests for the key/value storage backends."""

import json

import pytest
from storefront.exceptions import StorageError
from storefront.storage import JsonFileStorage, MemoryStorage


def test_memory_storage():
    storage = MemoryStorage()
    assert storage.get("k") is None
    storage.set("k", "v")
    assert storage.get("k") == "v"
    storage.delete("k")
    storage.delete("k")
    assert storage.get("k") is None


class TestJsonFileStorage:
    def test_missing_file_reads_empty(self, tmp_path):
        assert JsonFileStorage(tmp_path / "guest.json").get("k") is None

    def test_values_persist_across_instances(self, tmp_path):
        path = tmp_path / "nested" / "guest.json"
        JsonFileStorage(path).set("guest_cart", "[]")
        assert JsonFileStorage(path).get("guest_cart") == "[]"
        assert json.loads(path.read_text()) == {"guest_cart": "[]"}

    def test_no_temp_files_left_behind(self, tmp_path):
        storage = JsonFileStorage(tmp_path / "guest.json")
        storage.set("a", "1")
        storage.set("b", "2")
        assert [p.name for p in tmp_path.iterdir()] == ["guest.json"]

    def test_delete(self, tmp_path):
        storage = JsonFileStorage(tmp_path / "guest.json")
        storage.set("a", "1")
        storage.delete("a")
        assert storage.get("a") is None

    def test_corrupt_document_raises_on_read(self, tmp_path):
        path = tmp_path / "guest.json"
        path.write_text("{broken")
        with pytest.raises(StorageError):
            JsonFileStorage(path).get("k")

    def test_corrupt_document_is_replaced_on_write(self, tmp_path):
        path = tmp_path / "guest.json"
        path.write_text("[1, 2]")
        storage = JsonFileStorage(path)
        storage.set("k", "v")
        assert storage.get("k") == "v"

    def test_non_string_values_are_ignored(self, tmp_path):
        path = tmp_path / "guest.json"
        path.write_text(json.dumps({"k": 5}))
        assert JsonFileStorage(path).get("k") is None

    def test_unwritable_location_raises(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("")
        with pytest.raises(StorageError):
            JsonFileStorage(blocker / "guest.json").set("k", "v")
