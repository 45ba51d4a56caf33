import json
import os

import pytest

import app_paths
import storage
from storage import JsonFileStore, MemoryStore


def test_values_are_copied_in_and_out():
    store = MemoryStore()
    value = {"a": [1]}
    store.set("k", value)
    value["a"].append(2)
    got = store.get("k")
    got["a"].append(3)
    assert store.get("k") == {"a": [1]}


def test_missing_key_returns_default():
    assert MemoryStore().get("nope", 5) == 5


def test_listeners_receive_changes_and_can_unsubscribe():
    store = MemoryStore()
    seen = []
    unsubscribe = store.subscribe(lambda key, value: seen.append((key, value)))
    store.update({"a": 1, "b": 2})
    store.remove("a")
    unsubscribe()
    store.set("c", 3)
    assert seen == [("a", 1), ("b", 2), ("a", None)]


def test_failing_listener_does_not_block_others():
    store = MemoryStore()
    seen = []

    def broken(key, value):
        raise RuntimeError("boom")

    store.subscribe(broken)
    store.subscribe(lambda key, value: seen.append(key))
    store.set("x", 1)
    assert seen == ["x"]
    assert store.get("x") == 1


def test_json_file_store_persists(tmp_path):
    path = tmp_path / "storage.json"
    store = JsonFileStore(str(path))
    store.set("vaultSalt", [1, 2, 3])
    assert json.loads(path.read_text(encoding="utf-8")) == {"vaultSalt": [1, 2, 3]}
    assert JsonFileStore(str(path)).get("vaultSalt") == [1, 2, 3]
    assert not [p for p in tmp_path.iterdir() if p.name.endswith(".tmp")]


def test_failed_write_leaves_memory_and_disk_unchanged(tmp_path, monkeypatch):
    path = tmp_path / "storage.json"
    store = JsonFileStore(str(path))
    store.set("salt", [1, 2])
    seen = []
    store.subscribe(lambda key, value: seen.append(key))

    def full_disk(src, dst):
        raise OSError("No space left on device")

    monkeypatch.setattr(storage.os, "replace", full_disk)
    with pytest.raises(OSError):
        store.update({"salt": [3], "vault": "x"})
    with pytest.raises(OSError):
        store.remove("salt")

    assert store.get("salt") == [1, 2]
    assert "vault" not in store
    assert seen == []
    assert json.loads(path.read_text()) == {"salt": [1, 2]}
    assert os.listdir(tmp_path) == ["storage.json"]

def test_json_file_store_starts_empty_on_corrupt_file(tmp_path):
    path = tmp_path / "storage.json"
    path.write_text("{bad json", encoding="utf-8")
    store = JsonFileStore(str(path))
    assert store.keys() == []
    store.set("a", 1)
    assert json.loads(path.read_text(encoding="utf-8")) == {"a": 1}


def test_json_file_store_default_path_uses_data_dir(tmp_path, monkeypatch):
    monkeypatch.setenv(app_paths.HOME_ENV_VAR, str(tmp_path))
    app_paths.reset_cache()
    try:
        store = JsonFileStore()
        assert store.path == str(tmp_path / "storage.json")
    finally:
        app_paths.reset_cache()
