import json
import os
import sys

sys.path.append(os.path.join(os.path.dirname(__file__), '..', 'src'))

from voicepipe.storage import JSONFileStore, MemoryStore


def test_memory_store_roundtrip():
    store = MemoryStore({"a": "1"})

    store.set("b", "2")
    store.remove("a")
    store.remove("missing")

    assert store.get("a") is None
    assert store.snapshot() == {"b": "2"}


def test_json_store_persists_across_instances(tmp_path):
    path = tmp_path / "nested" / "state.json"
    JSONFileStore(path).set("ai-tts-enabled", "true")

    reopened = JSONFileStore(path)

    assert reopened.get("ai-tts-enabled") == "true"
    assert json.loads(path.read_text()) == {"ai-tts-enabled": "true"}


def test_json_store_remove(tmp_path):
    path = tmp_path / "state.json"
    store = JSONFileStore(path)
    store.set("a", "1")
    store.set("b", "2")

    store.remove("a")

    assert JSONFileStore(path).get("a") is None
    assert JSONFileStore(path).get("b") == "2"


def test_json_store_treats_corrupt_file_as_empty(tmp_path):
    path = tmp_path / "state.json"
    path.write_text("{broken")
    store = JSONFileStore(path)

    assert store.get("anything") is None
    store.set("k", "v")
    assert json.loads(path.read_text()) == {"k": "v"}


def test_json_store_leaves_no_temp_files(tmp_path):
    store = JSONFileStore(tmp_path / "state.json")
    for i in range(3):
        store.set(f"k{i}", str(i))

    assert sorted(p.name for p in tmp_path.iterdir()) == ["state.json"]
