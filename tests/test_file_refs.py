"""Tests for the file reference store."""

import threading
from unittest.mock import patch

import pytest

from visionbot.dispatch.file_refs import DEFAULT_KEY_LENGTH, FileReferenceStore


class TestFileReferenceStore:
    """Tests for key allocation and lookup."""

    def test_put_then_get(self):
        store = FileReferenceStore()
        key = store.put("AgACAgQAAxkBAAIB")
        assert store.get(key) == "AgACAgQAAxkBAAIB"
        assert key in store
        assert len(key) == DEFAULT_KEY_LENGTH

    def test_unknown_key(self):
        store = FileReferenceStore()
        assert store.get("missing") is None
        assert "missing" not in store

    def test_same_file_gets_distinct_keys(self):
        store = FileReferenceStore()
        first = store.put("same-file")
        second = store.put("same-file")
        assert first != second
        assert len(store) == 2

    def test_files_with_shared_prefix_do_not_collide(self):
        store = FileReferenceStore()
        prefix = "AgACAgQAAxkBAAIBZ2" * 3
        first = store.put(prefix + "one")
        second = store.put(prefix + "two")
        assert store.get(first) == prefix + "one"
        assert store.get(second) == prefix + "two"

    def test_random_collision_is_retried(self):
        store = FileReferenceStore(key_length=4)
        with patch(
            "visionbot.dispatch.file_refs.secrets.token_urlsafe",
            side_effect=["aaaaaa", "aaaaaa", "bbbbbb"],
        ):
            first = store.put("file-1")
            second = store.put("file-2")

        assert first == "aaaa"
        assert second == "bbbb"
        assert store.get("aaaa") == "file-1"

    def test_short_key_length_rejected(self):
        with pytest.raises(ValueError):
            FileReferenceStore(key_length=3)

    def test_concurrent_puts(self):
        store = FileReferenceStore()
        keys: list[str] = []
        lock = threading.Lock()

        def worker(n: int) -> None:
            for i in range(100):
                key = store.put(f"file-{n}-{i}")
                with lock:
                    keys.append(key)

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(set(keys)) == 800
        assert len(store) == 800
