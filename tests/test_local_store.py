"""Local autosave cache."""

from __future__ import annotations

import logging

from flow_editor.examples import load_example
from flow_editor.graph.adapter import to_presentation
from flow_editor.storage import LocalStore


class TestLocalStore:
    def test_empty_directory(self, tmp_path):
        store = LocalStore(tmp_path / "cache")
        assert store.load_current() is None

    def test_save_then_load(self, tmp_path):
        store = LocalStore(tmp_path / "cache")
        graph = to_presentation(load_example("food_ordering"))
        store.save_current(graph)
        assert store.path.exists()
        assert not store.path.with_suffix(".json.tmp").exists()
        assert store.load_current() == graph

    def test_corrupt_file_is_ignored(self, tmp_path, caplog):
        store = LocalStore(tmp_path)
        store.path.write_text("{not json", encoding="utf-8")
        with caplog.at_level(logging.WARNING, logger="flow_editor.storage.local_store"):
            assert store.load_current() is None
        assert "unreadable cache" in caplog.text

    def test_malformed_file_is_ignored(self, tmp_path, caplog):
        store = LocalStore(tmp_path)
        store.path.write_text('{"nodes": "oops"}', encoding="utf-8")
        with caplog.at_level(logging.WARNING, logger="flow_editor.storage.local_store"):
            assert store.load_current() is None
        assert "malformed cache" in caplog.text

    def test_clear(self, tmp_path):
        store = LocalStore(tmp_path)
        store.save_current(to_presentation(load_example("minimal")))
        store.clear()
        assert not store.path.exists()
        store.clear()
