# tests/unit/storage/test_derived_store.py — v1
"""Tests for storage/derived_store.py — atomic derived files."""

from __future__ import annotations

from unittest.mock import patch

import pytest

from ctxsync.conversion.converter import convert
from ctxsync.storage.derived_store import DerivedStore, atomic_write, serialize


@pytest.fixture
def store(tmp_path):
    return DerivedStore(tmp_path / "state")


class TestAtomicWrite:
    def test_writes_and_replaces(self, tmp_path):
        target = tmp_path / "sub" / "file.json"
        atomic_write(target, b"one")
        atomic_write(target, b"two")
        assert target.read_bytes() == b"two"
        assert [p.name for p in target.parent.iterdir()] == ["file.json"]

    def test_failure_keeps_old_content(self, tmp_path):
        target = tmp_path / "file.json"
        atomic_write(target, b"old")
        with patch("ctxsync.storage.derived_store.os.replace", side_effect=OSError("disk full")):
            with pytest.raises(OSError):
                atomic_write(target, b"new")
        assert target.read_bytes() == b"old"
        assert [p.name for p in tmp_path.iterdir()] == ["file.json"]


class TestDerivedStore:
    def test_write_read(self, store, competitors_source):
        rep = convert(competitors_source).representation
        path = store.write(rep)
        assert path.name == "competitors.md.json"
        assert store.read("market/competitors.md") == rep
        assert path.read_bytes() == serialize(rep)

    def test_read_missing(self, store):
        assert store.read("nope.md") is None

    def test_read_garbage(self, store):
        path = store.path_for("bad.md")
        path.parent.mkdir(parents=True)
        path.write_text("{not json")
        assert store.read("bad.md") is None

    def test_document_ids(self, store, competitors_source, api_source):
        store.write(convert(competitors_source).representation)
        store.write(convert(api_source).representation)
        assert store.document_ids() == ["market/competitors.md", "specs/api.md"]

    def test_delete_prunes_empty_dirs(self, store, competitors_source, tmp_path):
        store.write(convert(competitors_source).representation)
        assert store.delete("market/competitors.md") is True
        assert store.delete("market/competitors.md") is False
        assert not (tmp_path / "state" / "derived" / "market").exists()
        assert (tmp_path / "state" / "derived").is_dir()
