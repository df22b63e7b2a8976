# tests/unit/registry/test_sync_registry.py — v1
"""Tests for registry/sync_registry.py — status transitions, corruption recovery."""

from __future__ import annotations

import threading
from datetime import datetime, timedelta, timezone

import pytest

from ctxsync.conversion.converter import convert
from ctxsync.core.alerts import RecordingAlertChannel
from ctxsync.core.models import RegistryEntry
from ctxsync.registry.json_store import JsonRegistryStore
from ctxsync.registry.sync_registry import SyncRegistry

T0 = datetime(2026, 3, 1, tzinfo=timezone.utc)


class _Clock:
    def __init__(self, start: datetime = T0) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def clock():
    return _Clock()


@pytest.fixture
def registry(tmp_path, clock):
    reg = SyncRegistry(JsonRegistryStore(tmp_path / "registry.json"), clock=clock)
    assert reg.open() is True
    return reg


class TestTransitions:
    def test_mark_synced_from_meta(self, registry, competitors_source):
        meta = convert(competitors_source).representation.meta
        entry = registry.mark_synced(meta)
        assert entry.status == "synced"
        assert entry.source_fingerprint == entry.derived_fingerprint == competitors_source.fingerprint
        assert entry.category == "market"
        assert entry.error is None

    def test_outdated_then_error_keeps_derived_fingerprint(self, registry, competitors_source):
        meta = convert(competitors_source).representation.meta
        registry.mark_synced(meta)
        registry.mark_outdated(meta.document_id)
        entry = registry.mark_error(meta.document_id, "bad table", source_fingerprint="f2")
        assert entry.status == "error"
        assert entry.error == "bad table"
        assert entry.source_fingerprint == "f2"
        assert entry.derived_fingerprint == competitors_source.fingerprint

    def test_mark_error_for_new_document(self, registry):
        entry = registry.mark_error("new.md", "unreadable", source_fingerprint="")
        assert entry.status == "error"
        assert entry.has_representation is False

    def test_orphan_records_time_once(self, registry, clock):
        registry.mark_outdated("a.md")
        first = registry.mark_orphan("a.md")
        clock.now = T0 + timedelta(hours=1)
        again = registry.mark_orphan("a.md")
        assert first.orphaned_at == T0
        assert again.orphaned_at == T0

    def test_orphan_unknown(self, registry):
        assert registry.mark_orphan("nope.md") is None

    def test_reviving_clears_orphan_time(self, registry):
        registry.mark_outdated("a.md")
        registry.mark_orphan("a.md")
        assert registry.mark_outdated("a.md").orphaned_at is None

    def test_remove(self, registry):
        registry.mark_outdated("a.md")
        assert registry.remove("a.md") is True
        assert registry.remove("a.md") is False
        assert "a.md" not in registry

    def test_status_transition_logged(self, registry, caplog):
        import logging

        with caplog.at_level(logging.INFO, logger="ctxsync"):
            registry.mark_outdated("a.md")
        assert any("new -> outdated" in r.getMessage() for r in caplog.records)


class TestReads:
    def test_snapshot_is_read_only_copy(self, registry):
        registry.mark_outdated("a.md")
        snap = registry.snapshot()
        registry.mark_outdated("b.md")
        assert list(snap) == ["a.md"]
        with pytest.raises(TypeError):
            snap["c.md"] = None  # type: ignore[index]

    def test_list_by_status_sorted(self, registry):
        for doc_id in ("c.md", "a.md", "b.md"):
            registry.mark_outdated(doc_id)
        assert [e.document_id for e in registry.list_by_status("outdated")] == ["a.md", "b.md", "c.md"]

    def test_report_counts_every_status(self, registry):
        registry.mark_outdated("a.md")
        registry.mark_error("b.md", "x")
        report = registry.report()
        assert report.total == 2
        assert report.counts == {"synced": 0, "outdated": 1, "orphaned": 0, "error": 1}
        assert report.outdated == ["a.md"]
        assert report.errored == ["b.md"]

    def test_expired_orphans(self, registry, clock):
        registry.mark_outdated("old.md")
        registry.mark_orphan("old.md")
        clock.now = T0 + timedelta(days=2)
        registry.mark_outdated("young.md")
        registry.mark_orphan("young.md")
        now = T0 + timedelta(days=3)
        assert registry.expired_orphans(timedelta(days=2).total_seconds(), now) == ["old.md"]


class TestPersistence:
    def test_reopen(self, tmp_path, clock):
        path = tmp_path / "registry.json"
        reg = SyncRegistry(JsonRegistryStore(path), clock=clock)
        reg.open()
        reg.mark_outdated("a.md")
        reg.close()

        reopened = SyncRegistry(JsonRegistryStore(path), clock=clock)
        assert reopened.open() is True
        assert reopened.status("a.md") == "outdated"

    def test_corruption_resets_and_alerts(self, tmp_path):
        path = tmp_path / "registry.json"
        path.write_text("{broken")
        alerts = RecordingAlertChannel()
        reg = SyncRegistry(JsonRegistryStore(path), alerts)
        assert reg.open() is False
        assert reg.recovered_from_corruption is True
        assert len(reg) == 0
        assert alerts.alerts[0]["kind"] == "registry_corruption"
        # the store was reset to a valid empty document
        assert JsonRegistryStore(path).load() == {}

    def test_clear(self, registry, tmp_path):
        registry.mark_outdated("a.md")
        registry.clear()
        assert len(registry) == 0
        assert JsonRegistryStore(tmp_path / "registry.json").load() == {}


class TestConcurrentWrites:
    def test_parallel_writers_distinct_ids(self, registry):
        def writer(prefix: str) -> None:
            for i in range(50):
                registry.mark_outdated(f"{prefix}/{i}.md")

        threads = [threading.Thread(target=writer, args=(p,)) for p in ("a", "b", "c", "d")]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert len(registry) == 200
        assert registry.report().counts["outdated"] == 200

    def test_upsert(self, registry):
        entry = RegistryEntry(document_id="x.md", status="orphaned", updated_at=T0, orphaned_at=T0)
        registry.upsert(entry)
        assert registry.get("x.md") == entry
