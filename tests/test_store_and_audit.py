"""
Tests for the Document Store and Audit Log

Tests covering:
1. Atomic batch commits (all or nothing)
2. Server timestamps and file persistence
3. Audit entry hashing and tamper detection
4. Best-effort audit writes never raise
"""

import tempfile
from pathlib import Path

import pytest

from core.moderation import (
    SERVER_TIMESTAMP,
    AuditEntry,
    AuditLogger,
    DependencyUnavailable,
    DocumentStore,
    InvalidTransition,
    NotFound,
    diff_fields,
)
from core.moderation.audit import ACTION_UPDATE, ENTITY_LISTING
from core.moderation.store import AUDIT_LOGS, LISTINGS


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def temp_persist_path():
    """Create a temporary file path for persistence."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield str(Path(tmpdir) / "store.json")


@pytest.fixture
def store():
    store = DocumentStore()
    store.set(LISTINGS, "a", {"status": "pending"})
    store.set(LISTINGS, "b", {"status": "pending"})
    return store


# =============================================================================
# Store Tests
# =============================================================================


class TestDocumentStore:
    """Test store reads and writes."""

    def test_reads_are_copies(self, store):
        doc = store.get(LISTINGS, "a")
        doc["status"] = "approved"
        assert store.get(LISTINGS, "a")["status"] == "pending"

    def test_update_missing_document_fails(self, store):
        with pytest.raises(DependencyUnavailable):
            store.update(LISTINGS, "missing", {"status": "approved"})

    def test_merge_keeps_other_fields(self, store):
        store.set(LISTINGS, "a", {"badge": None}, merge=True)
        assert store.get(LISTINGS, "a") == {"status": "pending", "badge": None}

    def test_server_timestamp_resolved(self, store):
        store.update(LISTINGS, "a", {"updatedAt": SERVER_TIMESTAMP})
        assert isinstance(store.get(LISTINGS, "a")["updatedAt"], str)

    def test_query_by_field(self, store):
        store.update(LISTINGS, "b", {"status": "approved"})
        assert [d["status"] for d in store.query(LISTINGS, status="approved")] == ["approved"]

    def test_persistence_round_trip(self, temp_persist_path):
        DocumentStore(temp_persist_path).set(LISTINGS, "x", {"title": "Plot"})
        assert DocumentStore(temp_persist_path).get(LISTINGS, "x") == {"title": "Plot"}


class TestAtomicBatch:
    """Test that a failing batch leaves the store unchanged."""

    def test_batch_with_missing_document_applies_nothing(self, store):
        batch = store.batch()
        batch.update(LISTINGS, "a", {"status": "approved"})
        batch.update(LISTINGS, "missing", {"status": "approved"})

        with pytest.raises(DependencyUnavailable):
            batch.commit()

        assert store.get(LISTINGS, "a")["status"] == "pending"

    def test_failure_mid_commit_applies_nothing(self, store, monkeypatch):
        original = DocumentStore._apply_write
        calls = []

        def flaky(self, collections, op, collection, doc_id, data, now):
            calls.append(doc_id)
            if len(calls) == 2:
                raise OSError("disk gone")
            return original(self, collections, op, collection, doc_id, data, now)

        monkeypatch.setattr(DocumentStore, "_apply_write", flaky)

        batch = store.batch()
        batch.update(LISTINGS, "a", {"status": "approved"})
        batch.update(LISTINGS, "b", {"status": "approved"})
        with pytest.raises(DependencyUnavailable):
            batch.commit()

        assert store.get(LISTINGS, "a")["status"] == "pending"
        assert store.get(LISTINGS, "b")["status"] == "pending"

    def test_failed_persist_applies_nothing(self, temp_persist_path, monkeypatch):
        store = DocumentStore(temp_persist_path)
        store.set(LISTINGS, "a", {"status": "pending"})

        def fail(self, collections):
            raise OSError("read-only filesystem")

        monkeypatch.setattr(DocumentStore, "_save_to_file", fail)
        with pytest.raises(DependencyUnavailable):
            store.update(LISTINGS, "a", {"status": "approved"})

        assert store.get(LISTINGS, "a")["status"] == "pending"

    def test_batch_commits_once(self, store):
        batch = store.batch().update(LISTINGS, "a", {"status": "approved"})
        batch.commit()
        with pytest.raises(RuntimeError):
            batch.commit()

    def test_commit_copies_only_touched_collections(self, store, monkeypatch):
        store.set(AUDIT_LOGS, "entry-1", {"action": "UPDATE"})
        original = DocumentStore._apply_write
        staged = []

        def recording(self, collections, op, collection, doc_id, data, now):
            staged.append(collections)
            return original(self, collections, op, collection, doc_id, data, now)

        monkeypatch.setattr(DocumentStore, "_apply_write", recording)
        audit_before = store._collections[AUDIT_LOGS]
        listings_before = store._collections[LISTINGS]

        store.update(LISTINGS, "a", {"status": "approved"})

        assert staged[0][AUDIT_LOGS] is audit_before
        assert staged[0][LISTINGS] is not listings_before
        assert listings_before["a"]["status"] == "pending"
        assert store.get(LISTINGS, "a")["status"] == "approved"
        assert store.get(AUDIT_LOGS, "entry-1") == {"action": "UPDATE"}


class TestConditionalWrites:
    """Test writes that require the stored document to be unchanged."""

    def test_matching_expectation_applies(self, store):
        store.update(LISTINGS, "a", {"status": "approved"}, expect={"status": "pending"})
        assert store.get(LISTINGS, "a")["status"] == "approved"

    def test_changed_field_rejected(self, store):
        store.update(LISTINGS, "a", {"status": "rejected"})

        with pytest.raises(InvalidTransition):
            store.update(LISTINGS, "a", {"badge": "Gold"}, expect={"status": "approved"})

        assert store.get(LISTINGS, "a") == {"status": "rejected"}

    def test_missing_document_not_found(self, store):
        with pytest.raises(NotFound):
            store.update(LISTINGS, "missing", {"status": "approved"}, expect={"status": "pending"})

    def test_failed_expectation_discards_whole_batch(self, store):
        batch = store.batch()
        batch.update(LISTINGS, "a", {"status": "approved"}, expect={"status": "pending"})
        batch.update(LISTINGS, "b", {"status": "approved"}, expect={"status": "rejected"})

        with pytest.raises(InvalidTransition):
            batch.commit()

        assert store.get(LISTINGS, "a")["status"] == "pending"
        assert store.get(LISTINGS, "b")["status"] == "pending"


# =============================================================================
# Audit Tests
# =============================================================================


class TestDiffFields:
    """Test field-level diffs."""

    def test_only_changed_fields(self):
        changes = diff_fields({"a": 1, "b": 2}, {"a": 1, "b": 3})
        assert changes == {"b": {"old": 2, "new": 3}}

    def test_restricted_fields(self):
        changes = diff_fields({"a": 1}, {"a": 2, "b": 5}, fields=["a"])
        assert changes == {"a": {"old": 1, "new": 2}}


class TestAuditEntry:
    """Test entry hashing."""

    def test_hash_verifies(self):
        entry = AuditEntry.create("admin-1", ACTION_UPDATE, ENTITY_LISTING, {"status": {"old": "pending", "new": "approved"}}, "LST-1")
        assert entry.entry_id.startswith("AUD-")
        assert entry.verify_hash()

    def test_tampered_entry_detected(self):
        entry = AuditEntry.create("admin-1", ACTION_UPDATE, ENTITY_LISTING, {"status": {"old": "pending", "new": "approved"}}, "LST-1")
        data = entry.to_dict()
        data["changes"]["status"]["new"] = "rejected"
        assert not AuditEntry.from_dict(data).verify_hash()

    def test_round_trip_keeps_hash(self):
        entry = AuditEntry.create("admin-1", ACTION_UPDATE, ENTITY_LISTING, {}, "LST-1")
        assert AuditEntry.from_dict(entry.to_dict()).verify_hash()


class TestAuditLogger:
    """Test best-effort audit writes."""

    def test_record_and_read_back(self, store):
        audit = AuditLogger(store)
        audit.record("admin-1", ACTION_UPDATE, ENTITY_LISTING, {"status": {"old": "pending", "new": "approved"}}, "a")
        audit.record("admin-1", ACTION_UPDATE, ENTITY_LISTING, {"status": {"old": "pending", "new": "rejected"}}, "b")

        entries = audit.entries(entity_type=ENTITY_LISTING, entity_id="a")
        assert len(entries) == 1
        assert entries[0].admin_id == "admin-1"

    def test_failed_write_returns_none(self, store, monkeypatch):
        def fail(self, writes):
            raise DependencyUnavailable("store offline")

        monkeypatch.setattr(DocumentStore, "_commit", fail)
        result = AuditLogger(store).record("admin-1", ACTION_UPDATE, ENTITY_LISTING, {}, "a")
        assert result is None

    def test_unexpected_failure_never_raises(self, store, monkeypatch):
        def fail(self, writes):
            raise RuntimeError("boom")

        monkeypatch.setattr(DocumentStore, "_commit", fail)
        assert AuditLogger(store).record_many([AuditEntry.create("admin-1", ACTION_UPDATE, ENTITY_LISTING, {}, "a")]) is False
        assert store.count(AUDIT_LOGS) == 0
