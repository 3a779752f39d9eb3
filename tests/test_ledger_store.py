"""
Tests for the Ledger Store.
"""

import json
from datetime import date
from unittest.mock import Mock

import pytest

from conftest import make_record
from trademind.ledger import ChangeKind, ChangeOrigin, LedgerStore
from trademind.models.audit import AuditEventType
from trademind.models.records import (
    ArtifactKind,
    BackupDocument,
    ProfileDocument,
    RecordOutcome,
    SessionArtifact,
    default_profile,
)
from trademind.services.storage import (
    InMemoryKeyValueStorage,
    KeyValueStorage,
    LocalPersistenceError,
)


def logged_types(audit_logger) -> list:
    return [c.args[0].event_type for c in audit_logger.log.call_args_list]


class FailingWrites(InMemoryKeyValueStorage):
    """Storage whose writes fail (disk full)."""

    def set(self, key: str, value: str) -> None:
        raise LocalPersistenceError("disk full")


class TestUpsert:
    """Tests for inserting and updating records."""

    def test_new_records_go_to_head(self, store):
        """Test that inserts are placed at the head of the sequence."""
        store.upsert_record(make_record("1"))
        store.upsert_record(make_record("2"))
        assert [r.id for r in store.records] == ["2", "1"]

    def test_update_replaces_in_place(self, store):
        """Test that an update keeps the record's position."""
        store.upsert_record(make_record("1"))
        store.upsert_record(make_record("2"))
        inserted = store.upsert_record(make_record("1", pnl=-500.0))
        assert inserted is False
        assert [r.id for r in store.records] == ["2", "1"]
        assert store.get_record("1").pnl == -500.0

    def test_upsert_is_idempotent(self, store, storage):
        """Test upserting an unmodified record twice persists the same aggregate."""
        record = make_record("1", outcome=RecordOutcome.LOSS)
        store.upsert_record(record)
        first = storage.get(store.records_key)
        store.upsert_record(record)
        assert storage.get(store.records_key) == first

    def test_upsert_persists_before_returning(self, store, storage):
        """Test the records aggregate is in storage when the call returns."""
        store.upsert_record(make_record("1"))
        persisted = json.loads(storage.get("tradeMind_trades"))
        assert [r["id"] for r in persisted] == ["1"]

    def test_upsert_emits_one_change(self, store):
        """Test every mutation emits exactly one change event."""
        listener = Mock()
        store.subscribe(listener)
        store.upsert_record(make_record("1"))
        listener.assert_called_once()
        change = listener.call_args.args[0]
        assert change.kind == ChangeKind.RECORDS
        assert change.origin == ChangeOrigin.LOCAL
        assert change.records_changed is True
        assert [r.id for r in change.snapshot.records] == ["1"]


class TestDelete:
    """Tests for deleting records."""

    def test_delete_removes_record(self, store):
        """Test that delete removes by id."""
        store.upsert_record(make_record("1"))
        assert store.delete_record("1") is True
        assert store.records == []

    def test_delete_absent_is_silent_noop(self, store):
        """Test deleting an unknown id emits no event."""
        listener = Mock()
        store.subscribe(listener)
        assert store.delete_record("missing") is False
        listener.assert_not_called()


class TestImport:
    """Tests for importing records."""

    def test_import_adds_only_unseen_ids(self, store):
        """Test that existing records are left untouched by an import."""
        store.upsert_record(make_record("1", pnl=100.0))
        added = store.import_records([make_record("1", pnl=-1.0), make_record("2")])
        assert added == 1
        assert [r.id for r in store.records] == ["2", "1"]
        assert store.get_record("1").pnl == 100.0

    def test_import_of_known_records_emits_nothing(self, store):
        """Test an import that adds nothing does not trigger a change."""
        store.upsert_record(make_record("1"))
        listener = Mock()
        store.subscribe(listener)
        assert store.import_records([make_record("1")]) == 0
        listener.assert_not_called()


class TestProfileAndArtifacts:
    """Tests for the profile and session artifacts."""

    def test_replace_profile_overwrites(self, store, storage):
        """Test profile replacement is a full overwrite."""
        store.replace_profile(ProfileDocument(name="ORB", tags=["breakout"]))
        store.replace_profile(ProfileDocument(name="VWAP"))
        assert store.profile.name == "VWAP"
        assert store.profile.tags == []
        assert json.loads(storage.get("tradeMind_strategy"))["name"] == "VWAP"

    def test_write_artifact_stamps_today(self, store):
        """Test the artifact date defaults to today."""
        artifact = store.write_artifact(ArtifactKind.PRE_MARKET_NOTES, {"notes": "gap up"})
        assert artifact.date == "2024-03-04"
        assert artifact.timestamp is not None
        assert store.artifact(ArtifactKind.PRE_MARKET_NOTES).data == {"notes": "gap up"}

    def test_write_artifact_same_kind_overwrites(self, store):
        """Test that one artifact per kind is retained."""
        store.write_artifact(ArtifactKind.NEWS_ANALYSIS, "first", date_key="2024-03-01")
        store.write_artifact(ArtifactKind.NEWS_ANALYSIS, "second", date_key="2024-03-02")
        artifact = store.artifact(ArtifactKind.NEWS_ANALYSIS)
        assert artifact.data == "second"
        assert artifact.date == "2024-03-02"

    def test_writing_none_clears_artifact(self, store, storage):
        """Test that writing None removes the artifact."""
        store.write_artifact(ArtifactKind.PRE_MARKET_IMAGES, ["a.png"])
        store.write_artifact(ArtifactKind.PRE_MARKET_IMAGES, None)
        assert store.artifact(ArtifactKind.PRE_MARKET_IMAGES) is None
        assert storage.get(store.artifact_key(ArtifactKind.PRE_MARKET_IMAGES)) is None


class TestReplaceAll:
    """Tests for full replacement from a backup."""

    def test_replace_all_is_full_overwrite(self, store):
        """Test absent artifacts are removed and records replaced."""
        store.upsert_record(make_record("local"))
        store.write_artifact(ArtifactKind.PRE_MARKET_NOTES, "local notes")

        backup = BackupDocument(
            records=[make_record("remote")],
            profile=ProfileDocument(name="Remote"),
        )
        store.replace_all(backup)

        assert [r.id for r in store.records] == ["remote"]
        assert store.profile.name == "Remote"
        assert store.artifact(ArtifactKind.PRE_MARKET_NOTES) is None

    def test_replace_all_without_profile_uses_template(self, store):
        """Test a backup without a profile falls back to the template."""
        store.replace_profile(ProfileDocument(name="Mine"))
        store.replace_all(BackupDocument(records=[make_record("1")]))
        assert store.profile.is_template

    def test_replace_all_emits_single_remote_change(self, store):
        """Test a full replacement is one event tagged REMOTE."""
        listener = Mock()
        store.subscribe(listener)
        store.replace_all(BackupDocument(records=[make_record("1"), make_record("2")]))
        listener.assert_called_once()
        change = listener.call_args.args[0]
        assert change.kind == ChangeKind.ALL
        assert change.origin == ChangeOrigin.REMOTE


class TestLoad:
    """Tests for loading from local storage."""

    def test_load_round_trip(self, storage, audit_logger):
        """Test a fresh store sees what another one persisted."""
        first = LedgerStore(storage, audit_logger=audit_logger)
        first.upsert_record(make_record("1", ai_feedback={"grade": 80}))
        first.replace_profile(ProfileDocument(name="ORB"))
        first.write_artifact(ArtifactKind.POST_MARKET_ANALYSIS, {"score": 7}, date_key="2024-03-04")

        second = LedgerStore(storage, audit_logger=audit_logger)
        second.load()
        assert second.records == first.records
        assert second.profile == first.profile
        assert second.artifact(ArtifactKind.POST_MARKET_ANALYSIS) == \
            first.artifact(ArtifactKind.POST_MARKET_ANALYSIS)

    def test_corrupt_aggregate_does_not_block_others(self, audit_logger):
        """Test a parse failure on one aggregate is isolated."""
        storage = InMemoryKeyValueStorage({
            "tradeMind_trades": "{not json",
            "tradeMind_strategy": json.dumps({"name": "ORB"}),
            "tradeMind_artifact_preMarketNotes": json.dumps(
                {"date": "2024-03-04", "data": "plan"}
            ),
        })
        store = LedgerStore(storage, audit_logger=audit_logger)
        store.load()

        assert store.records == []
        assert store.profile.name == "ORB"
        assert store.artifact(ArtifactKind.PRE_MARKET_NOTES).data == "plan"
        assert AuditEventType.LOCAL_PERSISTENCE_FAILED in logged_types(audit_logger)

    def test_corrupt_profile_falls_back_to_template(self, audit_logger):
        """Test an unreadable profile is treated as absent."""
        storage = InMemoryKeyValueStorage({"tradeMind_strategy": json.dumps({"tags": 3})})
        store = LedgerStore(storage, audit_logger=audit_logger)
        store.load()
        assert store.profile == default_profile()

    def test_invalid_records_are_skipped(self, audit_logger):
        """Test one malformed record does not drop the others."""
        storage = InMemoryKeyValueStorage({
            "tradeMind_trades": json.dumps([
                {"id": "good", "date": "2024-03-04"},
                {"id": "bad", "date": "yesterday"},
            ]),
        })
        store = LedgerStore(storage, audit_logger=audit_logger)
        store.load()
        assert [r.id for r in store.records] == ["good"]

    def test_read_failure_is_absorbed(self, audit_logger):
        """Test a storage read error leaves the store usable."""
        storage = Mock(spec=KeyValueStorage)
        storage.get.side_effect = LocalPersistenceError("locked")
        store = LedgerStore(storage, audit_logger=audit_logger)
        store.load()
        assert store.records == []
        assert store.profile.is_template


class TestFailureIsolation:
    """Tests that failures never break a mutation."""

    def test_write_failure_is_logged_not_raised(self, audit_logger):
        """Test the mutation succeeds in memory when persistence fails."""
        store = LedgerStore(FailingWrites(), audit_logger=audit_logger)
        store.upsert_record(make_record("1"))
        assert [r.id for r in store.records] == ["1"]
        assert AuditEventType.LOCAL_PERSISTENCE_FAILED in logged_types(audit_logger)

    def test_failing_listener_does_not_starve_others(self, store, audit_logger):
        """Test listener exceptions are isolated."""
        broken = Mock(side_effect=RuntimeError("boom"))
        healthy = Mock()
        store.subscribe(broken)
        store.subscribe(healthy)

        store.upsert_record(make_record("1"))

        healthy.assert_called_once()
        assert store.get_record("1") is not None
        assert AuditEventType.LISTENER_FAILED in logged_types(audit_logger)

    def test_unsubscribe(self, store):
        """Test an unsubscribed listener no longer receives events."""
        listener = Mock()
        unsubscribe = store.subscribe(listener)
        unsubscribe()
        store.upsert_record(make_record("1"))
        listener.assert_not_called()


class TestSnapshotAndReset:
    """Tests for snapshots and reset."""

    def test_snapshot_is_a_deep_copy(self, store):
        """Test mutating a snapshot leaves the store untouched."""
        store.upsert_record(make_record("1", mistakes=["late entry"]))
        snapshot = store.snapshot()
        snapshot.records[0].mistakes.append("oversized")
        assert store.get_record("1").mistakes == ["late entry"]
        assert snapshot.last_updated is not None

    def test_reset_clears_everything(self, store, storage):
        """Test reset clears memory and local storage."""
        store.upsert_record(make_record("1"))
        store.replace_profile(ProfileDocument(name="ORB"))
        store.reset()
        assert store.records == []
        assert store.profile.is_template
        assert storage.keys() == []

    def test_custom_prefix(self, audit_logger):
        """Test keys use the configured prefix."""
        storage = InMemoryKeyValueStorage()
        store = LedgerStore(storage, key_prefix="demo_", audit_logger=audit_logger,
                            today=lambda: date(2024, 1, 1))
        store.upsert_record(make_record("1"))
        assert storage.keys() == ["demo_trades"]
