"""Tests for claimtrail.ledger and the audit/claim storage layer."""

from datetime import datetime

import pytest

from claimtrail.api.database import AuditEntry, ClaimRepository, DatabaseManager
from claimtrail.api.models import AuditAction, ClaimStatus
from claimtrail.exceptions import ConcurrencyConflictError, StorageError
from claimtrail.ledger import AuditLedger
from claimtrail.tests.conftest import make_claim


def _append(db, ledger, claim_id="C1", action=AuditAction.WEBHOOK_RECEIVED, **kwargs):
    with db.get_session() as session:
        return ledger.append(
            session,
            claim_id=claim_id,
            action=action,
            actor_id=kwargs.pop("actor_id", "WEBHOOK_HANDLER"),
            description=kwargs.pop("description", "test entry"),
            **kwargs,
        )


class TestAppend:
    def test_returns_durable_id(self, db, ledger):
        first = _append(db, ledger)
        second = _append(db, ledger)
        assert first.id is not None
        assert second.id > first.id

    def test_details_round_trip(self, db, ledger):
        entry = _append(db, ledger, details={"amount": 12.5, "when": datetime(2026, 1, 2), "tags": {"b", "a"}})
        stored = ledger.query("C1").all()[0]
        assert stored.id == entry.id
        assert stored.details == {"amount": 12.5, "when": "2026-01-02T00:00:00", "tags": ["a", "b"]}

    def test_unknown_action_tags_are_storable(self, db, ledger):
        _append(db, ledger, action="LEGACY_IMPORT")
        assert ledger.query("C1").all()[0].action == "LEGACY_IMPORT"

    def test_system_wide_entry(self, db, ledger):
        entry = _append(db, ledger, claim_id=None, action="SYSTEM_NOTICE")
        assert entry.claim_id is None
        assert ledger.recent()[0].id == entry.id

    def test_timestamps_never_go_backwards(self, db, ledger):
        _append(db, ledger, timestamp=datetime(2026, 1, 2, 12, 0))
        late = _append(db, ledger, timestamp=datetime(2026, 1, 1, 12, 0))
        assert late.timestamp == datetime(2026, 1, 2, 12, 0)

    def test_other_claims_do_not_clamp(self, db, ledger):
        _append(db, ledger, claim_id="C1", timestamp=datetime(2026, 1, 2))
        other = _append(db, ledger, claim_id="C2", timestamp=datetime(2026, 1, 1))
        assert other.timestamp == datetime(2026, 1, 1)

    def test_failure_raises_storage_error(self):
        db = DatabaseManager("sqlite:///:memory:")  # no tables
        ledger = AuditLedger(db)
        with pytest.raises(StorageError):
            _append(db, ledger)


class TestImmutability:
    def test_update_refused(self, db, ledger):
        entry = _append(db, ledger)
        with pytest.raises(StorageError, match="write-once"):
            with db.get_session() as session:
                stored = session.get(AuditEntry, entry.id)
                stored.description = "rewritten"
        assert ledger.query("C1").all()[0].description == "test entry"

    def test_delete_refused(self, db, ledger):
        entry = _append(db, ledger)
        with pytest.raises(StorageError, match="write-once"):
            with db.get_session() as session:
                session.delete(session.get(AuditEntry, entry.id))
        assert len(ledger.query("C1").all()) == 1


class TestQuery:
    def test_ordered_by_timestamp_then_id(self, db, ledger):
        a = _append(db, ledger, claim_id="C1", timestamp=datetime(2026, 1, 1, 9, 0))
        _append(db, ledger, claim_id="C2", timestamp=datetime(2026, 1, 1, 8, 0))
        b = _append(db, ledger, claim_id="C1", timestamp=datetime(2026, 1, 1, 10, 0))
        c = _append(db, ledger, claim_id="C1", timestamp=datetime(2026, 1, 1, 10, 0))
        assert [e.id for e in ledger.query("C1")] == [a.id, b.id, c.id]

    def test_restartable(self, db, ledger):
        _append(db, ledger)
        query = ledger.query("C1")
        first = [e.id for e in query]
        second = [e.id for e in query]
        assert first == second

        _append(db, ledger)
        assert len(list(query)) == 2

    def test_lazy_until_iterated(self):
        ledger = AuditLedger(DatabaseManager("sqlite:///:memory:"))  # no tables
        query = ledger.query("C1")
        with pytest.raises(StorageError):
            list(query)

    def test_session_bound_read_failure_is_storage_error(self):
        db = DatabaseManager("sqlite:///:memory:")  # no tables
        ledger = AuditLedger(db)
        session = db.SessionLocal()
        try:
            with pytest.raises(StorageError):
                list(ledger.query("C1", session=session))
        finally:
            session.close()

    def test_recent_failure_is_storage_error(self):
        with pytest.raises(StorageError):
            AuditLedger(DatabaseManager("sqlite:///:memory:")).recent()

    def test_empty_for_unknown_claim(self, ledger):
        assert ledger.query("missing").all() == []

    def test_recent_newest_first(self, db, ledger):
        ids = [_append(db, ledger, claim_id=f"C{i}").id for i in range(5)]
        recent = ledger.recent(limit=3)
        assert [e.id for e in recent] == list(reversed(ids))[:3]


class TestClaimRepository:
    def test_create_starts_at_version_one(self, db):
        claim = make_claim(db, "C1", ClaimStatus.SUBMITTED)
        assert claim.version == 1
        assert claim.status == claim.lifecycle_status == ClaimStatus.SUBMITTED

    def test_cannot_create_flagged(self, db):
        with pytest.raises(ValueError):
            make_claim(db, "C1", ClaimStatus.FLAGGED_FRAUD)

    def test_update_bumps_version(self, db):
        make_claim(db)
        with db.get_session() as session:
            repo = ClaimRepository(session)
            claim = repo.get_by_id("C1")
            repo.update(claim, 1, lifecycle_status=ClaimStatus.PAID, status=ClaimStatus.PAID)
            assert claim.version == 2

    def test_update_with_stale_version(self, db):
        make_claim(db)
        with pytest.raises(ConcurrencyConflictError):
            with db.get_session() as session:
                repo = ClaimRepository(session)
                repo.update(repo.get_by_id("C1"), 7, status=ClaimStatus.PAID)
