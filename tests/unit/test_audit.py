"""Tests for the security audit log."""

import json
from datetime import timedelta

from ballotguard.audit.service import AuditService
from ballotguard.common.security import ANONYMOUS_ACTOR, RequestContext


async def _record(db, audit_svc, action="VOTE_CAST", success=True, **kwargs):
    async with db.get_session() as session:
        return await audit_svc.record(
            session, kwargs.pop("actor", "voter-1"), action, "vote",
            kwargs.pop("details", {}), success, kwargs.pop("meta", None), **kwargs,
        )


class TestRecord:
    async def test_entry_is_scored_and_signed(self, db, audit_svc, clock):
        entry = await _record(db, audit_svc, election_id="e-1")
        assert entry.category == "VOTE"
        assert entry.risk_score == 20
        assert entry.risk_level == "LOW"
        assert entry.is_suspicious is False
        assert len(entry.entry_hash) == 64
        assert len(entry.signature) == 64
        assert entry.expires_at == clock.now() + timedelta(days=730)

    async def test_failure_raises_risk(self, db, audit_svc):
        entry = await _record(db, audit_svc, action="SECRET_CODE_FAILED", success=False)
        assert entry.category == "SECURITY"
        assert entry.risk_score == 90
        assert entry.risk_level == "CRITICAL"
        assert entry.is_suspicious is True

    async def test_anonymous_actor(self, db, audit_svc):
        entry = await _record(db, audit_svc, actor=None)
        assert entry.actor_id == ANONYMOUS_ACTOR

    async def test_request_metadata_captured(self, db, audit_svc):
        context = RequestContext(
            ip_address="10.1.2.3", user_agent="pytest", device_fingerprint="fp",
            session_id="s-1", location={"country": "KE"},
        )
        entry = await _record(db, audit_svc, meta=context.as_meta())
        assert entry.ip_address == "10.1.2.3"
        assert entry.session_id == "s-1"
        assert entry.location == {"country": "KE"}
        # Location data adds to the score.
        assert entry.risk_score == 25

    async def test_details_stored_as_json(self, db, audit_svc, clock):
        entry = await _record(db, audit_svc, details={"when": clock.now(), "n": 1})
        assert entry.details == {"when": str(clock.now()), "n": 1}
        json.dumps(entry.details)

    async def test_write_failure_does_not_raise(self, db, audit_svc, monkeypatch):
        def broken(*args, **kwargs):
            raise RuntimeError("disk full")

        monkeypatch.setattr(audit_svc, "_build_entry", broken)
        assert await _record(db, audit_svc) is None

    async def test_failed_insert_leaves_caller_transaction_intact(
        self, db, audit_svc, monkeypatch,
    ):
        monkeypatch.setattr("ballotguard.audit.service.generate_uuid", lambda: "fixed-id")
        async with db.get_session() as session:
            first = await audit_svc.record(session, "voter-1", "VOTE_CAST", "vote")
            second = await audit_svc.record(session, "voter-1", "VOTE_CAST", "vote")
            assert first is not None
            assert second is None
        async with db.get_session() as session:
            _, total = await audit_svc.query(session)
            assert total == 1


class TestQuery:
    async def test_filters(self, db, audit_svc, clock):
        await _record(db, audit_svc, election_id="e-1")
        await _record(db, audit_svc, action="SECRET_CODE_FAILED", success=False, election_id="e-1")
        clock.advance(minutes=5)
        await _record(db, audit_svc, election_id="e-2", actor="voter-2")

        async with db.get_session() as session:
            _, total = await audit_svc.query(session)
            assert total == 3
            _, total = await audit_svc.query(session, election_id="e-1")
            assert total == 2
            entries, total = await audit_svc.query(session, success=False)
            assert total == 1
            assert entries[0].action == "SECRET_CODE_FAILED"
            _, total = await audit_svc.query(session, category="SECURITY")
            assert total == 1
            _, total = await audit_svc.query(session, risk_level="CRITICAL")
            assert total == 1
            entries, total = await audit_svc.query(session, actor="voter-2")
            assert total == 1
            _, total = await audit_svc.query(session, since=clock.now())
            assert total == 1

    async def test_newest_first_with_paging(self, db, audit_svc, clock):
        for i in range(5):
            await _record(db, audit_svc, details={"i": i})
            clock.advance(seconds=1)
        async with db.get_session() as session:
            entries, total = await audit_svc.query(session, limit=2, offset=0)
            assert total == 5
            assert [e.details["i"] for e in entries] == [4, 3]
            entries, _ = await audit_svc.query(session, limit=2, offset=4)
            assert [e.details["i"] for e in entries] == [0]

    async def test_statistics(self, db, audit_svc):
        await _record(db, audit_svc, meta={"ip_address": "10.0.0.1"})
        await _record(db, audit_svc, actor="voter-2", meta={"ip_address": "10.0.0.2"})
        await _record(db, audit_svc, action="SECRET_CODE_FAILED", success=False,
                      meta={"ip_address": "10.0.0.2"})
        async with db.get_session() as session:
            stats = await audit_svc.statistics(session)
        assert stats["total"] == 3
        assert stats["successful"] == 2
        assert stats["failed"] == 1
        assert stats["high_risk"] == 1
        assert stats["unique_actors"] == 2
        assert stats["unique_ips"] == 2
        assert stats["success_rate"] == 66.67


class TestVerify:
    async def test_untouched_entries_verify(self, db, audit_svc):
        for _ in range(3):
            await _record(db, audit_svc, election_id="e-1")
        async with db.get_session() as session:
            result = await audit_svc.verify_entries(session, election_id="e-1")
        assert result == {"valid": True, "entries_checked": 3, "invalid_ids": []}

    async def test_tampered_entry_detected(self, db, audit_svc):
        await _record(db, audit_svc)
        target = await _record(db, audit_svc, details={"candidate_id": "c-1"})
        async with db.get_session() as session:
            entries, _ = await audit_svc.query(session)
            for entry in entries:
                if entry.id == target.id:
                    entry.details = {"candidate_id": "c-2"}
        async with db.get_session() as session:
            result = await audit_svc.verify_entries(session)
        assert result["valid"] is False
        assert result["invalid_ids"] == [target.id]

    async def test_rotated_key_still_verifies(self, db, settings, clock):
        old = AuditService(
            settings.model_copy(update={"audit_hmac_keys": '{"0": "old-key"}'}), clock=clock,
        )
        await _record(db, old)
        rotated = AuditService(
            settings.model_copy(update={"audit_hmac_keys": '{"0": "old-key", "1": "new-key"}'}),
            clock=clock,
        )
        await _record(db, rotated)
        async with db.get_session() as session:
            result = await rotated.verify_entries(session)
        assert result["valid"] is True
        assert result["entries_checked"] == 2


class TestRetention:
    async def test_purge_expired(self, db, audit_svc, clock):
        await _record(db, audit_svc)
        clock.advance(days=100)
        await _record(db, audit_svc)
        async with db.get_session() as session:
            purged = await audit_svc.purge_expired(session, now=clock.now() + timedelta(days=700))
        assert purged == 1
        async with db.get_session() as session:
            _, total = await audit_svc.query(session)
            assert total == 1
